# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/core/bridge.py
# DESCRIPTION:    Callback bridges for receive loops
# CREATED:        13.10.2026
#
# The contents of this file are subject to the MIT License
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
#
# Copyright (c) 2026 The msgsession Project
# All Rights Reserved.
#
# Contributor(s): ______________________________________.

"""Callback bridges that carry receive loop results into the caller's execution context.

A bridge is fed by exactly one `.ReceiveLoop`. The loop calls `CallbackBridge.deliver`
from its own thread; the bridge must never block it and must invoke the user callback
in the order in which results were delivered.

Available bridges:

1. `ThreadBridge` (default) invokes the callback from a dedicated dispatcher thread.
2. `AsyncioBridge` invokes the callback in an `asyncio` event loop.
"""

from __future__ import annotations

import asyncio
import queue
import threading
from abc import ABC, abstractmethod
from typing import Final

from msgsession.base import JOIN_TIMEOUT, ReceiveCallback, Result, Success

from firebird.base.logging import FStrMessage as _m
from firebird.base.logging import get_logger

#: Queue item that stops the dispatcher thread
_STOP: Final[object] = object()

class CallbackBridge(ABC):
    """Abstract base class for callback bridges.

    Arguments:
        callback: Callable with `(error, payload)` signature. Exactly one argument is `None`.
    """
    def __init__(self, callback: ReceiveCallback):
        #: User callback
        self.callback: ReceiveCallback = callback
        self._cancelled: threading.Event = threading.Event()
    def invoke(self, result: Result) -> None:
        """Invokes the callback with result, unless the bridge was cancelled.

        Exceptions raised by callback are logged and ignored.
        """
        if self._cancelled.is_set():
            return
        try:
            if isinstance(result, Success):
                self.callback(None, result.payload)
            else:
                self.callback(result.error, None)
        except Exception as exc:
            get_logger(self).exception(_m("Receive callback failed: {exc!r}", exc=exc))
    @abstractmethod
    def deliver(self, result: Result) -> None:
        """Schedules callback invocation with result. Must not block.

        Arguments:
            result: `.Success` or `.Failure` instance.
        """
    @abstractmethod
    def close(self, *, cancel: bool=True, wait: bool=True) -> None:
        """Stops the bridge. When bridge is already closed, a call with `cancel` still
        discards results that were not delivered yet, and `wait` still applies.

        Arguments:
            cancel: When True, results that were not delivered yet are discarded,
                    otherwise all pending results are delivered before the bridge stops.
            wait: When True, waits until callback invocation in progress (if any) finishes.
                  Ignored when called from within the callback.
        """
    def in_context(self) -> bool:
        """Returns True if called from the execution context in which the callback runs.
        """
        return False
    @property
    def cancelled(self) -> bool:
        "True if pending results are discarded."
        return self._cancelled.is_set()

class ThreadBridge(CallbackBridge):
    """Callback bridge that invokes the callback from a dedicated dispatcher thread.

    Arguments:
        callback: Callable with `(error, payload)` signature.
        name: Name for dispatcher thread.
    """
    def __init__(self, callback: ReceiveCallback, *, name: str | None=None):
        super().__init__(callback)
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._closed: bool = False
        self._lock: threading.Lock = threading.Lock()
        self._thread: threading.Thread = threading.Thread(target=self._dispatch,
                                                          name=name or 'msgsession-bridge',
                                                          daemon=True)
        self._thread.start()
    def _dispatch(self) -> None:
        while (result := self._queue.get()) is not _STOP:
            self.invoke(result)
    def deliver(self, result: Result) -> None:
        """Schedules callback invocation with result. Results delivered after `close()` are
        silently discarded.
        """
        with self._lock:
            if not self._closed:
                self._queue.put(result)
    def close(self, *, cancel: bool=True, wait: bool=True) -> None:
        with self._lock:
            if cancel:
                self._cancelled.set()
            if not self._closed:
                self._closed = True
                self._queue.put(_STOP)
        if wait and not self.in_context():
            self._thread.join(JOIN_TIMEOUT)
    def in_context(self) -> bool:
        return threading.current_thread() is self._thread

class AsyncioBridge(CallbackBridge):
    """Callback bridge that invokes the callback in an `asyncio` event loop.

    Arguments:
        callback: Callable with `(error, payload)` signature.
        loop: Event loop where callback should run. If not specified, uses the running loop.

    Important:
        Must be created from a coroutine (or thread running the event loop) when `loop` is
        not specified.
    """
    def __init__(self, callback: ReceiveCallback, *, loop: asyncio.AbstractEventLoop | None=None):
        super().__init__(callback)
        #: Target event loop
        self.loop: asyncio.AbstractEventLoop = asyncio.get_running_loop() if loop is None else loop
        self._closed: bool = False
    def deliver(self, result: Result) -> None:
        """Schedules callback invocation with result. Results delivered after `close()`, or
        after event loop was closed are silently discarded.
        """
        if self._closed:
            return
        try:
            self.loop.call_soon_threadsafe(self.invoke, result)
        except RuntimeError:
            get_logger(self).warning("Event loop closed, receive result discarded")
    def close(self, *, cancel: bool=True, wait: bool=True) -> None:
        self._closed = True
        if cancel:
            self._cancelled.set()
    def in_context(self) -> bool:
        try:
            return asyncio.get_running_loop() is self.loop
        except RuntimeError:
            return False
