# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/core/listener.py
# DESCRIPTION:    Background receive loop and cancellation handle
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

"""Background receive loop and its cancellation handle.

`ReceiveLoop` runs in a dedicated thread and forwards every message received on a
`.TransportHandle` to a `.CallbackBridge`. The loop waits on the handle socket together
with the receiving end of a one-shot inproc PAIR channel, so a stop request is noticed
immediately, not only after the receive timeout expires.

Receive policy:

1. An expired receive timeout means "no message yet", the loop continues.
2. `.ConnectionClosed` is terminal. It's reported once, and the loop exits.
3. Any other transport error is reported and the loop continues.
4. Errors raised while the handle owner is closing the handle are not reported, and the
   loop exits.

While running, the loop holds the handle's `token`, so no other blocking operation can
interleave with it.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from typing import Final, TypeAlias

import zmq
from msgsession.base import (
    JOIN_TIMEOUT,
    ConnectionClosed,
    DisposeError,
    Failure,
    LoopState,
    ReceiveCallback,
    ReceiveFailed,
    ReceiveTimeout,
    SessionError,
    StartError,
    Success,
    TransmissionError,
    TransportHandle,
    create_signal_channel,
    is_closed_error,
)
from zmq import ZMQError

from firebird.base.logging import FStrMessage as _m
from firebird.base.logging import get_logger
from firebird.base.trace import TracedMixin

from .bridge import CallbackBridge, ThreadBridge

#: Payload of the stop signal
STOP_SIGNAL: Final[bytes] = b'STOP'

#: Bridge factory
TBridgeFactory: TypeAlias = Callable[[ReceiveCallback], CallbackBridge]

class ReceiveLoop(TracedMixin):
    """Background listener that delivers inbound messages to a callback bridge.

    Arguments:
        handle: Connected transport handle.
        bridge: Callback bridge that receives the results.
        name: Name for the loop thread.
    """
    def __init__(self, handle: TransportHandle, bridge: CallbackBridge, *,
                 name: str | None=None):
        #: Transport handle
        self.handle: TransportHandle = handle
        #: Callback bridge
        self.bridge: CallbackBridge = bridge
        #: Loop name
        self.name: str = name or f'msgsession-recv-{uuid.uuid1().hex[:8]}'
        #: Loop state
        self.state: LoopState = LoopState.CREATED
        #: Error that terminated the loop
        self.error: SessionError | None = None
        self._thread: threading.Thread | None = None
        self._stop_rx: zmq.Socket | None = None
    def _poll(self, poller: zmq.Poller) -> dict[zmq.Socket, int]:
        try:
            return dict(poller.poll(self.handle.recv_timeout))
        except ZMQError as exc:
            if is_closed_error(exc):
                raise ConnectionClosed("Connection closed", operation='recv',
                                       endpoint=self.handle.endpoint, errno=exc.errno) from exc
            raise ReceiveFailed(f"Receive failed: {exc}", operation='recv',
                                endpoint=self.handle.endpoint, errno=exc.errno) from exc
    def start(self) -> CancellationHandle:
        """Starts the loop thread and returns immediately.

        Returns:
            Handle that stops the loop.

        Raises:
            StartError: When loop was already started, handle is not open, its protocol
                        can't receive messages, or handle is borrowed by another loop.
        """
        try:
            if self.state is not LoopState.CREATED:
                raise StartError("Receive loop already started")
            if self.handle.closed or self.handle.closing:
                raise StartError("Transport handle is not open", endpoint=self.handle.endpoint)
            if not self.handle.protocol.can_receive:
                raise StartError(f"Protocol {self.handle.protocol.name} can't receive messages",
                                 endpoint=self.handle.endpoint)
            if not self.handle.token.acquire(blocking=False):
                raise StartError("Transport handle is used by another operation",
                                 endpoint=self.handle.endpoint)
        except StartError:
            self.bridge.close()
            raise
        sender: zmq.Socket | None = None
        try:
            self._stop_rx, sender = create_signal_channel(self.handle.socket.context, self.name)
            self._thread = threading.Thread(target=self.run, name=self.name, daemon=True)
            self.state = LoopState.RUNNING
            self._thread.start()
        except Exception as exc:
            self.state = LoopState.ABORTED
            for sock in (self._stop_rx, sender):
                if sock is not None:
                    sock.close(0)
            self.handle.token.release()
            self.bridge.close()
            raise StartError(f"Cannot start receive loop: {exc}",
                             endpoint=self.handle.endpoint) from exc
        get_logger(self).debug(_m("Receive loop {name} started on {endpoint}", name=self.name,
                                  endpoint=self.handle.endpoint))
        return CancellationHandle(self, sender)
    def run(self) -> None:
        """Loop thread body. Returns when stop signal arrives or on terminal error.
        """
        poller = zmq.Poller()
        poller.register(self.handle.socket, zmq.POLLIN)
        poller.register(self._stop_rx, zmq.POLLIN)
        try:
            while True:
                try:
                    events = self._poll(poller)
                    if self._stop_rx in events:
                        break
                    if self.handle.socket not in events:
                        continue # receive timeout, no message yet
                    payload = self.handle.recv(nowait=True)
                except ReceiveTimeout:
                    continue
                except ConnectionClosed as exc:
                    if not self.handle.closing:
                        self.error = exc
                        self.state = LoopState.ABORTED
                        self.bridge.deliver(Failure(exc))
                    break
                except TransmissionError as exc:
                    if self.handle.closing:
                        break
                    get_logger(self).warning(_m("Receive error: {exc}", exc=exc))
                    self.bridge.deliver(Failure(exc))
                else:
                    self.bridge.deliver(Success(payload))
        finally:
            self._stop_rx.close(0)
            self.handle.token.release()
            if self.state is LoopState.ABORTED:
                # Deliver pending results including the terminal failure
                self.bridge.close(cancel=False, wait=False)
            else:
                self.state = LoopState.STOPPED
            get_logger(self).debug(_m("Receive loop {name} finished", name=self.name))
    def is_alive(self) -> bool:
        """Returns True if loop thread is running.
        """
        return self._thread is not None and self._thread.is_alive()
    def join(self, timeout: float | None=None) -> bool:
        """Wait until loop thread finishes.

        Arguments:
            timeout: Time in seconds to wait. `None` means infinite.

        Returns:
            True if loop thread finished.
        """
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        return not self.is_alive()

class CancellationHandle:
    """Caller-held token that stops a `.ReceiveLoop`.

    Arguments:
        loop: Receive loop.
        sender: Sending end of loop's stop channel.
    """
    def __init__(self, loop: ReceiveLoop, sender: zmq.Socket):
        self._loop: ReceiveLoop = loop
        self._sender: zmq.Socket = sender
        self._disposed: bool = False
        self._lock: threading.Lock = threading.Lock()
    def __enter__(self) -> CancellationHandle:
        return self
    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.dispose()
    def dispose(self, *, timeout: float | None=JOIN_TIMEOUT) -> None:
        """Stops the receive loop. Does nothing when called again.

        When this method returns, no further callback invocations for the loop will occur.
        Results received but not delivered yet are discarded.

        Arguments:
            timeout: Time in seconds to wait for loop thread to finish.

        Raises:
            DisposeError: When stop signal could not be delivered to running loop. The loop
                          is nevertheless detached from its callback, so it's safe to ignore.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        try:
            if self._loop.is_alive():
                try:
                    self._sender.send(STOP_SIGNAL, zmq.NOBLOCK)
                except ZMQError as exc:
                    if self._loop.is_alive():
                        raise DisposeError(f"Cannot signal receive loop: {exc}",
                                           endpoint=self._loop.handle.endpoint,
                                           errno=exc.errno) from exc
                if not self._loop.join(timeout):
                    get_logger(self._loop).warning(_m("Receive loop {name} did not stop in time",
                                                      name=self._loop.name))
        finally:
            self._sender.close(0)
            self._loop.bridge.close(cancel=True)
    @property
    def disposed(self) -> bool:
        "True if `dispose()` was called."
        return self._disposed
    @property
    def loop(self) -> ReceiveLoop:
        "Receive loop controlled by this handle."
        return self._loop

def start_receive_loop(handle: TransportHandle, callback: ReceiveCallback, *,
                       bridge: TBridgeFactory=ThreadBridge, name: str | None=None) -> CancellationHandle:
    """Starts background receive loop on transport handle.

    Arguments:
        handle: Connected transport handle.
        callback: Callable with `(error, payload)` signature.
        bridge: Factory that creates callback bridge for `callback`.
        name: Name for the loop thread.

    Returns:
        Handle that stops the loop.

    Raises:
        StartError: When loop could not be started.
    """
    return ReceiveLoop(handle, bridge(callback), name=name).start()
