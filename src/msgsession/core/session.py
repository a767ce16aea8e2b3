# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/core/session.py
# DESCRIPTION:    Socket session
# CREATED:        14.10.2026
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

"""Socket session over a single ZeroMQ transport handle.

`SocketSession` is the exclusive owner of one `.TransportHandle`. It offers a synchronous
request/reply exchange (`~SocketSession.send`) and background listeners
(`~SocketSession.recv`). Both share the handle, and the handle's `token` makes sure
that they never run at the same time: `send` fails with `.HandleBusyError` while a
receive loop is active.

Session lifecycle::

    IDLE --> CONNECTED --> CLOSING --> CLOSED
      |                                  ^
      +----------------------------------+

A closed session can't be connected again; create a new session instead.
"""

from __future__ import annotations

import threading
from typing import Final

import zmq
from msgsession.base import (
    JOIN_TIMEOUT,
    ConnectError,
    ConnectionClosed,
    ConstructionError,
    DisposeError,
    HandleBusyError,
    NotConnectedError,
    ProtocolType,
    ReceiveCallback,
    ReceiveFailed,
    SendFailed,
    SessionError,
    SessionState,
    SocketOptions,
    TransportHandle,
    create_signal_channel,
    is_closed_error,
)
from zmq import ZMQError

from firebird.base.logging import FStrMessage as _m
from firebird.base.logging import get_logger
from firebird.base.trace import TracedMixin

from .bridge import ThreadBridge
from .listener import CancellationHandle, TBridgeFactory, start_receive_loop

#: Valid session state transitions
TRANSITIONS: Final[dict[SessionState, frozenset[SessionState]]] = {
    SessionState.IDLE: frozenset([SessionState.CONNECTED, SessionState.CLOSED]),
    SessionState.CONNECTED: frozenset([SessionState.CLOSING]),
    SessionState.CLOSING: frozenset([SessionState.CLOSED]),
    SessionState.CLOSED: frozenset(),
}

class SocketSession(TracedMixin):
    """Logical socket session over one ZeroMQ transport handle.

    Arguments:
        options: Socket options applied to transport handle created by `connect()`.
        context: ZeroMQ context. If not specified, uses the global instance.

    Raises:
        ConstructionError: When options are not valid.
    """
    def __init__(self, options: SocketOptions | None=None, *,
                 context: zmq.Context | None=None):
        if options is None:
            options = SocketOptions()
        options.validate()
        self._options: SocketOptions = options
        self._context: zmq.Context = zmq.Context.instance() if context is None else context
        self._state: SessionState = SessionState.IDLE
        self._handle: TransportHandle | None = None
        self._url: str | None = None
        self._loops: list[CancellationHandle] = []
        self._wakeup_rx: zmq.Socket | None = None
        self._wakeup_tx: zmq.Socket | None = None
        self._lock: threading.RLock = threading.RLock()
    def __enter__(self) -> SocketSession:
        return self
    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
    def _transition(self, state: SessionState) -> None:
        if state not in TRANSITIONS[self._state]:
            raise SessionError(f"Invalid session transition {self._state.name} -> {state.name}",
                               endpoint=self._url)
        get_logger(self).debug(_m("Session {old} -> {new}", old=self._state.name,
                                  new=state.name))
        self._state = state
    def _check_connected(self, operation: str) -> TransportHandle:
        if self._state is not SessionState.CONNECTED:
            raise NotConnectedError(f"Session is not connected ({self._state.name})",
                                    operation=operation, endpoint=self._url)
        return self._handle
    def _wait_ready(self, handle: TransportHandle, event: int, timeout: int | None,
                    operation: str) -> None:
        """Waits until handle is ready for `event`, its timeout expires, or session is closed.
        """
        poller = zmq.Poller()
        poller.register(handle.socket, event)
        poller.register(self._wakeup_rx, zmq.POLLIN)
        try:
            events = dict(poller.poll(timeout))
        except ZMQError as exc:
            if is_closed_error(exc):
                raise ConnectionClosed("Connection closed", operation=operation,
                                       endpoint=handle.endpoint, errno=exc.errno) from exc
            error = SendFailed if operation == 'send' else ReceiveFailed
            raise error(f"Poll failed: {exc}", operation=operation, endpoint=handle.endpoint,
                        errno=exc.errno) from exc
        if self._wakeup_rx in events:
            raise ConnectionClosed("Session closed during exchange", operation=operation,
                                   endpoint=handle.endpoint)
    def connect(self, protocol: ProtocolType, url: str) -> None:
        """Creates transport handle for protocol and connects it to remote endpoint.

        If connection fails, the handle is released and the session remains idle, so the
        call could be retried.

        Arguments:
            protocol: Messaging protocol.
            url: Endpoint address, e.g. `tcp://127.0.0.1:5555`.

        Raises:
            SessionError: When session is already connected or closed.
            ConstructionError: When transport handle could not be created.
            ConnectError: When endpoint could not be dialed.
        """
        with self._lock:
            if self._state is not SessionState.IDLE:
                raise SessionError(f"Cannot connect session in state {self._state.name}",
                                   operation='connect', endpoint=url)
            handle = TransportHandle(self._context, protocol, self._options)
            try:
                handle.dial(url)
            except ConnectError as exc:
                get_logger(self).debug(_m("Connect to {url} failed: {exc}", url=url, exc=exc))
                handle.close()
                raise
            try:
                self._wakeup_rx, self._wakeup_tx = create_signal_channel(self._context,
                                                                         'msgsession-session')
            except ZMQError as exc:
                handle.close()
                raise ConstructionError(f"Cannot create wake-up channel: {exc}",
                                        operation='connect', endpoint=url,
                                        errno=exc.errno) from exc
            self._handle = handle
            self._url = url
            self._transition(SessionState.CONNECTED)
    def send(self, payload: bytes) -> bytes:
        """Sends request and waits for reply.

        Send-only protocols (`PUB0`, `PUSH0`) have no reply, so empty bytes are returned
        once the request is submitted.

        Arguments:
            payload: Request message.

        Returns:
            Reply message.

        Raises:
            NotConnectedError: When session is not connected.
            HandleBusyError: When receive loop is active on this session.
            SendTimeout: When request was not submitted in time.
            SendFailed: When transport rejected the request, or protocol can't send.
            ReceiveTimeout: When reply did not arrive in time.
            ReceiveFailed: When transport failed to receive the reply.
            ConnectionClosed: When session was closed during the exchange.
        """
        handle = self._check_connected('send')
        if not handle.protocol.can_send:
            raise SendFailed(f"Protocol {handle.protocol.name} can't send messages",
                             operation='send', endpoint=self._url)
        if not handle.token.acquire(blocking=False):
            raise HandleBusyError("Transport handle is borrowed by active receive loop",
                                  operation='send', endpoint=self._url)
        try:
            if handle.closing:
                raise ConnectionClosed("Session is closing", operation='send',
                                       endpoint=self._url)
            # Waits are interrupted by close()
            self._wait_ready(handle, zmq.POLLOUT, handle.send_timeout, 'send')
            handle.send(payload, nowait=True)
            if not handle.protocol.can_receive:
                return b''
            self._wait_ready(handle, zmq.POLLIN, handle.recv_timeout, 'recv')
            return handle.recv(nowait=True)
        finally:
            handle.token.release()
    def recv(self, callback: ReceiveCallback, *, bridge: TBridgeFactory=ThreadBridge,
             name: str | None=None) -> CancellationHandle:
        """Starts background receive loop that passes inbound messages to callback.

        Arguments:
            callback: Callable with `(error, payload)` signature.
            bridge: Factory that creates callback bridge for `callback`.
            name: Name for the loop thread.

        Returns:
            Handle that stops the loop.

        Raises:
            NotConnectedError: When session is not connected.
            StartError: When loop could not be started.
        """
        with self._lock:
            handle = self._check_connected('recv')
            self._loops = [loop for loop in self._loops if not loop.disposed]
            result = start_receive_loop(handle, callback, bridge=bridge, name=name)
            self._loops.append(result)
        return result
    def close(self) -> None:
        """Stops all receive loops and closes the transport handle. Does nothing when
        session is already closed.

        Errors caused by closing are not reported to receive loop callbacks.
        """
        with self._lock:
            if self._state is SessionState.CLOSED:
                get_logger(self).info("Session already closed")
                return
            if self._state is SessionState.IDLE:
                self._transition(SessionState.CLOSED)
                return
            self._transition(SessionState.CLOSING)
            handle = self._handle
            handle.mark_closing()
            for loop in self._loops:
                try:
                    loop.dispose()
                except DisposeError as exc:
                    get_logger(self).debug(_m("Receive loop stop failed: {exc}", exc=exc))
            self._loops.clear()
            try:
                self._wakeup_tx.send(b'CLOSE', zmq.NOBLOCK)
            except ZMQError as exc:
                get_logger(self).debug(_m("Wake-up signal failed: {exc}", exc=exc))
            # Wait for exchange in progress
            if handle.token.acquire(timeout=JOIN_TIMEOUT):
                handle.token.release()
            else:
                get_logger(self).warning(_m("Closing {url} with operation in progress",
                                            url=self._url))
            handle.close()
            self._wakeup_rx.close(0)
            self._wakeup_tx.close(0)
            self._wakeup_rx = self._wakeup_tx = None
            self._handle = None
            self._url = None
            self._transition(SessionState.CLOSED)
    def is_connected(self) -> bool:
        "Returns True if session is connected."
        return self._state is SessionState.CONNECTED
    @property
    def state(self) -> SessionState:
        "Session lifecycle state."
        return self._state
    @property
    def url(self) -> str | None:
        "Connected endpoint address."
        return self._url
    @property
    def protocol(self) -> ProtocolType | None:
        "Messaging protocol of connected session."
        return None if self._handle is None else self._handle.protocol
    @property
    def options(self) -> SocketOptions:
        "Socket options."
        return self._options
    @property
    def handle(self) -> TransportHandle | None:
        "Transport handle of connected session."
        return self._handle
