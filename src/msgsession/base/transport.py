# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/base/transport.py
# DESCRIPTION:    ZeroMQ transport handle
# CREATED:        12.10.2026
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

"""msgsession ZeroMQ transport handle.

`TransportHandle` owns exactly one ZeroMQ socket created for a `.ProtocolType` and
configured from `.SocketOptions`. It translates ZeroMQ errors into the msgsession error
taxonomy:

1. `zmq.Again` is a timeout (`.SendTimeout` / `.ReceiveTimeout`).
2. `ENOTSOCK` and `ETERM` mean that the socket (or whole context) is gone
   (`.ConnectionClosed`).
3. Any other `zmq.ZMQError` is a failure of the operation (`.SendFailed` /
   `.ReceiveFailed`).

Blocking operations on one handle must never race. The handle carries a `token` lock;
whoever performs blocking I/O on the handle must hold it.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import suppress
from time import monotonic

import zmq
from zmq import Again, ZMQError
from zmq.utils.monitor import recv_monitor_message

from firebird.base.logging import FStrMessage as _m
from firebird.base.logging import get_logger
from firebird.base.trace import TracedMixin

from .config import SocketOptions, zmq_timeout
from .types import (
    ConnectError,
    ConnectionClosed,
    ConstructionError,
    ProtocolType,
    ReceiveFailed,
    ReceiveTimeout,
    SendFailed,
    SendTimeout,
)

#: ZeroMQ error codes that indicate closed socket or terminated context
CLOSED_ERRNOS: frozenset[int] = frozenset([zmq.ENOTSOCK, zmq.ETERM])

def is_closed_error(exc: ZMQError) -> bool:
    """Returns True if ZeroMQ error means that the socket or context is gone.
    """
    return isinstance(exc, zmq.ContextTerminated) or exc.errno in CLOSED_ERRNOS

def create_signal_channel(context: zmq.Context, name: str) -> tuple[zmq.Socket, zmq.Socket]:
    """Creates one-shot inproc PAIR channel used to wake up a thread blocked in poll.

    Arguments:
        context: ZeroMQ context. Must be the same context as the one used by polled sockets.
        name: Channel name prefix.

    Returns:
        Tuple with receiving and sending socket.
    """
    addr = f'inproc://{name}.{uuid.uuid1().hex}'
    receiver: zmq.Socket = context.socket(zmq.PAIR)
    receiver.linger = 0
    try:
        receiver.bind(addr)
        sender: zmq.Socket = context.socket(zmq.PAIR)
    except ZMQError:
        receiver.close(0)
        raise
    sender.linger = 0
    sender.connect(addr)
    return receiver, sender

class TransportHandle(TracedMixin):
    """Live ZeroMQ socket bound to one messaging protocol.

    Arguments:
        context: ZeroMQ context used to create the socket.
        protocol: Messaging protocol.
        options: Socket options. Timeouts are applied before any I/O.

    Raises:
        ConstructionError: When socket could not be created or configured.
    """
    def __init__(self, context: zmq.Context, protocol: ProtocolType,
                 options: SocketOptions | None=None):
        if options is None:
            options = SocketOptions()
        options.validate()
        self._protocol: ProtocolType = protocol
        self._options: SocketOptions = options
        self._closing: threading.Event = threading.Event()
        #: Lock that must be held by whoever performs blocking I/O on the socket
        self.token: threading.Lock = threading.Lock()
        #: Dialed or bound endpoint address
        self.endpoint: str | None = None
        #: ZeroMQ socket
        self.socket: zmq.Socket | None = None
        try:
            self.socket = context.socket(protocol.socket_type)
            self.socket.linger = options.linger
            self.socket.rcvtimeo = options.recv_timeout
            self.socket.sndtimeo = options.send_timeout
            self._configure()
        except Exception as exc:
            if self.socket is not None:
                self.socket.close(0)
            if isinstance(exc, (ZMQError, OverflowError, ValueError)):
                raise ConstructionError(f"Cannot create {protocol.name} socket: {exc}",
                                        operation='create',
                                        errno=getattr(exc, 'errno', None)) from exc
            raise
    def _configure(self) -> None:
        """Protocol specific socket set-up.
        """
        if self._protocol is ProtocolType.SUB0:
            self.socket.subscribe = b''
        elif self._protocol is ProtocolType.REQ0:
            # Allow new request after timed out one
            self.socket.req_relaxed = 1
            self.socket.req_correlate = 1
    def _check_open(self, operation: str) -> None:
        if self.closed:
            raise ConnectionClosed("Transport handle is closed", operation=operation,
                                   endpoint=self.endpoint)
    def _wait_connected(self, url: str, timeout: int) -> bool:
        monitor: zmq.Socket = self.socket.get_monitor_socket(zmq.EVENT_CONNECTED)
        try:
            self.socket.connect(url)
            deadline = monotonic() + (timeout / 1000)
            while (remaining := deadline - monotonic()) > 0:
                if monitor.poll(int(remaining * 1000) + 1) == 0:
                    break
                event = recv_monitor_message(monitor)
                if event['event'] == zmq.EVENT_CONNECTED:
                    return True
            return False
        finally:
            self.socket.disable_monitor()
            monitor.close(0)
    def dial(self, url: str, *, timeout: int | None=None) -> None:
        """Connect the socket to remote endpoint.

        Arguments:
            url: Endpoint address, e.g. `tcp://127.0.0.1:5555`.
            timeout: Time in milliseconds to wait for established connection. If `None`
                     or zero, uses ZeroMQ asynchronous connect (returns immediately).

        Raises:
            ConnectError: When address is not valid, or connection was not established in time.
        """
        self._check_open('dial')
        if timeout is None:
            timeout = self._options.dial_timeout_ms
        try:
            if timeout:
                if not self._wait_connected(url, timeout):
                    with suppress(ZMQError):
                        self.socket.disconnect(url)
                    raise ConnectError(f"Endpoint '{url}' not reachable within {timeout}ms",
                                       operation='dial', endpoint=url)
            else:
                self.socket.connect(url)
        except ZMQError as exc:
            raise ConnectError(f"Cannot connect to '{url}': {exc}", operation='dial',
                               endpoint=url, errno=exc.errno) from exc
        self.endpoint = url
        get_logger(self).debug(_m("Dialed {url}", url=url))
    def bind(self, url: str) -> str:
        """Bind the socket to an address.

        Arguments:
            url: Endpoint address. Wildcard port specification (e.g. `tcp://127.0.0.1:*`)
                 is allowed.

        Returns:
            The actual endpoint address.

        Raises:
            ConnectError: When socket could not be bound to address.
        """
        self._check_open('bind')
        try:
            self.socket.bind(url)
        except ZMQError as exc:
            raise ConnectError(f"Cannot bind to '{url}': {exc}", operation='bind',
                               endpoint=url, errno=exc.errno) from exc
        self.endpoint = self.socket.last_endpoint.decode('utf8')
        get_logger(self).debug(_m("Bound to {endpoint}", endpoint=self.endpoint))
        return self.endpoint
    def send(self, payload: bytes, *, nowait: bool=False) -> None:
        """Send message.

        Arguments:
            payload: Message.
            nowait: When True, do not wait (fails with `.SendTimeout` if message can't be
                    queued), otherwise blocks up to configured send timeout.

        Raises:
            SendTimeout: When message was not submitted in time.
            SendFailed: When transport rejected the message.
            ConnectionClosed: When handle or its context is closed.
        """
        self._check_open('send')
        try:
            self.socket.send(payload, zmq.NOBLOCK if nowait else 0)
        except Again as exc:
            raise SendTimeout(f"Send timed out after {self._options.send_timeout_ms}ms",
                              operation='send', endpoint=self.endpoint,
                              errno=exc.errno) from exc
        except ZMQError as exc:
            if is_closed_error(exc):
                raise ConnectionClosed("Connection closed", operation='send',
                                       endpoint=self.endpoint, errno=exc.errno) from exc
            raise SendFailed(f"Send failed: {exc}", operation='send', endpoint=self.endpoint,
                             errno=exc.errno) from exc
    def recv(self, *, nowait: bool=False) -> bytes:
        """Receive message. Frames of multipart message are concatenated.

        Arguments:
            nowait: When True, do not wait for a message (fails with `.ReceiveTimeout`
                    if none is available), otherwise blocks up to configured receive timeout.

        Raises:
            ReceiveTimeout: When no message arrived in time.
            ReceiveFailed: When transport failed to receive the message.
            ConnectionClosed: When handle or its context is closed.
        """
        self._check_open('recv')
        try:
            frames = self.socket.recv_multipart(flags=zmq.NOBLOCK if nowait else 0)
        except Again as exc:
            raise ReceiveTimeout(f"Receive timed out after {self._options.recv_timeout_ms}ms",
                                 operation='recv', endpoint=self.endpoint,
                                 errno=exc.errno) from exc
        except ZMQError as exc:
            if is_closed_error(exc):
                raise ConnectionClosed("Connection closed", operation='recv',
                                       endpoint=self.endpoint, errno=exc.errno) from exc
            raise ReceiveFailed(f"Receive failed: {exc}", operation='recv',
                                endpoint=self.endpoint, errno=exc.errno) from exc
        return frames[0] if len(frames) == 1 else b''.join(frames)
    def poll(self, timeout: int | None=None) -> bool:
        """Returns True if at least one message could be received without blocking.

        Arguments:
            timeout: The timeout in milliseconds. `None` means `infinite`.
        """
        self._check_open('poll')
        try:
            return self.socket.poll(timeout, zmq.POLLIN) == zmq.POLLIN
        except ZMQError as exc:
            if is_closed_error(exc):
                raise ConnectionClosed("Connection closed", operation='poll',
                                       endpoint=self.endpoint, errno=exc.errno) from exc
            raise ReceiveFailed(f"Poll failed: {exc}", operation='poll',
                                endpoint=self.endpoint, errno=exc.errno) from exc
    def mark_closing(self) -> None:
        """Marks the handle as being closed by its owner. Errors raised by operations in
        progress are then not reported by receive loops.
        """
        self._closing.set()
    def close(self) -> None:
        """Close the socket. Does nothing when socket is already closed.

        Note:
            Pending outbound messages are kept for `SocketOptions.linger_ms` period.
        """
        self._closing.set()
        if self.socket is not None and not self.socket.closed:
            self.socket.close()
            get_logger(self).debug(_m("Closed {protocol} socket", protocol=self._protocol.name))
    @property
    def protocol(self) -> ProtocolType:
        "Messaging protocol."
        return self._protocol
    @property
    def options(self) -> SocketOptions:
        "Socket options."
        return self._options
    @property
    def recv_timeout(self) -> int | None:
        "Receive timeout in milliseconds, `None` means infinite."
        value = zmq_timeout(self._options.recv_timeout_ms)
        return None if value < 0 else value
    @property
    def send_timeout(self) -> int | None:
        "Send timeout in milliseconds, `None` means infinite."
        value = zmq_timeout(self._options.send_timeout_ms)
        return None if value < 0 else value
    @property
    def closing(self) -> bool:
        "True if owner started to close the handle."
        return self._closing.is_set()
    @property
    def closed(self) -> bool:
        "True if socket is closed."
        return self.socket is None or self.socket.closed
