# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/core/peer.py
# DESCRIPTION:    Echo peer
# CREATED:        15.10.2026
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

"""Echo peer that serves as the cooperating endpoint for socket sessions.

`EchoPeer` binds a `.TransportHandle` and runs a background thread that answers every
inbound message with the same payload (protocols `REP0`, `PAIR0`, `PAIR1` and `BUS0`),
or just collects it (receive-only protocols like `PULL0` and `SUB0`).
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Final

import zmq
from msgsession.base import (
    JOIN_TIMEOUT,
    ConnectionClosed,
    ProtocolType,
    SessionError,
    SocketOptions,
    TransmissionError,
    TransportHandle,
    create_signal_channel,
)
from zmq import ZMQError

from firebird.base.logging import FStrMessage as _m
from firebird.base.logging import get_logger
from firebird.base.trace import TracedMixin

#: Protocols that send the message back
ECHO_PROTOCOLS: Final[frozenset[ProtocolType]] = frozenset([ProtocolType.REP0,
                                                            ProtocolType.PAIR0,
                                                            ProtocolType.PAIR1,
                                                            ProtocolType.BUS0])

class EchoPeer(TracedMixin):
    """Bound endpoint that echoes or collects inbound messages in a background thread.

    Arguments:
        protocol: Messaging protocol. Must be able to receive messages.
        url: Address to bind. Wildcard port specification is allowed.
        options: Socket options.
        context: ZeroMQ context. If not specified, uses the global instance.
        on_message: Callable invoked from peer thread with every received message.

    Raises:
        SessionError: When protocol can't receive messages.
    """
    def __init__(self, protocol: ProtocolType, url: str, options: SocketOptions | None=None,
                 *, context: zmq.Context | None=None,
                 on_message: Callable[[bytes], None] | None=None):
        if not protocol.can_receive:
            raise SessionError(f"Protocol {protocol.name} can't receive messages")
        #: Messaging protocol
        self.protocol: ProtocolType = protocol
        #: Address to bind
        self.url: str = url
        #: Socket options
        self.options: SocketOptions | None = options
        #: Callback for received messages
        self.on_message: Callable[[bytes], None] | None = on_message
        #: Received messages
        self.messages: list[bytes] = []
        #: Bound endpoint address
        self.endpoint: str | None = None
        self._context: zmq.Context = zmq.Context.instance() if context is None else context
        self._handle: TransportHandle | None = None
        self._thread: threading.Thread | None = None
        self._stop_rx: zmq.Socket | None = None
        self._stop_tx: zmq.Socket | None = None
        self._received: threading.Condition = threading.Condition()
    def __enter__(self) -> EchoPeer:
        self.start()
        return self
    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()
    def _store(self, payload: bytes) -> None:
        with self._received:
            self.messages.append(payload)
            self._received.notify_all()
        if self.on_message is not None:
            try:
                self.on_message(payload)
            except Exception as exc:
                get_logger(self).exception(_m("Message handler failed: {exc!r}", exc=exc))
    def start(self) -> str:
        """Binds the endpoint and starts the peer thread.

        Returns:
            Bound endpoint address.

        Raises:
            SessionError: When peer was already started.
            ConstructionError: When transport handle could not be created.
            ConnectError: When address could not be bound.
        """
        if self._thread is not None:
            raise SessionError("Echo peer already started")
        handle = TransportHandle(self._context, self.protocol, self.options)
        try:
            self.endpoint = handle.bind(self.url)
            self._stop_rx, self._stop_tx = create_signal_channel(self._context, 'msgsession-peer')
        except (SessionError, ZMQError):
            handle.close()
            raise
        self._handle = handle
        self._thread = threading.Thread(target=self.run, name=f'msgsession-peer-{self.protocol.name}',
                                        daemon=True)
        self._thread.start()
        get_logger(self).info(_m("{protocol} peer listening on {endpoint}",
                                 protocol=self.protocol.name, endpoint=self.endpoint))
        return self.endpoint
    def run(self) -> None:
        """Peer thread body.
        """
        handle = self._handle
        echo = self.protocol in ECHO_PROTOCOLS
        poller = zmq.Poller()
        poller.register(handle.socket, zmq.POLLIN)
        poller.register(self._stop_rx, zmq.POLLIN)
        try:
            while True:
                events = dict(poller.poll())
                if self._stop_rx in events:
                    break
                try:
                    payload = handle.recv(nowait=True)
                    self._store(payload)
                    if echo:
                        handle.send(payload)
                except ConnectionClosed:
                    break
                except TransmissionError as exc:
                    get_logger(self).warning(_m("Peer error: {exc}", exc=exc))
        except ZMQError as exc:
            get_logger(self).error(_m("Peer stopped on error: {exc}", exc=exc))
        finally:
            self._stop_rx.close(0)
    def stop(self, *, timeout: float | None=JOIN_TIMEOUT) -> None:
        """Stops the peer thread and closes the endpoint. Does nothing when peer is not running.
        """
        if self._thread is None:
            return
        if self._thread.is_alive():
            try:
                self._stop_tx.send(b'STOP', zmq.NOBLOCK)
            except ZMQError as exc:
                get_logger(self).debug(_m("Peer stop signal failed: {exc}", exc=exc))
            self._thread.join(timeout)
        self._stop_tx.close(0)
        self._handle.close()
        self._thread = None
        self._handle = None
        get_logger(self).info(_m("{protocol} peer on {endpoint} stopped",
                                 protocol=self.protocol.name, endpoint=self.endpoint))
    def wait_for(self, count: int, timeout: float | None=None) -> bool:
        """Waits until at least `count` messages were received.

        Arguments:
            count: Number of messages.
            timeout: Time in seconds to wait. `None` means infinite.

        Returns:
            True if `count` messages were received in time.
        """
        with self._received:
            return self._received.wait_for(lambda: len(self.messages) >= count, timeout)
    def is_running(self) -> bool:
        "Returns True if peer thread is running."
        return self._thread is not None and self._thread.is_alive()
