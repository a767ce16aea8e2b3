# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/base/types.py
# DESCRIPTION:    Common types, constants and exceptions
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

"""msgsession common type definitions and constants

This module contains:

1. Type aliases for type annotations.
2. Constants.
3. Exceptions.
4. Enums.
5. Dataclasses for receive results.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum, auto
from typing import Final, TypeAlias

import zmq

from firebird.base.types import Error

#: Largest accepted timeout value (unsigned 32-bit milliseconds)
MAX_TIMEOUT: Final[int] = 2 ** 32 - 1
#: Largest value of ZeroMQ integer socket option (signed 32-bit)
ZMQ_MAX_INT: Final[int] = 2 ** 31 - 1
#: ZeroMQ timeout value for "wait indefinitely"
INFINITE: Final[int] = -1
#: Default timeout (in seconds) used to wait for background threads to finish
JOIN_TIMEOUT: Final[float] = 5.0

#  Exceptions
class SessionError(Error):
    """Base class for all errors raised by msgsession.

    Keyword arguments passed to constructor are stored as instance attributes. Errors raised
    for transport operations carry `operation`, `endpoint` and `errno` attributes (`None`
    when not applicable).
    """

class ConstructionError(SessionError):
    "Transport handle allocation or option set-up failed"

class ConnectError(SessionError):
    "Dialing the remote endpoint failed"

class NotConnectedError(SessionError):
    "Operation attempted on session that is not connected"

class HandleBusyError(SessionError):
    "Transport handle is borrowed by active receive loop"

class TransmissionError(SessionError):
    "Base class for errors of individual send/receive operations"

class SendTimeout(TransmissionError):
    "Message was not submitted within configured send timeout"

class SendFailed(TransmissionError):
    "Transport rejected the message"

class ReceiveTimeout(TransmissionError):
    "No message arrived within configured receive timeout"

class ReceiveFailed(TransmissionError):
    "Transport failed to receive the message"

class ConnectionClosed(TransmissionError):
    "Transport handle was closed or the messaging context terminated"

class StartError(SessionError):
    "Receive loop could not be started"

class DisposeError(SessionError):
    "Stop signal could not be delivered to receive loop"

# Enums
class ProtocolType(IntEnum):
    """Messaging topology (protocol) of the transport handle.
    """
    PAIR0 = auto()
    PAIR1 = auto()
    PUB0 = auto()
    SUB0 = auto()
    REQ0 = auto()
    REP0 = auto()
    SURVEYOR0 = auto()
    PUSH0 = auto()
    PULL0 = auto()
    BUS0 = auto()
    @property
    def socket_type(self) -> int:
        "ZeroMQ socket type used for this protocol."
        return _SOCKET_TYPES[self]
    @property
    def can_send(self) -> bool:
        "True if handles with this protocol may send messages."
        return self not in (ProtocolType.SUB0, ProtocolType.PULL0)
    @property
    def can_receive(self) -> bool:
        "True if handles with this protocol may receive messages."
        return self not in (ProtocolType.PUB0, ProtocolType.PUSH0)
    @classmethod
    def parse(cls, value: str) -> ProtocolType:
        """Returns protocol for name. Names are case insensitive, the revision suffix
        is optional (e.g. `req`, `REQ0` and `Req0` are all valid names for `REQ0`).

        Raises:
            ValueError: When `value` is not a valid protocol name.
        """
        name = value.strip().upper()
        if name in cls.__members__:
            return cls[name]
        if (name + '0') in cls.__members__:
            return cls[name + '0']
        raise ValueError(f"Unknown protocol '{value}'")

_SOCKET_TYPES: Final[dict[ProtocolType, int]] = {
    ProtocolType.PAIR0: zmq.PAIR,
    ProtocolType.PAIR1: zmq.PAIR,
    ProtocolType.PUB0: zmq.PUB,
    ProtocolType.SUB0: zmq.SUB,
    ProtocolType.REQ0: zmq.REQ,
    ProtocolType.REP0: zmq.REP,
    ProtocolType.SURVEYOR0: zmq.DEALER,
    ProtocolType.PUSH0: zmq.PUSH,
    ProtocolType.PULL0: zmq.PULL,
    ProtocolType.BUS0: zmq.DEALER,
}

class SessionState(IntEnum):
    """Socket session lifecycle state."""
    IDLE = auto()
    CONNECTED = auto()
    CLOSING = auto()
    CLOSED = auto()

class LoopState(IntEnum):
    """Receive loop state."""
    CREATED = auto()
    RUNNING = auto()
    STOPPED = auto()
    ABORTED = auto()

# Dataclasses
@dataclass(frozen=True)
class Success:
    """Message received by receive loop.

    Arguments:
        payload: Message content.
    """
    payload: bytes

@dataclass(frozen=True)
class Failure:
    """Receive loop error.

    Arguments:
        error: Error raised by the transport.
    """
    error: SessionError

#: Result delivered from receive loop
Result: TypeAlias = Success | Failure
#: Receive callback: `callback(error, payload)`, exactly one of them is `None`
ReceiveCallback: TypeAlias = Callable[[SessionError | None, bytes | None], None]
