# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/base/config.py
# DESCRIPTION:    Socket options and session configuration
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

"""Socket session options and configuration.

`SocketOptions` is the immutable value object consumed by `.TransportHandle` when a socket
is created. `SessionConfig` is the `~firebird.base.config.Config` counterpart used to load
session definitions from configuration files.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from dataclasses import replace as _dcls_replace
from typing import Self

from firebird.base.config import Config, EnumOption, IntOption, StrOption

from .types import INFINITE, MAX_TIMEOUT, ZMQ_MAX_INT, ConstructionError, ProtocolType


def zmq_timeout(value: int | None) -> int:
    """Returns ZeroMQ socket timeout for option value in milliseconds. `None` and zero
    mean "wait indefinitely". Values above ZeroMQ integer option range are capped.
    """
    return INFINITE if not value else min(value, ZMQ_MAX_INT)

@dataclass(eq=True, frozen=True)
class SocketOptions:
    """Socket session options.

    Arguments:
        recv_timeout_ms: Receive timeout in milliseconds. `None` or zero means infinite.
        send_timeout_ms: Send timeout in milliseconds. `None` or zero means infinite.
        dial_timeout_ms: Time in milliseconds that `connect` waits for established
                         connection. `None` or zero means that `connect` does not wait.
        linger_ms: Time in milliseconds that pending outbound messages are kept after
                   handle is closed.
    """
    recv_timeout_ms: int | None = None
    send_timeout_ms: int | None = None
    dial_timeout_ms: int | None = None
    linger_ms: int = 0
    def validate(self) -> None:
        """Checks that all options have valid values.

        Raises:
            ConstructionError: When any option is not an unsigned 32-bit integer.
        """
        for fld in fields(self):
            value = getattr(self, fld.name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConstructionError(f"Option '{fld.name}' must be an integer",
                                        operation='configure')
            if not 0 <= value <= MAX_TIMEOUT:
                raise ConstructionError(f"Option '{fld.name}' out of range 0..{MAX_TIMEOUT}",
                                        operation='configure')
    def replace(self, **changes) -> Self:
        """Creates a new `SocketOptions`, replacing fields with values from `changes`.
        """
        return _dcls_replace(self, **changes)
    @property
    def recv_timeout(self) -> int:
        "Receive timeout as ZeroMQ socket option value."
        return zmq_timeout(self.recv_timeout_ms)
    @property
    def send_timeout(self) -> int:
        "Send timeout as ZeroMQ socket option value."
        return zmq_timeout(self.send_timeout_ms)
    @property
    def linger(self) -> int:
        "Linger period as ZeroMQ socket option value."
        return min(self.linger_ms, ZMQ_MAX_INT)

class SessionConfig(Config):
    """Socket session configuration.

    Arguments:
        name: Conf. file section name for session.
    """
    def __init__(self, name: str):
        super().__init__(name)
        #: Session protocol
        self.protocol: EnumOption = \
            EnumOption('protocol', ProtocolType, "Messaging protocol", required=True,
                       default=ProtocolType.REQ0)
        #: Endpoint address
        self.url: StrOption = \
            StrOption('url', "Endpoint address (e.g. tcp://127.0.0.1:5555)")
        #: Receive timeout
        self.recv_timeout: IntOption = \
            IntOption('recv_timeout', "Receive timeout in milliseconds, zero means infinite",
                      default=0)
        #: Send timeout
        self.send_timeout: IntOption = \
            IntOption('send_timeout', "Send timeout in milliseconds, zero means infinite",
                      default=0)
        #: Dial timeout
        self.dial_timeout: IntOption = \
            IntOption('dial_timeout', "Time in milliseconds to wait for established "
                      "connection, zero means do not wait", default=0)
        #: Linger period
        self.linger: IntOption = \
            IntOption('linger', "Time in milliseconds to keep undelivered messages "
                      "after close", default=0)
    def get_options(self) -> SocketOptions:
        """Returns `SocketOptions` built from configuration values.

        Raises:
            ConstructionError: When configured values are not valid socket options.
        """
        result = SocketOptions(recv_timeout_ms=self.recv_timeout.value or None,
                               send_timeout_ms=self.send_timeout.value or None,
                               dial_timeout_ms=self.dial_timeout.value or None,
                               linger_ms=self.linger.value or 0)
        result.validate()
        return result
