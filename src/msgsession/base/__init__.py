# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/base/__init__.py
# DESCRIPTION:    msgsession base package
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

"msgsession base package"

from firebird.base.types import Error

from .config import SessionConfig, SocketOptions, zmq_timeout
from .transport import CLOSED_ERRNOS, TransportHandle, create_signal_channel, is_closed_error
from .types import (
    INFINITE,
    JOIN_TIMEOUT,
    MAX_TIMEOUT,
    ZMQ_MAX_INT,
    ConnectError,
    ConnectionClosed,
    ConstructionError,
    DisposeError,
    Failure,
    HandleBusyError,
    LoopState,
    NotConnectedError,
    ProtocolType,
    ReceiveCallback,
    ReceiveFailed,
    ReceiveTimeout,
    Result,
    SendFailed,
    SendTimeout,
    SessionError,
    SessionState,
    StartError,
    Success,
    TransmissionError,
)

#: msgsession version
VERSION = '0.1.0'
