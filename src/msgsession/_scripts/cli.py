# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/_scripts/cli.py
# DESCRIPTION:    msgsession command line tool
# CREATED:        16.10.2026
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

"""# msgsession command line tool

Commands that exercise socket sessions from the command line:

*   `send` performs one request/reply exchange and prints the reply.

*   `listen` runs a background receive loop and prints inbound messages.

*   `echo` binds an echo peer that answers every request with the same payload.

Session parameters are taken from command options, or from a section of a configuration
file (`--config` and `--section`). Command options override configured values.
"""

from __future__ import annotations

import logging
import threading
from configparser import ConfigParser, ExtendedInterpolation
from pathlib import Path
from typing import Annotated, Final

import typer
from msgsession.base import (
    ConnectionClosed,
    Error,
    ProtocolType,
    SessionConfig,
    SessionError,
    SocketOptions,
)
from msgsession.core.peer import EchoPeer
from msgsession.core.session import SocketSession
from msgsession.lib.console import RICH_ERROR, console, highlighter
from rich.text import Text

from firebird.base.logging import ANY, bind_logger, get_logger

#: Log message format
LOG_FORMAT: Final[str] = '%(levelname)s [%(processName)s/%(threadName)s] [%(agent)s:%(context)s] %(message)s'
#: Default configuration section
SECTION_SESSION: Final[str] = 'session'
#: Poll interval (in seconds) for commands that wait for messages
WAIT_INTERVAL: Final[float] = 0.1

app = typer.Typer(rich_markup_mode="rich", help="Socket session command line tool.")

TProtocol = Annotated[str | None, typer.Option('--protocol', '-p',
                                               help="Messaging protocol (e.g. REQ0, pair1, sub)")]
TRecvTimeout = Annotated[int | None, typer.Option(help="Receive timeout in milliseconds, 0 means infinite")]
TSendTimeout = Annotated[int | None, typer.Option(help="Send timeout in milliseconds, 0 means infinite")]
TDialTimeout = Annotated[int | None, typer.Option(help="Time in milliseconds to wait for connection")]
THex = Annotated[bool, typer.Option('--hex', help="Payloads are hex encoded")]
TConfig = Annotated[Path | None, typer.Option('--config', '-c', exists=True, dir_okay=False,
                                              help="Session configuration file")]
TSection = Annotated[str, typer.Option('--section', '-s', help="Configuration section")]
TCount = Annotated[int, typer.Option('--count', '-n', min=0,
                                     help="Stop after N messages, 0 means run until interrupted")]

def format_payload(payload: bytes, as_hex: bool) -> Text: # noqa: FBT001
    """Returns highlighted payload text.
    """
    return highlighter(payload.hex() if as_hex else repr(payload))

def parse_payload(data: str, as_hex: bool) -> bytes: # noqa: FBT001
    """Returns payload from command argument.
    """
    if as_hex:
        try:
            return bytes.fromhex(data)
        except ValueError:
            raise typer.BadParameter(f"Invalid hex payload '{data}'") from None
    return data.encode('utf-8')

def resolve_session(default: ProtocolType, url: str | None, protocol: str | None,
                    recv_timeout: int | None, send_timeout: int | None,
                    dial_timeout: int | None, config: Path | None,
                    section: str) -> tuple[ProtocolType, str, SocketOptions]:
    """Returns protocol, endpoint address and socket options from configuration and
    command options.
    """
    options = SocketOptions()
    if config is not None:
        parser = ConfigParser(interpolation=ExtendedInterpolation())
        parser.read(config)
        cfg = SessionConfig(section)
        cfg.load_config(parser)
        cfg.validate()
        default = cfg.protocol.value
        options = cfg.get_options()
        if not url:
            url = cfg.url.value
    if not url:
        console.print_error("Endpoint address not specified.")
        raise typer.Exit(code=1)
    try:
        result = default if protocol is None else ProtocolType.parse(protocol)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint='--protocol') from None
    changes = {}
    if recv_timeout is not None:
        changes['recv_timeout_ms'] = recv_timeout or None
    if send_timeout is not None:
        changes['send_timeout_ms'] = send_timeout or None
    if dial_timeout is not None:
        changes['dial_timeout_ms'] = dial_timeout or None
    return result, url, options.replace(**changes)

@app.callback()
def main(
    log_level: Annotated[str | None, typer.Option('--log-level', '-l',
                                                  help="Logging level (e.g. debug, info, warning)")]=None
    ) -> None:
    """Socket session command line tool.
    """
    logging.basicConfig(format=LOG_FORMAT)
    bind_logger(ANY, ANY, 'msgsession')
    if log_level is not None:
        get_logger('msgsession').setLevel(log_level.upper())

@app.command()
def send(
    url: Annotated[str | None, typer.Argument(help="Endpoint address, e.g. tcp://127.0.0.1:5555",
                                              metavar='URL')]=None,
    data: Annotated[str, typer.Argument(help="Request payload", metavar='DATA')]='',
    *,
    protocol: TProtocol=None,
    recv_timeout: TRecvTimeout=None,
    send_timeout: TSendTimeout=None,
    dial_timeout: TDialTimeout=None,
    as_hex: THex=False,
    config: TConfig=None,
    section: TSection=SECTION_SESSION,
    ) -> None:
    """Sends request to endpoint and prints the reply.
    """
    payload = parse_payload(data, as_hex)
    try:
        proto, url, options = resolve_session(ProtocolType.REQ0, url, protocol, recv_timeout,
                                              send_timeout, dial_timeout, config, section)
        with SocketSession(options) as session:
            session.connect(proto, url)
            reply = session.send(payload)
    except Error as exc:
        console.print_error(Text.assemble(RICH_ERROR, f": {exc}"))
        raise typer.Exit(code=1) from None
    console.print(format_payload(reply, as_hex))

@app.command()
def listen(
    url: Annotated[str | None, typer.Argument(help="Endpoint address, e.g. tcp://127.0.0.1:5555",
                                              metavar='URL')]=None,
    *,
    count: TCount=0,
    protocol: TProtocol=None,
    recv_timeout: TRecvTimeout=None,
    dial_timeout: TDialTimeout=None,
    as_hex: THex=False,
    config: TConfig=None,
    section: TSection=SECTION_SESSION,
    ) -> None:
    """Connects to endpoint and prints received messages until interrupted.
    """
    done = threading.Event()
    received = 0
    def on_message(error: SessionError | None, payload: bytes | None) -> None:
        nonlocal received
        if error is not None:
            console.print_error(Text.assemble(RICH_ERROR, f": {error}"))
            if isinstance(error, ConnectionClosed):
                done.set()
            return
        received += 1
        console.print(format_payload(payload, as_hex))
        if count and received >= count:
            done.set()

    try:
        proto, url, options = resolve_session(ProtocolType.SUB0, url, protocol, recv_timeout,
                                              None, dial_timeout, config, section)
        with SocketSession(options) as session:
            session.connect(proto, url)
            with session.recv(on_message):
                while not done.wait(WAIT_INTERVAL):
                    pass
    except Error as exc:
        console.print_error(Text.assemble(RICH_ERROR, f": {exc}"))
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        pass

@app.command()
def echo(
    url: Annotated[str | None, typer.Argument(help="Address to bind, e.g. tcp://127.0.0.1:5555",
                                              metavar='URL')]=None,
    *,
    count: TCount=0,
    protocol: TProtocol=None,
    as_hex: THex=False,
    config: TConfig=None,
    section: TSection=SECTION_SESSION,
    ) -> None:
    """Binds echo peer that answers every request with the same payload.
    """
    done = threading.Event()
    def on_message(payload: bytes) -> None:
        console.print(format_payload(payload, as_hex))
        if count and len(peer.messages) >= count:
            done.set()

    try:
        proto, url, options = resolve_session(ProtocolType.REP0, url, protocol, None, None,
                                              None, config, section)
        peer = EchoPeer(proto, url, options, on_message=on_message)
        with peer:
            console.print(f"{proto.name} peer listening on {peer.endpoint}")
            while not done.wait(WAIT_INTERVAL):
                pass
    except Error as exc:
        console.print_error(Text.assemble(RICH_ERROR, f": {exc}"))
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        pass
