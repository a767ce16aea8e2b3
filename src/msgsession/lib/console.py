# SPDX-FileCopyrightText: 2026-present The msgsession Project
#
# SPDX-License-Identifier: MIT
#
# PROGRAM/MODULE: msgsession
# FILE:           msgsession/lib/console.py
# DESCRIPTION:    Console manager for terminal output
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

"""msgsession console manager for terminal output.

This module uses the `rich` library for styled console output. It provides a default
theme, a highlighter for endpoint addresses and payload dumps, and a `ConsoleManager`
that manages standard and error output streams.
"""

from __future__ import annotations

import os
import sys
from typing import ClassVar

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.text import Text
from rich.theme import Theme

#: Default console theme
DEFAULT_THEME: Theme = Theme(
    {'ok': 'green',
     'important': 'bold yellow',
     'warning': 'bold yellow',
     'error': 'bold red',
     'protocol': 'bold white',
     'zmq_address': 'not bold not italic bright_blue',
     'payload': 'not bold not italic green',
     'hex': 'bold not italic cyan',
     'number': 'bold not italic cyan',
     })

#: Use rich terminal or not
FORCE_TERMINAL: bool = True if os.getenv("FORCE_COLOR") or os.getenv("PY_COLORS") else None

#: Standard rich text for OK
RICH_OK: Text = Text('OK', style='ok')
#: Standard rich text for ERROR
RICH_ERROR: Text = Text('ERROR', style='error')

class SessionHighlighter(RegexHighlighter):
    """RegexHighlighter for endpoint addresses, protocol names and payload dumps.
    """
    #: Regular expressions used by `.highlight`.
    highlights: ClassVar[list[str]] = [
        r"(?P<zmq_address>(inproc|ipc|tcp|pgm|epgm|vmci|ws|wss)://[-0-9a-zA-Z$_+!`(),.?/;:&=%#*\[\]]*)",
        r"\b(?P<protocol>(PAIR|PUB|SUB|REQ|REP|SURVEYOR|PUSH|PULL|BUS)[01])\b",
        r"(?<![\\\w])(?P<payload>b'.*?(?<!\\)'|b\".*?(?<!\\)\")",
        r"\b(?P<hex>(?:[0-9a-f]{2})+)\b",
        r"(?P<number>(?<!\w)\-?[0-9]+\b)",
    ]

#: msgsession text highlighter
highlighter: SessionHighlighter = SessionHighlighter()

class ConsoleManager:
    """Manages Rich Console instances for standard output and error streams.
    """
    def __init__(self):
        #: Suppress output flag
        self.quiet: bool = False
        #: Rich main console
        self.std_console: Console = Console(theme=DEFAULT_THEME, tab_size=4,
                                            highlighter=highlighter, highlight=True,
                                            force_terminal=FORCE_TERMINAL)
        if not sys.stdout.isatty():
            self.std_console.width = 5000
        #: Rich error console
        self.err_console: Console = Console(stderr=True, style='bold red', tab_size=4,
                                            force_terminal=FORCE_TERMINAL)
    def print_error(self, message) -> None:
        "Prints error message to error console."
        self.err_console.print(message)
    def print(self, message = '', end='\n') -> None:
        """Prints a message to the standard console. Output is suppressed if `.quiet` is
        true.
        """
        if not self.quiet:
            self.std_console.print(message, end=end, highlight=True)

#: msgsession console manager
console: ConsoleManager = ConsoleManager()
