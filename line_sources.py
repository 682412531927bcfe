"""
Line Sources - where the Input instruction gets its text
=========================================================
The engine never talks to a terminal directly.  When its input queue runs
dry the console asks a line source for one more line and blocks until it
gets either a line or end-of-input (``None``).

Source hierarchy:
  LineSource          - abstract base
  ├─ ScriptedLineSource - in-memory list of lines (unit tests, --input)
  ├─ StreamLineSource   - any text stream, e.g. piped stdin
  └─ ReadlineSource     - interactive editing with a persistent history

Usage:
  from line_sources import ReadlineSource
  source = ReadlineSource(history_path="history.txt")
  system = UMSystem(program, line_source=source)
  ...
  system.close()          # saves history
"""

from __future__ import annotations

import abc
import logging
import os
import sys
from collections import deque
from typing import Iterable, Optional, TextIO

log = logging.getLogger(__name__)

DEFAULT_HISTORY = "history.txt"
HISTORY_LENGTH = 1000

# ANSI colors
GREEN = "\033[32m"
RESET = "\033[0m"

# readline needs non-printing prompt bytes bracketed so it can measure
# the visible prompt width.
_RL_START = "\001"
_RL_END = "\002"


# ══════════════════════════════════════════════════════════════════════
#  Abstract base
# ══════════════════════════════════════════════════════════════════════

class LineSource(abc.ABC):
    """Supplies one line of text at a time, blocking until it has one."""

    def __init__(self):
        self.interrupted = False

    @abc.abstractmethod
    def next_line(self) -> Optional[str]:
        """Return the next line without its terminator, or None at EOF."""
        ...

    def notify_interrupt(self):
        """Record an external interrupt; the engine sees it as EOF."""
        self.interrupted = True

    def close(self):
        """Release resources and persist anything worth keeping."""
        pass

    @property
    def name(self) -> str:
        return type(self).__name__


# ══════════════════════════════════════════════════════════════════════
#  Scripted - fixed list of lines
# ══════════════════════════════════════════════════════════════════════

class ScriptedLineSource(LineSource):
    """Hands out a fixed sequence of lines, then end-of-input."""

    def __init__(self, lines: Iterable[str] = ()):
        super().__init__()
        self._lines: deque[str] = deque(lines)
        self.requests = 0

    def push(self, line: str):
        self._lines.append(line)

    def next_line(self) -> Optional[str]:
        self.requests += 1
        if self.interrupted or not self._lines:
            return None
        return self._lines.popleft()

    @property
    def remaining(self) -> int:
        return len(self._lines)

    @property
    def name(self) -> str:
        return "scripted"


# ══════════════════════════════════════════════════════════════════════
#  Stream - piped stdin or an input file
# ══════════════════════════════════════════════════════════════════════

class StreamLineSource(LineSource):
    """Reads lines from a text stream until it is exhausted."""

    def __init__(self, stream: TextIO, close_stream: bool = False):
        super().__init__()
        self._stream = stream
        self._close_stream = close_stream

    @classmethod
    def from_path(cls, path: str) -> "StreamLineSource":
        return cls(open(path, "r", encoding="utf-8"), close_stream=True)

    def next_line(self) -> Optional[str]:
        if self.interrupted:
            return None
        try:
            line = self._stream.readline()
        except KeyboardInterrupt:
            self.notify_interrupt()
            return None
        if not line:
            return None
        return line.rstrip("\r\n")

    def close(self):
        if self._close_stream:
            self._stream.close()

    @property
    def name(self) -> str:
        return "stream"


# ══════════════════════════════════════════════════════════════════════
#  Readline - interactive terminal with history
# ══════════════════════════════════════════════════════════════════════

class ReadlineSource(LineSource):
    """Interactive line editing via GNU readline.

    History is loaded from *history_path* on construction and written
    back by close().  Ctrl-D ends input; Ctrl-C ends input and marks the
    source interrupted.
    """

    def __init__(self, history_path: Optional[str] = DEFAULT_HISTORY,
                 prompt: str = ">> ", color: Optional[bool] = None,
                 out: Optional[TextIO] = None):
        super().__init__()
        import readline
        self._readline = readline
        self.history_path = history_path
        self._out = out or sys.stdout
        if color is None:
            color = self._out.isatty() and os.environ.get("NO_COLOR") is None
        self.prompt = (f"{_RL_START}{GREEN}{_RL_END}{prompt}"
                       f"{_RL_START}{RESET}{_RL_END}") if color else prompt

        readline.set_auto_history(True)
        readline.set_history_length(HISTORY_LENGTH)
        if history_path:
            try:
                readline.read_history_file(history_path)
                log.debug("loaded history from %s", history_path)
            except OSError:
                log.info("No previous history.")

    def next_line(self) -> Optional[str]:
        if self.interrupted:
            return None
        try:
            return input(self.prompt)
        except EOFError:
            self._out.write("CTRL-D\n")
            return None
        except KeyboardInterrupt:
            self._out.write("CTRL-C\n")
            self.notify_interrupt()
            return None

    def close(self):
        if not self.history_path:
            return
        try:
            self._readline.write_history_file(self.history_path)
            log.debug("saved history to %s", self.history_path)
        except OSError as e:
            log.warning("could not save history to %s: %s",
                        self.history_path, e)

    @property
    def name(self) -> str:
        return "readline"
