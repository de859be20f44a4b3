"""Logger used by the command line: plain stderr output, timestamped when verbose."""

from __future__ import annotations

import sys
import time
from typing import Any, NoReturn, TextIO

from ..drivers import Logger


class CliLog(Logger):
    """Writes log output to a stream, standard error unless another is given.

    In verbose mode every message is prefixed with the local date and time
    and ends with a newline.
    """

    def __init__(self, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.is_verbose = verbose
        self._stream = stream

    def printf(self, format: str, *args: Any) -> None:
        """Write a %-style formatted message."""
        message = format % args if args else format
        if self.is_verbose:
            self._write_timestamped(message)
        else:
            self._out().write(message)

    def println(self, *args: Any) -> None:
        """Write the arguments separated by spaces, followed by a newline."""
        message = " ".join(str(arg) for arg in args) + "\n"
        if self.is_verbose:
            self._write_timestamped(message)
        else:
            self._out().write(message)

    def verbose(self) -> bool:
        """Return True when verbose output is enabled."""
        return self.is_verbose

    def _fatal(self, *args: Any) -> NoReturn:
        self.println(*args)
        raise SystemExit(1)

    def _fatal_err(self, error: BaseException) -> NoReturn:
        self._fatal("error:", error)

    def _out(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def _write_timestamped(self, message: str) -> None:
        if not message.endswith("\n"):
            message += "\n"
        prefix = time.strftime("%Y/%m/%d %H:%M:%S ")
        self._out().write(prefix + message)