import threading
from typing import IO, Optional

import click

from .interfaces import IConsole


class Console(IConsole):
    """
    Console sink for the line protocol on stdout.

    Runtimes call it from worker threads, one line per call. Diagnostics
    never go here; they go through logging to stderr.
    """

    def __init__(self, file: Optional[IO[str]] = None):
        # None means whatever sys.stdout is at write time
        self._file = file
        self._lock = threading.Lock()

    def _emit(self, line: str) -> None:
        # color=True keeps the child's escape sequences verbatim
        with self._lock:
            click.echo(line, file=self._file, color=True)

    def announce_files(self, name: str, relative_fifo: str, relative_log: str) -> None:
        self._emit(f"[{name}:files] {relative_fifo} {relative_log}")

    def mirror_line(self, name: str, kind: str, text: str) -> None:
        self._emit(f"[{name}:{kind}] {text}")
