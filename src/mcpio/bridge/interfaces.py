"""
This module defines the interfaces (Protocols) for the core components
of the mcpio bridge, establishing the contracts between the server runtime
and the sinks it writes to.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import ServerPaths, ServerResult


@runtime_checkable
class IConsole(Protocol):
    """
    Interface for the console sink.
    Every call emits exactly one line of the console protocol. Calls may
    come from several worker threads at once and may block.
    """

    def announce_files(self, name: str, relative_fifo: str, relative_log: str) -> None:
        """
        Emits the `[<name>:files] <fifo> <log>` line that tells callers where
        to write input and where to read the transcript.

        Args:
            name (str): The sanitized server name.
            relative_fifo (str): Pipe path relative to the base directory.
            relative_log (str): Log path relative to the base directory.
        """
        ...

    def mirror_line(self, name: str, kind: str, text: str) -> None:
        """
        Emits a mirrored traffic line as `[<name>:<kind>] <text>`.

        Args:
            name (str): The sanitized server name.
            kind (str): One of "in", "out" or "err".
            text (str): The decoded line, without its newline.
        """
        ...


@runtime_checkable
class ITranscript(Protocol):
    """
    Interface for a server's append-only transcript log.
    """

    def append_line(self, line: bytes) -> None:
        """
        Appends one line plus a newline as a single write.

        Raises:
            OSError: If the write fails.
        """
        ...

    def record_error(self, name: str, kind: str, error: BaseException) -> None:
        """
        Appends a `[<name>:<kind>] copier error: <error>` line.
        Never raises; write failures are logged instead.
        """
        ...

    def close(self) -> None:
        """Closes the log. Safe to call more than once."""
        ...


@runtime_checkable
class IServerRuntime(Protocol):
    """
    Interface for the per-server runtime driven by the supervisor.
    """

    @property
    def name(self) -> str: ...

    @property
    def paths(self) -> ServerPaths: ...

    async def run(self) -> ServerResult:
        """
        Sets the server up, pumps its traffic until both of the child's output
        streams reach end-of-stream, then tears everything down.

        Returns:
            ServerResult: COMPLETED, or SETUP_FAILED with the failed stage.
        """
        ...
