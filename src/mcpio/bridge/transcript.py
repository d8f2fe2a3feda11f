import logging
import os
import threading
from pathlib import Path
from typing import Optional

from .exceptions import LogOpenError
from .interfaces import ITranscript

logger = logging.getLogger(__name__)

LOG_FILE_MODE = 0o644


class TranscriptLog(ITranscript):
    """
    Append-only transcript of one server's output.

    The file is opened once with O_APPEND and shared by the input pump and
    both output copiers. Each line goes out in a single os.write call, so
    lines from different copiers never interleave mid-line. Existing content
    is kept across runs.
    """

    def __init__(self, log_file_path: str | Path):
        self.log_file_path = str(log_file_path)
        self._fd: Optional[int] = None
        self._lock = threading.Lock()

    def open(self) -> "TranscriptLog":
        try:
            self._fd = os.open(
                self.log_file_path,
                os.O_CREAT | os.O_WRONLY | os.O_APPEND,
                LOG_FILE_MODE,
            )
        except OSError as e:
            raise LogOpenError(
                f"{self.log_file_path}: open out log failed: {e}"
            ) from e
        return self

    @property
    def closed(self) -> bool:
        return self._fd is None

    def append_line(self, line: bytes) -> None:
        with self._lock:
            if self._fd is None:
                raise ValueError(f"Transcript {self.log_file_path} is not open")
            os.write(self._fd, line + b"\n")

    def record_error(self, name: str, kind: str, error: BaseException) -> None:
        message = f"[{name}:{kind}] copier error: {error}"
        try:
            self.append_line(message.encode("utf-8", errors="replace"))
        except (OSError, ValueError) as e:
            logger.warning(
                "Failed to record copier error for %s in %s: %s (%s)",
                name,
                self.log_file_path,
                message,
                e,
            )

    def close(self) -> None:
        with self._lock:
            if self._fd is None:
                return
            fd, self._fd = self._fd, None
        try:
            os.close(fd)
        except OSError as e:
            logger.debug("Failed to close transcript %s: %s", self.log_file_path, e)

    def __enter__(self) -> "TranscriptLog":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()
