"""
Named pipe lifecycle: directory setup, stale-pipe replacement, removal, and
a non-blocking byte stream over the pipe's read end.
"""
import logging
import os
from pathlib import Path

import anyio
from anyio.abc import ByteReceiveStream

from .exceptions import FifoCreateError, FifoOpenError, IODirError

logger = logging.getLogger(__name__)

IO_DIR_MODE = 0o755
FIFO_MODE = 0o600


def ensure_io_dir(path: str | Path) -> None:
    """Create the communication directory if it does not exist yet."""
    try:
        os.makedirs(path, mode=IO_DIR_MODE, exist_ok=True)
    except OSError as e:
        raise IODirError(f"{path}: mkdir failed: {e}") from e


def recreate_fifo(path: str | Path) -> None:
    """
    Create a named pipe at `path`, removing whatever is there first.

    No attempt is made to detect another bridge still using the old pipe.
    """
    if os.path.lexists(path):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug("Failed to remove stale fifo %s: %s", path, e)
    try:
        os.mkfifo(path, FIFO_MODE)
    except OSError as e:
        raise FifoCreateError(f"{path}: fifo create failed: {e}") from e


def remove_fifo(path: str | Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove fifo %s: %s", path, e)


class FifoReceiveStream(ByteReceiveStream):
    """
    Read end of a named pipe as an anyio byte stream.

    The pipe is opened read-write so that opening never blocks waiting for a
    writer, and so that external writers may open and close it repeatedly
    without the bridge seeing end-of-stream in between.
    """

    def __init__(self, fd: int, path: str):
        self._fd = fd
        self._path = path
        self._closed = False

    @classmethod
    def open(cls, path: str | Path) -> "FifoReceiveStream":
        try:
            fd = os.open(path, os.O_RDWR | os.O_NONBLOCK)
        except OSError as e:
            raise FifoOpenError(f"{path}: fifo open failed: {e}") from e
        return cls(fd, str(path))

    @property
    def path(self) -> str:
        return self._path

    async def receive(self, max_bytes: int = 65536) -> bytes:
        while True:
            if self._closed:
                raise anyio.ClosedResourceError
            try:
                data = os.read(self._fd, max_bytes)
            except BlockingIOError:
                await anyio.wait_readable(self._fd)
                continue
            except OSError as e:
                raise anyio.BrokenResourceError from e
            if not data:
                raise anyio.EndOfStream
            return data

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        os.close(self._fd)
