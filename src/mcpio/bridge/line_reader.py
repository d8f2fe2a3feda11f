"""
Line splitting over anyio byte streams.

A line ends at b"\\n"; one trailing b"\\r" is dropped. Bytes after the last
newline are delivered as a final line once the stream ends.
"""
from typing import AsyncGenerator

import anyio
from anyio.abc import ByteReceiveStream

from .exceptions import LineTooLongError
from .models import DEFAULT_MAX_LINE_BYTES

CHUNK_SIZE = 4096


def _strip_cr(line: bytes) -> bytes:
    return line[:-1] if line.endswith(b"\r") else line


async def iter_lines(
    stream: ByteReceiveStream, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
) -> AsyncGenerator[bytes, None]:
    """
    Yield lines from `stream` until it reaches end-of-stream.

    Raises:
        LineTooLongError: If a line grows past `max_line_bytes`.
        anyio.BrokenResourceError: If the underlying stream faults.
    """
    buffer = bytearray()
    while True:
        try:
            chunk = await stream.receive(CHUNK_SIZE)
        except anyio.EndOfStream:
            break
        buffer.extend(chunk)
        start = 0
        while True:
            end = buffer.find(b"\n", start)
            if end < 0:
                break
            if end - start > max_line_bytes:
                raise LineTooLongError(max_line_bytes)
            yield _strip_cr(bytes(buffer[start:end]))
            start = end + 1
        del buffer[:start]
        if len(buffer) > max_line_bytes:
            raise LineTooLongError(max_line_bytes)

    if buffer:
        yield _strip_cr(bytes(buffer))
