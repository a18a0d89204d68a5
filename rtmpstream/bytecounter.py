"""Byte streams that count the bytes passing through them."""

from __future__ import annotations

import threading
from typing import Any

_COUNT_MASK = 0xFFFFFFFFFFFFFFFF


def read_exactly(stream: Any, size: int) -> bytes:
    """Read exactly ``size`` bytes from ``stream``.

    Raises EOFError if the stream ends before enough bytes arrive.
    """
    parts = []
    remaining = size
    while remaining > 0:
        data = stream.read(remaining)
        if not data:
            raise EOFError(f"unexpected end of stream ({size - remaining} of {size} bytes read)")
        parts.append(bytes(data))
        remaining -= len(data)
    return b"".join(parts)


class CountingReader:
    """Wraps a readable stream and counts the bytes read from it."""

    def __init__(self, stream: Any, count: int = 0) -> None:
        self._stream = stream
        self._lock = threading.Lock()
        self.count = count

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; an empty result means end of stream."""
        data = self._stream.read(size)
        if data is None:
            data = b""
        with self._lock:
            self.count = (self.count + len(data)) & _COUNT_MASK
        return bytes(data)


class CountingWriter:
    """Wraps a writable stream and counts the bytes written to it."""

    def __init__(self, stream: Any, count: int = 0) -> None:
        self._stream = stream
        self._lock = threading.Lock()
        self.count = count

    def write(self, data: bytes) -> int:
        """Write all of ``data`` and return the number of bytes written."""
        view = memoryview(bytes(data))
        total = 0
        while total < len(view):
            written = self._stream.write(view[total:])
            if written is None:
                written = len(view) - total
            if written == 0:
                raise BrokenPipeError("stream accepted no bytes")
            total += written
            with self._lock:
                self.count = (self.count + written) & _COUNT_MASK
        return total

    def flush(self) -> None:
        """Flush the wrapped stream, if it can be flushed."""
        flush = getattr(self._stream, "flush", None)
        if flush is not None:
            flush()


class CountingReadWriter:
    """A bidirectional stream counting bytes in both directions."""

    def __init__(self, stream: Any) -> None:
        self.reader = CountingReader(stream)
        self.writer = CountingWriter(stream)

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes."""
        return self.reader.read(size)

    def write(self, data: bytes) -> int:
        """Write all of ``data``."""
        return self.writer.write(data)

    def flush(self) -> None:
        """Flush the wrapped stream."""
        self.writer.flush()