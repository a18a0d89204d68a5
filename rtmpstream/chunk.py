"""RTMP chunks of the four header types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rtmpstream.bytecounter import read_exactly


def _u24(value: int) -> bytes:
    return (value & 0xFFFFFF).to_bytes(3, "big")


def _u32(value: int) -> bytes:
    return (value & 0xFFFFFFFF).to_bytes(4, "big")


def _first_byte(fmt: int, chunk_stream_id: int) -> bytes:
    return bytes([(fmt << 6 | chunk_stream_id) & 0xFF])


@dataclass
class Chunk0:
    """Type 0 chunk, used at the start of a chunk stream and when time goes backward."""

    chunk_stream_id: int = 0
    timestamp: int = 0
    type: int = 0
    message_stream_id: int = 0
    body_len: int = 0
    body: bytes = b""

    @classmethod
    def read(cls, stream: Any, max_body_len: int) -> "Chunk0":
        """Read a chunk whose body is at most ``max_body_len`` bytes."""
        header = read_exactly(stream, 12)
        body_len = int.from_bytes(header[4:7], "big")
        body = read_exactly(stream, min(body_len, max_body_len))
        return cls(
            chunk_stream_id=header[0] & 0x3F,
            timestamp=int.from_bytes(header[1:4], "big"),
            type=header[7],
            message_stream_id=int.from_bytes(header[8:12], "big"),
            body_len=body_len,
            body=body,
        )

    def marshal(self) -> bytes:
        """Encode the chunk."""
        return b"".join(
            (
                _first_byte(0, self.chunk_stream_id),
                _u24(self.timestamp),
                _u24(self.body_len),
                bytes([self.type & 0xFF]),
                _u32(self.message_stream_id),
                bytes(self.body),
            )
        )


@dataclass
class Chunk1:
    """Type 1 chunk: same message stream ID as the preceding chunk."""

    chunk_stream_id: int = 0
    timestamp_delta: int = 0
    type: int = 0
    body_len: int = 0
    body: bytes = b""

    @classmethod
    def read(cls, stream: Any, max_body_len: int) -> "Chunk1":
        """Read a chunk whose body is at most ``max_body_len`` bytes."""
        header = read_exactly(stream, 8)
        body_len = int.from_bytes(header[4:7], "big")
        body = read_exactly(stream, min(body_len, max_body_len))
        return cls(
            chunk_stream_id=header[0] & 0x3F,
            timestamp_delta=int.from_bytes(header[1:4], "big"),
            type=header[7],
            body_len=body_len,
            body=body,
        )

    def marshal(self) -> bytes:
        """Encode the chunk."""
        return b"".join(
            (
                _first_byte(1, self.chunk_stream_id),
                _u24(self.timestamp_delta),
                _u24(self.body_len),
                bytes([self.type & 0xFF]),
                bytes(self.body),
            )
        )


@dataclass
class Chunk2:
    """Type 2 chunk: same stream ID and message length as the preceding chunk."""

    chunk_stream_id: int = 0
    timestamp_delta: int = 0
    body: bytes = b""

    @classmethod
    def read(cls, stream: Any, body_len: int) -> "Chunk2":
        """Read a chunk with a body of exactly ``body_len`` bytes."""
        header = read_exactly(stream, 4)
        body = read_exactly(stream, body_len)
        return cls(
            chunk_stream_id=header[0] & 0x3F,
            timestamp_delta=int.from_bytes(header[1:4], "big"),
            body=body,
        )

    def marshal(self) -> bytes:
        """Encode the chunk."""
        return _first_byte(2, self.chunk_stream_id) + _u24(self.timestamp_delta) + bytes(self.body)


@dataclass
class Chunk3:
    """Type 3 chunk: no message header, everything taken from the preceding chunk."""

    chunk_stream_id: int = 0
    body: bytes = b""

    @classmethod
    def read(cls, stream: Any, body_len: int) -> "Chunk3":
        """Read a chunk with a body of exactly ``body_len`` bytes."""
        header = read_exactly(stream, 1)
        body = read_exactly(stream, body_len)
        return cls(chunk_stream_id=header[0] & 0x3F, body=body)

    def marshal(self) -> bytes:
        """Encode the chunk."""
        return _first_byte(3, self.chunk_stream_id) + bytes(self.body)