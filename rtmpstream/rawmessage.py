"""Raw RTMP messages and their reassembly from / splitting into chunks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from rtmpstream.bytecounter import read_exactly
from rtmpstream.chunk import Chunk0, Chunk1, Chunk2, Chunk3

DEFAULT_CHUNK_SIZE = 128
_U32 = 0xFFFFFFFF

AnyChunk = Union[Chunk0, Chunk1, Chunk2, Chunk3]


class RawMessageError(Exception):
    """Raised when a chunk stream is inconsistent or cannot be written."""


@dataclass
class RawMessage:
    """A message before its body is decoded. ``timestamp`` is in milliseconds."""

    chunk_stream_id: int = 0
    timestamp: int = 0
    type: int = 0
    message_stream_id: int = 0
    body: bytes = b""


class _Pushback:
    """A stream that first returns bytes already taken from another stream."""

    def __init__(self, head: bytes, stream: Any) -> None:
        self._head = head
        self._stream = stream

    def read(self, size: int) -> bytes:
        if self._head:
            data, self._head = self._head[:size], self._head[size:]
            return data
        return self._stream.read(size)


@dataclass
class _ReaderChunkStream:
    timestamp: Optional[int] = None
    type: Optional[int] = None
    message_stream_id: Optional[int] = None
    body_len: Optional[int] = None
    body: Optional[bytearray] = None
    timestamp_delta: Optional[int] = None


class RawReader:
    """Reads chunks from a counting reader and reassembles them into messages.

    ``on_ack_needed`` is called with the byte count whenever the
    acknowledgement window has been exceeded.
    """

    def __init__(self, reader: Any, on_ack_needed: Optional[Callable[[int], Any]] = None) -> None:
        self._reader = reader
        self._on_ack_needed = on_ack_needed
        self.chunk_size = DEFAULT_CHUNK_SIZE
        self.window_ack_size = 0
        self.last_ack_count = 0
        self._streams: Dict[int, _ReaderChunkStream] = {}

    def read(self) -> RawMessage:
        """Read chunks until a whole message is available and return it."""
        while True:
            first = read_exactly(self._reader, 1)
            fmt = first[0] >> 6
            chunk_stream_id = first[0] & 0x3F
            state = self._streams.setdefault(chunk_stream_id, _ReaderChunkStream())

            msg = self._read_message(state, fmt, _Pushback(first, self._reader))
            if msg is not None:
                msg.chunk_stream_id = chunk_stream_id
                return msg

    def _read_chunk(self, cls: type, stream: Any, body_len: int) -> AnyChunk:
        chunk = cls.read(stream, body_len)

        if self.window_ack_size != 0:
            count = self._reader.count & _U32
            diff = (count - self.last_ack_count) & _U32
            if diff > self.window_ack_size:
                if self._on_ack_needed is not None:
                    self._on_ack_needed(count)
                self.last_ack_count = (self.last_ack_count + self.window_ack_size) & _U32

        return chunk

    def _read_message(self, st: _ReaderChunkStream, fmt: int, stream: Any) -> Optional[RawMessage]:
        if fmt == 0:
            if st.body is not None:
                raise RawMessageError("received type 0 chunk but expected type 3 chunk")

            c0 = self._read_chunk(Chunk0, stream, self.chunk_size)
            st.message_stream_id = c0.message_stream_id
            st.type = c0.type
            st.timestamp = c0.timestamp
            st.body_len = c0.body_len
            st.timestamp_delta = None

            if c0.body_len != len(c0.body):
                st.body = bytearray(c0.body)
                return None
            return RawMessage(
                timestamp=c0.timestamp,
                type=c0.type,
                message_stream_id=c0.message_stream_id,
                body=c0.body,
            )

        if fmt == 1:
            if st.timestamp is None:
                raise RawMessageError("received type 1 chunk without previous chunk")
            if st.body is not None:
                raise RawMessageError("received type 1 chunk but expected type 3 chunk")

            c1 = self._read_chunk(Chunk1, stream, self.chunk_size)
            st.type = c1.type
            st.timestamp = (st.timestamp + c1.timestamp_delta) & _U32
            st.body_len = c1.body_len
            st.timestamp_delta = c1.timestamp_delta

            if c1.body_len != len(c1.body):
                st.body = bytearray(c1.body)
                return None
            return RawMessage(
                timestamp=st.timestamp,
                type=c1.type,
                message_stream_id=st.message_stream_id,
                body=c1.body,
            )

        if fmt == 2:
            if st.timestamp is None:
                raise RawMessageError("received type 2 chunk without previous chunk")
            if st.body is not None:
                raise RawMessageError("received type 2 chunk but expected type 3 chunk")

            c2 = self._read_chunk(Chunk2, stream, min(st.body_len, self.chunk_size))
            st.timestamp = (st.timestamp + c2.timestamp_delta) & _U32
            st.timestamp_delta = c2.timestamp_delta

            if st.body_len != len(c2.body):
                st.body = bytearray(c2.body)
                return None
            return RawMessage(
                timestamp=st.timestamp,
                type=st.type,
                message_stream_id=st.message_stream_id,
                body=c2.body,
            )

        if st.body is None and st.timestamp_delta is None:
            raise RawMessageError("received type 3 chunk without previous chunk")

        if st.body is not None:
            size = min(st.body_len - len(st.body), self.chunk_size)
            c3 = self._read_chunk(Chunk3, stream, size)
            st.body += c3.body
            if st.body_len != len(st.body):
                return None

            body = bytes(st.body)
            st.body = None
            return RawMessage(
                timestamp=st.timestamp,
                type=st.type,
                message_stream_id=st.message_stream_id,
                body=body,
            )

        c3 = self._read_chunk(Chunk3, stream, min(st.body_len, self.chunk_size))
        st.timestamp = (st.timestamp + st.timestamp_delta) & _U32

        if st.body_len != len(c3.body):
            st.body = bytearray(c3.body)
            return None
        return RawMessage(
            timestamp=st.timestamp,
            type=st.type,
            message_stream_id=st.message_stream_id,
            body=c3.body,
        )


@dataclass
class _WriterChunkStream:
    last_message_stream_id: Optional[int] = None
    last_type: Optional[int] = None
    last_body_len: Optional[int] = None
    last_timestamp: Optional[int] = None
    last_timestamp_delta: Optional[int] = None


class RawWriter:
    """Splits messages into chunks and writes them to a counting writer.

    With ``check_acknowledge`` set, writing fails when the peer has not
    acknowledged the data within one and a half acknowledgement windows.
    """

    def __init__(self, writer: Any, check_acknowledge: bool = False) -> None:
        self._writer = writer
        self.check_acknowledge = check_acknowledge
        self.chunk_size = DEFAULT_CHUNK_SIZE
        self.window_ack_size = 0
        self.ack_value = 0
        self._streams: Dict[int, _WriterChunkStream] = {}

    def _append_chunk(self, out: bytearray, chunk: AnyChunk) -> None:
        if self.check_acknowledge and self.window_ack_size != 0:
            diff = ((self._writer.count & _U32) - self.ack_value) & _U32
            if diff > ((self.window_ack_size * 3) & _U32) // 2:
                raise RawMessageError("no acknowledge received within window")
        out += chunk.marshal()

    @staticmethod
    def _first_chunk(
        st: _WriterChunkStream, msg: RawMessage, delta: Optional[int], body_len: int, part: bytes
    ) -> AnyChunk:
        if (
            st.last_message_stream_id is None
            or delta is None
            or st.last_message_stream_id != msg.message_stream_id
        ):
            return Chunk0(
                chunk_stream_id=msg.chunk_stream_id,
                timestamp=msg.timestamp & _U32,
                type=msg.type,
                message_stream_id=msg.message_stream_id,
                body_len=body_len,
                body=part,
            )
        if st.last_type != msg.type or st.last_body_len != body_len:
            return Chunk1(
                chunk_stream_id=msg.chunk_stream_id,
                timestamp_delta=delta & _U32,
                type=msg.type,
                body_len=body_len,
                body=part,
            )
        if st.last_timestamp_delta is None or st.last_timestamp_delta != delta:
            return Chunk2(
                chunk_stream_id=msg.chunk_stream_id,
                timestamp_delta=delta & _U32,
                body=part,
            )
        return Chunk3(chunk_stream_id=msg.chunk_stream_id, body=part)

    def write(self, msg: RawMessage) -> None:
        """Write a message, choosing the most compact chunk headers."""
        if self.chunk_size <= 0:
            raise RawMessageError("invalid chunk size")

        st = self._streams.setdefault(msg.chunk_stream_id, _WriterChunkStream())
        body = bytes(msg.body)
        body_len = len(body)

        delta = None
        if st.last_timestamp is not None:
            diff = msg.timestamp - st.last_timestamp
            if diff >= 0:
                delta = diff

        out = bytearray()
        pos = 0
        first = True
        while True:
            size = min(body_len - pos, self.chunk_size)
            part = body[pos:pos + size]

            if first:
                first = False
                self._append_chunk(out, self._first_chunk(st, msg, delta, body_len, part))
                st.last_message_stream_id = msg.message_stream_id
                st.last_type = msg.type
                st.last_body_len = body_len
                st.last_timestamp = msg.timestamp
                if delta is not None:
                    st.last_timestamp_delta = delta
            else:
                self._append_chunk(out, Chunk3(chunk_stream_id=msg.chunk_stream_id, body=part))

            pos += size
            if pos == body_len:
                break

        self._writer.write(bytes(out))
        self._writer.flush()