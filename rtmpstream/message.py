"""Common definitions of RTMP messages."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import IntEnum

from rtmpstream.rawmessage import RawMessage

CONTROL_CHUNK_STREAM_ID = 2

FOURCC_AV1 = b"av01"
FOURCC_VP9 = b"vp09"
FOURCC_HEVC = b"hvc1"


class MessageError(ValueError):
    """Raised when a message cannot be decoded or encoded."""


class MessageType(IntEnum):
    """Message type IDs."""

    SET_CHUNK_SIZE = 1
    ABORT_MESSAGE = 2
    ACKNOWLEDGE = 3
    USER_CONTROL = 4
    SET_WINDOW_ACK_SIZE = 5
    SET_PEER_BANDWIDTH = 6
    AUDIO = 8
    VIDEO = 9
    DATA_AMF3 = 15
    COMMAND_AMF3 = 17
    DATA_AMF0 = 18
    COMMAND_AMF0 = 20


class UserControlType(IntEnum):
    """User control event types."""

    STREAM_BEGIN = 0
    STREAM_EOF = 1
    STREAM_DRY = 2
    SET_BUFFER_LENGTH = 3
    STREAM_IS_RECORDED = 4
    PING_REQUEST = 6
    PING_RESPONSE = 7


class ExtendedType(IntEnum):
    """Packet types of extended video messages."""

    SEQUENCE_START = 0
    CODED_FRAMES = 1
    SEQUENCE_END = 2
    FRAMES_X = 3
    METADATA = 4
    MPEG2TS_SEQUENCE_START = 5


class Message(ABC):
    """A message that can be decoded from and encoded into a raw message."""

    @classmethod
    @abstractmethod
    def from_raw(cls, raw: RawMessage) -> "Message":
        """Decode a message from a raw message."""

    @abstractmethod
    def marshal(self) -> RawMessage:
        """Encode the message into a raw message."""

    @staticmethod
    def _control_body(raw: RawMessage, size: int, size_error: str = "invalid body size") -> bytes:
        """Return the body of a control message after checking its stream and size."""
        if raw.chunk_stream_id != CONTROL_CHUNK_STREAM_ID:
            raise MessageError("unexpected chunk stream ID")
        if len(raw.body) != size:
            raise MessageError(size_error)
        return bytes(raw.body)