"""Protocol control and user control messages."""

from __future__ import annotations

from dataclasses import dataclass

from rtmpstream.message import (
    CONTROL_CHUNK_STREAM_ID,
    Message,
    MessageType,
    UserControlType,
)
from rtmpstream.rawmessage import RawMessage

_U32 = 0xFFFFFFFF


def _u32(value: int) -> bytes:
    return (value & _U32).to_bytes(4, "big")


def _control_raw(message_type: MessageType, body: bytes) -> RawMessage:
    return RawMessage(
        chunk_stream_id=CONTROL_CHUNK_STREAM_ID,
        type=int(message_type),
        body=body,
    )


def _event_raw(event: UserControlType, *fields: int) -> RawMessage:
    body = int(event).to_bytes(2, "big") + b"".join(_u32(field) for field in fields)
    return _control_raw(MessageType.USER_CONTROL, body)


@dataclass
class Acknowledge(Message):
    """Acknowledgement of the number of bytes received so far."""

    value: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "Acknowledge":
        body = cls._control_body(raw, 4, "unexpected body size")
        return cls(value=int.from_bytes(body, "big"))

    def marshal(self) -> RawMessage:
        return _control_raw(MessageType.ACKNOWLEDGE, _u32(self.value))


@dataclass
class SetChunkSize(Message):
    """Sets the maximum chunk size used by the sender."""

    value: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "SetChunkSize":
        body = cls._control_body(raw, 4)
        return cls(value=int.from_bytes(body, "big"))

    def marshal(self) -> RawMessage:
        return _control_raw(MessageType.SET_CHUNK_SIZE, _u32(self.value))


@dataclass
class SetWindowAckSize(Message):
    """Sets the acknowledgement window size."""

    value: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "SetWindowAckSize":
        body = cls._control_body(raw, 4)
        return cls(value=int.from_bytes(body, "big"))

    def marshal(self) -> RawMessage:
        return _control_raw(MessageType.SET_WINDOW_ACK_SIZE, _u32(self.value))


@dataclass
class SetPeerBandwidth(Message):
    """Limits the output bandwidth of the peer."""

    value: int = 0
    type: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "SetPeerBandwidth":
        body = cls._control_body(raw, 5)
        return cls(value=int.from_bytes(body[0:4], "big"), type=body[4])

    def marshal(self) -> RawMessage:
        return _control_raw(
            MessageType.SET_PEER_BANDWIDTH,
            _u32(self.value) + bytes([self.type & 0xFF]),
        )


@dataclass
class UserControlStreamBegin(Message):
    """Notifies that a stream has become functional."""

    stream_id: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "UserControlStreamBegin":
        body = cls._control_body(raw, 6)
        return cls(stream_id=int.from_bytes(body[2:6], "big"))

    def marshal(self) -> RawMessage:
        return _event_raw(UserControlType.STREAM_BEGIN, self.stream_id)


@dataclass
class UserControlStreamEOF(Message):
    """Notifies that playback of a stream is over."""

    stream_id: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "UserControlStreamEOF":
        body = cls._control_body(raw, 6)
        return cls(stream_id=int.from_bytes(body[2:6], "big"))

    def marshal(self) -> RawMessage:
        return _event_raw(UserControlType.STREAM_EOF, self.stream_id)


@dataclass
class UserControlStreamDry(Message):
    """Notifies that there is no more data on a stream."""

    stream_id: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "UserControlStreamDry":
        body = cls._control_body(raw, 6)
        return cls(stream_id=int.from_bytes(body[2:6], "big"))

    def marshal(self) -> RawMessage:
        return _event_raw(UserControlType.STREAM_DRY, self.stream_id)


@dataclass
class UserControlStreamIsRecorded(Message):
    """Notifies that a stream is a recorded one."""

    stream_id: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "UserControlStreamIsRecorded":
        body = cls._control_body(raw, 6)
        return cls(stream_id=int.from_bytes(body[2:6], "big"))

    def marshal(self) -> RawMessage:
        return _event_raw(UserControlType.STREAM_IS_RECORDED, self.stream_id)


@dataclass
class UserControlPingRequest(Message):
    """Asks the peer to answer with a ping response."""

    server_time: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "UserControlPingRequest":
        body = cls._control_body(raw, 6)
        return cls(server_time=int.from_bytes(body[2:6], "big"))

    def marshal(self) -> RawMessage:
        return _event_raw(UserControlType.PING_REQUEST, self.server_time)


@dataclass
class UserControlPingResponse(Message):
    """Answer to a ping request."""

    server_time: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "UserControlPingResponse":
        body = cls._control_body(raw, 6)
        return cls(server_time=int.from_bytes(body[2:6], "big"))

    def marshal(self) -> RawMessage:
        return _event_raw(UserControlType.PING_RESPONSE, self.server_time)


@dataclass
class UserControlSetBufferLength(Message):
    """Tells the peer the buffer length, in milliseconds, used for a stream."""

    stream_id: int = 0
    buffer_length: int = 0

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "UserControlSetBufferLength":
        body = cls._control_body(raw, 10)
        return cls(
            stream_id=int.from_bytes(body[2:6], "big"),
            buffer_length=int.from_bytes(body[6:10], "big"),
        )

    def marshal(self) -> RawMessage:
        return _event_raw(UserControlType.SET_BUFFER_LENGTH, self.stream_id, self.buffer_length)