"""AMF0 command and data messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List

from rtmpstream.amf0 import AMF0Error, decode_values, encode_values
from rtmpstream.message import Message, MessageError, MessageType
from rtmpstream.rawmessage import RawMessage


def _decode(body: bytes) -> List[Any]:
    try:
        return decode_values(body)
    except AMF0Error as exc:
        raise MessageError(str(exc)) from exc


def _encode(values: List[Any]) -> bytes:
    try:
        return encode_values(values)
    except AMF0Error as exc:
        raise MessageError(str(exc)) from exc


@dataclass
class CommandAMF0(Message):
    """A command such as ``connect`` or ``play``, encoded with AMF0."""

    chunk_stream_id: int = 0
    message_stream_id: int = 0
    name: str = ""
    command_id: int = 0
    arguments: List[Any] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "CommandAMF0":
        payload = _decode(raw.body)
        if len(payload) < 3:
            raise MessageError("invalid command payload")

        name, command_id = payload[0], payload[1]
        if not isinstance(name, str):
            raise MessageError("invalid command payload")
        if not isinstance(command_id, float):
            raise MessageError("invalid command payload")

        return cls(
            chunk_stream_id=raw.chunk_stream_id,
            message_stream_id=raw.message_stream_id,
            name=name,
            command_id=int(command_id),
            arguments=payload[2:],
        )

    def marshal(self) -> RawMessage:
        return RawMessage(
            chunk_stream_id=self.chunk_stream_id,
            type=int(MessageType.COMMAND_AMF0),
            message_stream_id=self.message_stream_id,
            body=_encode([self.name, float(self.command_id), *self.arguments]),
        )


@dataclass
class DataAMF0(Message):
    """A data message, such as stream metadata, encoded with AMF0."""

    chunk_stream_id: int = 0
    message_stream_id: int = 0
    payload: List[Any] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "DataAMF0":
        return cls(
            chunk_stream_id=raw.chunk_stream_id,
            message_stream_id=raw.message_stream_id,
            payload=_decode(raw.body),
        )

    def marshal(self) -> RawMessage:
        return RawMessage(
            chunk_stream_id=self.chunk_stream_id,
            type=int(MessageType.DATA_AMF0),
            message_stream_id=self.message_stream_id,
            body=_encode(list(self.payload)),
        )