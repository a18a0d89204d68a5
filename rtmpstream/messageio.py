"""Reading and writing of decoded RTMP messages."""

from __future__ import annotations

import contextlib
from typing import Any, Callable, Optional, Type

from rtmpstream.commands import CommandAMF0, DataAMF0
from rtmpstream.control import (
    Acknowledge,
    SetChunkSize,
    SetPeerBandwidth,
    SetWindowAckSize,
    UserControlPingRequest,
    UserControlPingResponse,
    UserControlSetBufferLength,
    UserControlStreamBegin,
    UserControlStreamDry,
    UserControlStreamEOF,
    UserControlStreamIsRecorded,
)
from rtmpstream.media import (
    Audio,
    ExtendedCodedFrames,
    ExtendedFramesX,
    ExtendedMetadata,
    ExtendedMPEG2TSSequenceStart,
    ExtendedSequenceEnd,
    ExtendedSequenceStart,
    Video,
)
from rtmpstream.message import (
    FOURCC_AV1,
    FOURCC_HEVC,
    FOURCC_VP9,
    ExtendedType,
    Message,
    MessageError,
    MessageType,
    UserControlType,
)
from rtmpstream.rawmessage import RawMessage, RawMessageError, RawReader, RawWriter

_SIMPLE_TYPES = {
    MessageType.SET_CHUNK_SIZE: SetChunkSize,
    MessageType.ACKNOWLEDGE: Acknowledge,
    MessageType.SET_WINDOW_ACK_SIZE: SetWindowAckSize,
    MessageType.SET_PEER_BANDWIDTH: SetPeerBandwidth,
    MessageType.COMMAND_AMF0: CommandAMF0,
    MessageType.DATA_AMF0: DataAMF0,
    MessageType.AUDIO: Audio,
}

_USER_CONTROL_TYPES = {
    UserControlType.STREAM_BEGIN: UserControlStreamBegin,
    UserControlType.STREAM_EOF: UserControlStreamEOF,
    UserControlType.STREAM_DRY: UserControlStreamDry,
    UserControlType.SET_BUFFER_LENGTH: UserControlSetBufferLength,
    UserControlType.STREAM_IS_RECORDED: UserControlStreamIsRecorded,
    UserControlType.PING_REQUEST: UserControlPingRequest,
    UserControlType.PING_RESPONSE: UserControlPingResponse,
}

_EXTENDED_TYPES = {
    ExtendedType.SEQUENCE_START: ExtendedSequenceStart,
    ExtendedType.CODED_FRAMES: ExtendedCodedFrames,
    ExtendedType.SEQUENCE_END: ExtendedSequenceEnd,
    ExtendedType.FRAMES_X: ExtendedFramesX,
    ExtendedType.METADATA: ExtendedMetadata,
    ExtendedType.MPEG2TS_SEQUENCE_START: ExtendedMPEG2TSSequenceStart,
}

_FOURCCS = (FOURCC_AV1, FOURCC_VP9, FOURCC_HEVC)


def _message_class(raw: RawMessage) -> Type[Message]:
    body = bytes(raw.body)
    simple = _SIMPLE_TYPES.get(raw.type)
    if simple is not None:
        return simple

    if raw.type == MessageType.USER_CONTROL:
        if len(body) < 2:
            raise MessageError("not enough bytes")
        event = int.from_bytes(body[0:2], "big")
        try:
            return _USER_CONTROL_TYPES[UserControlType(event)]
        except ValueError:
            raise MessageError(f"invalid user control type: {event}") from None

    if raw.type == MessageType.VIDEO:
        if len(body) < 5:
            raise MessageError("not enough bytes")
        if body[0] & 0b10000000 == 0:
            return Video

        fourcc = body[1:5]
        if fourcc not in _FOURCCS:
            raise MessageError(f"invalid fourCC: {fourcc!r}")
        extended = body[0] & 0x0F
        try:
            return _EXTENDED_TYPES[ExtendedType(extended)]
        except ValueError:
            raise MessageError(f"invalid extended type: {extended}") from None

    raise MessageError(f"invalid message type: {raw.type}")


class MessageReader:
    """Reads messages from a counting reader.

    ``on_ack_needed`` is called with the byte count whenever an
    acknowledgement must be sent to the peer.
    """

    def __init__(self, reader: Any, on_ack_needed: Optional[Callable[[int], Any]] = None) -> None:
        self._raw = RawReader(reader, on_ack_needed)

    def read(self) -> Message:
        """Read and decode the next message."""
        raw = self._raw.read()
        msg = _message_class(raw).from_raw(raw)

        if isinstance(msg, SetChunkSize):
            self._raw.chunk_size = msg.value
        elif isinstance(msg, SetWindowAckSize):
            self._raw.window_ack_size = msg.value

        return msg


class MessageWriter:
    """Writes messages to a counting writer."""

    def __init__(self, writer: Any, check_acknowledge: bool = False) -> None:
        self._raw = RawWriter(writer, check_acknowledge)

    def acknowledge(self, value: int) -> None:
        """Record the value of the last acknowledgement received from the peer."""
        self._raw.ack_value = value

    def write(self, msg: Message) -> None:
        """Encode and write a message."""
        self._raw.write(msg.marshal())

        if isinstance(msg, SetChunkSize):
            self._raw.chunk_size = msg.value
        elif isinstance(msg, SetWindowAckSize):
            self._raw.window_ack_size = msg.value


class MessageReadWriter:
    """Reads and writes messages on a counting read-writer.

    Acknowledgements and ping responses are sent automatically.
    """

    def __init__(self, stream: Any, check_acknowledge: bool = False) -> None:
        self._writer = MessageWriter(stream.writer, check_acknowledge)
        self._reader = MessageReader(
            stream.reader,
            lambda count: self._writer.write(Acknowledge(value=count)),
        )

    def read(self) -> Message:
        """Read the next message, reacting to acknowledgements and pings."""
        msg = self._reader.read()

        if isinstance(msg, Acknowledge):
            self._writer.acknowledge(msg.value)
        elif isinstance(msg, UserControlPingRequest):
            with contextlib.suppress(OSError, RawMessageError):
                self._writer.write(UserControlPingResponse(server_time=msg.server_time))

        return msg

    def write(self, msg: Message) -> None:
        """Write a message."""
        self._writer.write(msg)