"""Audio, video and extended video messages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from rtmpstream.message import (
    FOURCC_HEVC,
    ExtendedType,
    Message,
    MessageError,
    MessageType,
)
from rtmpstream.rawmessage import RawMessage

AUDIO_CHUNK_STREAM_ID = 4
VIDEO_CHUNK_STREAM_ID = 6

CODEC_MPEG2_AUDIO = 2
CODEC_MPEG4_AUDIO = 10
CODEC_H264 = 7

FRAME_KEY = 1
FRAME_INTER = 2

SOUND_44KHZ = 3
SOUND_16BIT = 1
SOUND_STEREO = 1

_EXTENDED_FLAG = 0b10000000
_NO_FOURCC = b"\x00\x00\x00\x00"


class AudioAACType(IntEnum):
    """Kind of payload carried by an AAC audio message."""

    CONFIG = 0
    AU = 1


class VideoType(IntEnum):
    """Kind of payload carried by a video message."""

    CONFIG = 0
    AU = 1
    EOS = 2


def _u24(value: int) -> bytes:
    return (value & 0xFFFFFF).to_bytes(3, "big")


def _fourcc(body: bytes) -> bytes:
    if len(body) < 5:
        raise MessageError("not enough bytes")
    return bytes(body[1:5])


def _extended_header(extended_type: ExtendedType, fourcc: bytes) -> bytes:
    if len(fourcc) != 4:
        raise MessageError("a FourCC must be 4 bytes long")
    return bytes([_EXTENDED_FLAG | int(extended_type)]) + bytes(fourcc)


@dataclass
class Audio(Message):
    """An audio message. ``dts`` is in milliseconds."""

    chunk_stream_id: int = 0
    dts: int = 0
    message_stream_id: int = 0
    codec: int = 0
    rate: int = 0
    depth: int = 0
    channels: int = 0
    aac_type: AudioAACType = AudioAACType.CONFIG
    payload: bytes = b""

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "Audio":
        body = bytes(raw.body)
        if len(body) < 2:
            raise MessageError("invalid body size")

        codec = body[0] >> 4
        if codec not in (CODEC_MPEG2_AUDIO, CODEC_MPEG4_AUDIO):
            raise MessageError(f"unsupported audio codec: {codec}")

        aac_type = AudioAACType.CONFIG
        if codec == CODEC_MPEG2_AUDIO:
            payload = body[1:]
        else:
            try:
                aac_type = AudioAACType(body[1])
            except ValueError:
                raise MessageError(f"unsupported audio message type: {body[1]}") from None
            payload = body[2:]

        return cls(
            chunk_stream_id=raw.chunk_stream_id,
            dts=raw.timestamp,
            message_stream_id=raw.message_stream_id,
            codec=codec,
            rate=(body[0] >> 2) & 0x03,
            depth=(body[0] >> 1) & 0x01,
            channels=body[0] & 0x01,
            aac_type=aac_type,
            payload=payload,
        )

    def marshal(self) -> RawMessage:
        header = bytes(
            [(self.codec << 4 | self.rate << 2 | self.depth << 1 | self.channels) & 0xFF]
        )
        if self.codec != CODEC_MPEG2_AUDIO:
            header += bytes([int(self.aac_type) & 0xFF])
        return RawMessage(
            chunk_stream_id=self.chunk_stream_id,
            timestamp=self.dts,
            type=int(MessageType.AUDIO),
            message_stream_id=self.message_stream_id,
            body=header + bytes(self.payload),
        )


@dataclass
class Video(Message):
    """A video message. ``dts`` and ``pts_delta`` are in milliseconds."""

    chunk_stream_id: int = 0
    dts: int = 0
    message_stream_id: int = 0
    codec: int = 0
    is_key_frame: bool = False
    type: VideoType = VideoType.CONFIG
    pts_delta: int = 0
    payload: bytes = b""

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "Video":
        body = bytes(raw.body)
        if len(body) < 5:
            raise MessageError("invalid body size")

        codec = body[0] & 0x0F
        if codec != CODEC_H264:
            raise MessageError(f"unsupported video codec: {codec}")

        try:
            video_type = VideoType(body[1])
        except ValueError:
            raise MessageError(f"unsupported video message type: {body[1]}") from None

        return cls(
            chunk_stream_id=raw.chunk_stream_id,
            dts=raw.timestamp,
            message_stream_id=raw.message_stream_id,
            codec=codec,
            is_key_frame=(body[0] >> 4) == FRAME_KEY,
            type=video_type,
            pts_delta=int.from_bytes(body[2:5], "big"),
            payload=body[5:],
        )

    def marshal(self) -> RawMessage:
        frame = FRAME_KEY if self.is_key_frame else FRAME_INTER
        header = bytes([(frame << 4 | self.codec) & 0xFF, int(self.type) & 0xFF])
        return RawMessage(
            chunk_stream_id=self.chunk_stream_id,
            timestamp=self.dts,
            type=int(MessageType.VIDEO),
            message_stream_id=self.message_stream_id,
            body=header + _u24(self.pts_delta) + bytes(self.payload),
        )


@dataclass
class ExtendedCodedFrames(Message):
    """Coded frames of an extended video stream, with a PTS delta for HEVC."""

    chunk_stream_id: int = 0
    dts: int = 0
    message_stream_id: int = 0
    fourcc: bytes = _NO_FOURCC
    pts_delta: int = 0
    payload: bytes = b""

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "ExtendedCodedFrames":
        body = bytes(raw.body)
        if len(body) < 8:
            raise MessageError("not enough bytes")

        fourcc = body[1:5]
        if fourcc == FOURCC_HEVC:
            pts_delta = int.from_bytes(body[5:8], "big")
            payload = body[8:]
        else:
            pts_delta = 0
            payload = body[5:]

        return cls(
            chunk_stream_id=raw.chunk_stream_id,
            dts=raw.timestamp,
            message_stream_id=raw.message_stream_id,
            fourcc=fourcc,
            pts_delta=pts_delta,
            payload=payload,
        )

    def marshal(self) -> RawMessage:
        body = _extended_header(ExtendedType.CODED_FRAMES, self.fourcc)
        if self.fourcc == FOURCC_HEVC:
            body += _u24(self.pts_delta)
        return RawMessage(
            chunk_stream_id=self.chunk_stream_id,
            timestamp=self.dts,
            type=int(MessageType.VIDEO),
            message_stream_id=self.message_stream_id,
            body=body + bytes(self.payload),
        )


@dataclass
class ExtendedFramesX(Message):
    """Coded frames of an extended video stream, with no PTS delta."""

    chunk_stream_id: int = 0
    dts: int = 0
    message_stream_id: int = 0
    fourcc: bytes = _NO_FOURCC
    payload: bytes = b""

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "ExtendedFramesX":
        body = bytes(raw.body)
        return cls(
            chunk_stream_id=raw.chunk_stream_id,
            dts=raw.timestamp,
            message_stream_id=raw.message_stream_id,
            fourcc=_fourcc(body),
            payload=body[5:],
        )

    def marshal(self) -> RawMessage:
        return RawMessage(
            chunk_stream_id=self.chunk_stream_id,
            timestamp=self.dts,
            type=int(MessageType.VIDEO),
            message_stream_id=self.message_stream_id,
            body=_extended_header(ExtendedType.FRAMES_X, self.fourcc) + bytes(self.payload),
        )


@dataclass
class ExtendedMetadata(Message):
    """Metadata of an extended video stream; decoding it is unsupported."""

    fourcc: bytes = _NO_FOURCC

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "ExtendedMetadata":
        _fourcc(bytes(raw.body))
        raise MessageError("extended metadata messages are unsupported")

    def marshal(self) -> RawMessage:
        raise MessageError("encoding extended metadata messages is unsupported")


@dataclass
class ExtendedMPEG2TSSequenceStart(Message):
    """MPEG-TS sequence start of an extended video stream; decoding it is unsupported."""

    fourcc: bytes = _NO_FOURCC

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "ExtendedMPEG2TSSequenceStart":
        _fourcc(bytes(raw.body))
        raise MessageError("extended MPEG2-TS sequence start messages are unsupported")

    def marshal(self) -> RawMessage:
        raise MessageError("encoding extended MPEG2-TS sequence start messages is unsupported")


@dataclass
class ExtendedSequenceEnd(Message):
    """End of an extended video sequence."""

    fourcc: bytes = _NO_FOURCC

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "ExtendedSequenceEnd":
        body = bytes(raw.body)
        if len(body) != 5:
            raise MessageError("invalid body size")
        return cls(fourcc=body[1:5])

    def marshal(self) -> RawMessage:
        raise MessageError("encoding extended sequence end messages is unsupported")


@dataclass
class ExtendedSequenceStart(Message):
    """Start of an extended video sequence, carrying the decoder configuration."""

    fourcc: bytes = _NO_FOURCC
    config: bytes = b""

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "ExtendedSequenceStart":
        body = bytes(raw.body)
        return cls(fourcc=_fourcc(body), config=body[5:])

    def marshal(self) -> RawMessage:
        raise MessageError("encoding extended sequence start messages is unsupported")