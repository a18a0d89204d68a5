import io

import pytest

from rtmpstream.bytecounter import CountingReader, CountingReadWriter, CountingWriter
from rtmpstream.chunk import Chunk0
from rtmpstream.commands import CommandAMF0, DataAMF0
from rtmpstream.control import (
    Acknowledge,
    SetChunkSize,
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
    CODEC_H264,
    CODEC_MPEG2_AUDIO,
    CODEC_MPEG4_AUDIO,
    SOUND_16BIT,
    SOUND_44KHZ,
    SOUND_STEREO,
    Audio,
    AudioAACType,
    ExtendedCodedFrames,
    ExtendedFramesX,
    Video,
    VideoType,
)
from rtmpstream.message import FOURCC_HEVC, MessageError
from rtmpstream.messageio import MessageReader, MessageReadWriter, MessageWriter
from rtmpstream.rawmessage import RawMessageError

CASES = [
    pytest.param(
        Acknowledge(value=45953968),
        bytes([
            0x2, 0x0, 0x0, 0x0, 0x0, 0x0, 0x4, 0x3,
            0x0, 0x0, 0x0, 0x0, 0x2, 0xbd, 0x33, 0xb0,
        ]),
        id="acknowledge",
    ),
    pytest.param(
        Audio(
            chunk_stream_id=7,
            dts=6013806,
            message_stream_id=4534543,
            codec=CODEC_MPEG2_AUDIO,
            rate=SOUND_44KHZ,
            depth=SOUND_16BIT,
            channels=SOUND_STEREO,
            payload=b"\x01\x02\x03\x04",
        ),
        bytes([
            0x7, 0x5b, 0xc3, 0x6e, 0x0, 0x0, 0x5, 0x8, 0x0, 0x45, 0x31, 0xf, 0x2f,
            0x01, 0x02, 0x03, 0x04,
        ]),
        id="audio mpeg2",
    ),
    pytest.param(
        Audio(
            chunk_stream_id=7,
            dts=6013806,
            message_stream_id=4534543,
            codec=CODEC_MPEG4_AUDIO,
            rate=SOUND_44KHZ,
            depth=SOUND_16BIT,
            channels=SOUND_STEREO,
            aac_type=AudioAACType.AU,
            payload=b"\x5a\xc0\x77\x40",
        ),
        bytes([
            0x7, 0x5b, 0xc3, 0x6e, 0x0, 0x0, 0x6, 0x8,
            0x0, 0x45, 0x31, 0xf, 0xaf, 0x1, 0x5a, 0xc0,
            0x77, 0x40,
        ]),
        id="audio mpeg4",
    ),
    pytest.param(
        CommandAMF0(
            chunk_stream_id=3,
            message_stream_id=345243,
            name="i8yythrergre",
            command_id=56456,
            arguments=[{"k1": "v1", "k2": "v2"}, None],
        ),
        bytes([
            0x3, 0x0, 0x0, 0x0, 0x0, 0x0, 0x2f, 0x14,
            0x0, 0x5, 0x44, 0x9b, 0x2, 0x0, 0xc, 0x69,
            0x38, 0x79, 0x79, 0x74, 0x68, 0x72, 0x65, 0x72,
            0x67, 0x72, 0x65, 0x0, 0x40, 0xeb, 0x91, 0x0,
            0x0, 0x0, 0x0, 0x0, 0x3, 0x0, 0x2, 0x6b,
            0x31, 0x2, 0x0, 0x2, 0x76, 0x31, 0x0, 0x2,
            0x6b, 0x32, 0x2, 0x0, 0x2, 0x76, 0x32, 0x0,
            0x0, 0x9, 0x5,
        ]),
        id="command amf0",
    ),
    pytest.param(
        DataAMF0(
            chunk_stream_id=3,
            message_stream_id=345243,
            payload=[234.0, "string", None],
        ),
        bytes([
            0x3, 0x0, 0x0, 0x0, 0x0, 0x0, 0x13, 0x12,
            0x0, 0x5, 0x44, 0x9b, 0x0, 0x40, 0x6d, 0x40,
            0x0, 0x0, 0x0, 0x0, 0x0, 0x2, 0x0, 0x6,
            0x73, 0x74, 0x72, 0x69, 0x6e, 0x67, 0x05,
        ]),
        id="data amf0",
    ),
    pytest.param(
        SetChunkSize(value=10000),
        bytes([
            0x2, 0x0, 0x0, 0x0, 0x0, 0x0, 0x4, 0x1,
            0x0, 0x0, 0x0, 0x0, 0x0, 0x0, 0x27, 0x10,
        ]),
        id="set chunk size",
    ),
    pytest.param(
        UserControlPingRequest(server_time=569834435),
        bytes([
            0x2, 0x0, 0x0, 0x0, 0x0, 0x0, 0x6, 0x4,
            0x0, 0x0, 0x0, 0x0, 0x0, 0x6, 0x21, 0xf6,
            0xfb, 0xc3,
        ]),
        id="user control ping request",
    ),
    pytest.param(
        UserControlPingResponse(server_time=569834435),
        bytes([
            0x2, 0x0, 0x0, 0x0, 0x0, 0x0, 0x6, 0x4,
            0x0, 0x0, 0x0, 0x0, 0x0, 0x7, 0x21, 0xf6,
            0xfb, 0xc3,
        ]),
        id="user control ping response",
    ),
    pytest.param(
        UserControlSetBufferLength(stream_id=35534, buffer_length=235345),
        bytes([
            0x2, 0x0, 0x0, 0x0, 0x0, 0x0, 0xa, 0x4,
            0x0, 0x0, 0x0, 0x0, 0x0, 0x3, 0x0, 0x0,
            0x8a, 0xce, 0x0, 0x3, 0x97, 0x51,
        ]),
        id="user control set buffer length",
    ),
    pytest.param(
        UserControlStreamBegin(stream_id=35534),
        bytes([
            0x2, 0x0, 0x0, 0x0, 0x0, 0x0, 0x6, 0x4,
            0x0, 0x0, 0x0, 0x0, 0x0, 0x0, 0x0, 0x0,
            0x8a, 0xce,
        ]),
        id="user control stream begin",
    ),
    pytest.param(
        UserControlStreamDry(stream_id=35534),
        bytes([
            0x2, 0x0, 0x0, 0x0, 0x0, 0x0, 0x6, 0x4,
            0x0, 0x0, 0x0, 0x0, 0x0, 0x2, 0x0, 0x0,
            0x8a, 0xce,
        ]),
        id="user control stream dry",
    ),
    pytest.param(
        UserControlStreamEOF(stream_id=35534),
        bytes([
            0x2, 0x0, 0x0, 0x0, 0x0, 0x0, 0x6, 0x4,
            0x0, 0x0, 0x0, 0x0, 0x0, 0x1, 0x0, 0x0,
            0x8a, 0xce,
        ]),
        id="user control stream eof",
    ),
    pytest.param(
        UserControlStreamIsRecorded(stream_id=35534),
        bytes([
            0x2, 0x0, 0x0, 0x0, 0x0, 0x0, 0x6, 0x4,
            0x0, 0x0, 0x0, 0x0, 0x0, 0x4, 0x0, 0x0,
            0x8a, 0xce,
        ]),
        id="user control stream is recorded",
    ),
    pytest.param(
        Video(
            chunk_stream_id=6,
            dts=2543534,
            message_stream_id=0x1000000,
            codec=CODEC_H264,
            is_key_frame=True,
            type=VideoType.CONFIG,
            pts_delta=10,
            payload=b"\x01\x02\x03",
        ),
        bytes([
            0x06, 0x26, 0xcf, 0xae, 0x00, 0x00, 0x08, 0x09,
            0x01, 0x00, 0x00, 0x00, 0x17, 0x00, 0x00, 0x00,
            0x0a, 0x01, 0x02, 0x03,
        ]),
        id="video",
    ),
    pytest.param(
        ExtendedCodedFrames(
            chunk_stream_id=4,
            dts=15100,
            message_stream_id=0x1000000,
            fourcc=FOURCC_HEVC,
            pts_delta=30,
            payload=b"\x01\x02\x03",
        ),
        bytes([
            0x04, 0x00, 0x3a, 0xfc, 0x00, 0x00, 0x0b, 0x09,
            0x01, 0x00, 0x00, 0x00, 0x81, 0x68, 0x76, 0x63,
            0x31, 0x00, 0x00, 0x1e, 0x01, 0x02, 0x03,
        ]),
        id="extended coded frames",
    ),
    pytest.param(
        ExtendedFramesX(
            chunk_stream_id=4,
            dts=15100,
            message_stream_id=0x1000000,
            fourcc=FOURCC_HEVC,
            payload=b"\x01\x02\x03",
        ),
        bytes([
            0x04, 0x00, 0x3a, 0xfc, 0x00, 0x00, 0x08, 0x09,
            0x01, 0x00, 0x00, 0x00, 0x83, 0x68, 0x76, 0x63,
            0x31, 0x01, 0x02, 0x03,
        ]),
        id="extended frames x",
    ),
]


class _Fifo:
    def __init__(self):
        self.data = bytearray()

    def write(self, data):
        self.data += data
        return len(data)

    def read(self, size):
        out = bytes(self.data[:size])
        del self.data[:size]
        return out


class _Duplex:
    def __init__(self, incoming, outgoing):
        self.incoming = incoming
        self.outgoing = outgoing

    def read(self, size):
        return self.incoming.read(size)

    def write(self, data):
        return self.outgoing.write(data)


def _pair():
    a_to_b, b_to_a = _Fifo(), _Fifo()
    bc1 = CountingReadWriter(_Duplex(b_to_a, a_to_b))
    bc2 = CountingReadWriter(_Duplex(a_to_b, b_to_a))
    return bc1, bc2


@pytest.mark.parametrize("dec, enc", CASES)
def test_reader(dec, enc):
    reader = MessageReader(CountingReader(io.BytesIO(enc)))
    assert reader.read() == dec


@pytest.mark.parametrize("dec, enc", CASES)
def test_writer(dec, enc):
    buf = io.BytesIO()
    writer = MessageWriter(CountingWriter(buf), True)
    writer.write(dec)
    assert buf.getvalue() == enc


def _chunk(chunk_stream_id, msg_type, body):
    return Chunk0(
        chunk_stream_id=chunk_stream_id,
        type=msg_type,
        body_len=len(body),
        body=body,
    ).marshal()


@pytest.mark.parametrize(
    "data",
    [
        _chunk(3, 99, b"\x00"),
        _chunk(2, 4, b"\x00\x05\x00\x00\x00\x00"),
        _chunk(2, 4, b"\x00"),
        _chunk(6, 9, b"\x80abcd"),
        _chunk(6, 9, b"\x8fhvc1"),
        _chunk(6, 9, b"\x17\x00"),
    ],
)
def test_reader_rejects_invalid_messages(data):
    reader = MessageReader(CountingReader(io.BytesIO(data)))
    with pytest.raises(MessageError):
        reader.read()


def test_chunk_size_applies_to_both_sides():
    buf = io.BytesIO()
    writer = MessageWriter(CountingWriter(buf))
    big = DataAMF0(chunk_stream_id=3, payload=["x" * 1000])
    writer.write(SetChunkSize(value=65536))
    writer.write(big)

    reader = MessageReader(CountingReader(io.BytesIO(buf.getvalue())))
    assert reader.read() == SetChunkSize(value=65536)
    assert reader.read() == big


def test_writer_requires_acknowledge():
    buf = io.BytesIO()
    counter = CountingWriter(buf)
    writer = MessageWriter(counter, True)
    writer.write(SetWindowAckSize(value=100))
    data = DataAMF0(chunk_stream_id=3, payload=["x" * 197])
    writer.write(data)

    with pytest.raises(RawMessageError, match="no acknowledge received within window"):
        writer.write(data)

    before = len(buf.getvalue())
    writer.acknowledge(counter.count)
    writer.write(data)
    assert len(buf.getvalue()) > before


def test_readwriter_acknowledge():
    bc1, bc2 = _pair()
    rw1 = MessageReadWriter(bc1, True)
    rw1.write(Acknowledge(value=7863534))

    rw2 = MessageReadWriter(bc2, True)
    assert rw2.read() == Acknowledge(value=7863534)


def test_readwriter_ping():
    bc1, bc2 = _pair()
    rw1 = MessageReadWriter(bc1, True)
    rw1.write(UserControlPingRequest(server_time=143424312))

    rw2 = MessageReadWriter(bc2, True)
    assert rw2.read() == UserControlPingRequest(server_time=143424312)

    assert rw1.read() == UserControlPingResponse(server_time=143424312)


def test_readwriter_sends_acknowledge_when_window_exceeded():
    bc1, bc2 = _pair()
    rw1 = MessageReadWriter(bc1, False)
    data = DataAMF0(chunk_stream_id=3, payload=["x" * 197])
    rw1.write(SetWindowAckSize(value=100))
    rw1.write(data)

    rw2 = MessageReadWriter(bc2, True)
    assert rw2.read() == SetWindowAckSize(value=100)
    assert rw2.read() == data

    ack = rw1.read()
    assert isinstance(ack, Acknowledge)
    assert 100 < ack.value <= bc2.reader.count