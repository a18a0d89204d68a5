import pytest

from rtmpstream.mediaformats import (
    FormatError,
    MPEG4AudioConfig,
    av1_bitstream_unmarshal,
    avcc_marshal,
    avcc_unmarshal,
    find_h265_nalu,
    parse_av1c,
    parse_hvcc,
)

VPS = bytes([0x40, 0x01, 0x0C, 0x01, 0xFF, 0xFF])
SPS = bytes([0x42, 0x01, 0x01, 0x01, 0x40])
PPS = bytes([0x44, 0x01, 0xC0, 0xF7])


def _hvcc(arrays):
    out = bytearray([1]) + bytes(21) + bytes([len(arrays)])
    for nalu_type, nalus in arrays:
        out.append(0x80 | nalu_type)
        out += len(nalus).to_bytes(2, "big")
        for nalu in nalus:
            out += len(nalu).to_bytes(2, "big") + nalu
    return bytes(out)


def test_mpeg4_audio_config_marshal_pinned():
    cfg = MPEG4AudioConfig(type=2, sample_rate=44100, channel_count=2)
    assert cfg.marshal() == b"\x12\x10"


def test_mpeg4_audio_config_unmarshal_pinned():
    cfg = MPEG4AudioConfig.unmarshal(b"\x12\x10")
    assert cfg == MPEG4AudioConfig(type=2, sample_rate=44100, channel_count=2)


@pytest.mark.parametrize("sample_rate", [48000, 44100, 8000, 44000])
@pytest.mark.parametrize("channels", [1, 2, 6, 8])
def test_mpeg4_audio_config_round_trip(sample_rate, channels):
    cfg = MPEG4AudioConfig(type=2, sample_rate=sample_rate, channel_count=channels)
    assert MPEG4AudioConfig.unmarshal(cfg.marshal()) == cfg


def test_mpeg4_audio_config_round_trip_with_extension():
    cfg = MPEG4AudioConfig(
        type=2,
        sample_rate=24000,
        channel_count=2,
        extension_type=5,
        extension_sample_rate=48000,
        depends_on_core_coder=True,
        core_coder_delay=100,
    )
    assert MPEG4AudioConfig.unmarshal(cfg.marshal()) == cfg


def test_mpeg4_audio_config_errors():
    with pytest.raises(FormatError):
        MPEG4AudioConfig.unmarshal(b"")
    with pytest.raises(FormatError):
        MPEG4AudioConfig(channel_count=7).marshal()
    with pytest.raises(FormatError):
        MPEG4AudioConfig(channel_count=0).marshal()


def test_avcc_marshal_pinned():
    assert avcc_marshal([b"\x01\x02"]) == b"\x00\x00\x00\x02\x01\x02"


def test_avcc_round_trip():
    nalus = [VPS, SPS, PPS]
    assert avcc_unmarshal(avcc_marshal(nalus)) == nalus


def test_avcc_unmarshal_errors():
    with pytest.raises(FormatError):
        avcc_unmarshal(b"\x00\x00\x00\x05\x01")
    with pytest.raises(FormatError):
        avcc_unmarshal(b"\x00\x00")


def test_parse_hvcc_and_find():
    arrays = parse_hvcc(_hvcc([(32, [VPS]), (33, [SPS]), (34, [PPS])]))
    assert arrays == [(32, [VPS]), (33, [SPS]), (34, [PPS])]
    assert find_h265_nalu(arrays, 32) == VPS
    assert find_h265_nalu(arrays, 33) == SPS
    assert find_h265_nalu(arrays, 34) == PPS


def test_find_h265_nalu_requires_single_matching_unit():
    assert find_h265_nalu([(32, [VPS, VPS])], 32) is None
    assert find_h265_nalu([(32, [SPS])], 32) is None
    assert find_h265_nalu([], 32) is None


def test_parse_hvcc_truncated():
    data = _hvcc([(32, [VPS])])
    with pytest.raises(FormatError):
        parse_hvcc(data[:-2])
    with pytest.raises(FormatError):
        parse_hvcc(b"\x01\x02")


def test_parse_av1c():
    obus = b"\x0a\x01\x00"
    record = parse_av1c(bytes([0x81, 0x00, 0x00, 0x00]) + obus)
    assert record["marker"] == 1
    assert record["version"] == 1
    assert record["config_obus"] == obus


def test_parse_av1c_errors():
    with pytest.raises(FormatError):
        parse_av1c(b"\x81\x00")
    with pytest.raises(FormatError):
        parse_av1c(b"\x01\x00\x00\x00")


def test_av1_bitstream_unmarshal():
    first = b"\x0a\x02\xaa\xbb"
    second = b"\x12\x00"
    assert av1_bitstream_unmarshal(first + second) == [first, second]


@pytest.mark.parametrize(
    "data",
    [b"", b"\x08\xaa", b"\x8a\x00", b"\x0a\x05\x01"],
)
def test_av1_bitstream_unmarshal_errors(data):
    with pytest.raises(FormatError):
        av1_bitstream_unmarshal(data)