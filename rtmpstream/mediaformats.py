"""Media format descriptions and the codec configuration parsers they need."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

OBJECT_TYPE_AAC_LC = 2
OBJECT_TYPE_SBR = 5
OBJECT_TYPE_PS = 29

SAMPLE_RATES = (
    96000, 88200, 64000, 48000, 44100, 32000, 24000,
    22050, 16000, 12000, 11025, 8000, 7350,
)

H265_NALU_VPS = 32
H265_NALU_SPS = 33
H265_NALU_PPS = 34

_HVCC_HEADER_LEN = 22


class FormatError(ValueError):
    """Raised when a codec configuration or bitstream cannot be decoded or encoded."""


@dataclass
class H264:
    """An H264 video format."""

    payload_type: int = 96
    sps: Optional[bytes] = None
    pps: Optional[bytes] = None
    packetization_mode: int = 1


@dataclass
class H265:
    """An H265 video format."""

    payload_type: int = 96
    vps: Optional[bytes] = None
    sps: Optional[bytes] = None
    pps: Optional[bytes] = None


@dataclass
class AV1:
    """An AV1 video format."""


@dataclass
class MPEG2Audio:
    """An MPEG-1/2 audio format."""


class _BitReader:
    def __init__(self, data: bytes) -> None:
        self._value = int.from_bytes(bytes(data), "big")
        self._total = len(data) * 8
        self._pos = 0

    def read(self, bits: int) -> int:
        if self._pos + bits > self._total:
            raise FormatError("not enough bits")
        shift = self._total - self._pos - bits
        self._pos += bits
        return (self._value >> shift) & ((1 << bits) - 1)


class _BitWriter:
    def __init__(self) -> None:
        self._value = 0
        self._bits = 0

    def write(self, value: int, bits: int) -> None:
        self._value = (self._value << bits) | (value & ((1 << bits) - 1))
        self._bits += bits

    def to_bytes(self) -> bytes:
        pad = -self._bits % 8
        return (self._value << pad).to_bytes((self._bits + pad) // 8, "big")


def _read_object_type(r: _BitReader) -> int:
    obj_type = r.read(5)
    if obj_type == 31:
        obj_type = 32 + r.read(6)
    return obj_type


def _write_object_type(w: _BitWriter, obj_type: int) -> None:
    if obj_type >= 31:
        w.write(31, 5)
        w.write(obj_type - 32, 6)
    else:
        w.write(obj_type, 5)


def _read_sample_rate(r: _BitReader) -> int:
    index = r.read(4)
    if index == 15:
        return r.read(24)
    if index >= len(SAMPLE_RATES):
        raise FormatError(f"invalid sample rate index ({index})")
    return SAMPLE_RATES[index]


def _write_sample_rate(w: _BitWriter, sample_rate: int) -> None:
    if sample_rate in SAMPLE_RATES:
        w.write(SAMPLE_RATES.index(sample_rate), 4)
        return
    if not 0 < sample_rate < (1 << 24):
        raise FormatError(f"invalid sample rate ({sample_rate})")
    w.write(15, 4)
    w.write(sample_rate, 24)


def _read_channel_count(r: _BitReader) -> int:
    config = r.read(4)
    if config == 0:
        raise FormatError("channel configuration 0 is unsupported")
    if 1 <= config <= 6:
        return config
    if config == 7:
        return 8
    raise FormatError(f"invalid channel configuration ({config})")


def _write_channel_count(w: _BitWriter, channel_count: int) -> None:
    if 1 <= channel_count <= 6:
        w.write(channel_count, 4)
    elif channel_count == 8:
        w.write(7, 4)
    else:
        raise FormatError(f"invalid channel count ({channel_count})")


@dataclass
class MPEG4AudioConfig:
    """An MPEG-4 audio specific configuration."""

    type: int = OBJECT_TYPE_AAC_LC
    sample_rate: int = 44100
    channel_count: int = 2
    extension_type: int = 0
    extension_sample_rate: int = 0
    frame_length_flag: bool = False
    depends_on_core_coder: bool = False
    core_coder_delay: int = 0

    @classmethod
    def unmarshal(cls, data: bytes) -> "MPEG4AudioConfig":
        """Decode a configuration."""
        r = _BitReader(data)
        obj_type = _read_object_type(r)
        sample_rate = _read_sample_rate(r)
        channel_count = _read_channel_count(r)

        extension_type = 0
        extension_sample_rate = 0
        if obj_type in (OBJECT_TYPE_SBR, OBJECT_TYPE_PS):
            extension_type = obj_type
            extension_sample_rate = _read_sample_rate(r)
            obj_type = _read_object_type(r)

        if obj_type != OBJECT_TYPE_AAC_LC:
            raise FormatError(f"unsupported object type: {obj_type}")

        frame_length_flag = r.read(1) == 1
        depends_on_core_coder = r.read(1) == 1
        core_coder_delay = r.read(14) if depends_on_core_coder else 0
        if r.read(1) != 0:
            raise FormatError("extension flag is unsupported")

        return cls(
            type=obj_type,
            sample_rate=sample_rate,
            channel_count=channel_count,
            extension_type=extension_type,
            extension_sample_rate=extension_sample_rate,
            frame_length_flag=frame_length_flag,
            depends_on_core_coder=depends_on_core_coder,
            core_coder_delay=core_coder_delay,
        )

    def marshal(self) -> bytes:
        """Encode the configuration."""
        w = _BitWriter()
        has_extension = self.extension_type in (OBJECT_TYPE_SBR, OBJECT_TYPE_PS)

        _write_object_type(w, self.extension_type if has_extension else self.type)
        _write_sample_rate(w, self.sample_rate)
        _write_channel_count(w, self.channel_count)

        if has_extension:
            _write_sample_rate(w, self.extension_sample_rate)
            _write_object_type(w, self.type)

        w.write(1 if self.frame_length_flag else 0, 1)
        w.write(1 if self.depends_on_core_coder else 0, 1)
        if self.depends_on_core_coder:
            w.write(self.core_coder_delay, 14)
        w.write(0, 1)
        return w.to_bytes()


@dataclass
class MPEG4Audio:
    """An MPEG-4 audio format."""

    payload_type: int = 96
    config: Optional[MPEG4AudioConfig] = None
    size_length: int = 13
    index_length: int = 3
    index_delta_length: int = 3


def avcc_unmarshal(data: bytes) -> List[bytes]:
    """Split an AVCC payload (4-byte length prefixes) into NAL units."""
    data = bytes(data)
    nalus = []
    pos = 0
    while pos < len(data):
        if len(data) - pos < 4:
            raise FormatError("invalid length")
        size = int.from_bytes(data[pos:pos + 4], "big")
        pos += 4
        if size == 0:
            raise FormatError("invalid NALU size (0)")
        if len(data) - pos < size:
            raise FormatError("invalid NALU size")
        nalus.append(data[pos:pos + size])
        pos += size
    return nalus


def avcc_marshal(nalus: Sequence[bytes]) -> bytes:
    """Join NAL units into an AVCC payload."""
    out = bytearray()
    for nalu in nalus:
        if len(nalu) > 0xFFFFFFFF:
            raise FormatError("NALU is too big")
        out += len(nalu).to_bytes(4, "big") + bytes(nalu)
    return bytes(out)


def parse_hvcc(data: bytes) -> List[Tuple[int, List[bytes]]]:
    """Parse an HEVC decoder configuration record.

    Returns its NALU arrays as (NALU type, NAL units) pairs.
    """
    data = bytes(data)
    if len(data) < _HVCC_HEADER_LEN + 1:
        raise FormatError("not enough bytes")

    count = data[_HVCC_HEADER_LEN]
    pos = _HVCC_HEADER_LEN + 1
    arrays = []
    for _ in range(count):
        if len(data) - pos < 3:
            raise FormatError("not enough bytes")
        nalu_type = data[pos] & 0x3F
        num_nalus = int.from_bytes(data[pos + 1:pos + 3], "big")
        pos += 3
        nalus = []
        for _ in range(num_nalus):
            if len(data) - pos < 2:
                raise FormatError("not enough bytes")
            size = int.from_bytes(data[pos:pos + 2], "big")
            pos += 2
            if len(data) - pos < size:
                raise FormatError("not enough bytes")
            nalus.append(data[pos:pos + size])
            pos += size
        arrays.append((nalu_type, nalus))
    return arrays


def find_h265_nalu(arrays: Sequence[Tuple[int, Sequence[bytes]]], nalu_type: int) -> Optional[bytes]:
    """Return the single NAL unit of the given type, or None."""
    for entry_type, nalus in arrays:
        if (
            entry_type == nalu_type
            and len(nalus) == 1
            and nalus[0]
            and (nalus[0][0] >> 1) & 0b111111 == nalu_type
        ):
            return bytes(nalus[0])
    return None


def parse_av1c(data: bytes) -> Dict[str, Any]:
    """Parse an AV1 codec configuration record into its fields."""
    data = bytes(data)
    if len(data) < 4:
        raise FormatError("not enough bytes")

    marker = data[0] >> 7
    version = data[0] & 0x7F
    if marker != 1 or version != 1:
        raise FormatError("invalid marker or version")

    return {
        "marker": marker,
        "version": version,
        "seq_profile": data[1] >> 5,
        "seq_level_idx_0": data[1] & 0x1F,
        "seq_tier_0": data[2] >> 7,
        "high_bitdepth": (data[2] >> 6) & 1,
        "twelve_bit": (data[2] >> 5) & 1,
        "monochrome": (data[2] >> 4) & 1,
        "chroma_subsampling_x": (data[2] >> 3) & 1,
        "chroma_subsampling_y": (data[2] >> 2) & 1,
        "chroma_sample_position": data[2] & 0x03,
        "initial_presentation_delay_present": (data[3] >> 4) & 1,
        "initial_presentation_delay_minus_one": data[3] & 0x0F,
        "config_obus": data[4:],
    }


def _leb128(data: bytes, pos: int) -> Tuple[int, int]:
    value = 0
    for i, byte in enumerate(data[pos:pos + 8]):
        value |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            return value, i + 1
    if len(data) - pos < 8:
        raise FormatError("not enough bytes")
    raise FormatError("LEB128 value is too long")


def av1_bitstream_unmarshal(data: bytes) -> List[bytes]:
    """Split a low-overhead AV1 bitstream into OBUs (headers included)."""
    data = bytes(data)
    if not data:
        raise FormatError("not enough bytes")

    obus = []
    pos = 0
    while pos < len(data):
        header = data[pos]
        if header & 0x80:
            raise FormatError("forbidden bit is set")
        header_len = 2 if header & 0x04 else 1
        if len(data) - pos < header_len:
            raise FormatError("not enough bytes")
        if not header & 0x02:
            raise FormatError("OBU size not present")
        size, size_len = _leb128(data, pos + header_len)
        end = pos + header_len + size_len + size
        if end > len(data):
            raise FormatError("not enough bytes")
        obus.append(data[pos:end])
        pos = end
    return obus