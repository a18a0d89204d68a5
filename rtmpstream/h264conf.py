"""RTMP H264 decoder configuration (AVCDecoderConfigurationRecord)."""

from __future__ import annotations

from dataclasses import dataclass


class H264ConfError(ValueError):
    """Raised when an H264 configuration cannot be decoded or encoded."""


@dataclass
class H264Conf:
    """A configuration holding a single SPS and a single PPS."""

    sps: bytes = b""
    pps: bytes = b""

    @classmethod
    def unmarshal(cls, data: bytes) -> "H264Conf":
        """Decode a configuration."""
        if len(data) < 8:
            raise H264ConfError("invalid size 1")

        pos = 5
        sps_count = data[pos] & 0x1F
        pos += 1
        if sps_count != 1:
            raise H264ConfError("sps count != 1 is unsupported")

        sps_len = int.from_bytes(data[pos:pos + 2], "big")
        pos += 2
        if len(data) - pos < sps_len:
            raise H264ConfError("invalid size 2")
        sps = bytes(data[pos:pos + sps_len])
        pos += sps_len

        if len(data) - pos < 3:
            raise H264ConfError("invalid size 3")

        pps_count = data[pos]
        pos += 1
        if pps_count != 1:
            raise H264ConfError("pps count != 1 is unsupported")

        pps_len = int.from_bytes(data[pos:pos + 2], "big")
        pos += 2
        if len(data) - pos < pps_len:
            raise H264ConfError("invalid size")
        pps = bytes(data[pos:pos + pps_len])

        return cls(sps=sps, pps=pps)

    def marshal(self) -> bytes:
        """Encode the configuration."""
        if len(self.sps) < 4:
            raise H264ConfError("SPS is too short")
        if len(self.sps) > 0xFFFF or len(self.pps) > 0xFFFF:
            raise H264ConfError("parameter set is too long")

        return b"".join(
            (
                bytes([1, self.sps[1], self.sps[2], self.sps[3], 3 | 0xFC, 1 | 0xE0]),
                len(self.sps).to_bytes(2, "big"),
                bytes(self.sps),
                b"\x01",
                len(self.pps).to_bytes(2, "big"),
                bytes(self.pps),
            )
        )