"""The RTMP handshake (C0/S0, C1/S1, C2/S2)."""

from __future__ import annotations

import hashlib
import hmac
import os
from dataclasses import dataclass
from typing import Any, Optional

from rtmpstream.bytecounter import read_exactly

RTMP_VERSION = 0x03
PACKET_SIZE = 1536
_DIGEST_LEN = 32

_KEY_TAIL = bytes([
    0xF0, 0xEE, 0xC2, 0x4A, 0x80, 0x68, 0xBE, 0xE8, 0x2E, 0x00, 0xD0, 0xD1,
    0x02, 0x9E, 0x7E, 0x57, 0x6E, 0xEC, 0x5D, 0x2D, 0x29, 0x80, 0x6F, 0xAB,
    0x93, 0xB8, 0xE6, 0x36, 0xCF, 0xEB, 0x31, 0xAE,
])
_CLIENT_FULL_KEY = b"Genuine Adobe Flash Player 001" + _KEY_TAIL
_SERVER_FULL_KEY = b"Genuine Adobe Flash Media Server 001" + _KEY_TAIL
_CLIENT_PARTIAL_KEY = _CLIENT_FULL_KEY[:30]
_SERVER_PARTIAL_KEY = _SERVER_FULL_KEY[:36]


class HandshakeError(Exception):
    """Raised when a handshake packet is invalid."""


def _write_all(stream: Any, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = stream.write(view)
        if written is None:
            break
        if written == 0:
            raise BrokenPipeError("stream accepted no bytes")
        view = view[written:]
    flush = getattr(stream, "flush", None)
    if flush is not None:
        flush()


def _calc_digest_pos(p: bytes, base: int) -> int:
    return sum(p[base:base + 4]) % 728 + base + 4


def _make_digest(key: bytes, src: bytes, gap: int) -> bytes:
    h = hmac.new(key, digestmod=hashlib.sha256)
    if gap <= 0:
        h.update(src)
    else:
        h.update(src[:gap])
        h.update(src[gap + _DIGEST_LEN:])
    return h.digest()


def _find_digest(p: bytes, key: bytes, base: int) -> Optional[int]:
    gap = _calc_digest_pos(p, base)
    if not hmac.compare_digest(bytes(p[gap:gap + _DIGEST_LEN]), _make_digest(key, p, gap)):
        return None
    return gap


def _parse1(p: bytes, peer_key: bytes, key: bytes) -> Optional[bytes]:
    pos = _find_digest(p, peer_key, 772)
    if pos is None:
        pos = _find_digest(p, peer_key, 8)
        if pos is None:
            return None
    return _make_digest(key, p[pos:pos + _DIGEST_LEN], -1)


class C0S0:
    """A C0 or S0 packet: the protocol version byte."""

    @staticmethod
    def read(stream: Any) -> int:
        """Read and check the version byte; return it."""
        version = read_exactly(stream, 1)[0]
        if version != RTMP_VERSION:
            raise HandshakeError(f"invalid rtmp version ({version})")
        return version

    @staticmethod
    def write(stream: Any) -> None:
        """Write the version byte."""
        _write_all(stream, bytes([RTMP_VERSION]))


@dataclass
class C1S1:
    """A C1 or S1 packet."""

    time: int = 0
    random: Optional[bytes] = None
    digest: Optional[bytes] = None

    @classmethod
    def read(cls, stream: Any, is_c1: bool, validate_signature: bool) -> "C1S1":
        """Read a packet, computing the digest needed to sign the reply."""
        buf = read_exactly(stream, PACKET_SIZE)

        if is_c1:
            peer_key, key = _CLIENT_PARTIAL_KEY, _SERVER_FULL_KEY
        else:
            peer_key, key = _SERVER_PARTIAL_KEY, _CLIENT_FULL_KEY

        digest = _parse1(buf, peer_key, key)
        if digest is None and validate_signature:
            raise HandshakeError("unable to validate C1/S1 signature")

        return cls(
            time=int.from_bytes(buf[0:4], "big"),
            random=buf[8:],
            digest=digest,
        )

    def write(self, stream: Any, is_c1: bool) -> None:
        """Sign and write the packet, storing the digest the peer will use."""
        buf = bytearray(PACKET_SIZE)
        buf[0:4] = (self.time & 0xFFFFFFFF).to_bytes(4, "big")

        generated = self.random is None
        random = os.urandom(PACKET_SIZE - 8) if generated else bytes(self.random)[:PACKET_SIZE - 8]
        buf[8:8 + len(random)] = random

        if is_c1:
            peer_key, key = _SERVER_FULL_KEY, _CLIENT_PARTIAL_KEY
        else:
            peer_key, key = _CLIENT_FULL_KEY, _SERVER_PARTIAL_KEY

        gap = _calc_digest_pos(buf, 8)
        buf[gap:gap + _DIGEST_LEN] = _make_digest(key, buf, gap)
        self.digest = _make_digest(peer_key, bytes(buf[gap:gap + _DIGEST_LEN]), -1)

        if generated:
            self.random = bytes(buf[8:])

        _write_all(stream, bytes(buf))


@dataclass
class C2S2:
    """A C2 or S2 packet."""

    time: int = 0
    time2: int = 0
    random: bytes = b""
    digest: Optional[bytes] = None

    @classmethod
    def read(cls, stream: Any, digest: Optional[bytes], validate_signature: bool) -> "C2S2":
        """Read a packet, checking its signature against ``digest`` if asked."""
        buf = read_exactly(stream, PACKET_SIZE)

        if validate_signature:
            gap = PACKET_SIZE - _DIGEST_LEN
            expected = _make_digest(digest or b"", buf, gap)
            if not hmac.compare_digest(buf[gap:], expected):
                raise HandshakeError("unable to validate C2/S2 signature")

        return cls(
            time=int.from_bytes(buf[0:4], "big"),
            time2=int.from_bytes(buf[4:8], "big"),
            random=buf[8:],
            digest=digest,
        )

    def write(self, stream: Any) -> None:
        """Write the packet, signing it when a digest is set."""
        buf = bytearray(PACKET_SIZE)
        buf[0:4] = (self.time & 0xFFFFFFFF).to_bytes(4, "big")
        buf[4:8] = (self.time2 & 0xFFFFFFFF).to_bytes(4, "big")
        random = bytes(self.random or b"")[:PACKET_SIZE - 8]
        buf[8:8 + len(random)] = random

        if self.digest is not None:
            gap = PACKET_SIZE - _DIGEST_LEN
            buf[gap:] = _make_digest(self.digest, buf, gap)

        _write_all(stream, bytes(buf))


def do_client(stream: Any, validate_signature: bool) -> C1S1:
    """Perform a client-side handshake; return the server's S1."""
    C0S0.write(stream)

    c1 = C1S1()
    c1.write(stream, True)

    C0S0.read(stream)
    s1 = C1S1.read(stream, False, validate_signature)
    C2S2.read(stream, c1.digest, validate_signature)

    C2S2(time=s1.time, random=s1.random or b"", digest=s1.digest).write(stream)
    return s1


def do_server(stream: Any, validate_signature: bool) -> C1S1:
    """Perform a server-side handshake; return the client's C1."""
    C0S0.read(stream)
    c1 = C1S1.read(stream, True, validate_signature)

    C0S0.write(stream)
    s1 = C1S1()
    s1.write(stream, False)

    C2S2(time=c1.time, random=c1.random or b"", digest=c1.digest).write(stream)
    C2S2.read(stream, s1.digest, validate_signature)
    return c1