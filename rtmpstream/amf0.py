"""Encoding and decoding of AMF0 values."""

from __future__ import annotations

import struct
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, List

NUMBER = 0x00
BOOLEAN = 0x01
STRING = 0x02
OBJECT = 0x03
NULL = 0x05
UNDEFINED = 0x06
ECMA_ARRAY = 0x08
OBJECT_END = 0x09
STRICT_ARRAY = 0x0A
DATE = 0x0B
LONG_STRING = 0x0C
UNSUPPORTED = 0x0D
XML_DOCUMENT = 0x0F
TYPED_OBJECT = 0x10

_MAX_DEPTH = 64
_OBJECT_END_BYTES = b"\x00\x00\x09"


class AMF0Error(ValueError):
    """Raised when AMF0 data cannot be encoded or decoded."""


class ECMAArray(dict):
    """An associative array, encoded with the ECMA array marker instead of the object one."""


def _encode_key(key: Any) -> bytes:
    if not isinstance(key, str):
        raise AMF0Error(f"object keys must be strings, not {type(key).__name__}")
    raw = key.encode("utf-8", "surrogateescape")
    if len(raw) > 0xFFFF:
        raise AMF0Error("object key is too long")
    return len(raw).to_bytes(2, "big") + raw


def _encode_properties(value: Mapping, out: bytearray, depth: int) -> None:
    for key, item in value.items():
        out += _encode_key(key)
        _encode_value(item, out, depth + 1)
    out += _OBJECT_END_BYTES


def _encode_value(value: Any, out: bytearray, depth: int) -> None:
    if depth > _MAX_DEPTH:
        raise AMF0Error("values are nested too deeply")

    if value is None:
        out.append(NULL)
    elif isinstance(value, bool):
        out.append(BOOLEAN)
        out.append(1 if value else 0)
    elif isinstance(value, (int, float)):
        out.append(NUMBER)
        out += struct.pack(">d", float(value))
    elif isinstance(value, str):
        raw = value.encode("utf-8", "surrogateescape")
        if len(raw) <= 0xFFFF:
            out.append(STRING)
            out += len(raw).to_bytes(2, "big")
        else:
            out.append(LONG_STRING)
            out += len(raw).to_bytes(4, "big")
        out += raw
    elif isinstance(value, ECMAArray):
        out.append(ECMA_ARRAY)
        out += len(value).to_bytes(4, "big")
        _encode_properties(value, out, depth)
    elif isinstance(value, Mapping):
        out.append(OBJECT)
        _encode_properties(value, out, depth)
    elif isinstance(value, (list, tuple)):
        out.append(STRICT_ARRAY)
        out += len(value).to_bytes(4, "big")
        for item in value:
            _encode_value(item, out, depth + 1)
    elif isinstance(value, datetime):
        out.append(DATE)
        out += struct.pack(">dh", value.timestamp() * 1000.0, 0)
    else:
        raise AMF0Error(f"unsupported value type: {type(value).__name__}")


def encode_values(values: Any) -> bytes:
    """Encode a sequence of values one after another."""
    out = bytearray()
    for value in values:
        _encode_value(value, out, 0)
    return bytes(out)


class _Decoder:
    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def take(self, size: int) -> bytes:
        end = self.pos + size
        if end > len(self.data):
            raise AMF0Error("unexpected end of data")
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def u16(self) -> int:
        return int.from_bytes(self.take(2), "big")

    def u32(self) -> int:
        return int.from_bytes(self.take(4), "big")

    def text(self, size: int) -> str:
        return self.take(size).decode("utf-8", "surrogateescape")

    def properties(self, target: dict, depth: int, tolerate_missing_end: bool) -> dict:
        while True:
            if tolerate_missing_end and self.at_end():
                return target
            key_len = self.u16()
            if key_len == 0 and self.pos < len(self.data) and self.data[self.pos] == OBJECT_END:
                self.pos += 1
                return target
            key = self.text(key_len)
            target[key] = self.value(depth + 1)

    def value(self, depth: int) -> Any:
        if depth > _MAX_DEPTH:
            raise AMF0Error("values are nested too deeply")

        marker = self.take(1)[0]
        if marker == NUMBER:
            return struct.unpack(">d", self.take(8))[0]
        if marker == BOOLEAN:
            return self.take(1)[0] != 0
        if marker == STRING:
            return self.text(self.u16())
        if marker == OBJECT:
            return self.properties({}, depth, False)
        if marker in (NULL, UNDEFINED, UNSUPPORTED):
            return None
        if marker == ECMA_ARRAY:
            self.u32()
            return self.properties(ECMAArray(), depth, True)
        if marker == STRICT_ARRAY:
            count = self.u32()
            return [self.value(depth + 1) for _ in range(count)]
        if marker == DATE:
            millis, _tz = struct.unpack(">dh", self.take(10))
            try:
                return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
            except (OverflowError, OSError, ValueError) as exc:
                raise AMF0Error(f"invalid date: {millis}") from exc
        if marker in (LONG_STRING, XML_DOCUMENT):
            return self.text(self.u32())
        if marker == TYPED_OBJECT:
            self.text(self.u16())
            return self.properties({}, depth, False)
        raise AMF0Error(f"unsupported AMF0 marker 0x{marker:02x}")


def decode_values(data: bytes) -> List[Any]:
    """Decode every value contained in ``data``."""
    decoder = _Decoder(data)
    values = []
    while not decoder.at_end():
        values.append(decoder.value(0))
    return values