"""Bencoding as used by torrent files, tracker responses and peer extensions."""

from __future__ import annotations

import re
from typing import Any

_INTEGER = re.compile(rb"-?(0|[1-9][0-9]*)")
_LENGTH = re.compile(rb"0|[1-9][0-9]*")


class BencodeError(ValueError):
    """Raised when a value cannot be bencoded or bytes cannot be decoded."""


def encode(value: Any) -> bytes:
    """Bencode ints, bytes, strings, lists and dicts.

    Dictionary keys are written in sorted order and entries whose value is
    ``None`` are left out, so optional fields can be passed through as-is.
    """
    out = bytearray()
    _encode_into(value, out)
    return bytes(out)


def _key_bytes(key: Any) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    raise BencodeError(f"dictionary keys must be strings, got {type(key).__name__}")


def _encode_into(value: Any, out: bytearray) -> None:
    if isinstance(value, int):
        out += b"i%de" % int(value)
    elif isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        out += b"%d:" % len(raw)
        out += raw
    elif isinstance(value, str):
        raw = value.encode("utf-8")
        out += b"%d:" % len(raw)
        out += raw
    elif isinstance(value, (list, tuple)):
        out += b"l"
        for item in value:
            _encode_into(item, out)
        out += b"e"
    elif isinstance(value, dict):
        entries = sorted(
            ((_key_bytes(key), item) for key, item in value.items() if item is not None),
            key=lambda entry: entry[0],
        )
        keys = [key for key, _ in entries]
        if len(set(keys)) != len(keys):
            raise BencodeError("dictionary has duplicate keys")
        out += b"d"
        for key, item in entries:
            out += b"%d:" % len(key)
            out += key
            _encode_into(item, out)
        out += b"e"
    else:
        raise BencodeError(f"cannot bencode a value of type {type(value).__name__}")


def decode(data: bytes) -> Any:
    """Decode a complete bencoded value; trailing bytes are an error."""
    value, end = decode_prefix(data)
    if end != len(data):
        raise BencodeError(f"trailing data after offset {end}")
    return value


def decode_prefix(data: bytes) -> tuple[Any, int]:
    """Decode the value at the start of ``data``.

    Returns the value and the number of bytes it took. Strings come back as
    ``bytes``; dictionary keys are decoded as UTF-8 text.
    """
    raw = bytes(data)
    try:
        return _decode_at(raw, 0)
    except RecursionError as error:
        raise BencodeError("data is nested too deeply") from error


def _decode_at(data: bytes, pos: int) -> tuple[Any, int]:
    if pos >= len(data):
        raise BencodeError("unexpected end of data")
    lead = data[pos : pos + 1]
    if lead == b"i":
        end = data.find(b"e", pos + 1)
        if end < 0:
            raise BencodeError(f"unterminated integer at offset {pos}")
        return _parse_int(data[pos + 1 : end]), end + 1
    if lead == b"l":
        items = []
        pos += 1
        while True:
            if pos >= len(data):
                raise BencodeError("unterminated list")
            if data[pos : pos + 1] == b"e":
                return items, pos + 1
            item, pos = _decode_at(data, pos)
            items.append(item)
    if lead == b"d":
        result: dict[str, Any] = {}
        pos += 1
        while True:
            if pos >= len(data):
                raise BencodeError("unterminated dictionary")
            if data[pos : pos + 1] == b"e":
                return result, pos + 1
            raw_key, pos = _decode_string(data, pos)
            try:
                key = raw_key.decode("utf-8")
            except UnicodeDecodeError as error:
                raise BencodeError("dictionary key is not valid UTF-8") from error
            result[key], pos = _decode_at(data, pos)
    if lead.isdigit():
        return _decode_string(data, pos)
    raise BencodeError(f"invalid token {lead!r} at offset {pos}")


def _decode_string(data: bytes, pos: int) -> tuple[bytes, int]:
    colon = data.find(b":", pos)
    if colon < 0:
        raise BencodeError(f"missing string length separator at offset {pos}")
    length_text = data[pos:colon]
    if not _LENGTH.fullmatch(length_text):
        raise BencodeError(f"invalid string length {length_text!r} at offset {pos}")
    start = colon + 1
    end = start + int(length_text)
    if end > len(data):
        raise BencodeError(f"string at offset {pos} runs past the end of the data")
    return data[start:end], end


def _parse_int(text: bytes) -> int:
    if not _INTEGER.fullmatch(text) or text == b"-0":
        raise BencodeError(f"invalid integer {text!r}")
    return int(text)