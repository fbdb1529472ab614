"""Torrent files: metainfo, info hashes and announce lists."""

from __future__ import annotations

import hashlib
import os
import random
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from riptorrent.bencode import BencodeError, decode, encode

_HASH_LEN = 20
_U32_MAX = 2**32 - 1


class TorrentError(Exception):
    """Raised when a torrent file cannot be read or understood."""


@dataclass(frozen=True)
class InfoHash:
    """The 20-byte SHA-1 hash identifying a torrent."""

    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, (bytes, bytearray)) or len(self.value) != _HASH_LEN:
            raise ValueError("an info hash is exactly 20 bytes")
        object.__setattr__(self, "value", bytes(self.value))

    def __bytes__(self) -> bytes:
        return self.value

    def __str__(self) -> str:
        return self.value.hex()

    def as_hex(self) -> str:
        return self.value.hex()


def split_hashes(data: bytes) -> list[bytes]:
    """Split concatenated SHA-1 piece hashes into a list of 20-byte hashes."""
    if len(data) % _HASH_LEN:
        raise TorrentError(
            f"piece hashes must be a multiple of 20 bytes long, got {len(data)}"
        )
    return [bytes(data[start : start + _HASH_LEN]) for start in range(0, len(data), _HASH_LEN)]


def _text(value: Any, what: str) -> str:
    if not isinstance(value, bytes):
        raise TorrentError(f"`{what}` must be a string")
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as error:
        raise TorrentError(f"`{what}` is not valid UTF-8") from error


def _u32(value: Any, what: str) -> int:
    if not isinstance(value, int) or not 0 <= value <= _U32_MAX:
        raise TorrentError(f"`{what}` must be an unsigned 32-bit integer")
    return value


def _url(value: Any, what: str) -> str:
    text = _text(value, what)
    if not urlsplit(text).scheme:
        raise TorrentError(f"`{what}` is not a valid url: {text!r}")
    return text


@dataclass
class FileEntry:
    """One file of a multi-file torrent."""

    length: int
    path: list[str]


@dataclass
class Metainfo:
    """The `info` dictionary of a torrent."""

    name: str
    piece_length: int
    pieces: list[bytes]
    length: int | None = None
    files: list[FileEntry] | None = None
    md5sum: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Metainfo:
        if not isinstance(data, dict):
            raise TorrentError("the info section must be a dictionary")
        for key in ("name", "piece length", "pieces"):
            if key not in data:
                raise TorrentError(f"missing field `{key}` in info section")
        if not isinstance(data["pieces"], bytes):
            raise TorrentError("`pieces` must be a byte string")
        length = data.get("length")
        files = data.get("files")
        md5sum = data.get("md5sum")
        return cls(
            name=_text(data["name"], "name"),
            piece_length=_u32(data["piece length"], "piece length"),
            pieces=split_hashes(data["pieces"]),
            length=None if length is None else _u32(length, "length"),
            files=None if files is None else _parse_files(files),
            md5sum=None if md5sum is None else _text(md5sum, "md5sum"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "piece length": self.piece_length,
            "pieces": b"".join(self.pieces),
        }
        if self.length is not None:
            result["length"] = self.length
        if self.files is not None:
            result["files"] = [{"length": f.length, "path": list(f.path)} for f in self.files]
        if self.md5sum is not None:
            result["md5sum"] = self.md5sum
        return result

    def info_hash(self) -> InfoHash:
        return InfoHash(hashlib.sha1(encode(self.to_dict())).digest())

    def get_length(self) -> int:
        """Total size in bytes of everything the torrent describes."""
        if self.length is not None:
            return self.length
        if self.files is not None:
            return sum(entry.length for entry in self.files)
        raise TorrentError("the info section has neither `length` nor `files`")


def _parse_files(value: Any) -> list[FileEntry]:
    if not isinstance(value, list):
        raise TorrentError("`files` must be a list")
    entries = []
    for item in value:
        if not isinstance(item, dict) or "length" not in item or "path" not in item:
            raise TorrentError("each file needs `length` and `path`")
        path = item["path"]
        if not isinstance(path, list):
            raise TorrentError("a file `path` must be a list")
        entries.append(
            FileEntry(
                length=_u32(item["length"], "length"),
                path=[_text(part, "path") for part in path],
            )
        )
    return entries


def _udp_to_http(url: str) -> str:
    # Some trackers only announce a udp address while also serving http.
    parts = urlsplit(url)
    if parts.scheme == "udp":
        return urlunsplit(parts._replace(scheme="http", path="/announce"))
    return url


@dataclass
class AnnounceList:
    """Tiers of tracker urls, tried tier by tier."""

    tiers: list[list[str]] = field(default_factory=list)

    @classmethod
    def from_single_announce(cls, announce: str) -> AnnounceList:
        return cls._initiate([[announce]])

    @classmethod
    def from_single_tier_list(cls, announces) -> AnnounceList:
        return cls._initiate([[announce] for announce in announces])

    @classmethod
    def _initiate(cls, tiers: list[list[str]]) -> AnnounceList:
        result = cls([[_udp_to_http(url) for url in tier] for tier in tiers])
        result._shuffle()
        return result

    def _shuffle(self) -> None:
        # URLs within a tier are processed in random order; tier order is kept.
        for tier in self.tiers:
            random.shuffle(tier)


@dataclass
class Torrent:
    """A parsed torrent file."""

    announce: str
    info: Metainfo
    announce_list: AnnounceList | None = None

    @classmethod
    def from_bytes(cls, data: bytes) -> Torrent:
        try:
            document = decode(data)
        except BencodeError as error:
            raise TorrentError(f"Failed to deserialize the torrent bencode: `{error}`") from error
        if not isinstance(document, dict):
            raise TorrentError("a torrent file must hold a dictionary")
        for key in ("announce", "info"):
            if key not in document:
                raise TorrentError(f"missing field `{key}`")
        raw_list = document.get("announce-list")
        return cls(
            announce=_url(document["announce"], "announce"),
            info=Metainfo.from_dict(document["info"]),
            announce_list=None if raw_list is None else _parse_announce_list(raw_list),
        )

    @classmethod
    def read_from_file(cls, path: str | os.PathLike) -> Torrent:
        try:
            with open(path, "rb") as handle:
                data = handle.read()
        except OSError as error:
            raise TorrentError(
                f"Failed with error `{error}` to read file with path `{path}`"
            ) from error
        return cls.from_bytes(data)


def _parse_announce_list(value: Any) -> AnnounceList:
    if not isinstance(value, list) or not all(isinstance(tier, list) for tier in value):
        raise TorrentError("`announce-list` must be a list of lists")
    return AnnounceList([[_url(url, "announce-list") for url in tier] for tier in value])