"""Parsing of magnet links."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlsplit

from riptorrent.torrent import InfoHash

INFO_HASH_PREFIX = "urn:btih"

_HEX = re.compile(r"(?:[0-9a-fA-F]{2})*")
_SPECIAL_SCHEMES = {"http", "https", "ws", "wss", "ftp", "file"}


class MagnetLinkError(ValueError):
    """Raised when a magnet link cannot be used."""


def parse_info_hash(text: str) -> InfoHash:
    """Parse an ``xt`` value of the form ``urn:btih:<40 hex digits>``."""
    prefix = text[: len(INFO_HASH_PREFIX)]
    if prefix != INFO_HASH_PREFIX:
        raise MagnetLinkError(
            f"invalid prefix, got: {prefix}, expected: {INFO_HASH_PREFIX}"
        )
    hex_hash = text[len(INFO_HASH_PREFIX) + 1 :]
    if not _HEX.fullmatch(hex_hash):
        raise MagnetLinkError(f"`{hex_hash}` is not a valid hex string.")
    raw = bytes.fromhex(hex_hash)
    if len(raw) != 20:
        raise MagnetLinkError(
            f"Couldn't convert the hex into a valid 20 byte array: got {len(raw)} bytes"
        )
    return InfoHash(raw)


def _is_url(text: str) -> bool:
    parts = urlsplit(text)
    if not parts.scheme:
        return False
    return parts.scheme not in _SPECIAL_SCHEMES or bool(parts.netloc)


def _parse_socket_addr(text: str) -> tuple[str, int] | None:
    if text.startswith("["):
        host, separator, port = text[1:].partition("]:")
        if not separator:
            return None
        parse = ipaddress.IPv6Address
    else:
        host, separator, port = text.rpartition(":")
        if not separator:
            return None
        parse = ipaddress.IPv4Address
    if not port.isascii() or not port.isdigit() or int(port) > 0xFFFF:
        return None
    try:
        address = parse(host)
    except ValueError:
        return None
    return str(address), int(port)


@dataclass
class MagnetLink:
    """The parts of a magnet link needed to start a download."""

    info_hash: InfoHash
    file_name: str | None = None
    trackers: list[str] = field(default_factory=list)
    peer_addrs: list[tuple[str, int]] = field(default_factory=list)

    @classmethod
    def from_url(cls, url: str) -> MagnetLink:
        parts = urlsplit(url)
        if not parts.scheme:
            raise MagnetLinkError(
                f"Failed to parse the provided string to a valid url: `{url}`"
            )
        if parts.scheme != "magnet":
            raise MagnetLinkError("The provided link is no magnet link.")

        trackers: list[str] = []
        peer_addrs: list[tuple[str, int]] = []
        file_name = None
        info_hash = None
        for key, value in parse_qsl(parts.query, keep_blank_values=True):
            if key == "xt":
                info_hash = parse_info_hash(value)
            elif key == "tr":
                if _is_url(value):
                    trackers.append(value)
            elif key == "x.pe":
                addr = _parse_socket_addr(value)
                if addr is not None:
                    peer_addrs.append(addr)
            elif key == "dn":
                if value:
                    file_name = value

        if not trackers:
            raise MagnetLinkError(
                "downloading from a magnetlink without a provided tracker url isn't supported"
            )
        if info_hash is None:
            raise MagnetLinkError("Failed to deserialize the info-hash: No info hash provided.")
        return cls(
            info_hash=info_hash,
            file_name=file_name,
            trackers=trackers,
            peer_addrs=peer_addrs,
        )

    def get_announce_urls(self) -> list[str]:
        return list(self.trackers)