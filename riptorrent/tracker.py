"""Tracker announce requests and decoding of tracker responses."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Any, Iterable
from urllib.parse import urlsplit, urlunsplit

import httpx

from riptorrent.bencode import BencodeError, decode
from riptorrent.torrent import InfoHash

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:142.0) Gecko/20100101 Firefox/142.0"
)


class TrackerResponseError(ValueError):
    """Raised when a tracker response cannot be decoded."""


def escape_bytes_url(data: bytes) -> str:
    """Percent-encode every byte that is not an ASCII letter or digit."""
    return "".join(
        chr(byte) if chr(byte).isascii() and chr(byte).isalnum() else f"%{byte:02x}"
        for byte in data
    )


@dataclass
class TrackerRequest:
    """The query sent to a tracker when announcing."""

    info_hash: InfoHash
    peer_id: bytes
    port: int
    left: int
    uploaded: int = 0
    downloaded: int = 0
    compact: int = 1

    def to_url_encoded(self) -> str:
        return (
            f"info_hash={escape_bytes_url(bytes(self.info_hash))}"
            f"&peer_id={escape_bytes_url(self.peer_id)}"
            f"&port={self.port}"
            f"&uploaded={self.uploaded}"
            f"&downloaded={self.downloaded}"
            f"&left={self.left}"
            f"&compact={self.compact}"
        )

    async def get_first_response_in_list(
        self, announce_urls: Iterable[str]
    ) -> tuple[int, TrackerResponse] | None:
        """Ask the trackers one after another; return the first usable answer and its index."""
        query = self.to_url_encoded()
        async with httpx.AsyncClient(headers={"User-Agent": USER_AGENT}) as client:
            for index, url in enumerate(announce_urls):
                target = urlunsplit(urlsplit(str(url))._replace(query=query))
                try:
                    response = await client.get(target)
                    return index, TrackerResponse.from_bytes(response.content)
                except (httpx.HTTPError, httpx.InvalidURL, TrackerResponseError):
                    continue
        return None


def parse_compact_peers(data: bytes) -> list[tuple[str, int]]:
    """Decode compact IPv4 peers: 4 address bytes and 2 port bytes each."""
    if len(data) % 6:
        raise TrackerResponseError(
            f"Bytes which length is a multiple of 6. Got {len(data)}"
        )
    return [
        (str(ipaddress.IPv4Address(data[start : start + 4])),
         int.from_bytes(data[start + 4 : start + 6], "big"))
        for start in range(0, len(data), 6)
    ]


def parse_compact_peers6(data: bytes) -> list[tuple[str, int]]:
    """Decode compact IPv6 peers: 16 address bytes and 2 port bytes each."""
    if len(data) % 18:
        raise TrackerResponseError(
            f"Bytes which length is a multiple of 18. Got {len(data)}"
        )
    return [
        (str(ipaddress.IPv6Address(data[start : start + 16])),
         int.from_bytes(data[start + 16 : start + 18], "big"))
        for start in range(0, len(data), 18)
    ]


def _parse_non_compact_peers(entries: list[Any]) -> list[tuple[str, int]]:
    peers = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise TrackerResponseError("a peer entry must be a dictionary")
        peer_id, ip, port = entry.get("peer id"), entry.get("ip"), entry.get("port")
        if not isinstance(peer_id, bytes) or not isinstance(ip, bytes):
            raise TrackerResponseError("a peer entry needs `peer id` and `ip` strings")
        if not isinstance(port, int) or not 0 <= port <= 0xFFFF:
            raise TrackerResponseError("a peer entry needs a valid `port`")
        try:
            address = ipaddress.ip_address(ip.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            continue
        peers.append((str(address), port))
    return peers


@dataclass
class TrackerResponse:
    """What a tracker answers: the re-announce interval and the peers."""

    interval: int
    peers: list[tuple[str, int]]
    peers6: list[tuple[str, int]] | None = None

    @classmethod
    def from_bytes(cls, data: bytes) -> TrackerResponse:
        try:
            document = decode(data)
        except BencodeError as error:
            raise TrackerResponseError(f"invalid tracker response: {error}") from error
        if not isinstance(document, dict):
            raise TrackerResponseError("a tracker response must be a dictionary")

        interval = document.get("interval")
        if not isinstance(interval, int) or interval < 0:
            raise TrackerResponseError("missing or invalid `interval`")

        raw_peers = document.get("peers")
        if isinstance(raw_peers, bytes):
            peers = parse_compact_peers(raw_peers)
        elif isinstance(raw_peers, list):
            peers = _parse_non_compact_peers(raw_peers)
        else:
            raise TrackerResponseError("missing or invalid `peers`")

        raw_peers6 = document.get("peers6")
        if raw_peers6 is None:
            peers6 = None
        elif isinstance(raw_peers6, bytes):
            peers6 = parse_compact_peers6(raw_peers6)
        else:
            raise TrackerResponseError("`peers6` must be a byte string")

        return cls(interval=interval, peers=peers, peers6=peers6)

    def get_peers(self) -> list[tuple[str, int]]:
        """All IPv4 and IPv6 peer addresses, IPv4 first."""
        return [*self.peers, *(self.peers6 or [])]