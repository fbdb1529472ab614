"""Extension protocol types: actions, messages, handlers and the extended handshake."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Union

from riptorrent.bencode import BencodeError, decode, encode
from riptorrent.messages import PeerMessage

_U8_MAX = 0xFF
_U16_MAX = 0xFFFF
_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1


class ExtensionType(IntEnum):
    """Supported extensions; the value is the extended message id we announce."""

    HANDSHAKE = 0
    METADATA = 1

    def __str__(self) -> str:
        return _WIRE_NAMES[self]


_WIRE_NAMES = {
    ExtensionType.HANDSHAKE: "Handshake",
    ExtensionType.METADATA: "ut_metadata",
}

# Extended message id of an entry is its position here plus one; the
# handshake (id 0) is always active.
ACTIVE_EXTENSIONS: tuple[ExtensionType, ...] = (ExtensionType.METADATA,)


@dataclass(frozen=True)
class ReceivedMetadataPiece:
    """A block of torrent metadata arrived from a peer."""

    piece_index: int
    data: bytes


@dataclass(frozen=True)
class GotMetadataLength:
    """A peer told us the total size of the torrent metadata."""

    length: int


@dataclass(frozen=True)
class NeedBlockQueue:
    """The peer asks the peer manager for new blocks to request."""


@dataclass(frozen=True)
class SendPeer:
    """Send a message back to the remote peer."""

    message: PeerMessage


@dataclass(frozen=True)
class SendPeerManager:
    """Pass a message on to the peer manager."""

    message: Union[ReceivedMetadataPiece, GotMetadataLength, NeedBlockQueue]


@dataclass(frozen=True)
class Multiple:
    """Several actions, carried out in order."""

    actions: tuple = ()


@dataclass(frozen=True)
class Nothing:
    """No action is needed."""


ExtensionAction = Union[SendPeer, SendPeerManager, Multiple, Nothing]


class ExtensionHandler(ABC):
    """Handles the messages of one extension on one peer connection."""

    ext_type: ExtensionType

    @abstractmethod
    def handle_message(self, data: bytes) -> ExtensionAction:
        """React to the raw payload of an extension message from the peer."""

    @abstractmethod
    def on_handshake(self, additional_info: AdditionalHandshakeInfo) -> ExtensionAction:
        """React to the peer's extended handshake."""


def _optional_int(document: dict, key: str, upper: int) -> int | None:
    value = document.get(key)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= upper:
        raise BencodeError(f"`{key}` must be an integer between 0 and {upper}")
    return value


def _optional_text(document: dict, key: str) -> str | None:
    value = document.get(key)
    if value is None:
        return None
    if not isinstance(value, bytes):
        raise BencodeError(f"`{key}` must be a string")
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as error:
        raise BencodeError(f"`{key}` is not valid UTF-8") from error


def _optional_ip(document: dict, key: str) -> bytes | None:
    value = document.get(key)
    if value is None:
        return None
    if not isinstance(value, bytes) or len(value) not in (4, 16):
        raise BencodeError(f"`{key}` must be a compact IPv4 or IPv6 address")
    return value


@dataclass
class AdditionalHandshakeInfo:
    """The optional fields of an extended handshake."""

    metadata_size: int | None = None
    p: int | None = None
    v: str | None = None
    yourip: bytes | None = None
    reqq: int | None = None

    @classmethod
    def _from_document(cls, document: dict[str, Any]) -> AdditionalHandshakeInfo:
        return cls(
            metadata_size=_optional_int(document, "metadata_size", _U64_MAX),
            p=_optional_int(document, "p", _U16_MAX),
            v=_optional_text(document, "v"),
            yourip=_optional_ip(document, "yourip"),
            reqq=_optional_int(document, "reqq", _U32_MAX),
        )

    def _to_document(self) -> dict[str, Any]:
        return {
            "metadata_size": self.metadata_size,
            "p": self.p,
            "v": self.v,
            "yourip": self.yourip,
            "reqq": self.reqq,
        }


@dataclass
class HandshakeExtension:
    """The payload of an extended handshake: extension ids and extra info."""

    m: dict[str, int] = field(default_factory=dict)
    other: AdditionalHandshakeInfo = field(default_factory=AdditionalHandshakeInfo)

    @classmethod
    def new(cls) -> HandshakeExtension:
        """The handshake announcing every active extension."""
        return cls(m={str(ext): int(ext) for ext in ACTIVE_EXTENSIONS})

    def to_bytes(self) -> bytes:
        return encode({"m": dict(self.m), **self.other._to_document()})

    @classmethod
    def from_bytes(cls, data: bytes) -> HandshakeExtension:
        document = decode(data)
        if not isinstance(document, dict):
            raise BencodeError("an extended handshake must be a dictionary")
        raw_m = document.get("m")
        if not isinstance(raw_m, dict):
            raise BencodeError("missing field `m`")
        m = {}
        for name, msg_id in raw_m.items():
            if not isinstance(msg_id, int) or isinstance(msg_id, bool) or not 0 <= msg_id <= _U8_MAX:
                raise BencodeError(f"extension id of `{name}` must fit in a byte")
            m[name] = msg_id
        return cls(m=m, other=AdditionalHandshakeInfo._from_document(document))