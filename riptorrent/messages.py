"""Peer wire messages, their payloads and the length-prefixed framing."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Union

MAX_FRAME_LENGTH = 8 * 1024 * 1024

_U32 = struct.Struct(">I")
_TWO_U32 = struct.Struct(">II")
_THREE_U32 = struct.Struct(">III")


class FrameTooLargeError(ValueError):
    """Raised when a frame exceeds the largest length either side accepts."""

    def __init__(self, length: int) -> None:
        super().__init__(f"Frame of length {length} is too large")
        self.length = length


class MessageType(IntEnum):
    """The message id byte that follows the length prefix."""

    CHOKE = 0
    UNCHOKE = 1
    INTERESTED = 2
    NOT_INTERESTED = 3
    HAVE = 4
    BITFIELD = 5
    REQUEST = 6
    PIECE = 7
    CANCEL = 8
    EXTENDED = 20


class ClientIdentifier(Enum):
    """Two-character client codes found in Azureus-style peer ids."""

    AG = "AG"  # Ares
    A_TILDE = "A~"  # Ares
    AR = "AR"  # Arctic
    AV = "AV"  # Avicora
    AX = "AX"  # BitPump
    AZ = "AZ"  # Azureus
    BB = "BB"  # BitBuddy
    BC = "BC"  # BitComet
    BF = "BF"  # Bitflu
    BG = "BG"  # BTG
    BR = "BR"  # BitRocket
    BS = "BS"  # BTSlave
    BX = "BX"  # Bittorrent X
    CD = "CD"  # Enhanced CTorrent
    CT = "CT"  # CTorrent
    DE = "DE"  # DelugeTorrent
    DP = "DP"  # Propagate Data Client
    EB = "EB"  # EBit
    ES = "ES"  # electric sheep
    FT = "FT"  # FoxTorrent
    FW = "FW"  # FrostWire
    FX = "FX"  # Freebox BitTorrent
    GS = "GS"  # GSTorrent
    HL = "HL"  # Halite
    HN = "HN"  # Hydranode
    KG = "KG"  # KGet
    KT = "KT"  # KTorrent
    LH = "LH"  # LABC
    LP = "LP"  # Lphant
    LT = "LT"  # libtorrent
    LT_LOWER = "lt"  # libTorrent
    LW = "LW"  # LimeWire
    MO = "MO"  # MonoTorrent
    MP = "MP"  # MooPolice
    MR = "MR"  # Miro
    MT = "MT"  # MoonlightTorrent
    NX = "NX"  # Net Transport
    PD = "PD"  # Pando
    QB = "qB"  # qBittorrent
    QD = "QD"  # QQDownload
    QT = "QT"  # Qt 4 Torrent example
    RT = "RT"  # Retriever
    S_TILDE = "S~"  # Shareaza alpha/beta
    SB = "SB"  # Swiftbit
    SS = "SS"  # SwarmScope
    ST = "ST"  # SymTorrent
    ST_LOWER = "st"  # sharktorrent
    SZ = "SZ"  # Shareaza
    TN = "TN"  # TorrentDotNET
    TR = "TR"  # Transmission
    TS = "TS"  # Torrentstorm
    TT = "TT"  # TuoTu
    UL = "UL"  # uLeecher!
    UT = "UT"  # µTorrent
    UW = "UW"  # µTorrent Web
    VG = "VG"  # Vagaa
    WD = "WD"  # WebTorrent Desktop
    WT = "WT"  # BitLet
    WW = "WW"  # WebTorrent
    WY = "WY"  # FireTorrent
    XL = "XL"  # Xunlei
    XT = "XT"  # XanTorrent
    XX = "XX"  # Xtorrent
    ZT = "ZT"  # ZipTorrent


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"the {what} payload needs at least {size} bytes, got {len(data)}")


@dataclass(frozen=True)
class NoPayload:
    """The empty payload of choke, unchoke, interest and keep-alive messages."""

    @classmethod
    def from_bytes(cls, data: bytes) -> NoPayload:
        return cls()

    def to_bytes(self) -> bytes:
        return b""


@dataclass(frozen=True)
class HavePayload:
    """The index of a piece the sender has just completed and verified."""

    piece_index: int

    @classmethod
    def from_bytes(cls, data: bytes) -> HavePayload:
        _require(data, 4, "have")
        return cls(_U32.unpack_from(data)[0])

    def to_bytes(self) -> bytes:
        return _U32.pack(self.piece_index)


@dataclass
class BitfieldPayload:
    """Which pieces the sender has, most significant bit first."""

    pieces: list[bool] = field(default_factory=list)

    @classmethod
    def from_bytes(cls, data: bytes) -> BitfieldPayload:
        return cls([bool(byte & (0x80 >> bit)) for byte in data for bit in range(8)])

    def to_bytes(self) -> bytes:
        return bytes(
            sum(
                0x80 >> offset
                for offset, present in enumerate(self.pieces[start : start + 8])
                if present
            )
            for start in range(0, len(self.pieces), 8)
        )

    def is_empty(self) -> bool:
        return not self.pieces

    def is_finished(self) -> bool:
        return all(self.pieces)

    def get_correct_len(self, n_pieces: int) -> list[bool]:
        """The bitfield without the padding bits beyond ``n_pieces``."""
        return self.pieces[:n_pieces]


@dataclass(frozen=True)
class RequestPiecePayload:
    """A block request (or cancellation): piece index, offset and length."""

    index: int
    begin: int
    length: int

    @classmethod
    def from_bytes(cls, data: bytes) -> RequestPiecePayload:
        _require(data, 12, "request")
        return cls(*_THREE_U32.unpack_from(data))

    def to_bytes(self) -> bytes:
        return _THREE_U32.pack(self.index, self.begin, self.length)


@dataclass(frozen=True)
class ResponsePiecePayload:
    """A block of piece data at an offset within a piece."""

    index: int
    begin: int
    block: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> ResponsePiecePayload:
        _require(data, 8, "piece")
        index, begin = _TWO_U32.unpack_from(data)
        return cls(index, begin, bytes(data[8:]))

    def to_bytes(self) -> bytes:
        return _TWO_U32.pack(self.index, self.begin) + bytes(self.block)


@dataclass(frozen=True)
class ExtendedPayload:
    """An extension message: the extended message id and its raw data."""

    extension_id: int
    data: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> ExtendedPayload:
        _require(data, 1, "extended")
        return cls(data[0], bytes(data[1:]))

    def to_bytes(self) -> bytes:
        return bytes([self.extension_id]) + bytes(self.data)


Payload = Union[
    NoPayload,
    HavePayload,
    BitfieldPayload,
    RequestPiecePayload,
    ResponsePiecePayload,
    ExtendedPayload,
]

_PAYLOAD_TYPES: dict[MessageType | None, type] = {
    None: NoPayload,
    MessageType.CHOKE: NoPayload,
    MessageType.UNCHOKE: NoPayload,
    MessageType.INTERESTED: NoPayload,
    MessageType.NOT_INTERESTED: NoPayload,
    MessageType.HAVE: HavePayload,
    MessageType.BITFIELD: BitfieldPayload,
    MessageType.REQUEST: RequestPiecePayload,
    MessageType.PIECE: ResponsePiecePayload,
    MessageType.CANCEL: RequestPiecePayload,
    MessageType.EXTENDED: ExtendedPayload,
}


@dataclass
class PeerMessage:
    """A peer wire message; a ``msg_type`` of ``None`` is a keep-alive."""

    msg_type: MessageType | None
    payload: Payload = NoPayload()

    def __post_init__(self) -> None:
        if self.msg_type is not None:
            self.msg_type = MessageType(self.msg_type)
        expected = _PAYLOAD_TYPES[self.msg_type]
        if not isinstance(self.payload, expected):
            name = "KeepAlive" if self.msg_type is None else self.msg_type.name
            raise TypeError(f"a {name} message carries a {expected.__name__}")

    def to_bytes(self) -> bytes:
        """The payload bytes, without length prefix or message id."""
        return self.payload.to_bytes()


class MessageFramer:
    """Splits a byte stream into peer messages and frames messages for sending."""

    def decode(self, buffer: bytearray) -> PeerMessage | None:
        """Take the next complete message off the front of ``buffer``.

        Returns ``None`` when more bytes are needed. Frames with an unknown
        message id are dropped.
        """
        while True:
            if len(buffer) < 4:
                return None
            length = _U32.unpack_from(buffer)[0]
            if length == 0:
                del buffer[:4]
                return PeerMessage(None)
            if len(buffer) < 5:
                return None
            if length > MAX_FRAME_LENGTH:
                raise FrameTooLargeError(length)
            end = 4 + length
            if len(buffer) < end:
                return None
            raw_type = buffer[4]
            data = bytes(buffer[5:end])
            try:
                msg_type = MessageType(raw_type)
            except ValueError:
                del buffer[:end]
                continue
            payload = _PAYLOAD_TYPES[msg_type].from_bytes(data)
            del buffer[:end]
            return PeerMessage(msg_type, payload)

    def encode(self, message: PeerMessage) -> bytes:
        """The framed bytes of ``message``; keep-alives produce nothing."""
        payload = message.to_bytes()
        length = len(payload) + 1
        if length > MAX_FRAME_LENGTH:
            raise FrameTooLargeError(length)
        if message.msg_type is None:
            return b""
        return _U32.pack(length) + bytes([message.msg_type]) + payload