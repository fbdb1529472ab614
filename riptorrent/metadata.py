"""Fetching torrent metadata from peers (the ut_metadata extension)."""

from __future__ import annotations

import hashlib
import math
import time
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Callable

from riptorrent.bencode import BencodeError, decode, decode_prefix, encode
from riptorrent.extensions import (
    AdditionalHandshakeInfo,
    ExtensionAction,
    ExtensionHandler,
    ExtensionType,
    GotMetadataLength,
    NeedBlockQueue,
    Nothing,
    ReceivedMetadataPiece,
    SendPeerManager,
)
from riptorrent.torrent import InfoHash, Metainfo

# Metadata is exchanged in blocks of 16 KiB.
METADATA_BLOCK_SIZE = 1 << 14
TIMEOUT_METADATA_REQ = 5.0

_U32_MAX = 2**32 - 1


class MetadataMsgType(IntEnum):
    """The ``msg_type`` of a ut_metadata message."""

    REQUEST = 0
    DATA = 1
    REJECT = 2
    OTHER = 3


def _u32_field(document: dict, key: str, required: bool) -> int | None:
    value = document.get(key)
    if value is None:
        if required:
            raise BencodeError(f"missing field `{key}`")
        return None
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= _U32_MAX:
        raise BencodeError(f"`{key}` must be an unsigned 32-bit integer")
    return value


@dataclass(frozen=True)
class MetadataMsg:
    """The bencoded header of a ut_metadata message."""

    msg_type: MetadataMsgType
    piece_index: int
    total_size: int | None = None

    def to_bytes(self) -> bytes:
        return encode(
            {
                "msg_type": int(self.msg_type),
                "piece": self.piece_index,
                "total_size": self.total_size,
            }
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> MetadataMsg:
        return cls._from_document(decode(data))

    @classmethod
    def _from_document(cls, document: Any) -> MetadataMsg:
        if not isinstance(document, dict):
            raise BencodeError("a metadata message must be a dictionary")
        raw_type = _u32_field(document, "msg_type", required=True)
        try:
            msg_type = MetadataMsgType(raw_type)
        except ValueError as error:
            raise BencodeError(f"unknown metadata message type {raw_type}") from error
        return cls(
            msg_type=msg_type,
            piece_index=_u32_field(document, "piece", required=True),
            total_size=_u32_field(document, "total_size", required=False),
        )


class MetadataRequester(ExtensionHandler):
    """Handles ut_metadata messages on a peer connection."""

    ext_type = ExtensionType.METADATA

    def handle_message(self, data: bytes) -> ExtensionAction:
        data = bytes(data)
        try:
            document, end = decode_prefix(data)
            msg = MetadataMsg._from_document(document)
        except BencodeError:
            return Nothing()
        return SendPeerManager(ReceivedMetadataPiece(msg.piece_index, data[end:]))

    def on_handshake(self, additional_info: AdditionalHandshakeInfo) -> ExtensionAction:
        if additional_info.metadata_size is None:
            return SendPeerManager(NeedBlockQueue())
        return SendPeerManager(GotMetadataLength(additional_info.metadata_size))

    def __repr__(self) -> str:
        return "MetadataRequester()"


def build_extension(name: str) -> ExtensionHandler | None:
    """The handler for an extension announced under ``name``, if we support it."""
    if name == str(ExtensionType.METADATA):
        return MetadataRequester()
    return None


class BlockState(Enum):
    """Progress of one metadata block."""

    NONE = "none"
    IN_PROCESS = "in_process"
    FINISHED = "finished"


class MetadataPieceManager:
    """Requests metadata blocks and assembles the info dictionary from them."""

    def __init__(
        self, info_hash: InfoHash, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.info_hash = info_hash
        self.queue: list[BlockState] = []
        self.bytes = bytearray()
        self._clock = clock
        self._requested_at: dict[int, float] = {}

    def add_block(self, index: int, data: bytes) -> None:
        if not 0 <= index < len(self.queue):
            raise IndexError(f"metadata block {index} is out of range")
        begin = index * METADATA_BLOCK_SIZE
        end = begin + len(data)
        if end > len(self.bytes):
            raise IndexError(f"metadata block {index} runs past the end of the metadata")
        self.bytes[begin:end] = data
        self.queue[index] = BlockState.FINISHED
        self._requested_at.pop(index, None)

    def get_block_req_data(self) -> list[bytes]:
        """Serialized requests for every block not yet asked for or timed out."""
        now = self._clock()
        requests = []
        for index, state in enumerate(self.queue):
            timed_out = (
                state is BlockState.IN_PROCESS
                and now - self._requested_at.get(index, now) >= TIMEOUT_METADATA_REQ
            )
            if state is BlockState.NONE or timed_out:
                self.queue[index] = BlockState.IN_PROCESS
                self._requested_at[index] = now
                requests.append(MetadataMsg(MetadataMsgType.REQUEST, index).to_bytes())
        return requests

    def set_len(self, length: int) -> None:
        """Size the block queue and buffer; later calls are ignored."""
        if self.queue:
            return
        self.queue = [BlockState.NONE] * math.ceil(length / METADATA_BLOCK_SIZE)
        self.bytes = bytearray(length)
        self._requested_at.clear()

    def check_finished(self) -> bool:
        """True once every block is in and the data hashes to the info hash.

        A complete download with the wrong hash starts over.
        """
        if all(state is BlockState.FINISHED for state in self.queue):
            if hashlib.sha1(self.bytes).digest() == bytes(self.info_hash):
                return True
            self.queue = [BlockState.NONE] * len(self.queue)
            self._requested_at.clear()
        return False

    def get_metadata(self) -> Metainfo:
        return Metainfo.from_dict(decode(bytes(self.bytes)))