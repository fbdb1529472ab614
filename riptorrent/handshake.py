"""The initial peer handshake and the errors of a peer connection."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from riptorrent.torrent import InfoHash

PROTOCOL = b"BitTorrent protocol"
HANDSHAKE_LEN = 1 + len(PROTOCOL) + 8 + 20 + 20

# The extension protocol is bit 20 from the right of the reserved bytes.
_EXTENSION_RESERVED = bytes([0, 0, 0, 0, 0, 0x10, 0, 0])


class PeerError(Exception):
    """Base class of errors on a peer connection."""


class SendToPeerError(PeerError):
    """Sending a message to the remote peer failed."""

    def __init__(self, peer_id: bytes, msg_type_str: str, error: Any) -> None:
        super().__init__(
            f"Failed to send a message with type {msg_type_str} to a remote peer "
            f"with the id: `{peer_id!r}` with the error: `{error}`."
        )
        self.peer_id = peer_id
        self.msg_type_str = msg_type_str
        self.error = error


class PeerDisconnectedError(PeerError):
    """The remote peer closed the connection unexpectedly."""

    def __init__(self, error: Any) -> None:
        super().__init__("The peer unexpectedly disconnected.")
        self.error = error


class FailedToConnectError(PeerError):
    """No TCP connection could be made to a peer."""

    def __init__(self, addr: Any, error: Any) -> None:
        super().__init__(
            f"Failed to establish a tcp connection to the address `{addr}` "
            f"with error: `{error!r}`"
        )
        self.addr = addr
        self.error = error


class RecvHandshakeError(PeerError):
    """The handshake bytes could not be read from the peer."""

    def __init__(self, error: Any) -> None:
        super().__init__(
            "Failed to read the bytes from the remote peer needed for the handshake "
            f"with the error: `{error}`."
        )
        self.error = error


class DecodeHandshakeError(PeerError):
    """The bytes received are not a valid handshake."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"Failed to decode the handshake received from the peer with the error: `{reason}`"
        )
        self.reason = reason


class InfoHashMismatchError(PeerError):
    """The peer answered for a different torrent."""

    def __init__(self) -> None:
        super().__init__("The InfoHash does not match")


@dataclass(frozen=True)
class Handshake:
    """The 68-byte message exchanged when a peer connection opens."""

    info_hash: InfoHash
    peer_id: bytes
    reserved: bytes = _EXTENSION_RESERVED

    def __post_init__(self) -> None:
        if len(self.peer_id) != 20:
            raise ValueError("a peer id is exactly 20 bytes")
        if len(self.reserved) != 8:
            raise ValueError("the reserved field is exactly 8 bytes")
        object.__setattr__(self, "peer_id", bytes(self.peer_id))
        object.__setattr__(self, "reserved", bytes(self.reserved))

    def to_bytes(self) -> bytes:
        return (
            bytes([len(PROTOCOL)])
            + PROTOCOL
            + self.reserved
            + bytes(self.info_hash)
            + self.peer_id
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> Handshake:
        data = bytes(data)
        if len(data) != HANDSHAKE_LEN:
            raise DecodeHandshakeError(
                f"expected {HANDSHAKE_LEN} bytes, got {len(data)}"
            )
        if data[0] != len(PROTOCOL) or data[1:20] != PROTOCOL:
            raise DecodeHandshakeError("unknown protocol identifier")
        return cls(
            info_hash=InfoHash(data[28:48]),
            peer_id=data[48:68],
            reserved=data[20:28],
        )

    def has_extensions_enabled(self) -> bool:
        return self.reserved[5] & 0x10 == 0x10

    async def init_new_connection(self, reader, writer) -> Handshake:
        """Send our handshake, then read and check the peer's."""
        await _write(writer, self)
        received = await _read(reader)
        if received.info_hash != self.info_hash:
            raise InfoHashMismatchError()
        return received

    @classmethod
    async def retrieve_new_connection(cls, reader, writer) -> Handshake:
        """Read the handshake of an incoming peer and write it back."""
        received = await _read(reader)
        await _write(writer, received)
        return received


async def _write(writer, handshake: Handshake) -> None:
    try:
        writer.write(handshake.to_bytes())
        await writer.drain()
    except OSError as error:
        raise SendToPeerError(handshake.peer_id, "Handshake", error) from error


async def _read(reader) -> Handshake:
    try:
        data = await reader.readexactly(HANDSHAKE_LEN)
    except (asyncio.IncompleteReadError, OSError) as error:
        raise RecvHandshakeError(error) from error
    return Handshake.from_bytes(data)