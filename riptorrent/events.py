"""Events the client emits about peers and torrents, and the bus carrying them."""

from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from riptorrent.torrent import InfoHash

EVENT_CAPACITY = 32


class ConnectionType(Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


@dataclass(frozen=True)
class NewConnection:
    """A peer connected."""

    connection_type: ConnectionType


@dataclass(frozen=True)
class Disconnected:
    """A peer went away; ``error`` is ``None`` when it ended cleanly."""

    error: Exception | None
    connection_type: ConnectionType


PeerEvent = Union[NewConnection, Disconnected]


class TorrentEventKind(Enum):
    START_DOWNLOAD = "start_download"
    PAUSED = "paused"
    RESUMED = "resumed"
    FINISHED = "finished"
    GOT_FILE_INFO = "got_file_info"
    GOT_PIECE = "got_piece"
    DOWNLOAD_CANCELED = "download_canceled"


@dataclass(frozen=True)
class TorrentEvent:
    """Something happened to a torrent; ``data`` holds the file info, piece index or error."""

    kind: TorrentEventKind
    data: Any = None


@dataclass(frozen=True)
class ApplicationEvent:
    """An event for the application, tagged with the torrent it concerns."""

    event: Union[NewConnection, Disconnected, TorrentEvent]
    info_hash: InfoHash = field(repr=False)


class EventBus:
    """Broadcasts events to every subscriber's queue.

    A full queue drops its oldest event. Events emitted before anyone ever
    subscribed are discarded; once subscribed, emitting with no live
    subscriber left is an error.
    """

    def __init__(self, capacity: int = EVENT_CAPACITY) -> None:
        self.capacity = capacity
        self._subscribers: weakref.WeakSet[asyncio.Queue] = weakref.WeakSet()
        self._open = False

    def subscribe(self) -> asyncio.Queue:
        self._open = True
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.capacity)
        self._subscribers.add(queue)
        return queue

    def emit(self, event: ApplicationEvent) -> None:
        if not self._open:
            return
        receivers = list(self._subscribers)
        if not receivers:
            raise RuntimeError(f"no subscriber is left to receive {event!r}")
        for queue in receivers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)


_BUS = EventBus()


def get_receiver() -> asyncio.Queue:
    """Subscribe to the events of the application."""
    return _BUS.subscribe()


def emit_peer_event(peer_event: PeerEvent, info_hash: InfoHash) -> None:
    _BUS.emit(ApplicationEvent(peer_event, info_hash))


def emit_torrent_event(torrent_event: TorrentEvent, info_hash: InfoHash) -> None:
    _BUS.emit(ApplicationEvent(torrent_event, info_hash))