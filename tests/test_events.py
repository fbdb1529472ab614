import pytest

from riptorrent.events import (
    ApplicationEvent,
    ConnectionType,
    Disconnected,
    EventBus,
    NewConnection,
    TorrentEvent,
    TorrentEventKind,
    emit_peer_event,
    emit_torrent_event,
    get_receiver,
)
from riptorrent.torrent import InfoHash

INFO_HASH = InfoHash(b"\xab" * 20)


def _piece_event(index):
    return ApplicationEvent(TorrentEvent(TorrentEventKind.GOT_PIECE, index), INFO_HASH)


def test_every_subscriber_gets_the_event():
    bus = EventBus()
    first, second = bus.subscribe(), bus.subscribe()
    event = _piece_event(3)
    bus.emit(event)
    assert first.get_nowait() == event
    assert second.get_nowait() == event


def test_events_before_subscription_are_dropped():
    bus = EventBus()
    bus.emit(_piece_event(1))
    queue = bus.subscribe()
    assert queue.empty()


def test_full_queue_drops_oldest():
    bus = EventBus(capacity=2)
    queue = bus.subscribe()
    for index in range(3):
        bus.emit(_piece_event(index))
    assert [queue.get_nowait().event.data for _ in range(queue.qsize())] == [1, 2]


def test_emit_without_live_subscribers_fails():
    bus = EventBus()
    queue = bus.subscribe()
    del queue
    with pytest.raises(RuntimeError):
        bus.emit(_piece_event(0))


def test_repr_hides_info_hash():
    event = ApplicationEvent(NewConnection(ConnectionType.INBOUND), INFO_HASH)
    assert INFO_HASH.as_hex() not in repr(event)
    assert "NewConnection" in repr(event)


@pytest.mark.asyncio
async def test_module_level_helpers():
    receiver = get_receiver()
    emit_peer_event(NewConnection(ConnectionType.OUTBOUND), INFO_HASH)
    emit_torrent_event(TorrentEvent(TorrentEventKind.FINISHED), INFO_HASH)
    error = RuntimeError("gone")
    emit_peer_event(Disconnected(error, ConnectionType.INBOUND), INFO_HASH)

    assert await receiver.get() == ApplicationEvent(
        NewConnection(ConnectionType.OUTBOUND), INFO_HASH
    )
    finished = await receiver.get()
    assert finished.event.kind is TorrentEventKind.FINISHED
    assert finished.event.data is None
    disconnected = await receiver.get()
    assert disconnected.event.error is error
    assert disconnected.info_hash == INFO_HASH