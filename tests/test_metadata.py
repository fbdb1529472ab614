import hashlib

import pytest

from riptorrent.extensions import (
    AdditionalHandshakeInfo,
    GotMetadataLength,
    NeedBlockQueue,
    Nothing,
    ReceivedMetadataPiece,
    SendPeerManager,
)
from riptorrent.bencode import BencodeError
from riptorrent.metadata import (
    METADATA_BLOCK_SIZE,
    BlockState,
    MetadataMsg,
    MetadataMsgType,
    MetadataPieceManager,
    MetadataRequester,
    build_extension,
)
from riptorrent.torrent import InfoHash, Metainfo

ZERO_HASH = InfoHash(bytes(20))


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_req():
    msg = MetadataMsg(MetadataMsgType.REQUEST, 0, None)
    assert msg.to_bytes() == b"d8:msg_typei0e5:piecei0ee"
    assert MetadataMsg.from_bytes(b"d8:msg_typei0e5:piecei0ee") == msg


def test_data():
    action = MetadataRequester().handle_message(
        b"d8:msg_typei1e5:piecei0e10:total_sizei8eexxxxxxxx"
    )
    assert action == SendPeerManager(ReceivedMetadataPiece(piece_index=0, data=b"xxxxxxxx"))


def test_handle_invalid_message_does_nothing():
    assert MetadataRequester().handle_message(b"not bencode") == Nothing()


def test_from_bytes_rejects_unknown_type():
    with pytest.raises(BencodeError):
        MetadataMsg.from_bytes(b"d8:msg_typei9e5:piecei0ee")


def test_from_bytes_requires_piece():
    with pytest.raises(BencodeError):
        MetadataMsg.from_bytes(b"d8:msg_typei0ee")


def test_on_handshake_with_size():
    action = MetadataRequester().on_handshake(AdditionalHandshakeInfo(metadata_size=1234))
    assert action == SendPeerManager(GotMetadataLength(1234))


def test_on_handshake_without_size():
    action = MetadataRequester().on_handshake(AdditionalHandshakeInfo())
    assert action == SendPeerManager(NeedBlockQueue())


def test_build_extension():
    handler = build_extension("ut_metadata")
    assert isinstance(handler, MetadataRequester)
    assert build_extension("Handshake") is None
    assert build_extension("ut_pex") is None


def test_new_metadata_piece_manager():
    manager = MetadataPieceManager(ZERO_HASH)
    assert manager.queue == []
    assert len(manager.bytes) == 0
    assert manager.info_hash == ZERO_HASH


def test_set_len():
    manager = MetadataPieceManager(ZERO_HASH)
    manager.set_len(METADATA_BLOCK_SIZE * 3 + 100)
    assert len(manager.queue) == 4
    assert all(state is BlockState.NONE for state in manager.queue)
    assert len(manager.bytes) == METADATA_BLOCK_SIZE * 3 + 100
    assert all(byte == 0 for byte in manager.bytes)

    manager.queue[0] = BlockState.FINISHED
    manager.set_len(100)
    assert len(manager.queue) == 4
    assert manager.queue[0] is BlockState.FINISHED


def test_add_block():
    manager = MetadataPieceManager(ZERO_HASH)
    manager.set_len(METADATA_BLOCK_SIZE * 2 + 3)
    block_0 = b"\x01" * METADATA_BLOCK_SIZE
    block_1 = b"\x02" * METADATA_BLOCK_SIZE

    manager.add_block(0, block_0)
    assert manager.queue[0] is BlockState.FINISHED
    assert manager.bytes[0:METADATA_BLOCK_SIZE] == block_0

    manager.add_block(1, block_1)
    assert manager.queue[1] is BlockState.FINISHED
    assert manager.bytes[METADATA_BLOCK_SIZE : METADATA_BLOCK_SIZE * 2] == block_1

    manager.add_block(2, bytes([1, 2, 3]))
    assert manager.queue[2] is BlockState.FINISHED
    assert manager.bytes[METADATA_BLOCK_SIZE * 2 : METADATA_BLOCK_SIZE * 2 + 3] == bytes([1, 2, 3])


def test_add_block_out_of_range():
    manager = MetadataPieceManager(ZERO_HASH)
    manager.set_len(10)
    with pytest.raises(IndexError):
        manager.add_block(1, b"x")
    with pytest.raises(IndexError):
        manager.add_block(0, b"x" * 11)


def test_get_block_req_data():
    manager = MetadataPieceManager(ZERO_HASH)
    manager.set_len(METADATA_BLOCK_SIZE * 3)

    assert manager.get_block_req_data() == [
        MetadataMsg(MetadataMsgType.REQUEST, 0).to_bytes(),
        MetadataMsg(MetadataMsgType.REQUEST, 1).to_bytes(),
        MetadataMsg(MetadataMsgType.REQUEST, 2).to_bytes(),
    ]
    assert manager.queue == [BlockState.IN_PROCESS] * 3

    manager.queue[0] = BlockState.FINISHED
    manager.queue[1] = BlockState.FINISHED
    manager.queue[2] = BlockState.FINISHED
    assert manager.get_block_req_data() == []


def test_get_block_req_data_pins_bytes():
    manager = MetadataPieceManager(ZERO_HASH)
    manager.set_len(METADATA_BLOCK_SIZE + 1)
    assert manager.get_block_req_data() == [
        b"d8:msg_typei0e5:piecei0ee",
        b"d8:msg_typei0e5:piecei1ee",
    ]


def test_get_block_req_data_rerequests_after_timeout():
    clock = FakeClock()
    manager = MetadataPieceManager(ZERO_HASH, clock=clock)
    manager.set_len(METADATA_BLOCK_SIZE * 2)
    assert len(manager.get_block_req_data()) == 2

    clock.now += 1.0
    assert manager.get_block_req_data() == []

    manager.add_block(0, b"\x00" * METADATA_BLOCK_SIZE)
    clock.now += 5.0
    assert manager.get_block_req_data() == [b"d8:msg_typei0e5:piecei1ee"]


def test_check_finished():
    metadata = b"\x01" * METADATA_BLOCK_SIZE
    info_hash = InfoHash(hashlib.sha1(metadata).digest())
    manager = MetadataPieceManager(info_hash)
    manager.set_len(METADATA_BLOCK_SIZE)
    manager.add_block(0, metadata)
    assert manager.check_finished() is True

    manager.bytes = bytearray(METADATA_BLOCK_SIZE)
    assert manager.check_finished() is False
    assert manager.queue == [BlockState.NONE]


def test_check_finished_not_all_pieces():
    manager = MetadataPieceManager(ZERO_HASH)
    manager.set_len(METADATA_BLOCK_SIZE * 2)
    manager.bytes[:METADATA_BLOCK_SIZE] = bytes(METADATA_BLOCK_SIZE)
    manager.queue[0] = BlockState.FINISHED
    assert manager.check_finished() is False
    assert manager.queue == [BlockState.FINISHED, BlockState.NONE]
    assert bytes(manager.bytes) == bytes(METADATA_BLOCK_SIZE * 2)


def test_get_metadata_round_trip():
    info = Metainfo(name="a test file", piece_length=32768, pieces=[b"\x07" * 20], length=10)
    from riptorrent.bencode import encode

    raw = encode(info.to_dict())
    manager = MetadataPieceManager(info.info_hash())
    manager.set_len(len(raw))
    manager.add_block(0, raw)
    assert manager.check_finished() is True
    metadata = manager.get_metadata()
    assert metadata == info
    assert metadata.name == "a test file"
    assert metadata.piece_length == 32768