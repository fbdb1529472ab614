import hashlib

import pytest

from riptorrent.bencode import encode
from riptorrent.torrent import (
    AnnounceList,
    FileEntry,
    InfoHash,
    Metainfo,
    Torrent,
    TorrentError,
    split_hashes,
)

HASH_A = b"a" * 20
HASH_B = b"b" * 20


def _info_dict():
    return {"length": 1000, "name": "sample.txt", "piece length": 512, "pieces": HASH_A + HASH_B}


def _torrent_bytes(**extra):
    document = {"announce": "http://tracker.example.com/announce", "info": _info_dict()}
    document.update(extra)
    return encode(document)


def test_split_hashes():
    assert split_hashes(HASH_A + HASH_B) == [HASH_A, HASH_B]


def test_split_hashes_bad_length():
    with pytest.raises(TorrentError):
        split_hashes(b"x" * 21)


def test_info_hash_hex_and_str():
    info_hash = InfoHash(bytes(range(20)))
    assert info_hash.as_hex() == bytes(range(20)).hex()
    assert str(info_hash) == info_hash.as_hex()
    assert bytes(info_hash) == bytes(range(20))


def test_info_hash_wrong_length():
    with pytest.raises(ValueError):
        InfoHash(b"short")


def test_torrent_from_bytes_fields():
    torrent = Torrent.from_bytes(_torrent_bytes())
    assert torrent.announce == "http://tracker.example.com/announce"
    assert torrent.info.name == "sample.txt"
    assert torrent.info.piece_length == 512
    assert torrent.info.pieces == [HASH_A, HASH_B]
    assert torrent.info.get_length() == 1000
    assert torrent.announce_list is None


def test_info_hash_is_sha1_of_info_section():
    raw_info = encode(_info_dict())
    torrent = Torrent.from_bytes(_torrent_bytes())
    assert torrent.info.info_hash().value == hashlib.sha1(raw_info).digest()


def test_metainfo_dict_round_trip():
    info = Metainfo.from_dict(
        {
            "name": b"dir",
            "piece length": 16384,
            "pieces": HASH_A,
            "files": [{"length": 3, "path": [b"a", b"b.txt"]}, {"length": 4, "path": [b"c"]}],
        }
    )
    again = Metainfo.from_dict({k: _as_wire(v) for k, v in info.to_dict().items()})
    assert again == info
    assert again.info_hash() == info.info_hash()


def _as_wire(value):
    from riptorrent.bencode import decode

    return decode(encode(value))


def test_multi_file_length_is_total():
    files = [FileEntry(3, ["a"]), FileEntry(4, ["b"])]
    info = Metainfo(name="dir", piece_length=16, pieces=[HASH_A], files=files)
    assert info.get_length() == sum(entry.length for entry in files)


def test_length_missing_raises():
    info = Metainfo(name="x", piece_length=16, pieces=[])
    with pytest.raises(TorrentError):
        info.get_length()


def test_announce_list_parsed_as_is():
    tiers = [["udp://one.example.com:80"], ["http://two.example.com/announce"]]
    torrent = Torrent.from_bytes(_torrent_bytes(**{"announce-list": tiers}))
    assert torrent.announce_list == AnnounceList(tiers)


def test_from_single_announce_rewrites_udp():
    announce_list = AnnounceList.from_single_announce("udp://tracker.example.com:1337")
    assert announce_list.tiers == [["http://tracker.example.com:1337/announce"]]


def test_from_single_tier_list_keeps_each_url_in_own_tier():
    urls = ["http://a.example.com/announce", "http://b.example.com/announce"]
    announce_list = AnnounceList.from_single_tier_list(urls)
    assert announce_list.tiers == [[url] for url in urls]


def test_missing_field_raises():
    with pytest.raises(TorrentError):
        Torrent.from_bytes(encode({"info": _info_dict()}))


def test_invalid_bencode_raises():
    with pytest.raises(TorrentError):
        Torrent.from_bytes(b"d8:announce")


def test_bad_pieces_length_raises():
    info = _info_dict()
    info["pieces"] = b"x" * 19
    with pytest.raises(TorrentError):
        Torrent.from_bytes(encode({"announce": "http://t.example.com/", "info": info}))


def test_read_from_file(tmp_path):
    path = tmp_path / "sample.torrent"
    path.write_bytes(_torrent_bytes())
    assert Torrent.read_from_file(path) == Torrent.from_bytes(_torrent_bytes())


def test_read_missing_file_raises(tmp_path):
    with pytest.raises(TorrentError):
        Torrent.read_from_file(tmp_path / "missing.torrent")