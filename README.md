# riptorrent

Building blocks for a BitTorrent client, written for asyncio.

## What is in the package

- **`riptorrent.bencode`**: `encode`, `decode` and `decode_prefix`. Strings
  decode to `bytes` and dictionary keys to `str`. When encoding, dictionary
  entries whose value is `None` are left out. All errors raise `BencodeError`.
- **`riptorrent.torrent`**: `Torrent` (`from_bytes`, `read_from_file`),
  `Metainfo` (`from_dict`, `to_dict`, `info_hash`, `get_length`), `FileEntry`,
  `InfoHash` (`as_hex`), `AnnounceList` (`from_single_announce`,
  `from_single_tier_list`) and `split_hashes`. An `AnnounceList` built by
  these constructors turns `udp://` tracker urls into `http://…/announce`. It
  also shuffles the urls within each tier. Errors raise `TorrentError`.
- **`riptorrent.tracker`**: `TrackerRequest` builds the announce query
  (`to_url_encoded`). Its `get_first_response_in_list` is a coroutine. It asks
  the given trackers one after another over HTTP with `httpx`. It returns
  `(index, TrackerResponse)` for the first usable answer, or `None`.
  `TrackerResponse.from_bytes` reads compact and non-compact `peers` and
  compact `peers6`. `get_peers` returns `(host, port)` tuples, IPv4 first.
  The module also has `escape_bytes_url`, `parse_compact_peers`,
  `parse_compact_peers6` and `TrackerResponseError`.
- **`riptorrent.messages`**: the peer wire message types (`MessageType`,
  `PeerMessage`) and their payloads. The payloads are `NoPayload`,
  `HavePayload`, `BitfieldPayload`, `RequestPiecePayload`,
  `ResponsePiecePayload` and `ExtendedPayload`.
  `MessageFramer` frames messages with a 4-byte length prefix. Frames longer
  than 8 MiB raise `FrameTooLargeError`. The module also lists the
  `ClientIdentifier` codes.
- **`riptorrent.handshake`**: `Handshake`, the 68-byte opening message, which
  announces the extension protocol by default. Its `init_new_connection` and
  `retrieve_new_connection` run on an asyncio `StreamReader`/`StreamWriter`
  pair. Failures raise subclasses of `PeerError`.
- **`riptorrent.extensions`**: the extended handshake (`HandshakeExtension`,
  `AdditionalHandshakeInfo`), `ExtensionType`, the `ExtensionHandler` base
  class, and the action and message types that handlers return.
  The action types are `SendPeer`, `SendPeerManager`, `Multiple` and `Nothing`.
  The message types are `ReceivedMetadataPiece`, `GotMetadataLength` and
  `NeedBlockQueue`.
- **`riptorrent.magnet`**: `MagnetLink.from_url` reads `xt`, `tr`, `dn` and
  `x.pe`. A link needs at least one tracker and an info hash, otherwise it
  raises `MagnetLinkError`. `parse_info_hash` reads a `urn:btih:<hex>` value.
- **`riptorrent.metadata`**: the ut_metadata extension. It has
  `MetadataMsg`, `MetadataRequester` and `build_extension`.
  `MetadataPieceManager` requests metadata blocks of 16 KiB and re-requests
  them after 5 seconds. It checks the assembled data against the info hash
  and turns it into a `Metainfo`.
- **`riptorrent.database`**: `FileDatabase`, a SQLite table of torrents keyed
  by hex info hash, holding the output path, metainfo, announce list and the
  bitfield of finished pieces. It also has `DBEntry` and `FileInfo`, and its
  errors raise `DBError`.
- **`riptorrent.events`**: event types and an `EventBus` that broadcasts
  them to `asyncio.Queue` subscribers. The peer events are `NewConnection` and
  `Disconnected`. The torrent event types are `TorrentEvent` and
  `TorrentEventKind`. `get_receiver`, `emit_peer_event` and
  `emit_torrent_event` use one shared bus.

## What it does not do

The package has no download session. No object ties these pieces together to
download or seed a torrent. The package does not:

- run the peer message loop
- manage pieces
- write file data to disk
- listen for incoming connections

It has no command-line program either. Trackers are only asked over HTTP;
UDP trackers are not spoken to.

## Installation

```
pip install .
```

## Examples

Read a torrent file:

```python
from riptorrent.torrent import Torrent

torrent = Torrent.read_from_file("example.torrent")
print(torrent.info.name, torrent.info.info_hash().as_hex())
```

Parse a magnet link:

```python
from riptorrent.magnet import MagnetLink

link = MagnetLink.from_url(
    "magnet:?xt=urn:btih:ad42ce8109f54c99613ce38f9b4d87e70f24a165"
    "&dn=magnet1.gif&tr=http%3A%2F%2Ftracker.example.com%2Fannounce"
)
print(link.info_hash.as_hex(), link.file_name, link.get_announce_urls())
```

Ask trackers for peers:

```python
from riptorrent.tracker import TrackerRequest

async def peers(info_hash, peer_id, urls, left):
    request = TrackerRequest(info_hash, peer_id, 6881, left)
    found = await request.get_first_response_in_list(urls)
    if found is None:
        return []
    index, response = found
    return response.get_peers()
```

Frame peer messages:

```python
from riptorrent.messages import HavePayload, MessageFramer, MessageType, PeerMessage

framer = MessageFramer()
wire = framer.encode(PeerMessage(MessageType.HAVE, HavePayload(3)))
buffer = bytearray(wire)
message = framer.decode(buffer)   # PeerMessage(MessageType.HAVE, HavePayload(3))
```

Keep track of progress:

```python
from riptorrent.database import FileDatabase
from riptorrent.torrent import AnnounceList, Torrent

torrent = Torrent.read_from_file("example.torrent")
with FileDatabase("files") as db:
    entry = db.set_entry(
        torrent.info.name,
        torrent.info,
        AnnounceList.from_single_announce(torrent.announce),
    )
    print(entry.to_file_info())
```

## Running the tests

```
pip install -e ".[test]"
pytest
```