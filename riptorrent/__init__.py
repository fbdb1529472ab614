"""BitTorrent building blocks: bencode, metainfo, trackers, peer messages, magnet links, metadata exchange."""

__version__ = "0.1.0"