"""Local store of the torrents being downloaded and which pieces are done."""

from __future__ import annotations

import json
import os
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from riptorrent.bencode import BencodeError, decode, encode
from riptorrent.torrent import AnnounceList, InfoHash, Metainfo, TorrentError

DATABASE_NAME = "files"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    info_hash TEXT PRIMARY KEY,
    bitfield TEXT NOT NULL,
    file TEXT NOT NULL,
    torrent_info BLOB NOT NULL,
    announce_list TEXT NOT NULL
)
"""


class DBError(Exception):
    """Raised when the local database fails."""

    def __init__(self, error: object) -> None:
        super().__init__(f"Got error from the local DB: `{error}`")
        self.error = error


@dataclass
class FileInfo:
    """The public view of a stored torrent."""

    info_hash: InfoHash
    size: int
    piece_size: int
    file_path: Path
    bitfield: list[bool] = field(default_factory=list)


@dataclass
class DBEntry:
    """What is stored for one torrent."""

    bitfield: list[bool]
    file: Path
    torrent_info: Metainfo
    announce_list: AnnounceList

    @classmethod
    def from_new_file(cls, file_path, info: Metainfo, announce_list: AnnounceList) -> DBEntry:
        return cls(
            bitfield=[False] * len(info.pieces),
            file=Path(file_path),
            torrent_info=info,
            announce_list=announce_list,
        )

    def is_finished(self) -> bool:
        return all(self.bitfield)

    def to_file_info(self) -> FileInfo:
        return FileInfo(
            info_hash=self.torrent_info.info_hash(),
            size=self.torrent_info.get_length(),
            piece_size=self.torrent_info.piece_length,
            file_path=Path(self.file),
            bitfield=list(self.bitfield),
        )


def _row_to_entry(row: tuple) -> DBEntry:
    bitfield, file, torrent_info, announce_list = row
    try:
        return DBEntry(
            bitfield=[bool(bit) for bit in json.loads(bitfield)],
            file=Path(file),
            torrent_info=Metainfo.from_dict(decode(torrent_info)),
            announce_list=AnnounceList(json.loads(announce_list)),
        )
    except (ValueError, BencodeError, TorrentError) as error:
        raise DBError(error) from error


class FileDatabase:
    """A SQLite-backed table of torrents keyed by their hex info hash."""

    def __init__(self, path: str | os.PathLike = DATABASE_NAME) -> None:
        try:
            self._conn = sqlite3.connect(os.fspath(path))
            with self._conn:
                self._conn.execute(_SCHEMA)
        except sqlite3.Error as error:
            raise DBError(error) from error

    def __enter__(self) -> FileDatabase:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get_entry(self, info_hash_hex: str) -> DBEntry | None:
        try:
            row = self._conn.execute(
                "SELECT bitfield, file, torrent_info, announce_list FROM files "
                "WHERE info_hash = ?",
                (info_hash_hex,),
            ).fetchone()
        except sqlite3.Error as error:
            raise DBError(error) from error
        return None if row is None else _row_to_entry(row)

    def get_all(self) -> list[DBEntry]:
        """Every stored entry, or an empty list if the store cannot be read."""
        try:
            rows = self._conn.execute(
                "SELECT bitfield, file, torrent_info, announce_list FROM files ORDER BY rowid"
            ).fetchall()
            return [_row_to_entry(row) for row in rows]
        except (sqlite3.Error, DBError):
            return []

    def set_entry(self, file_path, info: Metainfo, announce_list: AnnounceList) -> DBEntry:
        """Create the record of a new torrent with no pieces done."""
        entry = DBEntry.from_new_file(file_path, info, announce_list)
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO files (info_hash, bitfield, file, torrent_info, announce_list) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        info.info_hash().as_hex(),
                        json.dumps(entry.bitfield),
                        str(entry.file),
                        encode(info.to_dict()),
                        json.dumps(announce_list.tiers),
                    ),
                )
        except sqlite3.Error as error:
            raise DBError(error) from error
        return entry

    def update_bitfield(self, info_hash_hex: str, new_bitfield) -> None:
        try:
            with self._conn:
                cursor = self._conn.execute(
                    "UPDATE files SET bitfield = ? WHERE info_hash = ?",
                    (json.dumps([bool(bit) for bit in new_bitfield]), info_hash_hex),
                )
        except sqlite3.Error as error:
            raise DBError(error) from error
        if cursor.rowcount == 0:
            raise DBError(f"no record for the torrent `{info_hash_hex}`")

    def close(self) -> None:
        self._conn.close()