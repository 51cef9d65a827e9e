"""Object stores: content-addressed pools of compressed objects plus the upload cursor.

Three realisations share one interface (``ObjectStore``):

* ``FileObjectStore``: loose files under ``objects/<aa>/<bb...>``, cursor in ``state.json``.
* ``SqliteObjectStore``: a single key-value table in ``objects.db``.
* ``DownloadableObjectStore``: wraps an offline store and fetches misses from the remote.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, List, Protocol

from .codec import decode_stored, decompress, hash_object
from .constants import (
    OBJ_TREE,
    OBJECTS_DB_FILENAME,
    OBJECTS_DIRNAME,
    SHA1_HEX_LEN,
    STATE_FILENAME,
)
from .errors import FormatError, ObjectNotFoundError
from .names import Hash, is_hash
from .objects import parse_tree
from .util import read_text_safe, write_bytes_atomic, write_text_atomic

if TYPE_CHECKING:
    from .remote import RemoteAPI

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectValue:
    """Stored object: compressed bytes and the time it entered this store."""

    content: bytes
    mtime: float


@dataclass(frozen=True)
class ObjectEntry:
    """Object with its hash; the unit of upload and download."""

    hash: Hash
    content: bytes
    mtime: float


@dataclass(frozen=True)
class SyncCursor:
    """Objects with mtime >= upload_since have not been uploaded yet."""

    upload_since: int = 0

    def to_json(self) -> str:
        return json.dumps({"uploadSince": self.upload_since})

    @classmethod
    def from_json(cls, text: str | None) -> "SyncCursor":
        if not text:
            return cls()
        try:
            data = json.loads(text)
            return cls(int(data.get("uploadSince", 0)))
        except (ValueError, TypeError, AttributeError):
            return cls()


class ObjectStore(Protocol):
    def has(self, sha: Hash) -> bool: ...

    def get(self, sha: Hash) -> ObjectValue: ...

    def put(self, sha: Hash, compressed: bytes, downloaded: bool = False) -> None: ...

    def iterate(self, since: float) -> Iterator[ObjectEntry]: ...

    def get_cursor(self) -> SyncCursor: ...

    def set_cursor(self, cursor: SyncCursor) -> None: ...


class FileObjectStore:
    """Loose object storage under <objects_dir>/<aa>/<bb...>."""

    def __init__(self, objects_dir: Path, cursor_file: Path | None = None) -> None:
        self.objects_dir = Path(objects_dir)
        self.cursor_file = Path(cursor_file) if cursor_file else self.objects_dir.parent / STATE_FILENAME

    def _object_path(self, sha: str) -> Path:
        """Path to loose object file. sha must be full 40-char hex."""
        if not is_hash(sha):
            raise ValueError(f"invalid full sha: {sha}")
        return self.objects_dir / sha[:2] / sha[2:]

    def has(self, sha: Hash) -> bool:
        return self._object_path(sha).is_file()

    def get(self, sha: Hash) -> ObjectValue:
        """Return compressed bytes and mtime. Raises ObjectNotFoundError."""
        path = self._object_path(sha)
        try:
            content = path.read_bytes()
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            raise ObjectNotFoundError(f"object {sha} not found at {path}") from None
        return ObjectValue(content, mtime)

    def put(self, sha: Hash, compressed: bytes, downloaded: bool = False) -> None:
        """Write object unless present. Downloaded objects get mtime 0 so they are never re-uploaded."""
        path = self._object_path(sha)
        if path.exists():
            return
        write_bytes_atomic(path, compressed)
        if downloaded:
            os.utime(path, (0, 0))

    def iterate(self, since: float) -> Iterator[ObjectEntry]:
        """Yield objects with mtime >= since."""
        if not self.objects_dir.is_dir():
            return
        for head in sorted(os.listdir(self.objects_dir)):
            sub = self.objects_dir / head
            if len(head) != 2 or not sub.is_dir():
                continue
            for rest in sorted(os.listdir(sub)):
                sha = head + rest
                if len(sha) != SHA1_HEX_LEN or not is_hash(sha):
                    continue
                path = sub / rest
                mtime = path.stat().st_mtime
                if mtime >= since:
                    yield ObjectEntry(Hash(sha), path.read_bytes(), mtime)

    def get_cursor(self) -> SyncCursor:
        return SyncCursor.from_json(read_text_safe(self.cursor_file))

    def set_cursor(self, cursor: SyncCursor) -> None:
        write_text_atomic(self.cursor_file, cursor.to_json())


_SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS objects (hash TEXT PRIMARY KEY, content BLOB NOT NULL, mtime REAL NOT NULL);
CREATE TABLE IF NOT EXISTS state (key TEXT PRIMARY KEY, value TEXT NOT NULL);
"""


class SqliteObjectStore:
    """Key-value object storage in a single SQLite database file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        if not self._initialized:
            with conn:
                conn.executescript(_SQLITE_SCHEMA)
            self._initialized = True
        return conn

    def has(self, sha: Hash) -> bool:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT 1 FROM objects WHERE hash = ?", (str(sha),)).fetchone()
        return row is not None

    def get(self, sha: Hash) -> ObjectValue:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT content, mtime FROM objects WHERE hash = ?", (str(sha),)).fetchone()
        if row is None:
            raise ObjectNotFoundError(f"object {sha} not found in {self.db_path}")
        return ObjectValue(bytes(row[0]), float(row[1]))

    def put(self, sha: Hash, compressed: bytes, downloaded: bool = False) -> None:
        mtime = 0.0 if downloaded else time.time()
        with closing(self._connect()) as conn, conn:
            conn.execute(
                "INSERT OR IGNORE INTO objects (hash, content, mtime) VALUES (?, ?, ?)",
                (str(sha), sqlite3.Binary(compressed), mtime),
            )

    def iterate(self, since: float) -> Iterator[ObjectEntry]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT hash, content, mtime FROM objects WHERE mtime >= ? ORDER BY hash", (since,)
            )
            for sha, content, mtime in rows:
                yield ObjectEntry(Hash(sha), bytes(content), float(mtime))

    def get_cursor(self) -> SyncCursor:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT value FROM state WHERE key = 'cursor'").fetchone()
        return SyncCursor.from_json(row[0] if row else None)

    def set_cursor(self, cursor: SyncCursor) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                "INSERT OR REPLACE INTO state (key, value) VALUES ('cursor', ?)", (cursor.to_json(),)
            )


class DownloadableObjectStore:
    """Offline store that fetches missing objects from the remote on read.

    A fetched tree pulls all of its missing entries in the same batch, so checking out a
    directory costs one round-trip instead of one per file.
    """

    def __init__(self, offline: ObjectStore, remote: "RemoteAPI") -> None:
        self.offline = offline
        self.remote = remote

    def has(self, sha: Hash) -> bool:
        return self.offline.has(sha)

    def get(self, sha: Hash) -> ObjectValue:
        if self.offline.has(sha):
            return self.offline.get(sha)
        first = next((e for e in self.remote.download([sha]) if e.hash == sha), None)
        if first is None:
            raise ObjectNotFoundError(f"object {sha} not found locally or on remote")
        _verify(first)
        obj_type, content = decode_stored(first.content)
        if obj_type == OBJ_TREE:
            missing: List[Hash] = []
            for entry in parse_tree(content):
                if entry.hash not in missing and not self.offline.has(entry.hash):
                    missing.append(entry.hash)
            if missing:
                logger.debug("downloading %d entries of tree %s", len(missing), sha)
                for child in self.remote.download(missing):
                    _verify(child)
                    self.offline.put(child.hash, child.content, downloaded=True)
        self.offline.put(sha, first.content, downloaded=True)
        return self.offline.get(sha)

    def put(self, sha: Hash, compressed: bytes, downloaded: bool = False) -> None:
        self.offline.put(sha, compressed, downloaded)

    def iterate(self, since: float) -> Iterator[ObjectEntry]:
        return self.offline.iterate(since)

    def get_cursor(self) -> SyncCursor:
        return self.offline.get_cursor()

    def set_cursor(self, cursor: SyncCursor) -> None:
        self.offline.set_cursor(cursor)


def _verify(entry: ObjectEntry) -> None:
    """Reject downloaded bytes whose content does not hash to the requested id."""
    if hash_object(decompress(entry.content)) != entry.hash:
        raise FormatError(f"downloaded object does not match its hash {entry.hash}")


def open_object_store(git_dir: Path) -> ObjectStore:
    """Pick the store realisation present in git_dir: objects.db if it exists, else loose files."""
    git_dir = Path(git_dir)
    db_path = git_dir / OBJECTS_DB_FILENAME
    if db_path.is_file():
        return SqliteObjectStore(db_path)
    return FileObjectStore(git_dir / OBJECTS_DIRNAME, git_dir / STATE_FILENAME)
