"""Tests for the object stores: loose files, SQLite, and the downloading decorator."""

import os
import tempfile
import time
import unittest
from pathlib import Path
from typing import List

from gsync.codec import compress, encode_object, hash_object
from gsync.errors import FormatError, ObjectNotFoundError
from gsync.names import Hash
from gsync.objects import Mode, TreeEntry, encode_tree
from gsync.objectstore import (
    DownloadableObjectStore,
    FileObjectStore,
    ObjectEntry,
    SqliteObjectStore,
    SyncCursor,
    open_object_store,
)


def _obj(obj_type: str, content: bytes):
    data = encode_object(obj_type, content)
    return hash_object(data), compress(data)


class _StoreContract:
    """Behaviour shared by every store realisation."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self) -> None:
        self.tmp = Path(tempfile.mkdtemp(prefix="gsync_store_"))
        self.store = self.make_store()

    def test_put_get_has(self) -> None:
        sha, data = _obj("blob", b"hello")
        self.assertFalse(self.store.has(sha))
        self.store.put(sha, data)
        self.assertTrue(self.store.has(sha))
        self.assertEqual(self.store.get(sha).content, data)

    def test_get_missing(self) -> None:
        with self.assertRaises(ObjectNotFoundError):
            self.store.get(Hash("0" * 40))

    def test_put_is_write_once(self) -> None:
        sha, data = _obj("blob", b"once")
        self.store.put(sha, data)
        self.store.put(sha, b"different bytes")
        self.assertEqual(self.store.get(sha).content, data)
        self.assertEqual([e.hash for e in self.store.iterate(0)], [sha])

    def test_iterate_since(self) -> None:
        sha, data = _obj("blob", b"new")
        self.store.put(sha, data)
        self.assertEqual([e.hash for e in self.store.iterate(0)], [sha])
        self.assertEqual(list(self.store.iterate(time.time() + 3600)), [])

    def test_iterate_is_restartable(self) -> None:
        for i in range(3):
            self.store.put(*_obj("blob", str(i).encode()))
        first = [e.hash for e in self.store.iterate(0)]
        second = [e.hash for e in self.store.iterate(0)]
        self.assertEqual(len(first), 3)
        self.assertEqual(sorted(first), sorted(second))

    def test_downloaded_objects_are_not_iterated(self) -> None:
        sha, data = _obj("blob", b"from remote")
        self.store.put(sha, data, downloaded=True)
        self.assertTrue(self.store.has(sha))
        self.assertEqual(list(self.store.iterate(1)), [])

    def test_cursor(self) -> None:
        self.assertEqual(self.store.get_cursor(), SyncCursor(0))
        self.store.set_cursor(SyncCursor(1234))
        self.assertEqual(self.store.get_cursor().upload_since, 1234)


class TestFileObjectStore(_StoreContract, unittest.TestCase):
    def make_store(self):
        return FileObjectStore(self.tmp / "objects", self.tmp / "state.json")

    def test_sharded_layout(self) -> None:
        sha, data = _obj("blob", b"layout")
        self.store.put(sha, data)
        self.assertTrue((self.tmp / "objects" / sha[:2] / sha[2:]).is_file())

    def test_cursor_json(self) -> None:
        self.store.set_cursor(SyncCursor(42))
        self.assertEqual((self.tmp / "state.json").read_text(), '{"uploadSince": 42}')

    def test_downloaded_mtime_zero(self) -> None:
        sha, data = _obj("blob", b"dl")
        self.store.put(sha, data, downloaded=True)
        self.assertEqual(os.stat(self.tmp / "objects" / sha[:2] / sha[2:]).st_mtime, 0)


class TestSqliteObjectStore(_StoreContract, unittest.TestCase):
    def make_store(self):
        return SqliteObjectStore(self.tmp / "objects.db")


class TestOpenObjectStore(unittest.TestCase):
    def test_picks_realisation(self) -> None:
        tmp = Path(tempfile.mkdtemp(prefix="gsync_store_"))
        self.assertIsInstance(open_object_store(tmp), FileObjectStore)
        SqliteObjectStore(tmp / "objects.db").get_cursor()
        self.assertIsInstance(open_object_store(tmp), SqliteObjectStore)


class _FakeRemote:
    """Serves objects from a dict and records every download call."""

    repo_id = "fake"

    def __init__(self) -> None:
        self.objects = {}
        self.calls: List[List[str]] = []

    def add(self, obj_type: str, content: bytes) -> Hash:
        sha, data = _obj(obj_type, content)
        self.objects[sha] = data
        return sha

    def download(self, hashes) -> List[ObjectEntry]:
        hashes = list(hashes)
        self.calls.append(hashes)
        return [ObjectEntry(h, self.objects[h], 100.0) for h in hashes if h in self.objects]


class TestDownloadableObjectStore(unittest.TestCase):
    def setUp(self) -> None:
        tmp = Path(tempfile.mkdtemp(prefix="gsync_dl_"))
        self.offline = FileObjectStore(tmp / "objects", tmp / "state.json")
        self.remote = _FakeRemote()
        self.store = DownloadableObjectStore(self.offline, self.remote)

    def test_local_hit_does_not_download(self) -> None:
        sha, data = _obj("blob", b"local")
        self.offline.put(sha, data)
        self.assertEqual(self.store.get(sha).content, data)
        self.assertEqual(self.remote.calls, [])

    def test_blob_miss_downloads(self) -> None:
        sha = self.remote.add("blob", b"remote")
        self.assertFalse(self.store.has(sha))
        self.store.get(sha)
        self.assertTrue(self.offline.has(sha))
        self.assertEqual(self.remote.calls, [[sha]])
        # downloaded objects are never uploaded again
        self.assertEqual(list(self.offline.iterate(1)), [])

    def test_tree_fetches_children_in_one_batch(self) -> None:
        a = self.remote.add("blob", b"a")
        b = self.remote.add("blob", b"b")
        local_sha, local_data = _obj("blob", b"already here")
        self.offline.put(local_sha, local_data)
        tree = self.remote.add(
            "tree",
            encode_tree(
                [
                    TreeEntry(Mode.FILE, "a", a),
                    TreeEntry(Mode.FILE, "b", b),
                    TreeEntry(Mode.FILE, "c", local_sha),
                ]
            ),
        )
        self.store.get(tree)
        self.assertEqual(self.remote.calls, [[tree], [a, b]])
        for sha in (tree, a, b):
            self.assertTrue(self.offline.has(sha))
        self.store.get(a)
        self.assertEqual(len(self.remote.calls), 2)

    def test_missing_everywhere(self) -> None:
        with self.assertRaises(ObjectNotFoundError):
            self.store.get(Hash("1" * 40))

    def test_rejects_corrupt_download(self) -> None:
        sha = self.remote.add("blob", b"genuine")
        self.remote.objects[sha] = compress(encode_object("blob", b"forged"))
        with self.assertRaises(FormatError):
            self.store.get(sha)
        self.assertFalse(self.offline.has(sha))


if __name__ == "__main__":
    unittest.main()
