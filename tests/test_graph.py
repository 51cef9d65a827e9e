"""Tests for merge base search and first-parent history."""

import tempfile
import unittest
from pathlib import Path

from gsync.errors import UnrelatedHistoryError
from gsync.graph import find_merge_base, iter_first_parent
from gsync.objects import Author, CommitEntry
from gsync.repo import Repository

AUTHOR = Author.at("T", "t@example.com", 1700000000, "+0000")


class TestGraph(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = Repository(Path(tempfile.mkdtemp(prefix="gsync_graph_")))
        self.repo.init()
        self.tree = self.repo.write_tree([])

    def _commit(self, message: str, *parents: str) -> str:
        return self.repo.write_commit(CommitEntry(self.tree, list(parents), AUTHOR, AUTHOR, message))

    def test_same_commit(self) -> None:
        c = self._commit("root")
        self.assertEqual(find_merge_base(self.repo, c, c), c)

    def test_ancestor_is_base(self) -> None:
        root = self._commit("root")
        c1 = self._commit("1", root)
        c2 = self._commit("2", c1)
        self.assertEqual(find_merge_base(self.repo, c2, root), root)
        self.assertEqual(find_merge_base(self.repo, root, c2), root)
        self.assertEqual(find_merge_base(self.repo, c2, c1), c1)

    def test_divergent_branches(self) -> None:
        root = self._commit("root")
        fork = self._commit("fork", root)
        a1 = self._commit("a1", fork)
        a2 = self._commit("a2", a1)
        a3 = self._commit("a3", a2)
        b1 = self._commit("b1", fork)
        self.assertEqual(find_merge_base(self.repo, a3, b1), fork)
        self.assertEqual(find_merge_base(self.repo, b1, a3), fork)

    def test_after_merge_commit(self) -> None:
        root = self._commit("root")
        local = self._commit("local", root)
        remote = self._commit("remote", root)
        merged = self._commit("merge", local, remote)
        self.assertEqual(find_merge_base(self.repo, merged, remote), remote)
        self.assertEqual(find_merge_base(self.repo, remote, merged), remote)

    def test_unrelated(self) -> None:
        a = self._commit("a")
        b = self._commit("b")
        with self.assertRaises(UnrelatedHistoryError):
            find_merge_base(self.repo, a, b)

    def test_iter_first_parent(self) -> None:
        root = self._commit("root")
        side = self._commit("side", root)
        main = self._commit("main", root)
        merged = self._commit("merge", main, side)
        history = [(h, c.message) for h, c in iter_first_parent(self.repo, merged)]
        self.assertEqual(history, [(merged, "merge"), (main, "main"), (root, "root")])


if __name__ == "__main__":
    unittest.main()
