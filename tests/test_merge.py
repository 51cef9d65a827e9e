"""Tests for tree diff and 3-way merge."""

import tempfile
import unittest
from pathlib import Path
from typing import Dict, List

from gsync.merge import diff_tree, three_way_merge
from gsync.objects import DiffKind, Mode, TreeEntry
from gsync.repo import Repository


def make_repo() -> Repository:
    repo = Repository(Path(tempfile.mkdtemp(prefix="gsync_merge_")))
    repo.init()
    return repo


def tree_of(repo: Repository, files: Dict[str, str]) -> List[TreeEntry]:
    """Write a nested tree for {path: content}; returns the root entries."""
    dirs: Dict[str, Dict[str, str]] = {}
    entries: List[TreeEntry] = []
    for path, content in sorted(files.items()):
        if "/" in path:
            head, rest = path.split("/", 1)
            dirs.setdefault(head, {})[rest] = content
        else:
            entries.append(TreeEntry(Mode.FILE, path, repo.write_blob(content.encode())))
    for name, sub in sorted(dirs.items()):
        entries.append(TreeEntry(Mode.DIRECTORY, name, repo.write_tree(tree_of(repo, sub))))
    return entries


class TestDiffTree(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = make_repo()

    def test_same_tree_is_empty(self) -> None:
        t = tree_of(self.repo, {"a": "1", "d/b": "2"})
        self.assertEqual(diff_tree(self.repo, t, t), [])

    def test_added_modified_deleted(self) -> None:
        old = tree_of(self.repo, {"a": "1", "b": "2", "d/x": "3"})
        new = tree_of(self.repo, {"a": "1", "b": "22", "d/y": "4", "c": "5"})
        diffs = {d.path: d for d in diff_tree(self.repo, old, new)}
        self.assertEqual(set(diffs), {"b", "d/x", "d/y", "c"})
        self.assertEqual(diffs["b"].kind, DiffKind.MODIFIED)
        self.assertEqual(self.repo.read_blob(diffs["b"].old_hash), b"2")
        self.assertEqual(self.repo.read_blob(diffs["b"].new_hash), b"22")
        self.assertEqual(diffs["d/x"].kind, DiffKind.DELETED)
        self.assertEqual(diffs["d/y"].kind, DiffKind.ADDED)
        self.assertEqual(diffs["c"].kind, DiffKind.ADDED)

    def test_whole_directory_added(self) -> None:
        old = tree_of(self.repo, {"a": "1"})
        new = tree_of(self.repo, {"a": "1", "d/e/f": "x", "d/g": "y"})
        diffs = diff_tree(self.repo, old, new)
        self.assertEqual(sorted(d.path for d in diffs), ["d/e/f", "d/g"])
        self.assertTrue(all(d.kind is DiffKind.ADDED for d in diffs))

    def test_file_replaced_by_directory(self) -> None:
        old = tree_of(self.repo, {"x": "file"})
        new = tree_of(self.repo, {"x/inner": "nested"})
        diffs = diff_tree(self.repo, old, new)
        self.assertEqual([(d.path, d.kind) for d in diffs], [("x", DiffKind.DELETED), ("x/inner", DiffKind.ADDED)])

    def test_ignored_paths_skipped(self) -> None:
        (self.repo.path / ".gitignore").write_text("*.log\n")
        old = tree_of(self.repo, {"a": "1"})
        new = tree_of(self.repo, {"a": "1", "debug.log": "noise"})
        self.assertEqual(diff_tree(self.repo, old, new), [])


class TestThreeWayMerge(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = make_repo()
        self.base = tree_of(self.repo, {"a": "1", "b": "2", "c": "3"})

    def test_same_side_twice(self) -> None:
        a = tree_of(self.repo, {"a": "10", "b": "2", "c": "3", "n": "new"})
        result = three_way_merge(self.repo, self.base, a, a)
        self.assertEqual(result.conflicts, [])
        self.assertEqual(result.to_a, [])
        self.assertEqual(result.to_b, diff_tree(self.repo, self.base, a))

    def test_one_sided_changes_cross_over(self) -> None:
        a = tree_of(self.repo, {"a": "10", "b": "2", "c": "3"})
        b = tree_of(self.repo, {"a": "1", "b": "2", "c": "3", "d": "4"})
        result = three_way_merge(self.repo, self.base, a, b)
        self.assertEqual([d.path for d in result.to_a], ["d"])
        self.assertEqual([d.path for d in result.to_b], ["a"])
        self.assertEqual(result.conflicts, [])

    def test_both_deleted_is_dropped(self) -> None:
        a = tree_of(self.repo, {"a": "1", "b": "2"})
        result = three_way_merge(self.repo, self.base, a, a)
        self.assertEqual((result.to_a, result.to_b, result.conflicts), ([], [], []))

    def test_delete_versus_modify_keeps_the_change(self) -> None:
        a = tree_of(self.repo, {"a": "1", "b": "2"})
        b = tree_of(self.repo, {"a": "1", "b": "2", "c": "33"})
        result = three_way_merge(self.repo, self.base, a, b)
        self.assertEqual([(d.path, d.kind) for d in result.to_a], [("c", DiffKind.MODIFIED)])
        self.assertEqual(result.to_b, [])
        result = three_way_merge(self.repo, self.base, b, a)
        self.assertEqual([(d.path, d.kind) for d in result.to_b], [("c", DiffKind.MODIFIED)])
        self.assertEqual(result.to_a, [])

    def test_modify_modify_conflict(self) -> None:
        a = tree_of(self.repo, {"a": "from a", "b": "2", "c": "3"})
        b = tree_of(self.repo, {"a": "from b", "b": "2", "c": "3"})
        result = three_way_merge(self.repo, self.base, a, b)
        self.assertEqual(len(result.conflicts), 1)
        conflict = result.conflicts[0]
        self.assertEqual(conflict.path, "a")
        self.assertEqual(self.repo.read_blob(conflict.base), b"1")
        self.assertEqual(self.repo.read_blob(conflict.a), b"from a")
        self.assertEqual(self.repo.read_blob(conflict.b), b"from b")
        self.assertEqual((result.to_a, result.to_b), ([], []))

    def test_add_add_conflict_has_no_base(self) -> None:
        a = tree_of(self.repo, {"a": "1", "b": "2", "c": "3", "n": "x"})
        b = tree_of(self.repo, {"a": "1", "b": "2", "c": "3", "n": "y"})
        result = three_way_merge(self.repo, self.base, a, b)
        self.assertEqual(len(result.conflicts), 1)
        self.assertIsNone(result.conflicts[0].base)


if __name__ == "__main__":
    unittest.main()
