"""Tree diff and 3-way merge over tree entries."""

from __future__ import annotations

from typing import Dict, List, Optional

from .errors import MergeInvariantError
from .ignore import IgnoreChecker
from .names import join_path
from .objects import Conflict, DiffKind, MergeResult, TreeDiffEntry, TreeEntry
from .repo import Repository


def diff_tree(
    repo: Repository,
    old: List[TreeEntry],
    new: List[TreeEntry],
    prefix: str = "",
    checker: Optional[IgnoreChecker] = None,
) -> List[TreeDiffEntry]:
    """File-level changes turning old into new, recursing into directories.

    Ignored paths never appear. A name that switches between file and directory is
    reported as deletions of the old side followed by additions of the new side.
    """
    if checker is None:
        checker = IgnoreChecker(repo.path, repo.git_dir_name)
    old_map = {e.name: e for e in old}
    new_map = {e.name: e for e in new}
    names = list(old_map) + [n for n in new_map if n not in old_map]
    diffs: List[TreeDiffEntry] = []
    for name in names:
        old_ent = old_map.get(name)
        new_ent = new_map.get(name)
        path = join_path(prefix, name)
        is_dir = (old_ent or new_ent).is_dir  # type: ignore[union-attr]
        if checker.ignores(path, is_dir=is_dir):
            continue
        if old_ent is not None and new_ent is not None:
            if old_ent.hash == new_ent.hash and old_ent.mode == new_ent.mode:
                continue
            if old_ent.is_dir and new_ent.is_dir:
                diffs.extend(
                    diff_tree(repo, repo.read_tree(old_ent.hash), repo.read_tree(new_ent.hash), path, checker)
                )
            elif not old_ent.is_dir and not new_ent.is_dir:
                diffs.append(TreeDiffEntry.modified(path, old_ent.hash, new_ent.hash))
            else:
                diffs.extend(_one_sided(repo, old_ent, path, checker, deleted=True))
                diffs.extend(_one_sided(repo, new_ent, path, checker, deleted=False))
        elif old_ent is not None:
            diffs.extend(_one_sided(repo, old_ent, path, checker, deleted=True))
        elif new_ent is not None:
            diffs.extend(_one_sided(repo, new_ent, path, checker, deleted=False))
    return diffs


def _one_sided(
    repo: Repository, entry: TreeEntry, path: str, checker: IgnoreChecker, deleted: bool
) -> List[TreeDiffEntry]:
    if entry.is_dir:
        sub = repo.read_tree(entry.hash)
        if deleted:
            return diff_tree(repo, sub, [], path, checker)
        return diff_tree(repo, [], sub, path, checker)
    if deleted:
        return [TreeDiffEntry.deleted(path, entry.hash)]
    return [TreeDiffEntry.added(path, entry.hash)]


def three_way_merge(
    repo: Repository,
    base: List[TreeEntry],
    a: List[TreeEntry],
    b: List[TreeEntry],
) -> MergeResult:
    """Merge trees a and b against their common base.

    to_a holds the changes b made that a still needs, to_b the reverse. A path modified on
    both sides to different content (or added on both sides differently) is a conflict.
    Identical changes on both sides are not conflicts.
    """
    checker = IgnoreChecker(repo.path, repo.git_dir_name)
    diff_a = diff_tree(repo, base, a, checker=checker)
    diff_b = diff_tree(repo, base, b, checker=checker)
    map_a: Dict[str, TreeDiffEntry] = {d.path: d for d in diff_a}
    map_b: Dict[str, TreeDiffEntry] = {d.path: d for d in diff_b}
    paths = list(map_a) + [p for p in map_b if p not in map_a]
    result = MergeResult()
    for path in paths:
        da = map_a.get(path)
        db = map_b.get(path)
        if da is not None and db is not None:
            if da.kind is DiffKind.DELETED and db.kind is DiffKind.DELETED:
                continue
            if da.kind is DiffKind.DELETED:
                result.to_a.append(db)
            elif db.kind is DiffKind.DELETED:
                result.to_b.append(da)
            elif da.new_hash == db.new_hash:
                # same change on both sides, already present in b
                result.to_b.append(da)
            elif da.kind is DiffKind.MODIFIED and db.kind is DiffKind.MODIFIED:
                if da.old_hash != db.old_hash:
                    raise MergeInvariantError(f"old hash does not match for {path}: {da.old_hash} != {db.old_hash}")
                result.conflicts.append(Conflict(da.path, da.new_hash, db.new_hash, base=da.old_hash))  # type: ignore[arg-type]
            elif da.kind is DiffKind.ADDED and db.kind is DiffKind.ADDED:
                result.conflicts.append(Conflict(da.path, da.new_hash, db.new_hash))  # type: ignore[arg-type]
            else:
                raise MergeInvariantError(f"invalid merge state for {path}: a {da.kind.value}, b {db.kind.value}")
        elif db is not None:
            result.to_a.append(db)
        elif da is not None:
            result.to_b.append(da)
    return result
