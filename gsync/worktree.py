"""Working directory <-> objects: snapshot the tree under ignore rules and apply diffs to disk."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

from .ignore import EMPTY_STACK, IgnoreChecker, IgnoreStack, is_metadata_name
from .names import join_path
from .objects import DiffKind, Mode, TreeDiffEntry, TreeEntry
from .repo import Repository
from .util import strip_cr, write_file_ignoring_crlf

logger = logging.getLogger(__name__)


def build_working_tree(repo: Repository) -> List[TreeEntry]:
    """Snapshot the working directory into blob/tree objects; return the root entries.

    Ignore rules accumulate per directory, metadata directories, symlinks and nested
    working copies are skipped, and text files are stored with LF line endings.
    Directory listings are sorted by name so the same files always hash the same.
    """
    repo.require_repo()
    return _walk(repo, repo.path, "", EMPTY_STACK)


def _walk(repo: Repository, directory: Path, rel_dir: str, stack: IgnoreStack) -> List[TreeEntry]:
    stack = stack.pushed(repo.path, rel_dir)
    entries: List[TreeEntry] = []
    with os.scandir(directory) as it:
        listing = sorted(it, key=lambda e: e.name)
    for item in listing:
        if is_metadata_name(item.name, repo.git_dir_name):
            continue
        rel = join_path(rel_dir, item.name)
        if item.is_file(follow_symlinks=False):
            if stack.ignores(rel, is_dir=False):
                continue
            content = strip_cr(Path(item.path).read_bytes())
            entries.append(TreeEntry(Mode.FILE, item.name, repo.write_blob(content)))
        elif item.is_dir(follow_symlinks=False):
            if stack.ignores(rel, is_dir=True) or repo.is_sub_repo(Path(item.path)):
                continue
            children = _walk(repo, Path(item.path), rel, stack)
            entries.append(TreeEntry(Mode.DIRECTORY, item.name, repo.write_tree(children)))
    return entries


def apply_diff(repo: Repository, diffs: List[TreeDiffEntry]) -> None:
    """Apply file-level changes to the working directory.

    Ignored paths and paths inside nested working copies are left alone. Deleting an
    absent file is not an error, and writes that would only change line endings are skipped.
    """
    checker = IgnoreChecker(repo.path, repo.git_dir_name)
    for diff in diffs:
        if checker.ignores(diff.path) or repo.in_sub_repo(diff.path):
            logger.debug("skip %s", diff.path)
            continue
        file_path = repo.to_file_path(diff.path)
        if diff.kind is DiffKind.DELETED:
            if file_path.is_file():
                file_path.unlink()
                logger.debug("deleted %s", diff.path)
            continue
        if diff.new_hash is None:
            raise ValueError(f"missing new hash for {diff.path}")
        if write_file_ignoring_crlf(file_path, repo.read_blob(diff.new_hash)):
            logger.debug("wrote %s", diff.path)
