"""HEAD, branch heads and MERGE_HEAD files under .gsync."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

from .constants import HEAD_FILE, MERGE_HEAD_FILE, REF_HEADS_PREFIX
from .errors import InvalidNameError, InvalidRefError
from .names import BranchName, Hash
from .util import read_text_safe, write_text_atomic


def _head_file(git_dir: Path) -> Path:
    return git_dir / HEAD_FILE


def _ref_path(git_dir: Path, refname: str) -> Path:
    """Path to ref file for refs/heads/xyz."""
    if not refname.startswith(REF_HEADS_PREFIX):
        raise InvalidRefError(f"not a branch ref: {refname}")
    return git_dir / refname


def _parse_hash(text: str, source: str) -> Hash:
    try:
        return Hash(text.strip().lower())
    except InvalidNameError:
        raise InvalidRefError(f"{source} does not contain a hash: {text.strip()!r}") from None


def has_head_file(git_dir: Path) -> bool:
    return _head_file(git_dir).is_file()


def current_branch_name(git_dir: Path) -> BranchName:
    """Return the branch HEAD points at. Raises InvalidRefError if HEAD is missing or detached."""
    raw = read_text_safe(_head_file(git_dir))
    if raw is None:
        raise InvalidRefError("HEAD not found")
    raw = raw.strip()
    if not raw.startswith("ref: " + REF_HEADS_PREFIX):
        raise InvalidRefError(f"detached HEAD: {raw}")
    try:
        return BranchName(raw[len("ref: " + REF_HEADS_PREFIX) :].strip())
    except InvalidNameError as e:
        raise InvalidRefError(str(e)) from e


def write_head_ref(git_dir: Path, branch: BranchName) -> None:
    """Set HEAD to symbolic ref refs/heads/<branch>."""
    write_text_atomic(_head_file(git_dir), f"ref: {BranchName(branch).ref}\n")


def resolve_ref(git_dir: Path, refname: str) -> Optional[Hash]:
    """Read refs/heads/<branch>; return None if the ref file does not exist."""
    content = read_text_safe(_ref_path(git_dir, refname))
    if content is None:
        return None
    return _parse_hash(content, refname)


def update_ref(git_dir: Path, refname: str, new_hash: Hash) -> None:
    """Write ref to point to new_hash (40 hex)."""
    path = _ref_path(git_dir, refname)
    path.parent.mkdir(parents=True, exist_ok=True)
    write_text_atomic(path, Hash(new_hash) + "\n")


def compare_and_swap_ref(
    git_dir: Path, refname: str, new_hash: Hash, expected: Optional[Hash]
) -> Tuple[bool, Optional[Hash]]:
    """Point ref at new_hash only if it currently equals expected (None: ref must not exist).

    Returns (True, new_hash) on success, else (False, actual current value). A sibling
    <ref>.lock file created exclusively serialises concurrent writers.
    """
    path = _ref_path(git_dir, refname)
    path.parent.mkdir(parents=True, exist_ok=True)
    lock_path = path.parent / (path.name + ".lock")
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        raise InvalidRefError(
            f"ref {refname} is locked by {lock_path}; remove it if no other sync is running"
        ) from None
    try:
        current = resolve_ref(git_dir, refname)
        if current != expected:
            return False, current
        os.write(fd, (Hash(new_hash) + "\n").encode("ascii"))
        os.close(fd)
        fd = -1
        os.replace(lock_path, path)
        return True, Hash(new_hash)
    finally:
        if fd != -1:
            os.close(fd)
        if lock_path.exists():
            lock_path.unlink()


def read_merge_head(git_dir: Path) -> Optional[Hash]:
    content = read_text_safe(git_dir / MERGE_HEAD_FILE)
    if content is None:
        return None
    return _parse_hash(content, MERGE_HEAD_FILE)


def write_merge_head(git_dir: Path, commit_hash: Optional[Hash]) -> None:
    """Record an in-progress merge parent; None clears it."""
    path = git_dir / MERGE_HEAD_FILE
    if commit_hash is None:
        path.unlink(missing_ok=True)
    else:
        write_text_atomic(path, Hash(commit_hash) + "\n")

