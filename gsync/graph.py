"""Commit graph helpers: merge base search and first-parent history."""

from __future__ import annotations

from collections import deque
from typing import Iterator, Set, Tuple

from .errors import UnrelatedHistoryError
from .names import Hash
from .objects import CommitEntry
from .repo import Repository


def _step(repo: Repository, queue: deque, visited: Set[str], other: Set[str]) -> Hash | None:
    """Advance one side of the search by one commit. Returns a hash once the sides meet."""
    h = queue.popleft()
    if h in other:
        return h
    if h in visited:
        return None
    visited.add(h)
    queue.extend(repo.read_commit(h).parents)
    return None


def find_merge_base(repo: Repository, a: Hash, b: Hash) -> Hash:
    """Most recent common ancestor of a and b.

    Breadth-first search from both ends, alternating one commit per side; the first commit
    one side reaches that the other has already visited is the base.
    Raises UnrelatedHistoryError if both histories are exhausted without meeting.
    """
    visited_a: Set[str] = set()
    visited_b: Set[str] = set()
    queue_a: deque = deque([a])
    queue_b: deque = deque([b])
    while queue_a or queue_b:
        if queue_a:
            found = _step(repo, queue_a, visited_a, visited_b)
            if found is not None:
                return Hash(found)
        if queue_b:
            found = _step(repo, queue_b, visited_b, visited_a)
            if found is not None:
                return Hash(found)
    raise UnrelatedHistoryError(f"unrelated history: {a} and {b}")


def iter_first_parent(repo: Repository, head: Hash) -> Iterator[Tuple[Hash, CommitEntry]]:
    """Yield (hash, commit) from head following first parents."""
    seen: Set[str] = set()
    h: Hash | None = head
    while h is not None and h not in seen:
        seen.add(h)
        commit = repo.read_commit(h)
        yield h, commit
        h = commit.parents[0] if commit.parents else None
