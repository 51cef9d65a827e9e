"""Synchronisation engine: commit the working copy, then push, pull or merge against the remote."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from .config import author_from_env
from .constants import CONFLICT_POSTFIX_LEN, DEFAULT_BRANCH, MAX_SYNC_ATTEMPTS
from .errors import RetryExhaustedError
from .graph import find_merge_base
from .merge import diff_tree, three_way_merge
from .names import BranchName, Hash, PathInRepo
from .objects import CommitEntry, Conflict
from .objectstore import SyncCursor
from .remote import RemoteAPI
from .repo import Repository
from .util import postfixed_path, same_except_crlf, unix_now
from .worktree import apply_diff, build_working_tree

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    AUTO_MERGED = "auto_merged"
    NO_CHANGES = "no_changes"
    NEWLY_PUSHED = "newly_pushed"
    PUSHED = "pushed"
    PULLED = "pulled"


@dataclass
class Conflicted:
    """Sync stopped on conflicts; paths are the saved copies of the remote content."""

    paths: List[PathInRepo] = field(default_factory=list)


SyncResult = Union[SyncStatus, Conflicted]


class ConflictPolicy(str, Enum):
    """How a path changed differently on both sides is settled."""

    SAVE_HASHED_REMOTE = "saveHashedRemote"
    IGNORE_LOCAL = "ignoreLocal"
    IGNORE_REMOTE = "ignoreRemote"
    NEWER = "newer"


class SyncEngine:
    """Runs commit and sync for one working copy against one remote."""

    def __init__(self, repo: Repository, remote: RemoteAPI) -> None:
        self.repo = repo
        self.remote = remote
        # copies saved by the last sync_with_retry, if it stopped on conflicts
        self.conflicts: List[PathInRepo] = []

    def current_branch(self) -> BranchName:
        if not self.repo.has_head():
            self.repo.set_current_branch(DEFAULT_BRANCH)
        return self.repo.get_current_branch()

    def upload_objects(self) -> int:
        """Send every object added since the cursor; advance the cursor. Returns the count sent."""
        store = self.repo.store
        cursor = store.get_cursor()
        new_since = unix_now()
        entries = list(store.iterate(cursor.upload_since))
        if not entries:
            logger.info("no new objects to upload")
            return 0
        server_time = self.remote.upload(entries)
        store.set_cursor(SyncCursor(new_since))
        logger.info("uploaded %d objects (server time %s)", len(entries), server_time)
        return len(entries)

    def commit(self, message: Optional[str] = None) -> Hash:
        """Snapshot the working copy and commit it on the current branch.

        Returns the existing head when nothing changed and no merge is in progress.
        """
        repo = self.repo
        branch = self.current_branch()
        tree_hash = repo.write_tree(build_working_tree(repo))
        head = repo.read_head(branch.ref)
        merge_head = repo.read_merge_head()
        if head is not None and merge_head is None and repo.read_commit(head).tree == tree_hash:
            logger.debug("%s: nothing changed", branch)
            return head
        author = author_from_env()
        parents = [h for h in (head, merge_head) if h is not None]
        commit_hash = repo.write_commit(
            CommitEntry(
                tree=tree_hash,
                parents=parents,
                author=author,
                committer=author,
                message=message if message is not None else author.date.isoformat(),
            )
        )
        repo.update_head(branch.ref, commit_hash)
        if merge_head is not None:
            repo.write_merge_head(None)
        logger.info("new commit for %s: %s", branch, commit_hash)
        return commit_hash

    def sync(self, policy: ConflictPolicy = ConflictPolicy.SAVE_HASHED_REMOTE) -> SyncResult:
        """Commit, then bring local and remote heads together.

        A lost head race is not an error: the decision is re-taken against the head the
        remote reported, up to MAX_SYNC_ATTEMPTS times.
        """
        local = self.commit()
        branch = self.current_branch()
        remote_head = self.remote.get_head(branch, allow_nonexistent=True)
        for _ in range(MAX_SYNC_ATTEMPTS):
            if remote_head is None:
                self.upload_objects()
                result = self.remote.set_head(branch, local)
                if result.ok:
                    logger.info("pushed new branch %s at %s", branch, local)
                    return SyncStatus.NEWLY_PUSHED
                remote_head = result.current
                continue
            base = find_merge_base(self.repo, local, remote_head)
            if base != remote_head:
                return self._integrate(branch, local, remote_head, base, policy)
            if local == remote_head:
                logger.info("remote is up to date: %s", local)
                return SyncStatus.NO_CHANGES
            self.upload_objects()
            result = self.remote.set_head(branch, local, current=remote_head)
            if result.ok:
                logger.info("pushed %s: %s -> %s", branch, remote_head, local)
                return SyncStatus.PUSHED
            logger.info("remote head of %s moved to %s, re-evaluating", branch, result.current)
            remote_head = result.current
        raise RetryExhaustedError(f"remote head of {branch} kept changing; gave up after {MAX_SYNC_ATTEMPTS} attempts")

    def _integrate(
        self, branch: BranchName, local: Hash, remote_head: Hash, base: Hash, policy: ConflictPolicy
    ) -> SyncResult:
        """Pull (local is the base) or merge (true divergence) the remote head into the working copy."""
        repo = self.repo
        local_tree = repo.tree_of(local)
        remote_commit = repo.read_commit(remote_head)
        remote_tree = repo.read_tree(remote_commit.tree)
        if local == base:
            apply_diff(repo, diff_tree(repo, local_tree, remote_tree))
            repo.update_head(branch.ref, remote_head)
            logger.info("pulled %s: %s -> %s", branch, local, remote_head)
            return SyncStatus.PULLED
        merged = three_way_merge(repo, repo.tree_of(base), local_tree, remote_tree)
        repo.write_merge_head(remote_head)
        apply_diff(repo, merged.to_a)
        saved: List[PathInRepo] = []
        for conflict in merged.conflicts:
            copy = self._resolve_conflict(conflict, remote_head, remote_commit, policy)
            if copy is not None:
                saved.append(copy)
        if saved:
            logger.info("conflicts saved: %s; resolve them and sync again", ", ".join(saved))
            return Conflicted(saved)
        merge_commit = self.commit()
        logger.info("auto-merged %s into %s; sync again to push", remote_head, merge_commit)
        return SyncStatus.AUTO_MERGED

    def _resolve_conflict(
        self, conflict: Conflict, remote_head: Hash, remote_commit: CommitEntry, policy: ConflictPolicy
    ) -> Optional[PathInRepo]:
        """Settle one conflicting path. Returns the path of a saved remote copy, if one was written."""
        repo = self.repo
        remote_content = repo.read_blob(conflict.b)
        local_path = repo.to_file_path(conflict.path)
        local_content = local_path.read_bytes() if local_path.is_file() else b""
        if same_except_crlf(local_content, remote_content):
            return None
        if policy is ConflictPolicy.IGNORE_LOCAL:
            take_remote = True
        elif policy is ConflictPolicy.IGNORE_REMOTE:
            take_remote = False
        elif policy is ConflictPolicy.NEWER:
            take_remote = not local_path.is_file() or remote_commit.author.timestamp > local_path.stat().st_mtime
        else:
            copy_path = postfixed_path(local_path, f"({remote_head[:CONFLICT_POSTFIX_LEN]})")
            copy_path.write_bytes(remote_content)
            logger.info("conflict saved at %s", copy_path)
            return repo.to_path_in_repo(copy_path)
        if take_remote:
            local_path.write_bytes(remote_content)
            logger.info("overwrite %s with remote content", conflict.path)
        else:
            logger.info("keep local %s", conflict.path)
        return None

    def sync_with_retry(self, policy: ConflictPolicy = ConflictPolicy.SAVE_HASHED_REMOTE) -> SyncResult:
        """Sync until the result is no longer auto_merged (at most MAX_SYNC_ATTEMPTS passes).

        If any pass merged, the final result is reported as auto_merged, even when the
        last pass stopped on conflicts. Saved conflict copies are always kept in
        self.conflicts.
        """
        self.conflicts = []
        merged = False
        for _ in range(MAX_SYNC_ATTEMPTS):
            result = self.sync(policy)
            if result is SyncStatus.AUTO_MERGED:
                merged = True
                continue
            if isinstance(result, Conflicted):
                self.conflicts = list(result.paths)
            return SyncStatus.AUTO_MERGED if merged else result
        raise RetryExhaustedError(f"auto-merge repeated {MAX_SYNC_ATTEMPTS} times; aborted")
