"""High-level commands: init, clone, commit, sync, log, cat-file, scan, manage."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Tuple

from .config import RepoConfig, generate_api_key, read_config, write_config
from .constants import DEFAULT_BRANCH, GIT_DIR_NAME
from .errors import NotARepositoryError, RepositoryExistsError
from .graph import iter_first_parent
from .names import BranchName, Hash, PathInRepo
from .objects import CommitEntry, GitObject, TreeEntry
from .objectstore import DownloadableObjectStore, SyncCursor, open_object_store
from .remote import open_remote
from .repo import Repository
from .sync import ConflictPolicy, SyncEngine, SyncResult
from .util import unix_now

logger = logging.getLogger(__name__)

_PHP_SCRIPT_RE = re.compile(r"\w+\.php$")

CLONE_SKIP_CHECKOUT = "skip_checkout"
CLONE_OVERWRITE = "overwrite"


def find_git_dir(start: str | Path) -> Path:
    """Nearest .gsync directory at or above start. Raises NotARepositoryError."""
    current = Path(start).resolve()
    while True:
        candidate = current / GIT_DIR_NAME
        if candidate.is_dir():
            return candidate
        if current.parent == current:
            raise NotARepositoryError(f"no gsync repository found from {start}")
        current = current.parent


def open_repo(directory: str | Path) -> Repository:
    """Repository for the working copy containing directory, using only the local store."""
    return Repository(find_git_dir(directory).parent)


def open_engine(directory: str | Path) -> SyncEngine:
    """Wire config, remote and a downloading store into a SyncEngine for the working copy."""
    git_dir = find_git_dir(directory)
    config = read_config(git_dir)
    remote = open_remote(config.server_url, config.repo_id, config.api_key)
    store = DownloadableObjectStore(open_object_store(git_dir), remote)
    return SyncEngine(Repository(git_dir.parent, store=store), remote)


def init(directory: str | Path, server_url: str, store: str = "file") -> str:
    """Create a remote repository and an empty working copy bound to it. Returns the repo id."""
    work = Path(directory).resolve()
    repo = Repository(work)
    if repo.git_dir.exists():
        raise RepositoryExistsError(f"cannot init: {repo.git_dir} already exists")
    api_key = generate_api_key()
    remote = open_remote(server_url, "", api_key)
    repo_id = remote.create_repository()
    work.mkdir(parents=True, exist_ok=True)
    repo.init(store)
    write_config(repo.git_dir, RepoConfig(server_url, repo_id, api_key))
    logger.info("initialized %s for repository %s", repo.git_dir, repo_id)
    return repo_id


def clone(
    directory: str | Path,
    server_url: str,
    repo_id: str,
    branch: str = DEFAULT_BRANCH,
    allow_non_empty: Optional[str] = None,
) -> Hash:
    """Create a working copy of a remote branch. Returns the cloned head.

    A non-empty directory is refused unless allow_non_empty is "skip_checkout" (bind the
    existing files without writing anything) or "overwrite" (check out over them).
    """
    dest = Path(directory).resolve()
    branch = BranchName(branch)
    if allow_non_empty not in (None, CLONE_SKIP_CHECKOUT, CLONE_OVERWRITE):
        raise ValueError(f"invalid allow_non_empty: {allow_non_empty}")
    if (dest / GIT_DIR_NAME).exists():
        raise RepositoryExistsError(f"cannot clone: {dest / GIT_DIR_NAME} already exists")
    skip_checkout = False
    if dest.exists() and any(dest.iterdir()):
        if allow_non_empty is None:
            raise RepositoryExistsError(f"{dest} is not empty")
        skip_checkout = allow_non_empty == CLONE_SKIP_CHECKOUT
    logger.info("cloning into %s", dest)
    dest.mkdir(parents=True, exist_ok=True)
    Repository(dest).init()
    write_config(dest / GIT_DIR_NAME, RepoConfig(server_url, repo_id, generate_api_key()))
    engine = open_engine(dest)
    repo = engine.repo
    head = engine.remote.get_head(branch)
    repo.update_head(branch.ref, head)
    if not skip_checkout:
        repo.checkout(repo.read_commit(head).tree)
    repo.set_current_branch(branch)
    # everything present now came from the remote
    repo.store.set_cursor(SyncCursor(unix_now()))
    return head


def commit(directory: str | Path, message: Optional[str] = None) -> Hash:
    return open_engine(directory).commit(message)


def sync(directory: str | Path, policy: ConflictPolicy = ConflictPolicy.SAVE_HASHED_REMOTE) -> SyncResult:
    return open_engine(directory).sync(policy)


def sync_with_retry(
    directory: str | Path, policy: ConflictPolicy = ConflictPolicy.SAVE_HASHED_REMOTE
) -> SyncResult:
    return open_engine(directory).sync_with_retry(policy)


def log(directory: str | Path) -> List[Tuple[Hash, CommitEntry]]:
    """Commits of the current branch along first parents, newest first (local objects only)."""
    repo = open_repo(directory)
    head = repo.read_head(repo.get_current_branch().ref)
    if head is None:
        return []
    return list(iter_first_parent(repo, head))


def cat_file(directory: str | Path, sha: str) -> GitObject:
    """Read one object from the local store."""
    return open_repo(directory).read_object(Hash(sha))


def ls_tree(directory: str | Path) -> List[Tuple[PathInRepo, TreeEntry]]:
    """All paths in the current branch head, depth-first."""
    repo = open_repo(directory)
    head = repo.read_head(repo.get_current_branch().ref)
    if head is None:
        return []
    return list(repo.walk_tree(repo.tree_of(head)))


def scan(directory: str | Path) -> List[Path]:
    """Working copies at or below directory (directories holding a .gsync)."""
    found: List[Path] = []
    for root, dirs, _files in os.walk(directory):
        if GIT_DIR_NAME in dirs:
            found.append(Path(root))
            dirs.remove(GIT_DIR_NAME)
        dirs.sort()
    return found


def manage_url(config: RepoConfig) -> str:
    """Admin page for the repository, next to the server script."""
    url = config.server_url
    if _PHP_SCRIPT_RE.search(url):
        base = _PHP_SCRIPT_RE.sub("manage.php", url)
    else:
        base = url + "manage.php"
    return f"{base}?repo={config.repo_id}"
