"""Repository: ties the working directory, object store and ref files together."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .codec import compress, decode_stored, encode_object, hash_object
from .constants import (
    DEFAULT_BRANCH,
    GIT_DIR_NAME,
    OBJ_BLOB,
    OBJ_COMMIT,
    OBJ_TREE,
    OBJECTS_DB_FILENAME,
    OBJECTS_DIRNAME,
)
from .errors import FormatError, NotARepositoryError
from .names import BranchName, Hash, PathInRepo, join_path
from .objects import CommitEntry, GitObject, Mode, TreeEntry, encode_tree, parse_tree
from .objectstore import ObjectStore, SqliteObjectStore, open_object_store
from . import refs


class Repository:
    """Working copy rooted at path with metadata in path/.gsync."""

    def __init__(
        self,
        path: str | Path,
        store: Optional[ObjectStore] = None,
        git_dir_name: str = GIT_DIR_NAME,
    ) -> None:
        self.path = Path(path).resolve()
        self.git_dir_name = git_dir_name
        self.git_dir = self.path / git_dir_name
        self._store_injected = store is not None
        self.store: ObjectStore = store if store is not None else open_object_store(self.git_dir)

    def init(self, store: str = "file") -> bool:
        """Create the metadata layout with HEAD on the default branch. Return False if it already exists.

        store is "file" (loose objects) or "sqlite" (objects.db).
        """
        if self.git_dir.exists():
            return False
        if store not in ("file", "sqlite"):
            raise ValueError(f"unknown object store kind: {store}")
        self.git_dir.mkdir(parents=True)
        if store == "sqlite":
            SqliteObjectStore(self.git_dir / OBJECTS_DB_FILENAME).get_cursor()
        else:
            (self.git_dir / OBJECTS_DIRNAME).mkdir()
        if not self._store_injected:
            self.store = open_object_store(self.git_dir)
        refs.write_head_ref(self.git_dir, BranchName(DEFAULT_BRANCH))
        return True

    def require_repo(self) -> None:
        """Raise NotARepositoryError if the metadata directory is missing."""
        if not self.git_dir.is_dir():
            raise NotARepositoryError(f"not a gsync repository: {self.path}")

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def to_file_path(self, path: PathInRepo) -> Path:
        return self.path.joinpath(*PathInRepo(path).split("/"))

    def to_path_in_repo(self, file_path: Path) -> PathInRepo:
        """Repo-relative path of file_path. Raises ValueError outside the working copy."""
        rel = Path(file_path).resolve().relative_to(self.path)
        return PathInRepo(rel.as_posix())

    def is_sub_repo(self, directory: Path) -> bool:
        """True if directory is the root of another, independent working copy."""
        directory = Path(directory)
        return directory != self.path and (directory / self.git_dir_name).is_dir()

    def in_sub_repo(self, path: PathInRepo) -> bool:
        """True if any parent directory of path is a nested working copy root."""
        parts = PathInRepo(path).split("/")[:-1]
        current = self.path
        for part in parts:
            current = current / part
            if self.is_sub_repo(current):
                return True
        return False

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def write_object(self, obj_type: str, content: bytes) -> Hash:
        """Hash framed content; compress and store only if new. Returns the hash."""
        data = encode_object(obj_type, content)
        sha = hash_object(data)
        if not self.store.has(sha):
            self.store.put(sha, compress(data))
        return sha

    def write_blob(self, content: bytes) -> Hash:
        return self.write_object(OBJ_BLOB, content)

    def write_tree(self, entries: List[TreeEntry]) -> Hash:
        return self.write_object(OBJ_TREE, encode_tree(entries))

    def write_commit(self, entry: CommitEntry) -> Hash:
        return self.write_object(OBJ_COMMIT, entry.to_bytes())

    def read_object(self, sha: Hash) -> GitObject:
        """Load and decode object. Raises ObjectNotFoundError, FormatError, SizeMismatchError."""
        value = self.store.get(sha)
        obj_type, content = decode_stored(value.content)
        return GitObject(obj_type, content, Hash(sha))

    def _read_typed(self, sha: Hash, expected: str) -> bytes:
        obj = self.read_object(sha)
        if obj.type != expected:
            raise FormatError(f"expected {expected}, got {obj.type} for {sha}")
        return obj.content

    def read_blob(self, sha: Hash) -> bytes:
        return self._read_typed(sha, OBJ_BLOB)

    def read_tree(self, sha: Hash) -> List[TreeEntry]:
        return parse_tree(self._read_typed(sha, OBJ_TREE))

    def read_commit(self, sha: Hash) -> CommitEntry:
        return CommitEntry.from_bytes(self._read_typed(sha, OBJ_COMMIT))

    def walk_tree(self, entries: List[TreeEntry], prefix: str = "") -> Iterator[Tuple[PathInRepo, TreeEntry]]:
        """Yield (path, entry) for every entry under entries, depth-first in tree order.

        Uses an explicit stack; each call returns a fresh iterator.
        """
        stack: List[Tuple[str, List[TreeEntry], int]] = [(prefix, entries, 0)]
        while stack:
            base, items, idx = stack.pop()
            if idx >= len(items):
                continue
            entry = items[idx]
            stack.append((base, items, idx + 1))
            path = join_path(base, entry.name)
            yield path, entry
            if entry.is_dir:
                stack.append((path, self.read_tree(entry.hash), 0))

    def checkout(self, tree_hash: Hash, dest: Path | None = None) -> None:
        """Materialise tree into dest (default: working directory), creating dirs and files."""
        dest = Path(dest) if dest is not None else self.path
        for path, entry in self.walk_tree(self.read_tree(tree_hash)):
            out = dest.joinpath(*path.split("/"))
            if entry.mode is Mode.DIRECTORY:
                out.mkdir(parents=True, exist_ok=True)
            else:
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_bytes(self.read_blob(entry.hash))

    # ------------------------------------------------------------------
    # Refs
    # ------------------------------------------------------------------

    def has_head(self) -> bool:
        return refs.has_head_file(self.git_dir)

    def get_current_branch(self) -> BranchName:
        return refs.current_branch_name(self.git_dir)

    def set_current_branch(self, branch: str) -> None:
        refs.write_head_ref(self.git_dir, BranchName(branch))

    def read_head(self, ref: str) -> Optional[Hash]:
        return refs.resolve_ref(self.git_dir, ref)

    def update_head(self, ref: str, sha: Hash) -> None:
        refs.update_ref(self.git_dir, ref, sha)

    def read_merge_head(self) -> Optional[Hash]:
        return refs.read_merge_head(self.git_dir)

    def write_merge_head(self, sha: Optional[Hash] = None) -> None:
        refs.write_merge_head(self.git_dir, sha)

    def tree_of(self, commit_hash: Hash) -> List[TreeEntry]:
        """Entries of the commit's root tree."""
        return self.read_tree(self.read_commit(commit_hash).tree)
