"""Object records: tree entries, authors, commits, diffs; tree/commit serialization and parsing."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from .constants import MODE_DIR, MODE_FILE
from .errors import FormatError, InvalidNameError
from .names import Hash, PathInRepo
from .util import format_tz_offset, parse_tz_offset

_AUTHOR_RE = re.compile(r"^(.+?) <(.+?)> (\d+) ([+-]\d{4})$")


class Mode(str, Enum):
    """Tree entry mode."""

    FILE = MODE_FILE
    DIRECTORY = MODE_DIR


@dataclass(frozen=True)
class GitObject:
    """Decoded object: type, uncompressed content and its hash."""

    type: str
    content: bytes
    hash: Hash


@dataclass(frozen=True)
class TreeEntry:
    """Single tree entry: mode, name, object hash."""

    mode: Mode
    name: str
    hash: Hash

    @property
    def is_dir(self) -> bool:
        return self.mode is Mode.DIRECTORY

    def to_bytes(self) -> bytes:
        """Format: b'{mode} {name}\\0' + 20-byte binary sha."""
        return f"{self.mode.value} {self.name}\0".encode("utf-8") + bytes.fromhex(self.hash)


def encode_tree(entries: List[TreeEntry]) -> bytes:
    """Concatenate entries in the given order (callers decide the order)."""
    return b"".join(e.to_bytes() for e in entries)


def parse_tree(content: bytes) -> List[TreeEntry]:
    """Parse tree content into entries. Raises FormatError on truncated or malformed rows."""
    entries: List[TreeEntry] = []
    i = 0
    while i < len(content):
        sp = content.find(b" ", i)
        null_idx = content.find(b"\0", i)
        if sp == -1 or null_idx == -1 or sp > null_idx:
            raise FormatError("invalid tree entry")
        sha_bin = content[null_idx + 1 : null_idx + 21]
        if len(sha_bin) != 20:
            raise FormatError("truncated tree entry")
        try:
            mode = Mode(content[i:sp].decode("ascii"))
            name = content[sp + 1 : null_idx].decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise FormatError(f"invalid tree entry: {e}") from e
        entries.append(TreeEntry(mode, name, Hash(sha_bin.hex())))
        i = null_idx + 21
    return entries


@dataclass(frozen=True)
class Author:
    """Author/committer identity with a timezone-aware date."""

    name: str
    email: str
    date: datetime

    @classmethod
    def now(cls, name: str, email: str) -> "Author":
        return cls(name, email, datetime.now().astimezone().replace(microsecond=0))

    @classmethod
    def at(cls, name: str, email: str, timestamp: int, tz: str) -> "Author":
        offset = timezone(timedelta(seconds=parse_tz_offset(tz)))
        return cls(name, email, datetime.fromtimestamp(timestamp, offset))

    @property
    def timestamp(self) -> int:
        return int(self.date.timestamp())

    @property
    def tz_offset(self) -> str:
        offset = self.date.utcoffset()
        return format_tz_offset(int(offset.total_seconds()) if offset else 0)

    def __str__(self) -> str:
        return f"{self.name} <{self.email}> {self.timestamp} {self.tz_offset}"

    @classmethod
    def parse(cls, text: str) -> "Author":
        m = _AUTHOR_RE.match(text)
        if not m:
            raise FormatError(f"invalid author format: {text!r}")
        name, email, ts, tz = m.groups()
        return cls.at(name, email, int(ts), tz)


@dataclass(frozen=True)
class CommitEntry:
    """Commit fields: tree, parents (0..2), author, committer, message."""

    tree: Hash
    parents: List[Hash]
    author: Author
    committer: Author
    message: str

    def to_bytes(self) -> bytes:
        lines = [f"tree {self.tree}"]
        for p in self.parents:
            lines.append(f"parent {p}")
        lines.append(f"author {self.author}")
        lines.append(f"committer {self.committer}")
        lines.append("")
        lines.append(self.message)
        return "\n".join(lines).encode("utf-8")

    @classmethod
    def from_bytes(cls, content: bytes) -> "CommitEntry":
        """Parse commit content. Raises FormatError when a required header is missing."""
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatError("commit is not valid UTF-8") from e
        tree: Optional[Hash] = None
        parents: List[Hash] = []
        author: Optional[Author] = None
        committer: Optional[Author] = None
        lines = text.split("\n")
        message_start = len(lines)
        try:
            for i, line in enumerate(lines):
                if line == "":
                    message_start = i + 1
                    break
                if line.startswith("tree "):
                    tree = Hash(line[5:])
                elif line.startswith("parent "):
                    parents.append(Hash(line[7:]))
                elif line.startswith("author "):
                    author = Author.parse(line[7:])
                elif line.startswith("committer "):
                    committer = Author.parse(line[10:])
        except InvalidNameError as e:
            raise FormatError(f"invalid commit: {e}") from e
        if tree is None:
            raise FormatError("commit is missing tree")
        if author is None:
            raise FormatError("commit is missing author")
        if committer is None:
            raise FormatError("commit is missing committer")
        message = "\n".join(lines[message_start:])
        return cls(tree, parents, author, committer, message)


class DiffKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class TreeDiffEntry:
    """One changed file path: added (new_hash), modified (old and new) or deleted (old_hash)."""

    path: PathInRepo
    kind: DiffKind
    old_hash: Optional[Hash] = None
    new_hash: Optional[Hash] = None

    @classmethod
    def added(cls, path: PathInRepo, new_hash: Hash) -> "TreeDiffEntry":
        return cls(path, DiffKind.ADDED, new_hash=new_hash)

    @classmethod
    def modified(cls, path: PathInRepo, old_hash: Hash, new_hash: Hash) -> "TreeDiffEntry":
        return cls(path, DiffKind.MODIFIED, old_hash=old_hash, new_hash=new_hash)

    @classmethod
    def deleted(cls, path: PathInRepo, old_hash: Hash) -> "TreeDiffEntry":
        return cls(path, DiffKind.DELETED, old_hash=old_hash)


@dataclass(frozen=True)
class Conflict:
    """A path changed differently on both sides; base is None for add/add."""

    path: PathInRepo
    a: Hash
    b: Hash
    base: Optional[Hash] = None


@dataclass
class MergeResult:
    """Result of a 3-way merge: diffs to apply to each side, plus conflicts."""

    to_a: List[TreeDiffEntry] = field(default_factory=list)
    to_b: List[TreeDiffEntry] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)
