"""Validated string types: object hashes, branch names, paths inside a working copy.

Each type is a ``str`` subclass whose constructor checks the format, so a value that
made it into one of these types never needs re-checking downstream.
"""

from __future__ import annotations

import re

from .constants import REF_HEADS_PREFIX
from .errors import InvalidNameError

_HEX_SHA_RE = re.compile(r"[0-9a-f]{40}")

# Characters disallowed in branch names (git refname rules)
_BRANCH_FORBIDDEN = set(" ~^:?*[]\\\t\n")


def is_hash(s: str) -> bool:
    return bool(_HEX_SHA_RE.fullmatch(s))


class Hash(str):
    """40-char lowercase hex SHA-1 object id."""

    __slots__ = ()

    def __new__(cls, value: str) -> "Hash":
        if isinstance(value, Hash):
            return value
        if not isinstance(value, str) or not is_hash(value):
            raise InvalidNameError(f"{value!r} is not a hash")
        return super().__new__(cls, value)

    @property
    def short(self) -> str:
        return self[:8]


class BranchName(str):
    """Branch name as used in refs/heads/<name>."""

    __slots__ = ()

    def __new__(cls, value: str) -> "BranchName":
        if isinstance(value, BranchName):
            return value
        if (
            not value
            or value.startswith("/")
            or value.endswith("/")
            or value.startswith(".")
            or ".." in value
            or "//" in value
            or any(c in _BRANCH_FORBIDDEN for c in value)
        ):
            raise InvalidNameError(f"invalid branch name: {value!r}")
        return super().__new__(cls, value)

    @property
    def ref(self) -> str:
        """Ref path for this branch, e.g. refs/heads/main."""
        return REF_HEADS_PREFIX + self


class PathInRepo(str):
    """Posix relative path of a file or directory inside the working copy."""

    __slots__ = ()

    def __new__(cls, value: str) -> "PathInRepo":
        if isinstance(value, PathInRepo):
            return value
        norm = value.replace("\\", "/")
        parts = norm.split("/")
        if not norm or norm.startswith("/") or any(p in ("", ".", "..") for p in parts):
            raise InvalidNameError(f"{value!r} is not a relative path in the repository")
        return super().__new__(cls, norm)

    def child(self, name: str) -> "PathInRepo":
        return PathInRepo(f"{self}/{name}")

    @property
    def parent(self) -> str:
        """Parent directory as a posix string; '' for top-level entries."""
        return self.rsplit("/", 1)[0] if "/" in self else ""

    @property
    def name(self) -> str:
        return self.rsplit("/", 1)[-1]


def join_path(prefix: str, name: str) -> PathInRepo:
    """Join a (possibly empty) parent path and an entry name."""
    return PathInRepo(f"{prefix}/{name}" if prefix else name)
