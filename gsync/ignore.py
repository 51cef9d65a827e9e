"""Ignore rules: per-directory .gitignore files stacked top-down, with negation and fnmatch globs."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .constants import FOREIGN_GIT_DIR, GIT_DIR_NAME, IGNORE_FILENAME
from .util import read_text_safe


def _rule_matches(rule: str, rel_path: str, is_dir: bool) -> bool:
    """One rule against a path relative to the rules' directory.

    A trailing '/' restricts the rule to directories. A rule containing '/' is matched
    against the whole path (and everything below it); otherwise only the last component.
    """
    if rule.endswith("/"):
        if not is_dir:
            return False
        rule = rule.rstrip("/")
    rule = rule.lstrip("/")
    if not rule:
        return False
    path = rel_path.replace("\\", "/")
    if "/" not in rule:
        return fnmatch.fnmatchcase(path.rsplit("/", 1)[-1], rule)
    if path == rule or path.startswith(rule + "/"):
        return True
    glob = rule.replace("**/", "*").replace("/**", "/*").replace("**", "*")
    return fnmatch.fnmatchcase(path, glob) or fnmatch.fnmatchcase(path, glob + "/*")


class IgnoreMatcher:
    """Rules of one .gitignore as (negated, pattern) pairs; the last matching rule wins."""

    def __init__(self, patterns: List[Tuple[bool, str]]) -> None:
        self.patterns = patterns

    def is_ignored(self, rel_path: str, is_dir: bool) -> bool:
        ignored = False
        for negated, rule in self.patterns:
            if _rule_matches(rule, rel_path, is_dir):
                ignored = not negated
        return ignored


def _parse_patterns(text: Optional[str]) -> List[Tuple[bool, str]]:
    rules: List[Tuple[bool, str]] = []
    for raw in (text or "").splitlines():
        rule = raw.strip()
        negated = rule.startswith("!")
        if negated:
            rule = rule[1:].strip()
        if rule and not rule.startswith("#"):
            rules.append((negated, rule))
    return rules


class IgnoreStack:
    """Immutable stack of (directory, rules) frames; pushed() returns a new stack.

    Directories are repo-relative posix strings, '' for the root. A path is ignored when
    any frame whose directory contains it ignores it.
    """

    __slots__ = ("_frame", "_rest")

    def __init__(
        self,
        frame: Optional[Tuple[str, IgnoreMatcher]] = None,
        rest: Optional["IgnoreStack"] = None,
    ) -> None:
        self._frame = frame
        self._rest = rest

    def pushed(self, repo_root: Path, rel_dir: str) -> "IgnoreStack":
        """Stack with rel_dir's .gitignore on top (self if it has none)."""
        patterns = _parse_patterns(read_text_safe(Path(repo_root) / rel_dir / IGNORE_FILENAME))
        if not patterns:
            return self
        return IgnoreStack((rel_dir, IgnoreMatcher(patterns)), self)

    def frames(self) -> List[Tuple[str, IgnoreMatcher]]:
        out: List[Tuple[str, IgnoreMatcher]] = []
        node: Optional[IgnoreStack] = self
        while node is not None and node._frame is not None:
            out.append(node._frame)
            node = node._rest
        out.reverse()
        return out

    def ignores(self, rel_path: str, is_dir: bool) -> bool:
        for rel_dir, matcher in self.frames():
            if rel_dir and not rel_path.startswith(rel_dir + "/"):
                continue
            sub = rel_path[len(rel_dir) + 1 :] if rel_dir else rel_path
            if sub and matcher.is_ignored(sub, is_dir):
                return True
        return False


EMPTY_STACK = IgnoreStack()


def is_metadata_name(name: str, git_dir_name: str = GIT_DIR_NAME) -> bool:
    """True for metadata directory names that are never synchronised."""
    return name in (FOREIGN_GIT_DIR, git_dir_name)


class IgnoreChecker:
    """Answer 'is this path ignored?' for arbitrary repo paths, caching one stack per directory."""

    def __init__(self, repo_root: Path, git_dir_name: str = GIT_DIR_NAME) -> None:
        self.repo_root = Path(repo_root)
        self.git_dir_name = git_dir_name
        self._stacks: Dict[str, IgnoreStack] = {"": EMPTY_STACK.pushed(self.repo_root, "")}

    def stack_for(self, rel_dir: str) -> IgnoreStack:
        """Stack of rules in effect inside rel_dir."""
        cached = self._stacks.get(rel_dir)
        if cached is not None:
            return cached
        parent = rel_dir.rsplit("/", 1)[0] if "/" in rel_dir else ""
        stack = self.stack_for(parent).pushed(self.repo_root, rel_dir)
        self._stacks[rel_dir] = stack
        return stack

    def ignores(self, rel_path: str, is_dir: bool = False) -> bool:
        """True if rel_path or any of its parent directories is ignored or metadata."""
        parts = rel_path.replace("\\", "/").split("/")
        for i, name in enumerate(parts):
            if is_metadata_name(name, self.git_dir_name):
                return True
            prefix = "/".join(parts[: i + 1])
            parent = "/".join(parts[:i])
            last = i == len(parts) - 1
            if self.stack_for(parent).ignores(prefix, is_dir if last else True):
                return True
        return False
