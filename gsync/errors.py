"""Custom exceptions for gsync."""

from __future__ import annotations


class GsyncError(Exception):
    """Base exception for gsync."""

    pass


class NotARepositoryError(GsyncError):
    """Raised when no .gsync directory is found."""

    pass


class RepositoryExistsError(GsyncError):
    """Raised when init/clone would overwrite an existing repository or non-empty directory."""

    pass


class InvalidNameError(GsyncError, ValueError):
    """Raised when a hash, branch name or repository path is malformed."""

    pass


class FormatError(GsyncError):
    """Raised when an object is corrupt: bad compression, header or unknown type."""

    pass


class SizeMismatchError(FormatError):
    """Raised when the header length of an object does not match its content."""

    pass


class ObjectNotFoundError(GsyncError):
    """Raised when an object is not found in the store (or on the remote)."""

    pass


class RefNotFoundError(GsyncError):
    """Raised when a branch head does not exist locally or remotely."""

    pass


class InvalidRefError(GsyncError):
    """Raised when HEAD or a ref file has unexpected content."""

    pass


class UnrelatedHistoryError(GsyncError):
    """Raised when two commits share no common ancestor."""

    pass


class MergeInvariantError(GsyncError):
    """Raised when both sides of a merge disagree about the base content of a path."""

    pass


class RetryExhaustedError(GsyncError):
    """Raised when sync keeps auto-merging or losing the head race."""

    pass


class RemoteError(GsyncError):
    """Raised when the remote service fails or answers with something unexpected."""

    pass


class ConfigError(GsyncError):
    """Raised when config.json is missing or invalid."""

    pass
