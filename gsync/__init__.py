"""gsync: folder synchronisation on a git-style content-addressed object model."""

from .errors import GsyncError, NotARepositoryError
from .repo import Repository
from .sync import ConflictPolicy, Conflicted, SyncEngine, SyncStatus

__all__ = [
    "Repository",
    "SyncEngine",
    "SyncStatus",
    "Conflicted",
    "ConflictPolicy",
    "GsyncError",
    "NotARepositoryError",
]
