"""Constants for gsync: metadata layout, file modes, ref paths, retry bounds."""

from __future__ import annotations

# Metadata directory created at the root of every working copy
GIT_DIR_NAME = ".gsync"

# Other VCS metadata that is never synchronised
FOREIGN_GIT_DIR = ".git"

# Default branch name
DEFAULT_BRANCH = "main"

# Tree entry modes
MODE_FILE = "100644"
MODE_DIR = "40000"

# Ref paths under .gsync
REF_HEADS_PREFIX = "refs/heads/"
HEAD_FILE = "HEAD"
MERGE_HEAD_FILE = "MERGE_HEAD"

# Files under .gsync
OBJECTS_DIRNAME = "objects"
OBJECTS_DB_FILENAME = "objects.db"
CONFIG_FILENAME = "config.json"
STATE_FILENAME = "state.json"

# Per-directory ignore rules
IGNORE_FILENAME = ".gitignore"

# Object types
OBJ_BLOB = "blob"
OBJ_TREE = "tree"
OBJ_COMMIT = "commit"
OBJ_TAG = "tag"
OBJECT_TYPES = (OBJ_BLOB, OBJ_TREE, OBJ_COMMIT, OBJ_TAG)

# SHA-1 hex length
SHA1_HEX_LEN = 40

# Length of the remote hash postfix on conflict copies: name(<8hex>).ext
CONFLICT_POSTFIX_LEN = 8

# Upper bound on consecutive auto-merges / CAS re-evaluations in one sync
MAX_SYNC_ATTEMPTS = 5

# Default author when GSYNC_AUTHOR_NAME / GSYNC_AUTHOR_EMAIL are unset
DEFAULT_AUTHOR_NAME = "gsync"
DEFAULT_AUTHOR_EMAIL = "gsync@localhost"
