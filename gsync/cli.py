"""CLI: argparse and command dispatch."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import read_config
from .constants import GIT_DIR_NAME
from .errors import GsyncError
from .porcelain import (
    CLONE_OVERWRITE,
    CLONE_SKIP_CHECKOUT,
    cat_file,
    clone,
    commit,
    find_git_dir,
    init,
    log,
    ls_tree,
    manage_url,
    open_engine,
    scan,
)
from .sync import ConflictPolicy


def setup_logging(verbose: bool = False) -> None:
    """Send gsync log records to stderr; DEBUG with verbose, INFO otherwise."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("gsync")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.propagate = False


def cmd_init(args: argparse.Namespace) -> int:
    repo_id = init(Path.cwd(), args.url, store=args.store)
    print(f"Initialized gsync repository {repo_id}")
    return 0


def cmd_clone(args: argparse.Namespace) -> int:
    allow = None
    if args.no_checkout:
        allow = CLONE_SKIP_CHECKOUT
    elif args.overwrite:
        allow = CLONE_OVERWRITE
    head = clone(Path.cwd(), args.url, args.repo_id, args.branch, allow_non_empty=allow)
    print(f"Cloned {args.repo_id} ({args.branch}) at {head}")
    return 0


def cmd_commit(_: argparse.Namespace) -> int:
    print(commit(Path.cwd()))
    return 0


def _run_sync(policy: ConflictPolicy) -> int:
    engine = open_engine(Path.cwd())
    result = engine.sync_with_retry(policy)
    if engine.conflicts:
        print("CONFLICT")
        for path in engine.conflicts:
            print(f"  {path}")
        print("Resolve conflicts and run sync again")
        return 1
    print(result.value)
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    # no subcommand means sync with the default policy
    return _run_sync(ConflictPolicy(getattr(args, "policy", ConflictPolicy.SAVE_HASHED_REMOTE.value)))


def cmd_newer(_: argparse.Namespace) -> int:
    return _run_sync(ConflictPolicy.NEWER)


def cmd_log(_: argparse.Namespace) -> int:
    for sha, entry in log(Path.cwd()):
        print(f"commit {sha}")
        if len(entry.parents) > 1:
            print("Merge: " + " ".join(p.short for p in entry.parents))
        print(f"Author: {entry.author.name} <{entry.author.email}>")
        print(f"Date:   {entry.author.date.isoformat()}")
        print()
        for line in entry.message.splitlines():
            print(f"    {line}")
        print()
    return 0


def cmd_cat_file(args: argparse.Namespace) -> int:
    obj = cat_file(Path.cwd(), args.hash)
    print(f"type: {obj.type}")
    print(obj.content.decode("utf-8", errors="replace"))
    return 0


def cmd_ls_tree(_: argparse.Namespace) -> int:
    for path, entry in ls_tree(Path.cwd()):
        kind = "tree" if entry.is_dir else "blob"
        print(f"{entry.mode.value} {kind} {entry.hash}\t{path}")
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    for directory in scan(Path.cwd()):
        if args.shell:
            print(f"cd {directory} ;gsync")
            continue
        fields = [str(directory)]
        if args.id or args.url or args.key:
            config = read_config(directory / GIT_DIR_NAME)
            if args.url:
                fields.append(config.server_url)
            if args.id:
                fields.append(config.repo_id)
            if args.key:
                fields.append(config.api_key)
        print(" ".join(fields))
    return 0


def cmd_manage(_: argparse.Namespace) -> int:
    config = read_config(find_git_dir(Path.cwd()))
    print(f"Open {manage_url(config)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gsync",
        description="Folder synchronisation over a content-addressed object store (sync is the default command).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", help="Commands")

    # init
    p_init = sub.add_parser("init", help="Create a remote repository and bind this directory to it")
    p_init.add_argument("url", help="Server URL, file:// URL or directory")
    p_init.add_argument("--store", choices=("file", "sqlite"), default="file", help="Local object store")

    # clone
    p_clone = sub.add_parser("clone", help="Clone a remote repository into this directory")
    p_clone.add_argument("url", help="Server URL, file:// URL or directory")
    p_clone.add_argument("repo_id", help="Repository id")
    p_clone.add_argument("branch", nargs="?", default="main", help="Branch (default: main)")
    mode = p_clone.add_mutually_exclusive_group()
    mode.add_argument("--no-checkout", action="store_true", help="Allow a non-empty directory; keep its files")
    mode.add_argument("--overwrite", action="store_true", help="Allow a non-empty directory; check out over it")

    sub.add_parser("commit", help="Commit the working directory")

    # sync
    p_sync = sub.add_parser("sync", help="Commit, then push, pull or merge with the remote")
    p_sync.add_argument(
        "--policy",
        choices=[p.value for p in ConflictPolicy],
        default=ConflictPolicy.SAVE_HASHED_REMOTE.value,
        help="Conflict policy (default: saveHashedRemote)",
    )

    sub.add_parser("newer", help="Sync, settling conflicts in favour of the newer side")
    sub.add_parser("log", help="Show first-parent history")

    p_cat = sub.add_parser("cat-file", help="Print an object from the local store")
    p_cat.add_argument("hash", help="Object hash")

    sub.add_parser("ls-tree", help="List all paths of the current head")

    # scan
    p_scan = sub.add_parser("scan", help="List working copies below this directory")
    p_scan.add_argument("--id", action="store_true", help="Show repository id")
    p_scan.add_argument("--url", action="store_true", help="Show server URL")
    p_scan.add_argument("--key", action="store_true", help="Show API key")
    p_scan.add_argument("--shell", action="store_true", help="Print as shell commands")

    sub.add_parser("manage", help="Show the admin page URL")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    handlers = {
        "init": cmd_init,
        "clone": cmd_clone,
        "commit": cmd_commit,
        "sync": cmd_sync,
        "newer": cmd_newer,
        "log": cmd_log,
        "cat-file": cmd_cat_file,
        "ls-tree": cmd_ls_tree,
        "scan": cmd_scan,
        "manage": cmd_manage,
    }
    handler = handlers.get(args.command or "sync")
    if not handler:
        parser.print_help()
        return 1
    try:
        return handler(args) or 0
    except GsyncError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
