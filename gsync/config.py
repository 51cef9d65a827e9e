"""Working copy configuration: .gsync/config.json holding serverUrl, repoId and apiKey."""

from __future__ import annotations

import json
import os
import secrets
from dataclasses import dataclass
from pathlib import Path

from .constants import CONFIG_FILENAME, DEFAULT_AUTHOR_EMAIL, DEFAULT_AUTHOR_NAME
from .errors import ConfigError
from .objects import Author
from .util import read_text_safe, timestamp_from_env, write_text_atomic

ENV_AUTHOR_NAME = "GSYNC_AUTHOR_NAME"
ENV_AUTHOR_EMAIL = "GSYNC_AUTHOR_EMAIL"
ENV_AUTHOR_DATE = "GSYNC_AUTHOR_DATE"


@dataclass
class RepoConfig:
    server_url: str
    repo_id: str
    api_key: str

    def to_json(self) -> str:
        return json.dumps({"serverUrl": self.server_url, "repoId": self.repo_id, "apiKey": self.api_key}, indent=2)


def generate_api_key() -> str:
    return secrets.token_hex(16)


def _config_path(git_dir: Path) -> Path:
    return Path(git_dir) / CONFIG_FILENAME


def read_config(git_dir: Path) -> RepoConfig:
    """Read config.json. A missing apiKey is generated and written back.

    Raises ConfigError if the file is missing, not JSON, or lacks serverUrl/repoId.
    """
    path = _config_path(git_dir)
    content = read_text_safe(path)
    if content is None:
        raise ConfigError(f"config not found: {path}")
    try:
        data = json.loads(content)
    except ValueError as e:
        raise ConfigError(f"invalid config {path}: {e}") from e
    if not isinstance(data, dict) or not data.get("serverUrl") or not data.get("repoId"):
        raise ConfigError(f"config {path} needs serverUrl and repoId")
    config = RepoConfig(str(data["serverUrl"]), str(data["repoId"]), str(data.get("apiKey") or ""))
    if not config.api_key:
        config.api_key = generate_api_key()
        write_config(git_dir, config)
    return config


def write_config(git_dir: Path, config: RepoConfig) -> None:
    """Write config.json atomically."""
    write_text_atomic(_config_path(git_dir), config.to_json() + "\n")


def author_from_env() -> Author:
    """Commit identity from GSYNC_AUTHOR_NAME / GSYNC_AUTHOR_EMAIL, dated now or GSYNC_AUTHOR_DATE."""
    name = os.environ.get(ENV_AUTHOR_NAME) or DEFAULT_AUTHOR_NAME
    email = os.environ.get(ENV_AUTHOR_EMAIL) or DEFAULT_AUTHOR_EMAIL
    pinned = timestamp_from_env(ENV_AUTHOR_DATE)
    if pinned is not None:
        return Author.at(name, email, pinned[0], pinned[1])
    return Author.now(name, email)
