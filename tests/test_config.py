"""Tests for config.json handling and author identity from the environment."""

import json
import os
import tempfile
import unittest
from pathlib import Path

from gsync.config import (
    ENV_AUTHOR_DATE,
    ENV_AUTHOR_EMAIL,
    ENV_AUTHOR_NAME,
    RepoConfig,
    author_from_env,
    read_config,
    write_config,
)
from gsync.errors import ConfigError


class TestConfig(unittest.TestCase):
    def setUp(self) -> None:
        self.git_dir = Path(tempfile.mkdtemp(prefix="gsync_config_"))

    def test_roundtrip(self) -> None:
        write_config(self.git_dir, RepoConfig("https://example.com/index.php", "abc123", "key"))
        data = json.loads((self.git_dir / "config.json").read_text())
        self.assertEqual(data, {"serverUrl": "https://example.com/index.php", "repoId": "abc123", "apiKey": "key"})
        self.assertEqual(read_config(self.git_dir), RepoConfig("https://example.com/index.php", "abc123", "key"))

    def test_missing_api_key_is_generated_and_saved(self) -> None:
        (self.git_dir / "config.json").write_text(json.dumps({"serverUrl": "u", "repoId": "r"}))
        config = read_config(self.git_dir)
        self.assertTrue(config.api_key)
        self.assertEqual(read_config(self.git_dir).api_key, config.api_key)

    def test_missing_file(self) -> None:
        with self.assertRaises(ConfigError):
            read_config(self.git_dir)

    def test_invalid_json(self) -> None:
        (self.git_dir / "config.json").write_text("{not json")
        with self.assertRaises(ConfigError):
            read_config(self.git_dir)

    def test_missing_required_keys(self) -> None:
        (self.git_dir / "config.json").write_text(json.dumps({"serverUrl": "u"}))
        with self.assertRaises(ConfigError):
            read_config(self.git_dir)


class TestAuthorFromEnv(unittest.TestCase):
    KEYS = (ENV_AUTHOR_NAME, ENV_AUTHOR_EMAIL, ENV_AUTHOR_DATE)

    def setUp(self) -> None:
        self.saved = {k: os.environ.pop(k, None) for k in self.KEYS}

    def tearDown(self) -> None:
        for k, v in self.saved.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v

    def test_defaults(self) -> None:
        author = author_from_env()
        self.assertEqual((author.name, author.email), ("gsync", "gsync@localhost"))

    def test_from_env(self) -> None:
        os.environ[ENV_AUTHOR_NAME] = "Hanako"
        os.environ[ENV_AUTHOR_EMAIL] = "hanako@example.com"
        os.environ[ENV_AUTHOR_DATE] = "1700000000 +0900"
        author = author_from_env()
        self.assertEqual(str(author), "Hanako <hanako@example.com> 1700000000 +0900")


if __name__ == "__main__":
    unittest.main()
