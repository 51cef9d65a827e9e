"""Helper functions: safe file ops, time/tz, line-ending normalisation."""

from __future__ import annotations

import os
import re
import tempfile
import time
from pathlib import Path
from typing import Optional

# Control characters other than tab, LF and CR mark a file as binary
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Replace path with data in one step: readers see the old file or the new one, never half."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".gsync_tmp_")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def write_text_atomic(path: Path, text: str) -> None:
    """UTF-8 variant of write_bytes_atomic."""
    write_bytes_atomic(path, text.encode("utf-8"))


def read_text_safe(path: Path) -> Optional[str]:
    """Contents of a UTF-8 text file, or None when it is absent or unreadable."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (FileNotFoundError, OSError, UnicodeDecodeError):
        return None


def format_tz_offset(offset_sec: int) -> str:
    """Seconds east of UTC as +HHMM / -HHMM."""
    hours, rest = divmod(abs(offset_sec), 3600)
    return "%s%02d%02d" % ("-" if offset_sec < 0 else "+", hours, rest // 60)


def parse_tz_offset(tz: str) -> int:
    """Parse +HHMM / -HHMM into seconds. Raises ValueError."""
    if len(tz) != 5 or tz[0] not in "+-" or not tz[1:].isdigit():
        raise ValueError(f"invalid timezone offset: {tz!r}")
    seconds = int(tz[1:3]) * 3600 + int(tz[3:5]) * 60
    return seconds if tz[0] == "+" else -seconds


def timestamp_from_env(key: str) -> Optional[tuple[int, str]]:
    """Parse '<unix seconds> [+HHMM]' from environment variable key; None if unset or malformed."""
    fields = os.environ.get(key, "").split()
    if not fields or len(fields) > 2:
        return None
    tz = fields[1] if len(fields) == 2 else "+0000"
    try:
        parse_tz_offset(tz)
        return int(fields[0]), tz
    except ValueError:
        return None


def unix_now() -> int:
    """Current time as whole unix seconds."""
    return int(time.time())


def strip_cr(data: bytes) -> bytes:
    """Rewrite CRLF to LF when data is clean UTF-8 text; return binary data unchanged.

    Text means strict UTF-8 with no control characters besides tab, CR and LF.
    """
    if b"\r\n" not in data:
        return data
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return data
    if _CONTROL_CHARS_RE.search(text):
        return data
    return text.replace("\r\n", "\n").encode("utf-8")


def same_except_crlf(a: bytes, b: bytes) -> bool:
    """True if a and b are equal after CRLF normalisation."""
    return strip_cr(a) == strip_cr(b)


def write_file_ignoring_crlf(path: Path, content: bytes) -> bool:
    """Write content unless the existing file already matches modulo CRLF. Returns True if written."""
    path = Path(path)
    if path.is_file():
        if same_except_crlf(path.read_bytes(), content):
            return False
    elif path.is_dir() and not any(path.iterdir()):
        # an emptied directory being replaced by a file of the same name
        path.rmdir()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return True


def postfixed_path(path: Path, postfix: str) -> Path:
    """Insert postfix before the extension: /a/b/test.txt + (1) -> /a/b/test(1).txt."""
    path = Path(path)
    return path.with_name(f"{path.stem}{postfix}{path.suffix}")
