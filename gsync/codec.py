"""Object codec: '<type> <size>\\0' framing, SHA-1 addressing, zlib compression."""

from __future__ import annotations

import hashlib
import zlib
from typing import Tuple

from .constants import OBJECT_TYPES
from .errors import FormatError, SizeMismatchError
from .names import Hash


def object_header(obj_type: str, content: bytes) -> bytes:
    """Header: '<type> <size>\\0'."""
    return f"{obj_type} {len(content)}\0".encode()


def encode_object(obj_type: str, content: bytes) -> bytes:
    """Frame content with its header: the bytes that are hashed and compressed."""
    return object_header(obj_type, content) + content


def hash_object(data: bytes) -> Hash:
    """SHA-1 hex digest of framed object bytes."""
    return Hash(hashlib.sha1(data).hexdigest())


def compress(data: bytes) -> bytes:
    return zlib.compress(data)


def decompress(data: bytes) -> bytes:
    """Inflate stored object bytes. Raises FormatError on corrupt input."""
    try:
        return zlib.decompress(data)
    except zlib.error as e:
        raise FormatError(f"invalid object data: {e}") from e


def decode_object(raw: bytes) -> Tuple[str, bytes]:
    """Split framed bytes into (type, content), validating the header.

    Raises FormatError for a missing NUL, malformed header or unknown type and
    SizeMismatchError when the declared size differs from the content length.
    """
    null_idx = raw.find(b"\0")
    if null_idx == -1:
        raise FormatError("invalid object: no null byte in header")
    try:
        header = raw[:null_idx].decode("ascii")
    except UnicodeDecodeError as e:
        raise FormatError("invalid object header") from e
    parts = header.split(" ")
    if len(parts) != 2 or not parts[1].isdigit():
        raise FormatError(f"invalid object header: {header!r}")
    obj_type, size_str = parts
    if obj_type not in OBJECT_TYPES:
        raise FormatError(f"unknown object type: {obj_type}")
    content = raw[null_idx + 1 :]
    if len(content) != int(size_str):
        raise SizeMismatchError(f"size mismatch: expected {size_str}, got {len(content)}")
    return obj_type, content


def decode_stored(data: bytes) -> Tuple[str, bytes]:
    """Decompress and decode stored object bytes into (type, content)."""
    return decode_object(decompress(data))
