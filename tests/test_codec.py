"""Tests for the object codec: framing, hashing, compression, header validation."""

import unittest
import zlib

from gsync.codec import compress, decode_object, decode_stored, decompress, encode_object, hash_object
from gsync.errors import FormatError, SizeMismatchError


class TestEncode(unittest.TestCase):
    def test_header_framing(self) -> None:
        self.assertEqual(encode_object("blob", b"hello world"), b"blob 11\0hello world")
        self.assertEqual(encode_object("tree", b""), b"tree 0\0")

    def test_known_hashes(self) -> None:
        self.assertEqual(
            hash_object(encode_object("blob", b"hello world")),
            "95d09f2b10159347eece71399a7e2e907ea3df4f",
        )
        self.assertEqual(hash_object(encode_object("blob", b"")), "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391")
        self.assertEqual(hash_object(encode_object("tree", b"")), "4b825dc642cb6eb9a060e54bf8d69288fbee4904")

    def test_hash_is_deterministic(self) -> None:
        data = encode_object("blob", b"same content")
        self.assertEqual(hash_object(data), hash_object(bytes(data)))

    def test_compress_is_zlib(self) -> None:
        data = encode_object("blob", b"x" * 100)
        self.assertEqual(zlib.decompress(compress(data)), data)
        self.assertEqual(decompress(zlib.compress(data)), data)


class TestDecode(unittest.TestCase):
    def test_decode_stored(self) -> None:
        stored = compress(encode_object("commit", b"tree abc"))
        self.assertEqual(decode_stored(stored), ("commit", b"tree abc"))

    def test_corrupt_compression(self) -> None:
        with self.assertRaises(FormatError):
            decompress(b"not zlib at all")

    def test_missing_null(self) -> None:
        with self.assertRaises(FormatError):
            decode_object(b"blob 3abc")

    def test_bad_header(self) -> None:
        with self.assertRaises(FormatError):
            decode_object(b"blob\0abc")
        with self.assertRaises(FormatError):
            decode_object(b"blob x\0abc")

    def test_unknown_type(self) -> None:
        with self.assertRaises(FormatError):
            decode_object(b"note 3\0abc")

    def test_tag_type(self) -> None:
        self.assertEqual(decode_object(encode_object("tag", b"object x\n")), ("tag", b"object x\n"))

    def test_size_mismatch(self) -> None:
        with self.assertRaises(SizeMismatchError):
            decode_object(b"blob 4\0abc")
        # SizeMismatchError is a FormatError
        with self.assertRaises(FormatError):
            decode_object(b"blob 2\0abc")


if __name__ == "__main__":
    unittest.main()
