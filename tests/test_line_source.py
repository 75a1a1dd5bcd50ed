#!/usr/bin/env python3
"""
Test Suite for line_source.py and merge_source.py - Reading Log Inputs
======================================================================

LineSource:
    - Plain and gzip inputs, detected by magic bytes rather than extension
    - Line terminators stripped, undecodable bytes replaced
    - Missing files, unknown encodings and corrupt gzip data raise the
      matching error kind
    - close() is idempotent

MergeSource:
    - Groups: a timestamped line plus the continuation lines after it
    - peek is idempotent, drain consumes one group and refills
    - Leading lines without timestamp form a group with timestamp None
    - The source is closed as soon as it is exhausted

RUNNING THE TESTS
=================
    pytest tests/test_line_source.py -v
"""

import gzip
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

import pytest

from log_merge_tools.merge.errors import (
    LogFileNotFoundError,
    LogMergeIOError,
    UnsupportedEncodingError,
)
from log_merge_tools.merge.line_source import LineSource, check_encoding, is_gzipped
from log_merge_tools.merge.merge_source import MergeSource
from log_merge_tools.merge.timestamps import TimestampExtractor


class TempDirTestCase(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.TemporaryDirectory()
        self.test_path = Path(self.test_dir.name)

    def tearDown(self):
        self.test_dir.cleanup()

    def create_test_file(self, filename, lines):
        """Helper to create a plain UTF-8 file with given lines"""
        file_path = self.test_path / filename
        file_path.write_text("\n".join(lines) + "\n" if lines else "", encoding="utf-8")
        return str(file_path)

    def create_gzip_file(self, filename, lines):
        """Helper to create a gzip-compressed file with given lines"""
        file_path = self.test_path / filename
        with gzip.open(file_path, "wt", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
        return str(file_path)


class TestLineSource(TempDirTestCase):
    """Test cases for LineSource"""

    def test_read_plain_file(self):
        path = self.create_test_file("app.log", ["first", "second"])
        with LineSource.open(path) as source:
            self.assertFalse(source.compressed)
            self.assertEqual(source.next_line(), "first")
            self.assertEqual(source.next_line(), "second")
            self.assertIsNone(source.next_line())
            self.assertIsNone(source.next_line())

    def test_read_gzip_file(self):
        path = self.create_gzip_file("app.log.gz", ["first", "second"])
        with LineSource.open(path) as source:
            self.assertTrue(source.compressed)
            self.assertEqual(list(source), ["first", "second"])

    def test_gzip_detected_by_magic_not_extension(self):
        gz_named_plain = self.create_test_file("plain.gz", ["plain"])
        plain_named_gz = self.create_gzip_file("packed.log", ["packed"])
        self.assertFalse(is_gzipped(gz_named_plain))
        self.assertTrue(is_gzipped(plain_named_gz))
        with LineSource.open(plain_named_gz) as source:
            self.assertEqual(list(source), ["packed"])

    def test_last_line_without_newline(self):
        path = self.test_path / "app.log"
        path.write_text("one\ntwo", encoding="utf-8")
        with LineSource.open(str(path)) as source:
            self.assertEqual(list(source), ["one", "two"])

    def test_crlf_line_endings(self):
        path = self.test_path / "app.log"
        path.write_bytes(b"one\r\ntwo\r\n")
        with LineSource.open(str(path)) as source:
            self.assertEqual(list(source), ["one", "two"])

    def test_empty_lines_are_kept(self):
        path = self.create_test_file("app.log", ["one", "", "three"])
        with LineSource.open(path) as source:
            self.assertEqual(list(source), ["one", "", "three"])

    def test_undecodable_bytes_replaced(self):
        path = self.test_path / "app.log"
        path.write_bytes(b"caf\xe9 ok\n")
        with LineSource.open(str(path)) as source:
            self.assertEqual(source.next_line(), "caf� ok")

    def test_other_encoding(self):
        path = self.test_path / "latin.log"
        path.write_bytes("café\n".encode("latin-1"))
        with LineSource.open(str(path), encoding="latin-1") as source:
            self.assertEqual(source.next_line(), "café")

    def test_empty_file(self):
        path = self.create_test_file("empty.log", [])
        with LineSource.open(path) as source:
            self.assertIsNone(source.next_line())

    def test_missing_file(self):
        with pytest.raises(LogFileNotFoundError) as info:
            LineSource.open(str(self.test_path / "missing.log"))
        self.assertEqual(info.value.kind, "FileNotFound")

    def test_directory_is_not_a_log(self):
        with pytest.raises(LogFileNotFoundError):
            LineSource.open(str(self.test_path))

    def test_unknown_encoding(self):
        path = self.create_test_file("app.log", ["x"])
        with pytest.raises(UnsupportedEncodingError) as info:
            LineSource.open(path, encoding="no-such-codec")
        self.assertEqual(info.value.kind, "UnsupportedEncoding")

    def test_check_encoding_canonical_name(self):
        self.assertEqual(check_encoding("UTF8"), "utf-8")

    def test_truncated_gzip(self):
        data = gzip.compress(("2024-01-01 10:00:00 line\n" * 2000).encode("utf-8"))
        path = self.test_path / "broken.log.gz"
        path.write_bytes(data[: len(data) // 2])
        source = LineSource.open(str(path))
        try:
            with pytest.raises(LogMergeIOError) as info:
                while source.next_line() is not None:
                    pass
            self.assertEqual(info.value.kind, "IOError")
        finally:
            source.close()

    def test_close_is_idempotent(self):
        path = self.create_test_file("app.log", ["x"])
        source = LineSource.open(path)
        source.close()
        source.close()
        self.assertTrue(source.closed)
        self.assertIsNone(source.next_line())


class TestMergeSource(TempDirTestCase):
    """Test cases for MergeSource grouping and lookahead"""

    def setUp(self):
        super().setUp()
        self.extractor = TimestampExtractor("%Y-%m-%d %H:%M:%S")

    def make_source(self, lines, index=0):
        path = self.create_test_file(f"source{index}.log", lines)
        return MergeSource(index, str(index), LineSource.open(path), self.extractor)

    def test_groups_with_continuation_lines(self):
        source = self.make_source(
            [
                "2024-01-01 10:00:00 start",
                "  at frame 1",
                "  at frame 2",
                "2024-01-01 10:00:05 next",
            ]
        )
        self.assertEqual(source.peek_next_timestamp(), datetime(2024, 1, 1, 10, 0, 0))
        self.assertEqual(
            source.drain_lines(),
            ["2024-01-01 10:00:00 start", "  at frame 1", "  at frame 2"],
        )
        self.assertEqual(source.peek_next_timestamp(), datetime(2024, 1, 1, 10, 0, 5))
        self.assertEqual(source.drain_lines(), ["2024-01-01 10:00:05 next"])
        self.assertFalse(source.has_pending())
        self.assertIsNone(source.peek_next_timestamp())

    def test_peek_is_idempotent(self):
        source = self.make_source(["2024-01-01 10:00:00 a", "2024-01-01 10:00:01 b"])
        first = source.peek_next_timestamp()
        self.assertEqual(source.peek_next_timestamp(), first)
        self.assertEqual(source.peek_next_timestamp(), first)
        self.assertEqual(source.drain_lines(), ["2024-01-01 10:00:00 a"])

    def test_leading_lines_without_timestamp(self):
        source = self.make_source(["garbage header", "more header", "2024-01-01 10:00:00 a"])
        self.assertTrue(source.has_pending())
        self.assertIsNone(source.peek_next_timestamp())
        self.assertEqual(source.sort_key(), (0, None, 0))
        self.assertEqual(source.drain_lines(), ["garbage header", "more header"])
        self.assertEqual(source.sort_key(), (1, datetime(2024, 1, 1, 10, 0, 0), 0))

    def test_file_without_any_timestamp_is_one_group(self):
        source = self.make_source(["no", "timestamps", "here"])
        self.assertTrue(source.has_pending())
        self.assertEqual(source.drain_lines(), ["no", "timestamps", "here"])
        self.assertFalse(source.has_pending())

    def test_empty_source(self):
        source = self.make_source([])
        self.assertFalse(source.has_pending())
        self.assertIsNone(source.peek_next_timestamp())
        self.assertTrue(source.closed)

    def test_closed_when_exhausted(self):
        source = self.make_source(["2024-01-01 10:00:00 a", "  trailing"])
        self.assertTrue(source.has_pending())
        # the whole file fits in the first group
        self.assertTrue(source.closed)
        self.assertEqual(source.drain_lines(), ["2024-01-01 10:00:00 a", "  trailing"])

    def test_drain_before_peek_is_an_error(self):
        source = self.make_source(["2024-01-01 10:00:00 a"])
        with pytest.raises(RuntimeError):
            source.drain_lines()
        source.close()

    def test_drain_when_exhausted_is_an_error(self):
        source = self.make_source(["2024-01-01 10:00:00 a"])
        source.peek_next_timestamp()
        source.drain_lines()
        with pytest.raises(RuntimeError):
            source.drain_lines()

    def test_close_swallows_errors(self):
        source = self.make_source(["2024-01-01 10:00:00 a"])

        def failing_close():
            raise OSError("close failed")

        real_close = source.line_source.close
        source.line_source.close = failing_close
        source.close()
        real_close()


if __name__ == "__main__":
    unittest.main()
