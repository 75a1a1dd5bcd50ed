"""
Line sources - lazy, forward-only line readers over plain or gzip files.

Compression is detected from the first two bytes of the file (the gzip
magic number 0x1f 0x8b), not from the file name, so ``app.log`` that is
really gzipped and ``app.log.gz`` that is really plain both work.
"""

import codecs
import gzip
import io
import zlib
from typing import Optional

from .errors import LogFileNotFoundError, LogMergeIOError, UnsupportedEncodingError

GZIP_MAGIC = b"\x1f\x8b"


def check_encoding(encoding: str) -> str:
    """
    Return the canonical codec name for ``encoding``.

    Raises:
        UnsupportedEncodingError: If Python has no codec by that name
    """
    try:
        return codecs.lookup(encoding).name
    except LookupError as e:
        raise UnsupportedEncodingError(f"Unsupported encoding: {encoding}") from e


def is_gzipped(path: str) -> bool:
    """Check the first two bytes of ``path`` for the gzip magic number."""
    with open(path, "rb") as fh:
        return fh.read(2) == GZIP_MAGIC


class LineSource:
    """
    Pull-based line reader for one input file.

    Lines are returned without their terminator. Bytes that cannot be
    decoded are replaced with U+FFFD instead of aborting the merge.
    """

    def __init__(self, path: str, stream: io.TextIOBase, compressed: bool = False):
        self.path = path
        self.compressed = compressed
        self._stream = stream
        self._closed = False

    @classmethod
    def open(cls, path: str, encoding: str = "utf-8", buffer_size: int = 1024 * 1024):
        """
        Open ``path`` for reading, decompressing on the fly when gzipped.

        Raises:
            LogFileNotFoundError: If the file is missing or unreadable
            UnsupportedEncodingError: If ``encoding`` is unknown
            LogMergeIOError: For any other failure while opening
        """
        encoding = check_encoding(encoding)
        try:
            compressed = is_gzipped(path)
            raw = open(path, "rb", buffering=buffer_size)
        except (FileNotFoundError, IsADirectoryError, PermissionError) as e:
            raise LogFileNotFoundError(f"File not found: {path}") from e
        except OSError as e:
            raise LogMergeIOError(f"Generic IO exception: {path}: {e}") from e

        binary = gzip.GzipFile(fileobj=raw, mode="rb") if compressed else raw
        stream = io.TextIOWrapper(binary, encoding=encoding, errors="replace")
        return cls(path, stream, compressed)

    def next_line(self) -> Optional[str]:
        """Return the next line, or None once the source is exhausted."""
        if self._closed:
            return None
        try:
            line = self._stream.readline()
        except (OSError, EOFError, zlib.error) as e:
            raise LogMergeIOError(f"Error reading {self.path}: {e}") from e
        if not line:
            return None
        if line.endswith("\n"):
            line = line[:-1]
        return line

    def __iter__(self):
        while True:
            line = self.next_line()
            if line is None:
                return
            yield line

    def close(self):
        """Release the underlying file. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._stream.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
