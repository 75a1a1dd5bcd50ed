"""Merge module - Tools for merging multiple timestamp-ordered log files."""

from .errors import (
    InvalidConfigurationError,
    LogFileNotFoundError,
    LogMergeError,
    LogMergeIOError,
    UnsupportedEncodingError,
)
from .line_source import LineSource
from .merge_logs import get_all_files, merge_log_files, merge_sources, open_sources
from .merge_source import MergeSource
from .timestamps import TimestampExtractor

__all__ = [
    "merge_log_files",
    "merge_sources",
    "open_sources",
    "get_all_files",
    "LineSource",
    "MergeSource",
    "TimestampExtractor",
    "LogMergeError",
    "LogFileNotFoundError",
    "UnsupportedEncodingError",
    "LogMergeIOError",
    "InvalidConfigurationError",
]
