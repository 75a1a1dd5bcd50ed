"""
Log Merge Tools

A Python package for merging timestamp-ordered log files.
Provides a streaming k-way merge of plain or gzip-compressed logs into one
chronological stream, keeping multi-line records (stack traces) together.

Modules:
    merge: Line sources, timestamp extraction and the merge engine
"""

__version__ = "1.0.0"

from .merge.merge_logs import get_all_files, merge_log_files, merge_sources

__all__ = [
    "merge_log_files",
    "merge_sources",
    "get_all_files",
    "__version__",
]
