#!/usr/bin/env python3
"""
Merge Log Files - Chronological k-way merge of timestamped log files

This script merges multiple log files, each already ordered by the timestamp
at the start of its lines, into one chronologically ordered stream. Inputs
can be plain or gzip-compressed text; compression is detected from the gzip
magic bytes, not from the file name.

Lines that do not start with a timestamp (stack traces, wrapped messages)
are continuation lines: they stay glued to the timestamped line before them
and are emitted together with it.

Usage Examples:
    # Merge two logs to stdout
    merge-logs -t '%Y-%m-%d %H:%M:%S' app.log worker.log

    # Java-style pattern, millisecond precision
    merge-logs -t 'yyyy-MM-dd HH:mm:ss.SSS' app.log worker.log.gz

    # Tag every line with the input ordinal: "[0] 2024-01-01 ..."
    merge-logs -t '%Y-%m-%d %H:%M:%S' -m app.log worker.log

    # Tag with file names and a custom delimiter: "[app.log] | 2024-01-01 ..."
    merge-logs -t '%Y-%m-%d %H:%M:%S' -m --marker-label name -d ' | ' app.log worker.log

    # Merge a whole directory (recursively, sorted by path) into a gzip file
    merge-logs -t '%Y-%m-%d %H:%M:%S' -o merged.log.gz -z /var/log/myapp/ --exclude '*.tmp'

Ordering:
    - Groups are emitted by ascending timestamp
    - Equal timestamps: the input listed first wins
    - Leading lines without timestamp sort before everything else

Performance:
    - Time Complexity: O(N log k) where N is total lines, k is number of files
    - Space Complexity: O(k) groups held in memory

Exit status is 1 on any error; the error kind is printed to stderr.
"""

import argparse
import fnmatch
import gzip
import heapq
import os
import sys
from contextlib import contextmanager
from typing import Iterator, List, Optional, TextIO, Tuple

from .errors import (
    InvalidConfigurationError,
    LogMergeError,
    LogMergeIOError,
    UnsupportedEncodingError,
)
from .line_source import LineSource, check_encoding
from .merge_source import MergeSource
from .timestamps import TimestampExtractor

MARKER_LABELS = ("index", "name")


def should_exclude(filename, exclude_patterns):
    """
    Check if a filename matches any exclusion pattern.

    Args:
        filename: Name of the file to check (basename only)
        exclude_patterns: List of glob-style patterns to match against

    Returns:
        tuple: (should_exclude: bool, matched_pattern: str or None)
    """
    if not exclude_patterns:
        return False, None

    basename = os.path.basename(filename)
    for pattern in exclude_patterns:
        if fnmatch.fnmatch(basename, pattern):
            return True, pattern
    return False, None


def log_progress(message, verbose=False):
    """Log progress message to stderr if verbose is enabled."""
    if verbose:
        print(message, file=sys.stderr)


def log_warning(message):
    print(f"Warning: {message}", file=sys.stderr)


def get_all_files(paths, exclude_patterns=None, verbose=False):
    """
    Expand the given paths into the ordered list of files to merge.

    Files are yielded in argument order. Directories are walked recursively
    and their files yielded in sorted path order, so that input indexes
    (tie-break priority and markers) are stable between runs.

    Paths that are neither a file nor a directory are yielded unchanged and
    left for LineSource.open to report as missing.
    """
    for path in paths:
        if os.path.isdir(path):
            log_progress(f"[DISCOVER] Scanning directory: {path}", verbose)
            found = []
            for root, _, files in os.walk(path):
                for f in files:
                    found.append(os.path.join(root, f))
            included = 0
            for full_path in sorted(found):
                excluded, pattern = should_exclude(full_path, exclude_patterns)
                if excluded:
                    log_progress(f"[EXCLUDE] {os.path.basename(full_path)} (matches: {pattern})", verbose)
                    continue
                included += 1
                yield full_path
            log_progress(
                f"[DISCOVER] Directory {path}: {len(found)} found, "
                f"{len(found) - included} excluded, {included} included",
                verbose,
            )
        else:
            excluded, pattern = should_exclude(path, exclude_patterns)
            if excluded:
                log_progress(f"[EXCLUDE] {os.path.basename(path)} (matches: {pattern})", verbose)
                continue
            yield path


def marker_for(index: int, path: str, marker_label: str = "index") -> str:
    """Marker text of the input at ``index``: its ordinal or its base name."""
    if marker_label == "name":
        return os.path.basename(path)
    return str(index)


def open_sources(files, extractor, encoding="utf-8", marker_label="index", verbose=False) -> List[MergeSource]:
    """
    Open one MergeSource per file, in order.

    If any file fails to open, the sources opened so far are closed before
    the error propagates.
    """
    sources = []
    try:
        for index, path in enumerate(files):
            line_source = LineSource.open(path, encoding=encoding)
            log_progress(
                f"[OPEN] {index}: {path}{' (gzip)' if line_source.compressed else ''}",
                verbose,
            )
            sources.append(MergeSource(index, marker_for(index, path, marker_label), line_source, extractor))
    except BaseException:
        close_sources(sources)
        raise
    return sources


def close_sources(sources, verbose=False):
    """Close every source; close failures never propagate."""
    for source in sources:
        if not source.closed:
            log_progress(f"[CLOSE] {source.index}: {source.line_source.path}", verbose)
        source.close()


@contextmanager
def open_output(output_file: Optional[str], gzipped: bool = False, encoding: str = "utf-8") -> Iterator[TextIO]:
    """
    Open the output destination for writing text.

    '-' means stdout, which is never closed here. It is switched to
    ``encoding`` for the duration of the merge and switched back afterwards.
    Gzip compression only applies to a real output file.
    """
    if output_file == "-" or output_file is None:
        if gzipped:
            log_warning("--gzip ignored when writing to stdout")
        stdout = sys.stdout
        if not hasattr(stdout, "reconfigure"):
            # in-memory text stream, nothing to encode
            yield stdout
            return

        previous_encoding, previous_errors = stdout.encoding, stdout.errors
        try:
            stdout.reconfigure(encoding=encoding, errors="strict")
        except OSError as e:
            raise LogMergeIOError(f"Cannot write to stdout: {e}") from e

        try:
            yield stdout
        except BaseException:
            try:
                stdout.reconfigure(encoding=previous_encoding, errors=previous_errors)
            except (OSError, UnicodeError):
                pass
            raise

        try:
            stdout.reconfigure(encoding=previous_encoding, errors=previous_errors)
        except OSError as e:
            raise LogMergeIOError(f"Error writing to stdout: {e}") from e
        return

    try:
        if gzipped:
            out = gzip.open(output_file, "wt", encoding=encoding)
        else:
            out = open(output_file, "w", encoding=encoding)
    except OSError as e:
        raise LogMergeIOError(f"Cannot open output {output_file}: {e}") from e

    try:
        yield out
    except BaseException:
        try:
            out.close()
        except (OSError, UnicodeError):
            pass
        raise

    try:
        out.close()
    except UnicodeError as e:
        raise UnsupportedEncodingError(f"Cannot encode output as {encoding}: {e}") from e
    except OSError as e:
        raise LogMergeIOError(f"Error closing output {output_file}: {e}") from e


def merge_sources(sources: List[MergeSource], out: TextIO, marker: bool = False, delimiter: str = " ") -> Tuple[int, int]:
    """
    Stream the groups of all sources to ``out`` in timestamp order.

    A min-heap holds the sort key of each source's pending group. Only the
    source that was just drained is peeked again, the others keep their
    lookahead. The output is flushed after every group.

    Args:
        sources: MergeSources in input order (index = tie-break priority)
        out: Text stream to write to
        marker: Prefix every line with "[<marker>]<delimiter>"
        delimiter: Text between the marker and the line

    Returns:
        tuple: (groups_written, lines_written)

    Raises:
        LogMergeIOError: On any read or write failure
        UnsupportedEncodingError: If a line cannot be encoded for ``out``
    """
    heap = []
    for source in sources:
        if source.has_pending():
            heapq.heappush(heap, (source.sort_key(), source.index))

    by_index = {source.index: source for source in sources}
    groups_written = 0
    lines_written = 0

    while heap:
        _, index = heapq.heappop(heap)
        source = by_index[index]
        prefix = f"[{source.marker}]{delimiter}" if marker else ""

        try:
            for line in source.drain_lines():
                out.write(prefix + line + "\n")
                lines_written += 1
            out.flush()
        except UnicodeError as e:
            raise UnsupportedEncodingError(f"Cannot encode output line from {source.marker}: {e}") from e
        except OSError as e:
            raise LogMergeIOError(f"Error writing output: {e}") from e
        groups_written += 1

        if source.has_pending():
            heapq.heappush(heap, (source.sort_key(), source.index))

    return groups_written, lines_written


def merge_log_files(
    files,
    output_file="-",
    timestamp_format="%Y-%m-%d %H:%M:%S",
    marker=False,
    delimiter=" ",
    gzipped_output=False,
    encoding="utf-8",
    marker_label="index",
    verbose=False,
):
    """
    Merge timestamp-ordered log files into ``output_file``.

    Configuration is validated before anything is opened, and every input
    is opened before the output, so a bad configuration or a missing input
    leaves no output file behind. Inputs are always closed on the way out.

    Args:
        files: Ordered list of input paths (plain or gzip)
        output_file: Output path, or '-' for stdout
        timestamp_format: strftime or SimpleDateFormat-style pattern
        marker: Prefix lines with their source marker
        delimiter: Separator between marker and line
        gzipped_output: Gzip the output file
        encoding: Text encoding of inputs and output file
        marker_label: 'index' (input ordinal) or 'name' (file base name)
        verbose: Log progress to stderr

    Returns:
        tuple: (groups_written, lines_written)

    Raises:
        InvalidConfigurationError: Empty input list, bad format or label
        LogFileNotFoundError: An input cannot be found or read
        UnsupportedEncodingError: Unknown encoding
        LogMergeIOError: Any other read or write failure
    """
    files = list(files)
    if not files:
        raise InvalidConfigurationError("No log files to merge")
    if marker_label not in MARKER_LABELS:
        raise InvalidConfigurationError(f"Unknown marker label: {marker_label}")
    extractor = TimestampExtractor(timestamp_format)
    encoding = check_encoding(encoding)

    log_progress(f"[MERGE] Starting merge of {len(files)} files...", verbose)
    sources = open_sources(files, extractor, encoding, marker_label, verbose)
    try:
        with open_output(output_file, gzipped_output, encoding) as out:
            groups_written, lines_written = merge_sources(sources, out, marker, delimiter)
    finally:
        close_sources(sources, verbose)

    log_progress(f"[MERGE] Complete: {groups_written} groups, {lines_written} lines written", verbose)
    return groups_written, lines_written


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Merge timestamp-ordered log files (plain or gzip) into one chronological stream.",
        epilog="Examples:\n"
        "  merge-logs -t '%Y-%m-%d %H:%M:%S' app.log worker.log\n"
        "  merge-logs -t 'yyyy-MM-dd HH:mm:ss.SSS' -m -d ' | ' app.log worker.log.gz\n"
        "  merge-logs -t '%Y-%m-%d %H:%M:%S' -o merged.log.gz -z /var/log/myapp/",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("paths", nargs="+", help="Log files or directories, in priority order")
    parser.add_argument(
        "-t",
        "--timestamp-format",
        required=True,
        help="Format of the leading timestamp, strftime ('%%Y-%%m-%%d %%H:%%M:%%S') "
        "or SimpleDateFormat style ('yyyy-MM-dd HH:mm:ss.SSS')",
    )
    parser.add_argument(
        "-m",
        "--marker",
        action="store_true",
        help="Prefix every line with [<marker>]<delimiter>",
    )
    parser.add_argument(
        "--marker-label",
        choices=MARKER_LABELS,
        default="index",
        help="Marker text: input ordinal (default) or file base name",
    )
    parser.add_argument(
        "-d",
        "--delimiter",
        default=" ",
        help="Separator between marker and line (default: single space)",
    )
    parser.add_argument("-o", "--output", default="-", help="Output file (default: '-' for stdout)")
    parser.add_argument("-z", "--gzip", action="store_true", help="Gzip-compress the output file")
    parser.add_argument("-e", "--encoding", default="utf-8", help="Text encoding (default: utf-8)")
    parser.add_argument(
        "--exclude",
        action="append",
        dest="exclude_patterns",
        metavar="PATTERN",
        help="Exclude files matching glob pattern (can be used multiple times)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output to stderr")
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress progress output on stderr (overrides --verbose)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for command-line usage."""
    args = parse_args(argv)
    verbose = args.verbose and not args.quiet

    try:
        files = list(get_all_files(args.paths, args.exclude_patterns, verbose))
        groups_written, lines_written = merge_log_files(
            files,
            args.output,
            timestamp_format=args.timestamp_format,
            marker=args.marker,
            delimiter=args.delimiter,
            gzipped_output=args.gzip,
            encoding=args.encoding,
            marker_label=args.marker_label,
            verbose=verbose,
        )
    except KeyboardInterrupt:
        print("\n# Interrupted by user", file=sys.stderr)
        sys.exit(1)
    except LogMergeError as e:
        print(f"Error ({e.kind}): {e}", file=sys.stderr)
        sys.exit(1)

    log_progress(f"# Merged {len(files)} files: {groups_written} groups, {lines_written} lines", verbose)


if __name__ == "__main__":
    main()
