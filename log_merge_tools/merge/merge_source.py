"""
Merge sources - one input file seen as a sequence of timestamped groups.

A group is a timestamped line followed by the continuation lines (lines
without a parseable timestamp) that come right after it. The merge engine
only ever compares the timestamp of each source's next group and emits
whole groups, so stack traces and wrapped messages are never split.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from .line_source import LineSource
from .timestamps import TimestampExtractor


class MergeSource:
    """
    Lookahead wrapper around a LineSource.

    Holds at most one pending group plus the first line of the group after
    it (read while looking for the end of the pending group).
    """

    def __init__(self, index: int, marker: str, line_source: LineSource, extractor: TimestampExtractor):
        self.index = index
        self.marker = marker
        self.line_source = line_source
        self.extractor = extractor

        self._pending_timestamp: Optional[datetime] = None
        self._pending_lines: List[str] = []
        self._next_line: Optional[str] = None
        self._next_timestamp: Optional[datetime] = None
        self._peeked = False

    def _fill(self):
        """Load the next group into the lookahead if it is empty."""
        if self._pending_lines:
            return

        if self._next_line is not None:
            line, timestamp = self._next_line, self._next_timestamp
            self._next_line = self._next_timestamp = None
        else:
            line = self.line_source.next_line()
            if line is None:
                self.close()
                return
            # Only reachable for the first line; a None here starts a
            # group of leading lines without timestamp
            timestamp = self.extractor.extract(line)

        self._pending_timestamp = timestamp
        self._pending_lines = [line]

        while True:
            line = self.line_source.next_line()
            if line is None:
                self.close()
                break
            timestamp = self.extractor.extract(line)
            if timestamp is None:
                self._pending_lines.append(line)
            else:
                self._next_line, self._next_timestamp = line, timestamp
                break

    def has_pending(self) -> bool:
        """True while a group is waiting to be drained."""
        self._fill()
        self._peeked = True
        return bool(self._pending_lines)

    def peek_next_timestamp(self) -> Optional[datetime]:
        """
        Timestamp of the pending group, without consuming it.

        None either means the source is exhausted or the pending group is
        made of leading lines without timestamp; use has_pending() to
        tell them apart.
        """
        self._fill()
        self._peeked = True
        return self._pending_timestamp if self._pending_lines else None

    def sort_key(self) -> Tuple[int, Optional[datetime], int]:
        """
        Ordering key of the pending group.

        Groups without timestamp come before every timestamped group;
        equal timestamps are ordered by input index.
        """
        timestamp = self.peek_next_timestamp()
        if timestamp is None:
            return (0, None, self.index)
        return (1, timestamp, self.index)

    def drain_lines(self) -> List[str]:
        """
        Consume and return the lines of the pending group, then refill.

        Raises:
            RuntimeError: If nothing was peeked or no group is pending
        """
        if not self._peeked or not self._pending_lines:
            raise RuntimeError(f"No pending group to drain for source {self.index} ({self.marker})")
        lines = self._pending_lines
        self._pending_lines = []
        self._pending_timestamp = None
        self._fill()
        return lines

    def close(self):
        """Close the underlying LineSource, ignoring close failures."""
        try:
            self.line_source.close()
        except Exception:
            pass

    @property
    def closed(self) -> bool:
        return self.line_source.closed

    def __repr__(self):
        return f"MergeSource({self.index}, {self.marker!r})"
