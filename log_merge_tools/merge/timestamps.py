"""
Timestamp extraction - parse the leading timestamp of a log line.

Two format styles are accepted:

    strftime style          %Y-%m-%d %H:%M:%S,%f
    SimpleDateFormat style  yyyy-MM-dd HH:mm:ss,SSS

Both are compiled into one anchored regular expression, so a line is only
inspected from its first character up to the end of the timestamp prefix.
A strftime-style prefix is then converted with datetime.strptime, a Java
style one is assembled from its fields.
A line without a matching prefix (or with an impossible date such as
February 30th) yields None and is treated as a continuation line.

Supported fields:

    strftime   java      meaning
    %Y         yyyy      4-digit year
    %y         yy        2-digit year (69-99 -> 19xx, 00-68 -> 20xx)
    %m         MM / M    month 01-12
    %d         dd / d    day of month
    %H         HH / H    hour 00-23
    %M         mm / m    minute
    %S         ss / s    second
    %f                   fraction of a second, 1-6 digits
               S...S     milliseconds, as many digits as S letters
                         (as in SimpleDateFormat, ss.S on "00.5" is 5 ms)
    %%         ''        literal percent / literal quote

Everything else is matched literally. Java text in single quotes
('T') is literal as well.
"""

import re
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from .errors import InvalidConfigurationError

STRFTIME_FIELDS = {
    "Y": ("year", r"\d{4}"),
    "y": ("year2", r"\d{2}"),
    "m": ("month", r"\d{2}"),
    "d": ("day", r"\d{2}"),
    "H": ("hour", r"\d{2}"),
    "M": ("minute", r"\d{2}"),
    "S": ("second", r"\d{2}"),
    "f": ("fraction", r"\d{1,6}"),
}

# letter -> (field, {count: regex}); a missing count means "not supported"
JAVA_FIELDS = {
    "y": ("year", {4: r"\d{4}"}),
    "M": ("month", {1: r"\d{1,2}", 2: r"\d{2}"}),
    "d": ("day", {1: r"\d{1,2}", 2: r"\d{2}"}),
    "H": ("hour", {1: r"\d{1,2}", 2: r"\d{2}"}),
    "m": ("minute", {1: r"\d{1,2}", 2: r"\d{2}"}),
    "s": ("second", {1: r"\d{1,2}", 2: r"\d{2}"}),
}


def _strftime_tokens(fmt: str) -> List[Tuple[Optional[str], str]]:
    tokens = []
    i = 0
    while i < len(fmt):
        char = fmt[i]
        if char != "%":
            tokens.append((None, re.escape(char)))
            i += 1
            continue
        if i + 1 >= len(fmt):
            raise InvalidConfigurationError(f"Dangling '%' at end of timestamp format: {fmt!r}")
        directive = fmt[i + 1]
        if directive == "%":
            tokens.append((None, "%"))
        elif directive in STRFTIME_FIELDS:
            tokens.append(STRFTIME_FIELDS[directive])
        else:
            raise InvalidConfigurationError(
                f"Unsupported directive '%{directive}' in timestamp format: {fmt!r}"
            )
        i += 2
    return tokens


def _java_tokens(fmt: str) -> List[Tuple[Optional[str], str]]:
    tokens = []
    i = 0
    while i < len(fmt):
        char = fmt[i]
        if char == "'":
            end = fmt.find("'", i + 1)
            if end == -1:
                raise InvalidConfigurationError(f"Unterminated quote in timestamp format: {fmt!r}")
            # '' is an escaped single quote
            literal = fmt[i + 1 : end] if end > i + 1 else "'"
            tokens.append((None, re.escape(literal)))
            i = end + 1
            continue
        if not ("a" <= char <= "z" or "A" <= char <= "Z"):
            tokens.append((None, re.escape(char)))
            i += 1
            continue

        count = 1
        while i + count < len(fmt) and fmt[i + count] == char:
            count += 1
        i += count

        if char == "S":
            tokens.append(("millis", r"\d{%d}" % count))
        elif char == "y" and count == 2:
            tokens.append(("year2", r"\d{2}"))
        elif char in JAVA_FIELDS and count in JAVA_FIELDS[char][1]:
            field, widths = JAVA_FIELDS[char]
            tokens.append((field, widths[count]))
        else:
            raise InvalidConfigurationError(
                f"Unsupported pattern letters '{char * count}' in timestamp format: {fmt!r}"
            )
    return tokens


def compile_timestamp_format(fmt: str) -> "re.Pattern":
    """
    Compile a timestamp format into an anchored regex with named groups.

    Raises:
        InvalidConfigurationError: If the format is empty, uses unsupported
            fields, repeats a field or contains no date/time field at all
    """
    if not fmt:
        raise InvalidConfigurationError("Timestamp format must not be empty")

    tokens = _strftime_tokens(fmt) if "%" in fmt else _java_tokens(fmt)

    seen = set()
    parts = []
    for field, regex in tokens:
        if field is None:
            parts.append(regex)
            continue
        key = "year" if field == "year2" else field
        if key in seen:
            raise InvalidConfigurationError(f"Field '{key}' appears twice in timestamp format: {fmt!r}")
        seen.add(key)
        parts.append(f"(?P<{field}>{regex})")

    if not seen:
        raise InvalidConfigurationError(f"Timestamp format has no date/time fields: {fmt!r}")
    return re.compile("".join(parts))


class TimestampExtractor:
    """
    Parses the timestamp prefix of log lines for one configured format.

    A single instance is shared by every source of a merge run.
    """

    def __init__(self, fmt: str):
        self.format = fmt
        self.strftime_style = "%" in fmt
        self._pattern = compile_timestamp_format(fmt)

    def extract(self, line: str) -> Optional[datetime]:
        """Return the timestamp at the start of ``line``, or None."""
        match = self._pattern.match(line)
        if match is None:
            return None
        try:
            if self.strftime_style:
                return datetime.strptime(match.group(0), self.format)
            return self._from_java_fields(match.groupdict())
        except ValueError:
            return None

    @staticmethod
    def _from_java_fields(fields) -> datetime:
        if "year2" in fields:
            short = int(fields["year2"])
            year = 2000 + short if short < 69 else 1900 + short
        else:
            year = int(fields.get("year", 1900))

        timestamp = datetime(
            year,
            int(fields.get("month", 1)),
            int(fields.get("day", 1)),
            int(fields.get("hour", 0)),
            int(fields.get("minute", 0)),
            int(fields.get("second", 0)),
        )
        # S is a millisecond count whatever the number of letters
        if fields.get("millis"):
            timestamp += timedelta(milliseconds=int(fields["millis"]))
        return timestamp

    def __repr__(self):
        return f"TimestampExtractor({self.format!r})"
