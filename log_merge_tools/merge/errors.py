"""
Error kinds raised by the log merge tools.

Every failure is fatal to the whole run. The ``kind`` attribute names the
category reported to the user by the command-line interface.
"""


class LogMergeError(Exception):
    """Base class for all merge failures."""

    kind = "LogMergeError"


class LogFileNotFoundError(LogMergeError):
    """An input path does not exist or cannot be read."""

    kind = "FileNotFound"


class UnsupportedEncodingError(LogMergeError):
    """The requested text encoding is not known to Python."""

    kind = "UnsupportedEncoding"


class LogMergeIOError(LogMergeError):
    """Any other read or write failure, including corrupt gzip data."""

    kind = "IOError"


class InvalidConfigurationError(LogMergeError):
    """Malformed timestamp format or no input files to merge."""

    kind = "InvalidConfiguration"
