"""Error types raised by extraction."""


class BinspectError(Exception):
    """Base class for all extraction errors."""


class MalformedInput(BinspectError):
    """The buffer is truncated, has a bad magic, or a table cannot be read."""


class UnsupportedFormat(BinspectError):
    """The file format is recognized but has no extraction path."""
