"""Decoding of raw name fields."""

import logging

logger = logging.getLogger(__name__)


def decode_name(raw: bytes | None) -> str:
    """Decode a NUL-terminated name, returning "" when it is not valid UTF-8."""
    if not raw:
        return ""
    raw = raw.split(b"\x00", 1)[0]
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug("Name %r is not valid UTF-8, using empty string", raw)
        return ""


def decode_lossy(raw: bytes | None) -> str:
    """Decode a NUL-terminated string, replacing invalid UTF-8 sequences."""
    if not raw:
        return ""
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


def cstring_at(table: bytes, offset: int) -> bytes:
    """Raw bytes of the NUL-terminated string at ``offset`` in a string table."""
    if offset >= len(table):
        return b""
    end = table.find(b"\x00", offset)
    return table[offset : end if end != -1 else len(table)]
