"""Best-effort symbol name demangling."""

import logging

from symbolic.demangle import demangle_name

logger = logging.getLogger(__name__)


def try_demangle(name: str) -> str:
    """Demangle a C++, MSVC, Rust or Swift symbol name.

    Never fails: names that are not mangled, or that the demangler
    rejects, are returned unchanged.
    """
    if not name:
        return name
    try:
        demangled = demangle_name(name)
    except Exception as e:
        logger.debug("Demangling %r failed: %s", name, e)
        return name
    return demangled or name
