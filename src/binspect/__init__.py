"""binspect - object file introspection and relation diffing."""

import logging
from pathlib import Path

from binspect.data import (
    Export,
    Import,
    Relations,
    Dependency,
    Difference,
    ChangeType,
    Information,
)
from binspect.errors import BinspectError, MalformedInput, UnsupportedFormat
from binspect.loader import FileKind, classify
from binspect.analysis import diff, diff_relations
from binspect.extract import (
    extract_exports,
    extract_imports,
    extract_relations,
    extract_information,
    extract_dependencies,
)
from binspect.demangle import try_demangle

__version__ = "0.1.0"
__all__ = [
    "Binary",
    "BinspectError",
    "ChangeType",
    "Dependency",
    "Difference",
    "Export",
    "FileKind",
    "Import",
    "Information",
    "MalformedInput",
    "Relations",
    "UnsupportedFormat",
    "classify",
    "diff",
    "diff_relations",
    "extract_dependencies",
    "extract_exports",
    "extract_imports",
    "extract_information",
    "extract_relations",
    "try_demangle",
]

logger = logging.getLogger(__name__)


class Binary:
    """Main entry point: one object file held in memory.

    The format is classified on construction, so an unrecognized buffer is
    rejected before any extraction runs. Every accessor re-extracts from
    the bytes and returns fresh records.
    """

    def __init__(self, data: bytes, path: str | Path | None = None) -> None:
        self.data = bytes(data)
        self.path = Path(path) if path is not None else None
        self.kind: FileKind = classify(self.data)

    @classmethod
    def load(cls, path: str | Path) -> "Binary":
        """Read a binary from disk."""
        path = Path(path)
        logger.info("Loading %s", path)
        return cls(path.read_bytes(), path)

    def information(self) -> Information:
        return extract_information(self.data)

    def dependencies(self) -> list[Dependency]:
        return extract_dependencies(self.data)

    def imports(self) -> list[Import]:
        return extract_imports(self.data)

    def exports(self) -> list[Export]:
        return extract_exports(self.data)

    def relations(self) -> Relations:
        return extract_relations(self.data)

    def diff(self, other: "Binary") -> list[Difference]:
        """Differences going from this binary to ``other``."""
        return diff_relations(self.relations(), other.relations())

    @classmethod
    def diff_files(cls, old: str | Path, new: str | Path) -> list[Difference]:
        """Load two binaries and compare their relations."""
        return cls.load(old).diff(cls.load(new))

    def __repr__(self) -> str:
        name = self.path.name if self.path else f"<{len(self.data)} bytes>"
        return f"Binary({name}, {self.kind.format.name}, {self.kind.layout.name})"
