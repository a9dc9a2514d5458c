"""Canonical, format-independent records."""

from binspect.data.info import (
    Symbol,
    Section,
    PdbInfo,
    ObjectKind,
    Endianness,
    SymbolKind,
    Information,
    SectionKind,
    SymbolScope,
    Architecture,
    SymbolSection,
    SymbolSectionKind,
)
from binspect.data.flags import CoffFileFlags, CoffSectionFlags
from binspect.data.relations import (
    Export,
    Import,
    Relations,
    Dependency,
    ForwardType,
    ExportTarget,
    ForwardByName,
    ForwardByOrdinal,
)
from binspect.data.difference import ChangeType, Difference, ChangedData

__all__ = [
    "Architecture",
    "ChangeType",
    "ChangedData",
    "CoffFileFlags",
    "CoffSectionFlags",
    "Dependency",
    "Difference",
    "Endianness",
    "Export",
    "ExportTarget",
    "ForwardByName",
    "ForwardByOrdinal",
    "ForwardType",
    "Import",
    "Information",
    "ObjectKind",
    "PdbInfo",
    "Relations",
    "Section",
    "SectionKind",
    "Symbol",
    "SymbolKind",
    "SymbolScope",
    "SymbolSection",
    "SymbolSectionKind",
]
