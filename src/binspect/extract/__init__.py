"""Canonical record extraction from raw file bytes."""

from binspect.extract.metadata import extract_information
from binspect.extract.relations import (
    parse_forwarder,
    extract_exports,
    extract_imports,
    extract_relations,
    extract_dependencies,
)

__all__ = [
    "extract_dependencies",
    "extract_exports",
    "extract_imports",
    "extract_information",
    "extract_relations",
    "parse_forwarder",
]
