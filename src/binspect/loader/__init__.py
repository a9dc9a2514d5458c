"""Binary loaders for the supported executable formats."""

from binspect.loader.pe import load_pe
from binspect.loader.elf import load_elf
from binspect.loader.macho import MachOBinary
from binspect.loader.dispatch import Layout, FileKind, FileFormat, classify

__all__ = [
    "FileFormat",
    "FileKind",
    "Layout",
    "MachOBinary",
    "classify",
    "load_elf",
    "load_pe",
]
