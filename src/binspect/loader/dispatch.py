"""File format classification from raw bytes."""

import struct
from dataclasses import dataclass
from enum import IntEnum, auto

from binspect.errors import MalformedInput, UnsupportedFormat
from binspect.loader.macho import (
    FAT_CIGAM,
    FAT_MAGIC,
    MH_CIGAM,
    MH_MAGIC,
    FAT_CIGAM_64,
    FAT_MAGIC_64,
    MH_CIGAM_64,
    MH_MAGIC_64,
    find_fat_slice,
)

ELF_MAGIC = b"\x7fELF"
DOS_MAGIC = b"MZ"
PE_SIGNATURE = b"PE\x00\x00"

# Offset of e_lfanew in the DOS header
E_LFANEW_OFFSET = 0x3C
DOS_HEADER_SIZE = 0x40
FILE_HEADER_SIZE = 20

IMAGE_NT_OPTIONAL_HDR32_MAGIC = 0x10B
IMAGE_NT_OPTIONAL_HDR64_MAGIC = 0x20B


class FileFormat(IntEnum):
    PE = auto()
    ELF = auto()
    MACHO = auto()


class Layout(IntEnum):
    """Extraction path selected for a file."""

    NARROW = auto()  # PE32 image headers
    WIDE = auto()  # PE32+ image headers
    GENERIC = auto()  # Handled uniformly (ELF, Mach-O)


@dataclass(frozen=True)
class FileKind:
    format: FileFormat
    layout: Layout

    @property
    def is_pe(self) -> bool:
        return self.format == FileFormat.PE


def classify(data: bytes) -> FileKind:
    """Determine the format and header layout of a binary.

    Raises:
        MalformedInput: The buffer is too short or its magic is unknown.
        UnsupportedFormat: The format is recognized but cannot be extracted.
    """
    if len(data) < 4:
        raise MalformedInput(f"Buffer too short ({len(data)} bytes)")

    if data[:2] == DOS_MAGIC:
        return FileKind(FileFormat.PE, _classify_pe(data))

    if data[:4] == ELF_MAGIC:
        if len(data) < 16:
            raise MalformedInput("Truncated ELF identification")
        return FileKind(FileFormat.ELF, Layout.GENERIC)

    magic = struct.unpack("<I", data[:4])[0]
    if magic == MH_MAGIC_64:
        return FileKind(FileFormat.MACHO, Layout.GENERIC)
    if magic in (MH_MAGIC, MH_CIGAM, MH_CIGAM_64):
        raise UnsupportedFormat("Only 64-bit little-endian Mach-O files are supported")

    magic = struct.unpack(">I", data[:4])[0]
    if magic in (FAT_MAGIC, FAT_CIGAM, FAT_MAGIC_64, FAT_CIGAM_64):
        if find_fat_slice(data) is None:
            raise UnsupportedFormat("Universal binary has no 64-bit little-endian slice")
        return FileKind(FileFormat.MACHO, Layout.GENERIC)

    raise MalformedInput(f"Unrecognized file magic {data[:4].hex()}")


def _classify_pe(data: bytes) -> Layout:
    """Pick the PE image header variant from the optional header magic."""
    if len(data) < DOS_HEADER_SIZE:
        raise MalformedInput("Truncated DOS header")

    e_lfanew = struct.unpack_from("<I", data, E_LFANEW_OFFSET)[0]
    optional_offset = e_lfanew + len(PE_SIGNATURE) + FILE_HEADER_SIZE
    if optional_offset + 2 > len(data):
        if data[e_lfanew : e_lfanew + 4] == PE_SIGNATURE:
            raise MalformedInput("Truncated PE headers")
        raise UnsupportedFormat("DOS executable without a PE header")

    if data[e_lfanew : e_lfanew + 4] != PE_SIGNATURE:
        raise UnsupportedFormat("DOS executable without a PE header")

    magic = struct.unpack_from("<H", data, optional_offset)[0]
    if magic == IMAGE_NT_OPTIONAL_HDR32_MAGIC:
        return Layout.NARROW
    if magic == IMAGE_NT_OPTIONAL_HDR64_MAGIC:
        return Layout.WIDE
    raise MalformedInput(f"Unknown PE optional header magic {magic:#x}")
