"""Mach-O reader for 64-bit little-endian images."""

import struct
import logging
from dataclasses import dataclass, field
from enum import IntEnum

from binspect.errors import MalformedInput, UnsupportedFormat
from binspect.data.text import cstring_at, decode_name
from binspect.loader.symbols import NList
from binspect.loader.segments import Segment, MachOSection

logger = logging.getLogger(__name__)

MH_MAGIC = 0xFEEDFACE
MH_CIGAM = 0xCEFAEDFE
MH_MAGIC_64 = 0xFEEDFACF
MH_CIGAM_64 = 0xCFFAEDFE

# Universal binaries are big-endian on disk
FAT_MAGIC = 0xCAFEBABE
FAT_CIGAM = 0xBEBAFECA
FAT_MAGIC_64 = 0xCAFEBABF
FAT_CIGAM_64 = 0xBFBAFECA
FAT_MAGICS = (FAT_MAGIC, FAT_CIGAM, FAT_MAGIC_64, FAT_CIGAM_64)

CPU_ARCH_ABI64 = 0x01000000
CPU_ARCH_ABI64_32 = 0x02000000
CPU_TYPE_X86 = 0x00000007
CPU_TYPE_ARM = 0x0000000C
CPU_TYPE_POWERPC = 0x00000012
CPU_TYPE_X86_64 = CPU_TYPE_X86 | CPU_ARCH_ABI64
CPU_TYPE_ARM64 = CPU_TYPE_ARM | CPU_ARCH_ABI64
CPU_TYPE_ARM64_32 = CPU_TYPE_ARM | CPU_ARCH_ABI64_32
CPU_TYPE_POWERPC64 = CPU_TYPE_POWERPC | CPU_ARCH_ABI64

MH_OBJECT = 0x1
MH_EXECUTE = 0x2
MH_CORE = 0x4
MH_DYLIB = 0x6
MH_DYLINKER = 0x7
MH_BUNDLE = 0x8

HEADER_SIZE = 32
LOAD_COMMAND = struct.Struct("<II")
SEGMENT_COMMAND_64 = struct.Struct("<II16sQQQQIIII")
SECTION_64 = struct.Struct("<16s16sQQIIIIIIII")
SYMTAB_COMMAND = struct.Struct("<IIIIII")
DYLIB_COMMAND = struct.Struct("<IIIIII")
ENTRY_POINT_COMMAND = struct.Struct("<IIQQ")
NLIST_64 = struct.Struct("<IBBHQ")


class LoadCommand(IntEnum):
    LC_SYMTAB = 0x02
    LC_LOAD_DYLIB = 0x0C
    LC_SEGMENT_64 = 0x19
    LC_LAZY_LOAD_DYLIB = 0x20
    LC_LOAD_WEAK_DYLIB = 0x80000018
    LC_REEXPORT_DYLIB = 0x8000001F
    LC_LOAD_UPWARD_DYLIB = 0x80000023
    LC_MAIN = 0x80000028


# Each of these appends to the two-level namespace ordinal list
DYLIB_COMMANDS = frozenset(
    {
        LoadCommand.LC_LOAD_DYLIB,
        LoadCommand.LC_LAZY_LOAD_DYLIB,
        LoadCommand.LC_LOAD_WEAK_DYLIB,
        LoadCommand.LC_REEXPORT_DYLIB,
        LoadCommand.LC_LOAD_UPWARD_DYLIB,
    }
)


@dataclass
class MachOHeader:
    """mach_header_64 fields."""

    magic: int
    cputype: int
    cpusubtype: int
    filetype: int
    ncmds: int
    sizeofcmds: int
    flags: int
    reserved: int = 0

    @classmethod
    def parse(cls, data: bytes) -> "MachOHeader":
        if len(data) < HEADER_SIZE:
            raise MalformedInput("Data too small for Mach-O header")
        return cls(*struct.unpack_from("<8I", data))

    @property
    def is_64bit(self) -> bool:
        return self.magic == MH_MAGIC_64


def find_fat_slice(data: bytes) -> bytes | None:
    """Return the first 64-bit little-endian slice of a universal binary."""
    try:
        magic, nfat_arch = struct.unpack_from(">II", data)
        if magic == FAT_MAGIC:
            arch = struct.Struct(">IIIII")
        elif magic == FAT_MAGIC_64:
            arch = struct.Struct(">IIQQII")
        else:
            return None

        for index in range(nfat_arch):
            cputype, _subtype, start, size, *_ = arch.unpack_from(data, 8 + index * arch.size)
            if not cputype & CPU_ARCH_ABI64:
                continue
            candidate = data[start : start + size]
            if candidate[:4] == struct.pack("<I", MH_MAGIC_64):
                return candidate
    except struct.error:
        return None
    return None


@dataclass
class MachOBinary:
    """Load-command view of a thin 64-bit Mach-O image.

    ``dylibs`` holds install names in load-command order, so a library
    ordinal ``n`` in an nlist's ``n_desc`` refers to ``dylibs[n - 1]``.
    """

    header: MachOHeader
    segments: list[Segment] = field(default_factory=list)
    symbols: list[NList] = field(default_factory=list)
    dylibs: list[str] = field(default_factory=list)
    entry_point: int = 0

    @classmethod
    def parse(cls, data: bytes) -> "MachOBinary":
        """Parse a thin image, or the first usable slice of a universal one."""
        if int.from_bytes(data[:4], "big") in FAT_MAGICS:
            thin = find_fat_slice(data)
            if thin is None:
                raise UnsupportedFormat("Universal binary has no 64-bit little-endian slice")
            data = thin

        header = MachOHeader.parse(data)
        if not header.is_64bit:
            raise UnsupportedFormat("Only 64-bit little-endian Mach-O files are supported")

        binary = cls(header=header)
        try:
            binary._walk_load_commands(data)
        except struct.error as e:
            raise MalformedInput(f"Truncated Mach-O load command: {e}") from e
        return binary

    def _walk_load_commands(self, data: bytes) -> None:
        offset = HEADER_SIZE
        symtab = None
        entryoff = None

        for _ in range(self.header.ncmds):
            if offset + LOAD_COMMAND.size > len(data):
                raise MalformedInput("Load commands extend past end of file")

            cmd, cmdsize = LOAD_COMMAND.unpack_from(data, offset)
            if cmdsize < LOAD_COMMAND.size:
                raise MalformedInput(f"Invalid load command size {cmdsize} at {offset:#x}")

            if cmd == LoadCommand.LC_SEGMENT_64:
                self.segments.append(self._read_segment(data, offset))
            elif cmd == LoadCommand.LC_SYMTAB:
                symtab = SYMTAB_COMMAND.unpack_from(data, offset)[2:]
            elif cmd in DYLIB_COMMANDS:
                self.dylibs.append(self._read_dylib_name(data, offset, cmdsize))
            elif cmd == LoadCommand.LC_MAIN:
                entryoff = ENTRY_POINT_COMMAND.unpack_from(data, offset)[2]

            offset += cmdsize

        # LC_MAIN may precede the __TEXT segment command
        if entryoff is not None:
            text = next((s for s in self.segments if s.name == "__TEXT"), None)
            self.entry_point = (text.vmaddr if text else 0) + entryoff

        if symtab is not None:
            self._read_symbols(data, *symtab)

    def _read_segment(self, data: bytes, offset: int) -> Segment:
        (
            _cmd,
            _cmdsize,
            segname,
            vmaddr,
            vmsize,
            fileoff,
            filesize,
            maxprot,
            initprot,
            nsects,
            flags,
        ) = SEGMENT_COMMAND_64.unpack_from(data, offset)

        segment = Segment(
            name=decode_name(segname),
            vmaddr=vmaddr,
            vmsize=vmsize,
            fileoff=fileoff,
            filesize=filesize,
            maxprot=maxprot,
            initprot=initprot,
            flags=flags,
        )
        first = offset + SEGMENT_COMMAND_64.size
        for index in range(nsects):
            segment.sections.append(self._read_section(data, first + index * SECTION_64.size))
        return segment

    @staticmethod
    def _read_section(data: bytes, offset: int) -> MachOSection:
        sectname, segname, addr, size, fileoff, align, _, _, flags, *_ = SECTION_64.unpack_from(
            data, offset
        )
        return MachOSection(
            name=decode_name(sectname),
            segment_name=decode_name(segname),
            address=addr,
            size=size,
            offset=fileoff,
            align=align,
            flags=flags,
        )

    @staticmethod
    def _read_dylib_name(data: bytes, offset: int, cmdsize: int) -> str:
        # dylib.name is an offset from the start of the command
        name_offset = DYLIB_COMMAND.unpack_from(data, offset)[2]
        name = data[offset + name_offset : offset + cmdsize]
        return decode_name(name.split(b"\x00", 1)[0])

    def _read_symbols(self, data: bytes, symoff: int, nsyms: int, stroff: int, strsize: int):
        if symoff + nsyms * NLIST_64.size > len(data):
            raise MalformedInput("Symbol table extends past end of file")

        strtab = data[stroff : stroff + strsize]
        for index in range(nsyms):
            n_strx, n_type, n_sect, n_desc, n_value = NLIST_64.unpack_from(
                data, symoff + index * NLIST_64.size
            )
            if n_strx >= len(strtab):
                logger.debug("Symbol %d string index %#x is out of range", index, n_strx)
            self.symbols.append(
                NList(
                    name=decode_name(cstring_at(strtab, n_strx)),
                    n_type=n_type,
                    n_sect=n_sect,
                    n_desc=n_desc,
                    n_value=n_value,
                )
            )

    @property
    def sections(self) -> list[MachOSection]:
        """All sections in load-command order; n_sect is a 1-based index into this."""
        return [section for segment in self.segments for section in segment.sections]

    def library_name(self, ordinal: int) -> str:
        """Resolve a two-level namespace library ordinal to an install name."""
        if 1 <= ordinal <= len(self.dylibs):
            return self.dylibs[ordinal - 1]
        return ""
