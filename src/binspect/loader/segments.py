"""Mach-O segment and section models."""

from dataclasses import dataclass, field

SECTION_TYPE = 0x000000FF
SECTION_ATTRIBUTES = 0xFFFFFF00

# Section types
S_REGULAR = 0x0
S_ZEROFILL = 0x1
S_CSTRING_LITERALS = 0x2
S_GB_ZEROFILL = 0xC
S_THREAD_LOCAL_REGULAR = 0x11
S_THREAD_LOCAL_ZEROFILL = 0x12
S_THREAD_LOCAL_VARIABLES = 0x13
S_THREAD_LOCAL_VARIABLE_POINTERS = 0x14
S_THREAD_LOCAL_INIT_FUNCTION_POINTERS = 0x15

# Section attributes
S_ATTR_PURE_INSTRUCTIONS = 0x80000000
S_ATTR_DEBUG = 0x02000000
S_ATTR_SOME_INSTRUCTIONS = 0x00000400


@dataclass
class MachOSection:
    """A section_64 entry of an LC_SEGMENT_64 command."""

    name: str
    segment_name: str
    address: int
    size: int
    offset: int
    align: int
    flags: int

    @property
    def section_type(self) -> int:
        return self.flags & SECTION_TYPE

    @property
    def attributes(self) -> int:
        return self.flags & SECTION_ATTRIBUTES

    @property
    def has_instructions(self) -> bool:
        return bool(self.attributes & (S_ATTR_PURE_INSTRUCTIONS | S_ATTR_SOME_INSTRUCTIONS))


@dataclass
class Segment:
    """Represents a Mach-O segment (e.g., __TEXT, __DATA)."""

    name: str
    vmaddr: int
    vmsize: int
    fileoff: int
    filesize: int
    maxprot: int
    initprot: int
    flags: int
    sections: list[MachOSection] = field(default_factory=list)
