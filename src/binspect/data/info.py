"""Canonical whole-file metadata records."""

from dataclasses import dataclass
from enum import IntEnum, auto

from binspect.data.flags import CoffFileFlags, CoffSectionFlags


class Architecture(IntEnum):
    """Machine type of the object file."""

    UNKNOWN = auto()
    AARCH64 = auto()
    AARCH64_ILP32 = auto()
    ARM = auto()
    I386 = auto()
    X86_64 = auto()
    X86_64_X32 = auto()
    MIPS = auto()
    MIPS64 = auto()
    POWERPC = auto()
    POWERPC64 = auto()
    RISCV32 = auto()
    RISCV64 = auto()
    S390X = auto()
    SPARC64 = auto()
    LOONGARCH64 = auto()


class Endianness(IntEnum):
    LITTLE = auto()
    BIG = auto()


class ObjectKind(IntEnum):
    """What the object file is for."""

    UNKNOWN = auto()
    RELOCATABLE = auto()  # .o / .obj
    EXECUTABLE = auto()
    DYNAMIC = auto()  # Shared library / DLL / dylib
    CORE = auto()


class SectionKind(IntEnum):
    """Coarse classification of section contents."""

    UNKNOWN = auto()
    TEXT = auto()  # Executable code
    DATA = auto()  # Writable initialized data
    READ_ONLY_DATA = auto()
    UNINITIALIZED_DATA = auto()  # .bss / __zerofill
    TLS = auto()
    DEBUG = auto()
    NOTE = auto()
    LINKER = auto()  # Linker directives (.drectve)
    METADATA = auto()  # Symbol/string/relocation tables
    OTHER = auto()


class SymbolKind(IntEnum):
    UNKNOWN = auto()
    TEXT = auto()
    DATA = auto()
    SECTION = auto()
    FILE = auto()
    LABEL = auto()
    TLS = auto()


class SymbolScope(IntEnum):
    """Visibility of a symbol."""

    UNKNOWN = auto()  # Undefined or not determinable
    COMPILATION = auto()  # Local to its compilation unit
    LINKAGE = auto()  # Visible to the static linker only
    DYNAMIC = auto()  # Visible to the dynamic linker


class SymbolSectionKind(IntEnum):
    UNKNOWN = auto()
    NONE = auto()
    UNDEFINED = auto()
    ABSOLUTE = auto()
    COMMON = auto()
    SECTION = auto()


@dataclass(frozen=True)
class SymbolSection:
    """Where a symbol is defined.

    For ``SECTION`` the ``index`` is a 0-based position in the
    ``Information.sections`` tuple produced by the same extraction.
    """

    kind: SymbolSectionKind
    index: int | None = None

    @classmethod
    def section(cls, index: int) -> "SymbolSection":
        return cls(SymbolSectionKind.SECTION, index)

    @classmethod
    def undefined(cls) -> "SymbolSection":
        return cls(SymbolSectionKind.UNDEFINED)

    @classmethod
    def absolute(cls) -> "SymbolSection":
        return cls(SymbolSectionKind.ABSOLUTE)

    @classmethod
    def common(cls) -> "SymbolSection":
        return cls(SymbolSectionKind.COMMON)

    @classmethod
    def none(cls) -> "SymbolSection":
        return cls(SymbolSectionKind.NONE)

    @classmethod
    def unknown(cls) -> "SymbolSection":
        return cls(SymbolSectionKind.UNKNOWN)

    def __str__(self) -> str:
        if self.kind == SymbolSectionKind.SECTION:
            return f"Section({self.index})"
        return self.kind.name.capitalize()


@dataclass(frozen=True)
class PdbInfo:
    """CodeView record pointing at a PDB file."""

    age: int
    guid: str
    path: str


@dataclass(frozen=True)
class Section:
    name: str
    kind: SectionKind
    address: int
    size: int
    segment_name: str | None = None
    coff_section_flags: CoffSectionFlags | None = None


@dataclass(frozen=True)
class Symbol:
    name: str
    address: int
    size: int
    kind: SymbolKind
    scope: SymbolScope
    section: SymbolSection

    def __repr__(self) -> str:
        return f"Symbol({self.name!r}, {self.address:#x}, {self.kind.name.lower()})"


@dataclass(frozen=True)
class Information:
    """Whole-file summary of one object file."""

    architecture: Architecture
    endianness: Endianness
    is_64: bool
    kind: ObjectKind
    has_debug_symbols: bool
    entry_address: int
    coff_file_flags: CoffFileFlags | None = None
    pdb_info: PdbInfo | None = None
    sections: tuple[Section, ...] = ()
    symbols: tuple[Symbol, ...] = ()

    def section_of(self, symbol: Symbol) -> Section | None:
        """Resolve a symbol's section reference."""
        if symbol.section.kind != SymbolSectionKind.SECTION:
            return None
        return self.sections[symbol.section.index]
