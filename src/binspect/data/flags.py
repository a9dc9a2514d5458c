"""COFF characteristics bit sets.

Both classes are ``IntFlag`` so a value built from a raw header field keeps
every bit, including reserved and unnamed ones, and converts back to the
same integer.
"""

from enum import IntFlag


class _CoffFlags(IntFlag):
    @classmethod
    def from_bits(cls, bits: int):
        """Build a flag set from the raw characteristics field."""
        return cls(bits)

    def to_bits(self) -> int:
        return int(self)

    def names(self) -> list[str]:
        """Names of the single-bit members set in this value."""
        return [member.name for member in type(self) if self & member.value]

    def __str__(self) -> str:
        names = self.names()
        if not names:
            return f"{int(self):#x}"
        return " | ".join(names)


class CoffFileFlags(_CoffFlags):
    """COFF file header ``Characteristics``."""

    RELOCS_STRIPPED = 0x0001  # No base relocations, must load at preferred base
    EXECUTABLE_IMAGE = 0x0002  # Valid, runnable image
    LINE_NUMS_STRIPPED = 0x0004  # Deprecated
    LOCAL_SYMS_STRIPPED = 0x0008  # Deprecated
    AGGRESSIVE_WS_TRIM = 0x0010  # Obsolete
    LARGE_ADDRESS_AWARE = 0x0020  # Can handle > 2 GB addresses
    RESERVED = 0x0040
    BYTES_REVERSED_LO = 0x0080  # Deprecated
    IS32BIT_MACHINE = 0x0100  # 32-bit word architecture
    DEBUG_STRIPPED = 0x0200  # Debug info removed from the image
    REMOVABLE_RUN_FROM_SWAP = 0x0400
    NET_RUN_FROM_SWAP = 0x0800
    SYSTEM = 0x1000  # System file, not a user program
    DLL = 0x2000  # Dynamic-link library
    UP_SYSTEM_ONLY = 0x4000  # Uniprocessor machines only
    BYTES_REVERSED_HI = 0x8000  # Deprecated


ALIGN_MASK = 0x00F00000
ALIGN_SHIFT = 20


class CoffSectionFlags(_CoffFlags):
    """COFF section header ``Characteristics``.

    Bits 20-23 hold an alignment code rather than independent flags; they
    are kept in the value and decoded by :attr:`alignment`.
    """

    TYPE_NO_PAD = 0x00000008  # Obsolete, object files only
    CNT_CODE = 0x00000020
    CNT_INITIALIZED_DATA = 0x00000040
    CNT_UNINITIALIZED_DATA = 0x00000080
    LNK_OTHER = 0x00000100
    LNK_INFO = 0x00000200  # Comments or other information (.drectve)
    LNK_REMOVE = 0x00000800  # Not part of the image
    LNK_COMDAT = 0x00001000
    GPREL = 0x00008000  # Data referenced through the global pointer
    MEM_PURGEABLE = 0x00020000
    MEM_LOCKED = 0x00040000
    MEM_PRELOAD = 0x00080000
    LNK_NRELOC_OVFL = 0x01000000  # Extended relocations
    MEM_DISCARDABLE = 0x02000000
    MEM_NOT_CACHED = 0x04000000
    MEM_NOT_PAGED = 0x08000000
    MEM_SHARED = 0x10000000
    MEM_EXECUTE = 0x20000000
    MEM_READ = 0x40000000
    MEM_WRITE = 0x80000000

    @property
    def alignment(self) -> int | None:
        """Alignment in bytes, or None when no alignment code is set."""
        code = (int(self) & ALIGN_MASK) >> ALIGN_SHIFT
        if code == 0 or code > 14:
            return None
        return 1 << (code - 1)

    def names(self) -> list[str]:
        names = super().names()
        if self.alignment is not None:
            names.append(f"ALIGN_{self.alignment}BYTES")
        return names
