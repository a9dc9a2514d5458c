"""Mach-O symbol table entries."""

from dataclasses import dataclass

N_STAB = 0xE0  # Debugging (stab) entry
N_PEXT = 0x10  # Private external
N_TYPE = 0x0E
N_EXT = 0x01

# N_TYPE values
N_UNDF = 0x0
N_ABS = 0x2
N_SECT = 0xE
N_PBUD = 0xC
N_INDR = 0xA

NO_SECT = 0

# Two-level namespace library ordinals with special meaning
SELF_LIBRARY_ORDINAL = 0x00
DYNAMIC_LOOKUP_ORDINAL = 0xFE
EXECUTABLE_ORDINAL = 0xFF


@dataclass(frozen=True)
class NList:
    """One nlist_64 record with its resolved name."""

    name: str
    n_type: int
    n_sect: int
    n_desc: int
    n_value: int

    @property
    def is_stab(self) -> bool:
        return bool(self.n_type & N_STAB)

    @property
    def type_bits(self) -> int:
        return self.n_type & N_TYPE

    @property
    def is_external(self) -> bool:
        return bool(self.n_type & N_EXT)

    @property
    def is_private_external(self) -> bool:
        return bool(self.n_type & N_PEXT)

    @property
    def is_undefined(self) -> bool:
        return self.type_bits == N_UNDF

    @property
    def is_common(self) -> bool:
        return self.is_undefined and self.is_external and self.n_value != 0

    @property
    def library_ordinal(self) -> int:
        """GET_LIBRARY_ORDINAL(n_desc)."""
        return (self.n_desc >> 8) & 0xFF

    def __repr__(self) -> str:
        return f"NList({self.name!r}, {self.n_value:#x}, type={self.n_type:#x})"
