"""ELF access on top of pyelftools."""

import io
import logging

from elftools.elf.elffile import ELFFile
from elftools.elf.sections import SymbolTableSection
from elftools.elf.gnuversions import GNUVerSymSection, GNUVerNeedSection
from elftools.common.exceptions import ELFError

from binspect.errors import MalformedInput
from binspect.data.text import cstring_at, decode_name

logger = logging.getLogger(__name__)

# Hidden bit of a .gnu.version entry
VERSYM_HIDDEN = 0x8000


def load_elf(data: bytes) -> ELFFile:
    """Open an in-memory ELF image."""
    try:
        return ELFFile(io.BytesIO(data))
    except ELFError as e:
        raise MalformedInput(f"Invalid ELF file: {e}") from e


def symbol_table(elf: ELFFile, name: str) -> SymbolTableSection | None:
    """Return the named symbol table section (.symtab or .dynsym)."""
    section = elf.get_section_by_name(name)
    if isinstance(section, SymbolTableSection):
        return section
    return None


def version_libraries(elf: ELFFile) -> dict[int, str]:
    """Map a version index to the file named by its version requirement."""
    libraries: dict[int, str] = {}
    for section in elf.iter_sections():
        if not isinstance(section, GNUVerNeedSection):
            continue
        strtab = string_table_data(elf, section["sh_link"])
        for verneed, vernaux_iter in section.iter_versions():
            library = decode_name(cstring_at(strtab, verneed.entry["vn_file"]))
            for vernaux in vernaux_iter:
                libraries[vernaux.entry["vna_other"]] = library
    return libraries


def symbol_version_indices(elf: ELFFile) -> list[int | None]:
    """Version index of every .dynsym entry, None when unversioned."""
    for section in elf.iter_sections():
        if not isinstance(section, GNUVerSymSection):
            continue
        indices: list[int | None] = []
        for entry in section.iter_symbols():
            ndx = entry.entry["ndx"]
            if isinstance(ndx, int):
                indices.append(ndx & ~VERSYM_HIDDEN)
            else:
                # VER_NDX_LOCAL / VER_NDX_GLOBAL
                indices.append(None)
        return indices
    return []


def string_table_data(elf: ELFFile, index) -> bytes:
    """Raw contents of the string table section at ``index``.

    pyelftools decodes names leniently; callers that need to reject
    invalid UTF-8 read the names from these bytes instead.
    """
    if not isinstance(index, int) or index <= 0 or index >= elf.num_sections():
        return b""
    return elf.get_section(index).data()


def section_names_data(elf: ELFFile) -> bytes:
    """Raw contents of the section header string table."""
    index = elf["e_shstrndx"]
    if index == "SHN_XINDEX":
        # Real index is stored in sh_link of the null section header
        index = elf.get_section(0)["sh_link"]
    return string_table_data(elf, index)
