"""PE image access on top of pefile.

pefile parses the headers, sections and debug directory and maps RVAs to
file data. The import and export tables are walked here on top of those
RVA accessors, keeping every name as raw bytes; pefile itself drops entries
whose names fail its character checks. The COFF symbol table and the
CodeView record are read here too.
"""

import struct
import logging
import uuid
from dataclasses import dataclass

import pefile

from binspect.errors import MalformedInput
from binspect.data.text import cstring_at

logger = logging.getLogger(__name__)

EXPORT_DIRECTORY_INDEX = pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_EXPORT"]
IMPORT_DIRECTORY_INDEX = pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_IMPORT"]
DEBUG_DIRECTORY_INDEX = pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_DEBUG"]

IMAGE_IMPORT_DESCRIPTOR = struct.Struct("<IIIII")
IMAGE_EXPORT_DIRECTORY = struct.Struct("<IIHHIIIIIII")

IMAGE_DEBUG_TYPE_CODEVIEW = 2
CV_SIGNATURE_RSDS = b"RSDS"
CV_INFO_PDB70 = struct.Struct("<4s16sI")

COFF_SYMBOL = struct.Struct("<8sIhHBB")
COFF_SYMBOL_SIZE = 18

# Special section numbers
IMAGE_SYM_UNDEFINED = 0
IMAGE_SYM_ABSOLUTE = -1
IMAGE_SYM_DEBUG = -2

# Storage classes
IMAGE_SYM_CLASS_EXTERNAL = 2
IMAGE_SYM_CLASS_STATIC = 3
IMAGE_SYM_CLASS_LABEL = 6
IMAGE_SYM_CLASS_FILE = 103
IMAGE_SYM_CLASS_SECTION = 104
IMAGE_SYM_CLASS_WEAK_EXTERNAL = 105

IMAGE_SYM_DTYPE_FUNCTION = 2


@dataclass(frozen=True)
class CoffSymbol:
    """A primary COFF symbol table record (auxiliary records are skipped)."""

    index: int
    name: bytes
    value: int
    section_number: int
    type: int
    storage_class: int
    aux_count: int

    @property
    def is_function(self) -> bool:
        return (self.type >> 4) & 0x3 == IMAGE_SYM_DTYPE_FUNCTION


@dataclass(frozen=True)
class CodeViewRecord:
    """CV_INFO_PDB70 contents."""

    guid: bytes
    age: int
    path: bytes

    @property
    def guid_string(self) -> str:
        """GUID in canonical hyphenated form.

        The first three GUID fields are stored little-endian on disk.
        """
        return str(uuid.UUID(bytes_le=self.guid))


@dataclass(frozen=True)
class ImportEntry:
    """One import lookup table entry; ``name`` is None for imports by ordinal."""

    library: bytes
    name: bytes | None
    ordinal: int | None = None


@dataclass(frozen=True)
class ExportEntry:
    """One used export address table slot."""

    name: bytes
    address: int
    forwarder: bytes | None = None


def load_pe(data: bytes) -> pefile.PE:
    """Parse a PE image with the directories extraction needs."""
    try:
        pe = pefile.PE(data=data, fast_load=True)
        pe.parse_data_directories(directories=[DEBUG_DIRECTORY_INDEX])
    except pefile.PEFormatError as e:
        raise MalformedInput(f"Invalid PE image: {e}") from e

    for warning in pe.get_warnings():
        logger.debug("pefile: %s", warning)
    return pe


def read_string_table(pe: pefile.PE, data: bytes) -> bytes:
    """Return the COFF string table following the symbol table.

    Offsets into the table count its own 4-byte size field.
    """
    offset = pe.FILE_HEADER.PointerToSymbolTable
    count = pe.FILE_HEADER.NumberOfSymbols
    if not offset:
        return b""

    strtab_offset = offset + count * COFF_SYMBOL_SIZE
    if strtab_offset + 4 > len(data):
        return b""
    strtab_size = struct.unpack_from("<I", data, strtab_offset)[0]
    return data[strtab_offset : strtab_offset + strtab_size]


def section_name(raw_name: bytes, strtab: bytes) -> bytes:
    """Resolve a section header name, following "/<offset>" long names."""
    raw_name = raw_name.rstrip(b"\x00")
    if raw_name[:1] == b"/" and raw_name[1:].isdigit():
        return _string_at(strtab, int(raw_name[1:]))
    return raw_name


def read_coff_symbols(pe: pefile.PE, data: bytes) -> list[CoffSymbol]:
    """Read the COFF symbol table referenced by the file header."""
    offset = pe.FILE_HEADER.PointerToSymbolTable
    count = pe.FILE_HEADER.NumberOfSymbols
    if not offset or not count:
        return []

    # The table is optional in images; a bad pointer only loses the symbols
    if offset + count * COFF_SYMBOL_SIZE > len(data):
        logger.debug("COFF symbol table at %#x extends past end of file, ignoring it", offset)
        return []

    strtab = read_string_table(pe, data)
    symbols = []
    index = 0
    while index < count:
        raw_name, value, section_number, sym_type, storage_class, aux_count = (
            COFF_SYMBOL.unpack_from(data, offset + index * COFF_SYMBOL_SIZE)
        )
        symbols.append(
            CoffSymbol(
                index=index,
                name=_coff_symbol_name(raw_name, strtab),
                value=value,
                section_number=section_number,
                type=sym_type,
                storage_class=storage_class,
                aux_count=aux_count,
            )
        )
        index += 1 + aux_count
    return symbols


def _coff_symbol_name(raw_name: bytes, strtab: bytes) -> bytes:
    # Names longer than 8 bytes live in the string table
    if raw_name[:4] == b"\x00\x00\x00\x00":
        return _string_at(strtab, struct.unpack("<I", raw_name[4:])[0])
    return raw_name.rstrip(b"\x00")


def _string_at(strtab: bytes, offset: int) -> bytes:
    if offset >= len(strtab):
        logger.debug("COFF string offset %#x outside string table", offset)
    return cstring_at(strtab, offset)


def read_codeview(pe: pefile.PE, data: bytes) -> CodeViewRecord | None:
    """Return the first RSDS CodeView record of the debug directory."""
    for entry in getattr(pe, "DIRECTORY_ENTRY_DEBUG", []):
        if entry.struct.Type != IMAGE_DEBUG_TYPE_CODEVIEW:
            continue

        offset = entry.struct.PointerToRawData
        size = entry.struct.SizeOfData
        raw = data[offset : offset + size]
        if len(raw) < CV_INFO_PDB70.size or raw[:4] != CV_SIGNATURE_RSDS:
            logger.debug("Skipping non-RSDS CodeView record at %#x", offset)
            continue

        _signature, guid, age = CV_INFO_PDB70.unpack_from(raw)
        return CodeViewRecord(guid=guid, age=age, path=raw[CV_INFO_PDB70.size :])
    return None


def image_base(pe: pefile.PE) -> int:
    return pe.OPTIONAL_HEADER.ImageBase


def _data_directory(pe: pefile.PE, index: int):
    directories = pe.OPTIONAL_HEADER.DATA_DIRECTORY
    if index >= len(directories) or not directories[index].VirtualAddress:
        return None
    return directories[index]


def _read_at_rva(pe: pefile.PE, rva: int, size: int) -> bytes:
    try:
        return pe.get_data(rva, size)
    except pefile.PEFormatError:
        return b""


def read_imports(pe: pefile.PE) -> list[ImportEntry]:
    """Walk the import descriptors and their lookup tables in file order."""
    directory = _data_directory(pe, IMPORT_DIRECTORY_INDEX)
    if directory is None:
        return []

    if pe.PE_TYPE == pefile.OPTIONAL_HEADER_MAGIC_PE_PLUS:
        thunk, ordinal_flag = struct.Struct("<Q"), pefile.IMAGE_ORDINAL_FLAG64
    else:
        thunk, ordinal_flag = struct.Struct("<I"), pefile.IMAGE_ORDINAL_FLAG

    entries = []
    descriptor_rva = directory.VirtualAddress
    while True:
        raw = _read_at_rva(pe, descriptor_rva, IMAGE_IMPORT_DESCRIPTOR.size)
        if len(raw) < IMAGE_IMPORT_DESCRIPTOR.size:
            logger.debug("Import descriptor at RVA %#x is unreadable", descriptor_rva)
            break
        lookup_rva, _timestamp, _chain, name_rva, address_rva = IMAGE_IMPORT_DESCRIPTOR.unpack(raw)
        if not (lookup_rva or name_rva or address_rva):
            break

        library = pe.get_string_at_rva(name_rva, pefile.MAX_DLL_LENGTH) if name_rva else b""
        thunk_rva = lookup_rva or address_rva
        while len(entries) < pefile.MAX_IMPORT_SYMBOLS:
            raw = _read_at_rva(pe, thunk_rva, thunk.size)
            if len(raw) < thunk.size:
                logger.debug("Import thunk at RVA %#x is unreadable", thunk_rva)
                break
            value = thunk.unpack(raw)[0]
            if not value:
                break
            if value & ordinal_flag:
                entries.append(ImportEntry(library, None, value & 0xFFFF))
            else:
                # Skip the two-byte hint in front of the name
                hint_name_rva = value & 0x7FFFFFFF
                name = pe.get_string_at_rva(hint_name_rva + 2, pefile.MAX_IMPORT_NAME_LENGTH)
                entries.append(ImportEntry(library, name))
            thunk_rva += thunk.size
        descriptor_rva += IMAGE_IMPORT_DESCRIPTOR.size
    return entries


def read_exports(pe: pefile.PE) -> list[ExportEntry]:
    """Walk the export address table in ordinal order.

    Slots with a zero address and no name are unused ordinals and are
    skipped. An address inside the export directory is a forwarder string.
    """
    directory = _data_directory(pe, EXPORT_DIRECTORY_INDEX)
    if directory is None:
        return []

    raw = _read_at_rva(pe, directory.VirtualAddress, IMAGE_EXPORT_DIRECTORY.size)
    if len(raw) < IMAGE_EXPORT_DIRECTORY.size:
        logger.debug("Export directory at RVA %#x is unreadable", directory.VirtualAddress)
        return []
    *_, function_count, name_count, functions_rva, names_rva, ordinals_rva = (
        IMAGE_EXPORT_DIRECTORY.unpack(raw)
    )

    name_count = min(name_count, pefile.MAX_SYMBOL_EXPORT_COUNT)
    function_count = min(function_count, pefile.MAX_SYMBOL_EXPORT_COUNT)
    name_rvas = _read_array(pe, names_rva, "<I", name_count)
    slots = _read_array(pe, ordinals_rva, "<H", name_count)
    addresses = _read_array(pe, functions_rva, "<I", function_count)

    names: dict[int, bytes] = {}
    for name_rva, slot in zip(name_rvas, slots):
        names.setdefault(slot, pe.get_string_at_rva(name_rva, pefile.MAX_SYMBOL_NAME_LENGTH))

    start = directory.VirtualAddress
    end = start + directory.Size
    entries = []
    for slot, address in enumerate(addresses):
        if not address and slot not in names:
            continue
        forwarder = None
        if start <= address < end:
            forwarder = pe.get_string_at_rva(address, pefile.MAX_SYMBOL_NAME_LENGTH)
        entries.append(ExportEntry(names.get(slot, b""), address, forwarder))
    return entries


def _read_array(pe: pefile.PE, rva: int, fmt: str, count: int) -> list[int]:
    size = struct.calcsize(fmt)
    raw = _read_at_rva(pe, rva, size * count) if count else b""
    if len(raw) < size * count:
        logger.debug("Table at RVA %#x holds %d of %d entries", rva, len(raw) // size, count)
    raw = raw[: len(raw) - len(raw) % size]
    return [value for (value,) in struct.iter_unpack(fmt, raw)]
