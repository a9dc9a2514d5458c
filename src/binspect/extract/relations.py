"""Dependency, import and export extraction."""

import logging

from elftools.common.exceptions import ELFError

from binspect.data import (
    Export,
    Import,
    Relations,
    Dependency,
    ExportTarget,
    ForwardByName,
    ForwardByOrdinal,
)
from binspect.errors import MalformedInput
from binspect.demangle import try_demangle
from binspect.data.text import cstring_at, decode_name
from binspect.loader.pe import load_pe, read_exports, read_imports
from binspect.loader.elf import (
    load_elf,
    symbol_table,
    string_table_data,
    version_libraries,
    symbol_version_indices,
)
from binspect.loader.macho import MachOBinary
from binspect.loader.symbols import (
    N_SECT,
    EXECUTABLE_ORDINAL,
    SELF_LIBRARY_ORDINAL,
    DYNAMIC_LOOKUP_ORDINAL,
)
from binspect.loader.dispatch import Layout, FileKind, FileFormat, classify

logger = logging.getLogger(__name__)

# Library ordinals that do not name an entry of the dylib list
SPECIAL_ORDINALS = (SELF_LIBRARY_ORDINAL, DYNAMIC_LOOKUP_ORDINAL, EXECUTABLE_ORDINAL)

ELF_NON_EXPORT_TYPES = ("STT_SECTION", "STT_FILE")


def extract_dependencies(data: bytes) -> list[Dependency]:
    """Libraries in import order, with adjacent repeats collapsed.

    Only consecutive imports from the same library are merged, so a
    library that appears again after another one is listed again.
    """
    return _collapse_libraries(_import_pairs(data, classify(data)))


def extract_imports(data: bytes) -> list[Import]:
    """One record per imported function, in import table order."""
    pairs = _import_pairs(data, classify(data))
    return [_make_import(library, function) for library, function in pairs]


def extract_exports(data: bytes) -> list[Export]:
    """Exported functions; PE forwarders carry a target instead of an address."""
    return _exports(data, classify(data))


def extract_relations(data: bytes) -> Relations:
    """Dependencies, imports and exports of one binary."""
    kind = classify(data)
    pairs = _import_pairs(data, kind)
    relations = Relations(
        dependencies=tuple(_collapse_libraries(pairs)),
        imports=tuple(_make_import(library, function) for library, function in pairs),
        exports=tuple(_exports(data, kind)),
    )
    logger.info(
        "Extracted %d dependencies, %d imports, %d exports",
        len(relations.dependencies),
        len(relations.imports),
        len(relations.exports),
    )
    return relations


def parse_forwarder(text: str) -> ExportTarget:
    """Split a PE forwarder string such as ``NTDLL.RtlAllocateHeap``.

    The library name may itself contain dots, so the split is at the last
    one. A symbol part of the form ``#<digits>`` forwards by ordinal.
    """
    library, _, symbol = text.rpartition(".")
    if symbol.startswith("#") and symbol[1:].isdigit():
        return ExportTarget(library, ForwardByOrdinal(int(symbol[1:])))
    return ExportTarget(library, ForwardByName(symbol))


def _make_import(library: str, function: str) -> Import:
    return Import(library=library, function=function, function_demangled=try_demangle(function))


def _collapse_libraries(pairs: list[tuple[str, str]]) -> list[Dependency]:
    dependencies: list[Dependency] = []
    previous = None
    for library, _function in pairs:
        if library != previous:
            dependencies.append(Dependency(library))
            previous = library
    return dependencies


def _import_pairs(data: bytes, kind: FileKind) -> list[tuple[str, str]]:
    """(library, function) for every import entry."""
    if kind.format == FileFormat.PE:
        return _pe_imports(data)
    if kind.format == FileFormat.ELF:
        return _elf_imports(data)
    return _macho_imports(data)


def _exports(data: bytes, kind: FileKind) -> list[Export]:
    if kind.layout in (Layout.NARROW, Layout.WIDE):
        return _pe_exports(data)
    if kind.format == FileFormat.ELF:
        return _elf_exports(data)
    return _macho_exports(data)


# PE


def _pe_imports(data: bytes) -> list[tuple[str, str]]:
    pairs = []
    for entry in read_imports(load_pe(data)):
        if entry.ordinal is not None:
            function = f"#{entry.ordinal}"
        else:
            function = decode_name(entry.name)
        pairs.append((decode_name(entry.library), function))
    return pairs


def _pe_exports(data: bytes) -> list[Export]:
    exports = []
    for entry in read_exports(load_pe(data)):
        function = decode_name(entry.name)
        if entry.forwarder is not None:
            target = parse_forwarder(decode_name(entry.forwarder))
            exports.append(Export(None, function, try_demangle(function), target))
        else:
            exports.append(Export(entry.address, function, try_demangle(function)))
    return exports


# ELF


def _elf_dynamic_symbols(elf) -> list[tuple[int, bytes, object]]:
    """(index, raw name, symbol) for every .dynsym entry after the null one."""
    dynsym = symbol_table(elf, ".dynsym")
    if dynsym is None:
        return []

    strtab = string_table_data(elf, dynsym["sh_link"])
    return [
        (index, cstring_at(strtab, symbol["st_name"]), symbol)
        for index, symbol in enumerate(dynsym.iter_symbols())
        if index > 0
    ]


def _elf_imports(data: bytes) -> list[tuple[str, str]]:
    elf = load_elf(data)
    try:
        libraries = version_libraries(elf)
        versions = symbol_version_indices(elf)
        pairs = []
        for index, raw_name, symbol in _elf_dynamic_symbols(elf):
            if symbol["st_shndx"] != "SHN_UNDEF" or not raw_name:
                continue
            version = versions[index] if index < len(versions) else None
            pairs.append((libraries.get(version, ""), decode_name(raw_name)))
        return pairs
    except ELFError as e:
        raise MalformedInput(f"Invalid ELF file: {e}") from e


def _elf_exports(data: bytes) -> list[Export]:
    elf = load_elf(data)
    try:
        exports = []
        for _index, raw_name, symbol in _elf_dynamic_symbols(elf):
            if symbol["st_shndx"] == "SHN_UNDEF" or not raw_name:
                continue
            if symbol["st_info"]["bind"] == "STB_LOCAL":
                continue
            if symbol["st_info"]["type"] in ELF_NON_EXPORT_TYPES:
                continue
            name = decode_name(raw_name)
            exports.append(Export(symbol["st_value"], name, try_demangle(name)))
        return exports
    except ELFError as e:
        raise MalformedInput(f"Invalid ELF file: {e}") from e


# Mach-O


def _macho_imports(data: bytes) -> list[tuple[str, str]]:
    binary = MachOBinary.parse(data)
    pairs = []
    for nlist in binary.symbols:
        if nlist.is_stab or not nlist.is_undefined or not nlist.is_external or nlist.is_common:
            continue
        ordinal = nlist.library_ordinal
        library = "" if ordinal in SPECIAL_ORDINALS else binary.library_name(ordinal)
        pairs.append((library, nlist.name))
    return pairs


def _macho_exports(data: bytes) -> list[Export]:
    binary = MachOBinary.parse(data)
    return [
        Export(nlist.n_value, nlist.name, try_demangle(nlist.name))
        for nlist in binary.symbols
        if not nlist.is_stab
        and nlist.type_bits == N_SECT
        and nlist.is_external
        and not nlist.is_private_external
    ]
