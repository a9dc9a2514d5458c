"""Whole-file metadata extraction.

Each format path reads its native structures through the loaders and maps
them onto the canonical :class:`~binspect.data.Information` record. Symbol
section references are validated against the section tuple built in the
same call, so ``Information.section_of`` never indexes out of range.
"""

import logging

from elftools.common.exceptions import ELFError

from binspect.data import (
    Symbol,
    Section,
    PdbInfo,
    ObjectKind,
    Endianness,
    SymbolKind,
    Information,
    SectionKind,
    SymbolScope,
    Architecture,
    CoffFileFlags,
    SymbolSection,
    CoffSectionFlags,
)
from binspect.errors import MalformedInput
from binspect.data.text import cstring_at, decode_lossy, decode_name
from binspect.loader.pe import (
    IMAGE_SYM_DEBUG,
    IMAGE_SYM_ABSOLUTE,
    IMAGE_SYM_UNDEFINED,
    IMAGE_SYM_CLASS_FILE,
    IMAGE_SYM_CLASS_LABEL,
    IMAGE_SYM_CLASS_STATIC,
    IMAGE_SYM_CLASS_SECTION,
    IMAGE_SYM_CLASS_EXTERNAL,
    IMAGE_SYM_CLASS_WEAK_EXTERNAL,
    CoffSymbol,
    load_pe,
    image_base,
    section_name,
    read_codeview,
    read_coff_symbols,
    read_string_table,
)
from binspect.loader.elf import (
    load_elf,
    symbol_table,
    string_table_data,
    section_names_data,
)
from binspect.loader.macho import (
    MH_CORE,
    MH_DYLIB,
    MH_BUNDLE,
    MH_OBJECT,
    MH_EXECUTE,
    MH_DYLINKER,
    CPU_TYPE_ARM64,
    CPU_TYPE_X86_64,
    CPU_TYPE_ARM64_32,
    CPU_TYPE_POWERPC64,
    MachOBinary,
)
from binspect.loader.symbols import N_ABS, N_SECT, NList
from binspect.loader.dispatch import Layout, FileFormat, classify
from binspect.loader.segments import (
    S_ZEROFILL,
    S_ATTR_DEBUG,
    S_GB_ZEROFILL,
    S_THREAD_LOCAL_REGULAR,
    S_THREAD_LOCAL_ZEROFILL,
    S_THREAD_LOCAL_VARIABLES,
    S_THREAD_LOCAL_VARIABLE_POINTERS,
    S_THREAD_LOCAL_INIT_FUNCTION_POINTERS,
    MachOSection,
)

logger = logging.getLogger(__name__)

PE_MACHINES = {
    0x014C: Architecture.I386,
    0x8664: Architecture.X86_64,
    0x01C0: Architecture.ARM,  # ARM little-endian
    0x01C2: Architecture.ARM,  # Thumb
    0x01C4: Architecture.ARM,  # ARMv7 Thumb-2
    0xAA64: Architecture.AARCH64,
}

# e_machine -> (ELFCLASS32 architecture, ELFCLASS64 architecture)
ELF_MACHINES = {
    "EM_386": (Architecture.I386, Architecture.I386),
    "EM_X86_64": (Architecture.X86_64_X32, Architecture.X86_64),
    "EM_ARM": (Architecture.ARM, Architecture.ARM),
    "EM_AARCH64": (Architecture.AARCH64_ILP32, Architecture.AARCH64),
    "EM_MIPS": (Architecture.MIPS, Architecture.MIPS64),
    "EM_PPC": (Architecture.POWERPC, Architecture.POWERPC),
    "EM_PPC64": (Architecture.POWERPC64, Architecture.POWERPC64),
    "EM_RISCV": (Architecture.RISCV32, Architecture.RISCV64),
    "EM_S390": (Architecture.UNKNOWN, Architecture.S390X),
    "EM_SPARCV9": (Architecture.SPARC64, Architecture.SPARC64),
    "EM_LOONGARCH": (Architecture.UNKNOWN, Architecture.LOONGARCH64),
}

ELF_KINDS = {
    "ET_REL": ObjectKind.RELOCATABLE,
    "ET_EXEC": ObjectKind.EXECUTABLE,
    "ET_DYN": ObjectKind.DYNAMIC,
    "ET_CORE": ObjectKind.CORE,
}

ELF_METADATA_SECTIONS = frozenset(
    {
        "SHT_SYMTAB",
        "SHT_DYNSYM",
        "SHT_STRTAB",
        "SHT_REL",
        "SHT_RELA",
        "SHT_HASH",
        "SHT_GNU_HASH",
        "SHT_DYNAMIC",
        "SHT_GNU_versym",
        "SHT_GNU_verneed",
        "SHT_GNU_verdef",
        "SHT_GROUP",
        "SHT_SYMTAB_SHNDX",
    }
)

ELF_SYMBOL_KINDS = {
    "STT_FUNC": SymbolKind.TEXT,
    "STT_LOOS": SymbolKind.TEXT,  # STT_GNU_IFUNC
    "STT_GNU_IFUNC": SymbolKind.TEXT,
    "STT_OBJECT": SymbolKind.DATA,
    "STT_COMMON": SymbolKind.DATA,
    "STT_SECTION": SymbolKind.SECTION,
    "STT_FILE": SymbolKind.FILE,
    "STT_TLS": SymbolKind.TLS,
}

SHF_WRITE = 0x1
SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4
SHF_TLS = 0x400

MACHO_CPUS = {
    CPU_TYPE_ARM64: Architecture.AARCH64,
    CPU_TYPE_X86_64: Architecture.X86_64,
    CPU_TYPE_ARM64_32: Architecture.AARCH64_ILP32,
    CPU_TYPE_POWERPC64: Architecture.POWERPC64,
}

MACHO_KINDS = {
    MH_OBJECT: ObjectKind.RELOCATABLE,
    MH_EXECUTE: ObjectKind.EXECUTABLE,
    MH_CORE: ObjectKind.CORE,
    MH_DYLIB: ObjectKind.DYNAMIC,
    MH_DYLINKER: ObjectKind.DYNAMIC,
    MH_BUNDLE: ObjectKind.DYNAMIC,
}

MACHO_THREAD_LOCAL_TYPES = (
    S_THREAD_LOCAL_REGULAR,
    S_THREAD_LOCAL_ZEROFILL,
    S_THREAD_LOCAL_VARIABLES,
    S_THREAD_LOCAL_VARIABLE_POINTERS,
    S_THREAD_LOCAL_INIT_FUNCTION_POINTERS,
)

DEBUG_INFO_SECTIONS = frozenset({".debug_info", ".zdebug_info", "__debug_info"})


def extract_information(data: bytes) -> Information:
    """Extract the canonical summary of an object file.

    Raises:
        MalformedInput: The file is truncated or its tables are inconsistent.
        UnsupportedFormat: The format is recognized but not extractable.
    """
    kind = classify(data)
    logger.info("Extracting information from %s (%s)", kind.format.name, kind.layout.name)

    if kind.format == FileFormat.PE:
        return _pe_information(data, kind.layout)
    if kind.format == FileFormat.ELF:
        return _elf_information(data)
    return _macho_information(data)


def _has_debug_info(sections: tuple[Section, ...]) -> bool:
    return any(section.name in DEBUG_INFO_SECTIONS for section in sections)


# PE


def _pe_information(data: bytes, layout: Layout) -> Information:
    pe = load_pe(data)
    base = image_base(pe)
    strtab = read_string_table(pe, data)

    sections = tuple(
        _pe_section(decode_name(section_name(raw.Name, strtab)), raw, base) for raw in pe.sections
    )
    symbols = tuple(_coff_symbol(symbol, sections) for symbol in read_coff_symbols(pe, data))

    characteristics = pe.FILE_HEADER.Characteristics
    entry_rva = pe.OPTIONAL_HEADER.AddressOfEntryPoint

    pdb_info = None
    codeview = read_codeview(pe, data)
    if codeview is not None:
        pdb_info = PdbInfo(
            age=codeview.age, guid=codeview.guid_string, path=decode_lossy(codeview.path)
        )

    return Information(
        architecture=PE_MACHINES.get(pe.FILE_HEADER.Machine, Architecture.UNKNOWN),
        endianness=Endianness.LITTLE,
        is_64=layout == Layout.WIDE,
        kind=ObjectKind.DYNAMIC if characteristics & CoffFileFlags.DLL else ObjectKind.EXECUTABLE,
        has_debug_symbols=_has_debug_info(sections),
        entry_address=base + entry_rva if entry_rva else 0,
        coff_file_flags=CoffFileFlags.from_bits(characteristics),
        pdb_info=pdb_info,
        sections=sections,
        symbols=symbols,
    )


def _pe_section(name: str, raw, base: int) -> Section:
    flags = CoffSectionFlags.from_bits(raw.Characteristics)
    return Section(
        name=name,
        kind=coff_section_kind(name, flags),
        address=base + raw.VirtualAddress,
        size=raw.Misc_VirtualSize,
        coff_section_flags=flags,
    )


def coff_section_kind(name: str, flags: CoffSectionFlags) -> SectionKind:
    """Classify a COFF section from its characteristics."""
    if flags & CoffSectionFlags.CNT_CODE:
        return SectionKind.TEXT
    if name.startswith(".debug"):
        return SectionKind.DEBUG
    if flags & CoffSectionFlags.CNT_INITIALIZED_DATA:
        if flags & CoffSectionFlags.MEM_WRITE:
            return SectionKind.DATA
        return SectionKind.READ_ONLY_DATA
    if flags & CoffSectionFlags.CNT_UNINITIALIZED_DATA:
        return SectionKind.UNINITIALIZED_DATA
    if flags & CoffSectionFlags.LNK_INFO:
        return SectionKind.LINKER
    return SectionKind.UNKNOWN


def _coff_symbol(symbol: CoffSymbol, sections: tuple[Section, ...]) -> Symbol:
    number = symbol.section_number
    storage = symbol.storage_class
    address = 0

    if number > 0:
        index = number - 1
        if index < len(sections):
            section = SymbolSection.section(index)
            address = sections[index].address + symbol.value
        else:
            logger.debug("COFF symbol %d references missing section %d", symbol.index, number)
            section = SymbolSection.unknown()
            address = symbol.value
    elif number == IMAGE_SYM_UNDEFINED:
        # Undefined externals with a value are common (tentative) definitions
        if storage == IMAGE_SYM_CLASS_EXTERNAL and symbol.value:
            section = SymbolSection.common()
        else:
            section = SymbolSection.undefined()
    elif number == IMAGE_SYM_ABSOLUTE:
        section = SymbolSection.absolute()
        address = symbol.value
    elif number == IMAGE_SYM_DEBUG:
        section = SymbolSection.none()
    else:
        section = SymbolSection.unknown()

    if storage == IMAGE_SYM_CLASS_FILE:
        kind = SymbolKind.FILE
    elif storage == IMAGE_SYM_CLASS_SECTION or (
        storage == IMAGE_SYM_CLASS_STATIC and symbol.value == 0 and symbol.aux_count > 0
    ):
        kind = SymbolKind.SECTION
    elif storage == IMAGE_SYM_CLASS_LABEL:
        kind = SymbolKind.LABEL
    elif section.index is not None:
        if symbol.is_function or sections[section.index].kind == SectionKind.TEXT:
            kind = SymbolKind.TEXT
        else:
            kind = SymbolKind.DATA
    elif section == SymbolSection.common():
        kind = SymbolKind.DATA
    else:
        kind = SymbolKind.UNKNOWN

    if section == SymbolSection.undefined():
        scope = SymbolScope.UNKNOWN
    elif storage in (IMAGE_SYM_CLASS_EXTERNAL, IMAGE_SYM_CLASS_WEAK_EXTERNAL):
        scope = SymbolScope.LINKAGE
    else:
        scope = SymbolScope.COMPILATION

    return Symbol(
        name=decode_name(symbol.name),
        address=address,
        size=0,
        kind=kind,
        scope=scope,
        section=section,
    )


# ELF


def _elf_information(data: bytes) -> Information:
    elf = load_elf(data)
    try:
        names = section_names_data(elf)
        sections = tuple(_elf_section(section, names) for section in elf.iter_sections())
        symbols = _elf_symbols(elf, sections)
        header = elf.header
        is_64 = elf.elfclass == 64
        arch32, arch64 = ELF_MACHINES.get(
            header["e_machine"], (Architecture.UNKNOWN, Architecture.UNKNOWN)
        )
        return Information(
            architecture=arch64 if is_64 else arch32,
            endianness=Endianness.LITTLE if elf.little_endian else Endianness.BIG,
            is_64=is_64,
            kind=ELF_KINDS.get(header["e_type"], ObjectKind.UNKNOWN),
            has_debug_symbols=_has_debug_info(sections),
            entry_address=header["e_entry"],
            sections=sections,
            symbols=symbols,
        )
    except ELFError as e:
        raise MalformedInput(f"Invalid ELF file: {e}") from e


def _elf_section(section, names: bytes) -> Section:
    name = decode_name(cstring_at(names, section["sh_name"]))
    return Section(
        name=name,
        kind=elf_section_kind(name, section["sh_type"], section["sh_flags"]),
        address=section["sh_addr"],
        size=section["sh_size"],
    )


def elf_section_kind(name: str, sh_type, sh_flags: int) -> SectionKind:
    """Classify an ELF section from its type and flags."""
    if sh_type == "SHT_PROGBITS":
        if sh_flags & SHF_ALLOC:
            if sh_flags & SHF_EXECINSTR:
                return SectionKind.TEXT
            if sh_flags & SHF_TLS:
                return SectionKind.TLS
            if sh_flags & SHF_WRITE:
                return SectionKind.DATA
            return SectionKind.READ_ONLY_DATA
        if name.startswith((".debug", ".zdebug")):
            return SectionKind.DEBUG
        return SectionKind.OTHER
    if sh_type == "SHT_NOBITS":
        if sh_flags & SHF_TLS:
            return SectionKind.TLS
        return SectionKind.UNINITIALIZED_DATA
    if sh_type == "SHT_NOTE":
        return SectionKind.NOTE
    if sh_type in ELF_METADATA_SECTIONS:
        return SectionKind.METADATA
    if sh_type == "SHT_NULL":
        return SectionKind.UNKNOWN
    return SectionKind.OTHER


def _elf_symbols(elf, sections: tuple[Section, ...]) -> tuple[Symbol, ...]:
    symtab = symbol_table(elf, ".symtab")
    if symtab is None:
        return ()

    strtab = string_table_data(elf, symtab["sh_link"])
    symbols = []
    for index, raw in enumerate(symtab.iter_symbols()):
        if index == 0:
            continue
        name = decode_name(cstring_at(strtab, raw["st_name"]))
        symbols.append(_elf_symbol(name, raw, sections))
    return tuple(symbols)


def _elf_symbol(name: str, raw, sections: tuple[Section, ...]) -> Symbol:
    sym_type = raw["st_info"]["type"]
    shndx = raw["st_shndx"]
    is_undefined = shndx == "SHN_UNDEF"

    if sym_type == "STT_NOTYPE":
        kind = SymbolKind.UNKNOWN if is_undefined else SymbolKind.LABEL
    else:
        kind = ELF_SYMBOL_KINDS.get(sym_type, SymbolKind.UNKNOWN)

    if kind == SymbolKind.FILE:
        section = SymbolSection.none()
    elif is_undefined:
        section = SymbolSection.undefined()
    elif shndx == "SHN_ABS":
        section = SymbolSection.absolute()
    elif shndx == "SHN_COMMON":
        section = SymbolSection.common()
    elif isinstance(shndx, int) and shndx < len(sections):
        section = SymbolSection.section(shndx)
    else:
        logger.debug("Symbol %r has unresolvable section index %r", name, shndx)
        section = SymbolSection.unknown()

    if is_undefined:
        scope = SymbolScope.UNKNOWN
    elif raw["st_info"]["bind"] == "STB_LOCAL":
        scope = SymbolScope.COMPILATION
    elif raw["st_other"]["visibility"] in ("STV_HIDDEN", "STV_INTERNAL"):
        scope = SymbolScope.LINKAGE
    else:
        scope = SymbolScope.DYNAMIC

    return Symbol(
        name=name,
        address=raw["st_value"],
        size=raw["st_size"],
        kind=kind,
        scope=scope,
        section=section,
    )


# Mach-O


def _macho_information(data: bytes) -> Information:
    binary = MachOBinary.parse(data)
    sections = tuple(
        Section(
            name=section.name,
            kind=macho_section_kind(section),
            address=section.address,
            size=section.size,
            segment_name=section.segment_name,
        )
        for section in binary.sections
    )
    symbols = tuple(
        _macho_symbol(nlist, sections) for nlist in binary.symbols if not nlist.is_stab
    )

    return Information(
        architecture=MACHO_CPUS.get(binary.header.cputype, Architecture.UNKNOWN),
        endianness=Endianness.LITTLE,
        is_64=True,
        kind=MACHO_KINDS.get(binary.header.filetype, ObjectKind.UNKNOWN),
        has_debug_symbols=_has_debug_info(sections),
        entry_address=binary.entry_point,
        sections=sections,
        symbols=symbols,
    )


def macho_section_kind(section: MachOSection) -> SectionKind:
    """Classify a Mach-O section from its segment, type and attributes."""
    section_type = section.section_type
    if section.segment_name == "__DWARF" or section.attributes & S_ATTR_DEBUG:
        return SectionKind.DEBUG
    if section_type in (S_ZEROFILL, S_GB_ZEROFILL):
        return SectionKind.UNINITIALIZED_DATA
    if section_type in MACHO_THREAD_LOCAL_TYPES:
        return SectionKind.TLS
    if section.has_instructions or (section.segment_name, section.name) == ("__TEXT", "__text"):
        return SectionKind.TEXT
    if section.segment_name.startswith("__DATA"):
        return SectionKind.DATA
    if section.segment_name == "__TEXT":
        return SectionKind.READ_ONLY_DATA
    return SectionKind.UNKNOWN


def _macho_symbol(nlist: NList, sections: tuple[Section, ...]) -> Symbol:
    type_bits = nlist.type_bits

    if type_bits == N_SECT:
        index = nlist.n_sect - 1
        if 0 <= index < len(sections):
            section = SymbolSection.section(index)
            kind = SymbolKind.TEXT if sections[index].kind == SectionKind.TEXT else SymbolKind.DATA
        else:
            logger.debug("Symbol %r references missing section %d", nlist.name, nlist.n_sect)
            section = SymbolSection.unknown()
            kind = SymbolKind.UNKNOWN
    elif nlist.is_common:
        section = SymbolSection.common()
        kind = SymbolKind.DATA
    elif nlist.is_undefined:
        section = SymbolSection.undefined()
        kind = SymbolKind.UNKNOWN
    elif type_bits == N_ABS:
        section = SymbolSection.absolute()
        kind = SymbolKind.UNKNOWN
    else:
        section = SymbolSection.unknown()
        kind = SymbolKind.UNKNOWN

    if section == SymbolSection.undefined():
        scope = SymbolScope.UNKNOWN
    elif nlist.is_external:
        scope = SymbolScope.LINKAGE if nlist.is_private_external else SymbolScope.DYNAMIC
    else:
        scope = SymbolScope.COMPILATION

    return Symbol(
        name=nlist.name,
        address=nlist.n_value,
        size=0,
        kind=kind,
        scope=scope,
        section=section,
    )
