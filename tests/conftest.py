"""Synthetic PE and Mach-O images for the extraction tests."""

import struct
from itertools import groupby
from dataclasses import field, dataclass

import pytest

# PE layout
FILE_ALIGNMENT = 0x200
SECTION_ALIGNMENT = 0x1000
TEXT_RVA = 0x1000
PE32_IMAGE_BASE = 0x400000
PE32PLUS_IMAGE_BASE = 0x140000000

IMAGE_FILE_EXECUTABLE_IMAGE = 0x0002
IMAGE_FILE_LARGE_ADDRESS_AWARE = 0x0020
IMAGE_FILE_32BIT_MACHINE = 0x0100
IMAGE_FILE_DLL = 0x2000

TEXT_CHARACTERISTICS = 0x60000020  # CNT_CODE | MEM_EXECUTE | MEM_READ
DATA_CHARACTERISTICS = 0xC0000040  # CNT_INITIALIZED_DATA | MEM_READ | MEM_WRITE
DEBUG_CHARACTERISTICS = 0x42000040  # CNT_INITIALIZED_DATA | MEM_DISCARDABLE | MEM_READ

PDB_GUID = bytes.fromhex("33221100554477668899aabbccddeeff")

# Mach-O layout
MH_MAGIC_64 = 0xFEEDFACF
CPU_TYPE_ARM64 = 0x0100000C
MH_EXECUTE = 0x2
MH_DYLIB = 0x6
LC_SEGMENT_64 = 0x19
LC_SYMTAB = 0x2
LC_LOAD_DYLIB = 0xC
LC_MAIN = 0x80000028
TEXT_VMADDR = 0x100000000
N_EXT = 0x01
N_PEXT = 0x10
N_SECT = 0x0E
N_FUN = 0x24


def _align(value: int, alignment: int) -> int:
    return (value + alignment - 1) & ~(alignment - 1)


@dataclass
class CoffSymbolDef:
    name: str
    value: int
    section_number: int
    storage_class: int
    type: int = 0
    aux_count: int = 0


@dataclass
class PEBuilder:
    """Builds a minimal PE32 or PE32+ image with a single raw section.

    Import, export and debug data all live in ``.text`` at RVA 0x1000.
    """

    wide: bool = False
    dll: bool = False
    entry_rva: int = TEXT_RVA
    imports: list[tuple[str, str | int]] = field(default_factory=list)
    exports: list[tuple[str, int | str]] = field(default_factory=list)
    codeview: tuple[bytes, int, bytes] | None = None
    symbols: list[CoffSymbolDef] = field(default_factory=list)
    debug_section: bool = False

    @property
    def image_base(self) -> int:
        return PE32PLUS_IMAGE_BASE if self.wide else PE32_IMAGE_BASE

    def build(self) -> bytes:
        payload = bytearray(b"\xc3" * 0x20)
        directories = [(0, 0)] * 16

        def rva() -> int:
            return TEXT_RVA + len(payload)

        def pad(alignment: int) -> None:
            payload.extend(b"\x00" * (_align(len(payload), alignment) - len(payload)))

        if self.imports:
            directories[1] = self._write_imports(payload, rva, pad)
        if self.exports:
            directories[0] = self._write_exports(payload, rva, pad)
        if self.codeview:
            directories[6] = self._write_debug(payload, rva, pad)

        pad(FILE_ALIGNMENT)
        raw_size = len(payload)

        strings = bytearray()

        def string_offset(name: bytes) -> int:
            offset = 4 + len(strings)
            strings.extend(name + b"\x00")
            return offset

        sections = [(b".text", raw_size, TEXT_RVA, raw_size, FILE_ALIGNMENT, TEXT_CHARACTERISTICS)]
        next_rva = TEXT_RVA + _align(raw_size, SECTION_ALIGNMENT)
        sections.append((b".data", 0x100, next_rva, 0, 0, DATA_CHARACTERISTICS))
        next_rva += SECTION_ALIGNMENT
        if self.debug_section:
            long_name = b"/%d" % string_offset(b".debug_info")
            sections.append((long_name, 0x80, next_rva, 0, 0, DEBUG_CHARACTERISTICS))
            next_rva += SECTION_ALIGNMENT

        symbol_records = bytearray()
        for symbol in self.symbols:
            encoded = symbol.name.encode()
            if len(encoded) <= 8:
                name_field = encoded.ljust(8, b"\x00")
            else:
                name_field = b"\x00\x00\x00\x00" + struct.pack("<I", string_offset(encoded))
            symbol_records += struct.pack(
                "<8sIhHBB",
                name_field,
                symbol.value,
                symbol.section_number,
                symbol.type,
                symbol.storage_class,
                symbol.aux_count,
            )
            symbol_records += b"\x00" * 18 * symbol.aux_count

        symbol_count = len(symbol_records) // 18
        has_string_table = bool(self.symbols or self.debug_section)
        symbol_table_offset = FILE_ALIGNMENT + raw_size if has_string_table else 0

        headers = self._headers(
            sections, directories, next_rva, symbol_table_offset, symbol_count
        )
        image = headers + bytes(payload)
        if has_string_table:
            image += bytes(symbol_records) + struct.pack("<I", 4 + len(strings)) + bytes(strings)
        return image

    def _headers(self, sections, directories, size_of_image, symbol_table_offset, symbol_count):
        dos = bytearray(0x40)
        dos[0:2] = b"MZ"
        struct.pack_into("<I", dos, 0x3C, 0x40)

        characteristics = IMAGE_FILE_EXECUTABLE_IMAGE
        characteristics |= IMAGE_FILE_LARGE_ADDRESS_AWARE if self.wide else IMAGE_FILE_32BIT_MACHINE
        if self.dll:
            characteristics |= IMAGE_FILE_DLL

        if self.wide:
            optional = struct.pack(
                "<HBB" + "I" * 5 + "Q" + "II" + "H" * 6 + "I" * 4 + "HH" + "Q" * 4 + "II",
                0x20B, 14, 0,
                0x200, 0x200, 0, self.entry_rva, TEXT_RVA,
                self.image_base,
                SECTION_ALIGNMENT, FILE_ALIGNMENT,
                6, 0, 0, 0, 6, 0,
                0, size_of_image, FILE_ALIGNMENT, 0,
                3, 0,
                0x100000, 0x1000, 0x100000, 0x1000,
                0, 16,
            )  # fmt: skip
            machine = 0x8664
        else:
            optional = struct.pack(
                "<HBB" + "I" * 9 + "H" * 6 + "I" * 4 + "HH" + "I" * 6,
                0x10B, 14, 0,
                0x200, 0x200, 0, self.entry_rva, TEXT_RVA, 0,
                self.image_base, SECTION_ALIGNMENT, FILE_ALIGNMENT,
                6, 0, 0, 0, 6, 0,
                0, size_of_image, FILE_ALIGNMENT, 0,
                3, 0,
                0x100000, 0x1000, 0x100000, 0x1000,
                0, 16,
            )  # fmt: skip
            machine = 0x14C
        optional += b"".join(struct.pack("<II", *entry) for entry in directories)

        file_header = struct.pack(
            "<HHIIIHH",
            machine,
            len(sections),
            0,
            symbol_table_offset,
            symbol_count,
            len(optional),
            characteristics,
        )

        section_headers = b"".join(
            struct.pack("<8sIIIIIIHHI", name, vsize, vaddr, raw_size, raw_ptr, 0, 0, 0, 0, flags)
            for name, vsize, vaddr, raw_size, raw_ptr, flags in sections
        )

        headers = bytes(dos) + b"PE\x00\x00" + file_header + optional + section_headers
        assert len(headers) <= FILE_ALIGNMENT
        return headers.ljust(FILE_ALIGNMENT, b"\x00")

    def _write_imports(self, payload, rva, pad):
        thunk_size = 8 if self.wide else 4
        ordinal_flag = 1 << 63 if self.wide else 1 << 31
        thunk_format = "<Q" if self.wide else "<I"

        groups = [
            (library, [function for _, function in entries])
            for library, entries in groupby(self.imports, key=lambda entry: entry[0])
        ]

        descriptors_input = []
        for library, functions in groups:
            thunks = []
            for function in functions:
                if isinstance(function, int):
                    thunks.append(ordinal_flag | function)
                else:
                    pad(2)
                    thunks.append(rva())
                    payload.extend(struct.pack("<H", 0) + function.encode() + b"\x00")
            name_rva = rva()
            payload.extend(library.encode() + b"\x00")
            descriptors_input.append((name_rva, thunks))

        descriptors = []
        for name_rva, thunks in descriptors_input:
            pad(thunk_size)
            ilt = rva()
            for thunk in thunks + [0]:
                payload.extend(struct.pack(thunk_format, thunk))
            iat = rva()
            for thunk in thunks + [0]:
                payload.extend(struct.pack(thunk_format, thunk))
            descriptors.append((ilt, name_rva, iat))

        pad(4)
        start = rva()
        for ilt, name_rva, iat in descriptors:
            payload.extend(struct.pack("<IIIII", ilt, 0, 0, name_rva, iat))
        payload.extend(b"\x00" * 20)
        return start, rva() - start

    def _write_exports(self, payload, rva, pad):
        pad(4)
        start = rva()
        directory_offset = len(payload)
        payload.extend(b"\x00" * 40)

        dll_name = rva()
        payload.extend(b"test.dll\x00")

        name_rvas = []
        functions = []
        for name, target in self.exports:
            name_rvas.append(rva())
            payload.extend(name.encode() + b"\x00")
            if isinstance(target, str):
                # Forwarder strings must lie inside the export directory
                functions.append(rva())
                payload.extend(target.encode() + b"\x00")
            else:
                functions.append(target)

        pad(4)
        address_of_functions = rva()
        for function in functions:
            payload.extend(struct.pack("<I", function))
        address_of_names = rva()
        for name_rva in name_rvas:
            payload.extend(struct.pack("<I", name_rva))
        address_of_ordinals = rva()
        for index in range(len(functions)):
            payload.extend(struct.pack("<H", index))

        struct.pack_into(
            "<IIHHIIIIIII",
            payload,
            directory_offset,
            0, 0, 0, 0,
            dll_name,
            1,
            len(functions), len(name_rvas),
            address_of_functions, address_of_names, address_of_ordinals,
        )  # fmt: skip
        return start, rva() - start

    def _write_debug(self, payload, rva, pad):
        guid, age, path = self.codeview
        pad(4)
        record_rva = rva()
        record = b"RSDS" + guid + struct.pack("<I", age) + path + b"\x00"
        payload.extend(record)

        pad(4)
        start = rva()
        file_offset = FILE_ALIGNMENT + (record_rva - TEXT_RVA)
        payload.extend(
            struct.pack("<IIHHIIII", 0, 0, 0, 0, 2, len(record), record_rva, file_offset)
        )
        return start, 28


@dataclass
class MachOSectionDef:
    name: str
    address: int
    size: int
    flags: int = 0


@dataclass
class MachOSegmentDef:
    name: str
    vmaddr: int
    vmsize: int
    sections: list[MachOSectionDef] = field(default_factory=list)


@dataclass
class NListDef:
    name: str
    n_type: int
    n_sect: int = 0
    n_desc: int = 0
    n_value: int = 0


@dataclass
class MachOBuilder:
    """Builds a 64-bit little-endian Mach-O image."""

    filetype: int = MH_EXECUTE
    cputype: int = CPU_TYPE_ARM64
    segments: list[MachOSegmentDef] = field(default_factory=list)
    dylibs: list[str] = field(default_factory=list)
    entryoff: int | None = None
    symbols: list[NListDef] = field(default_factory=list)

    def build(self) -> bytes:
        commands = []

        for segment in self.segments:
            body = b"".join(
                struct.pack(
                    "<16s16sQQIIIIIIII",
                    section.name.encode(),
                    segment.name.encode(),
                    section.address,
                    section.size,
                    0, 0, 0, 0,
                    section.flags,
                    0, 0, 0,
                )  # fmt: skip
                for section in segment.sections
            )
            cmdsize = 72 + len(body)
            commands.append(
                struct.pack(
                    "<II16sQQQQIIII",
                    LC_SEGMENT_64,
                    cmdsize,
                    segment.name.encode(),
                    segment.vmaddr,
                    segment.vmsize,
                    0, 0, 7, 5,
                    len(segment.sections),
                    0,
                )  # fmt: skip
                + body
            )

        for dylib in self.dylibs:
            name = dylib.encode() + b"\x00"
            cmdsize = _align(24 + len(name), 8)
            command = struct.pack("<IIIIII", LC_LOAD_DYLIB, cmdsize, 24, 2, 0x10000, 0x10000)
            commands.append((command + name).ljust(cmdsize, b"\x00"))

        if self.entryoff is not None:
            commands.append(struct.pack("<IIQQ", LC_MAIN, 24, self.entryoff, 0))

        strtab = bytearray(b"\x00")
        nlists = bytearray()
        for symbol in self.symbols:
            strx = len(strtab)
            strtab.extend(symbol.name.encode() + b"\x00")
            nlists += struct.pack(
                "<IBBHQ", strx, symbol.n_type, symbol.n_sect, symbol.n_desc, symbol.n_value
            )

        sizeofcmds = sum(len(command) for command in commands) + (24 if self.symbols else 0)
        symoff = 32 + sizeofcmds
        stroff = symoff + len(nlists)
        if self.symbols:
            commands.append(
                struct.pack(
                    "<IIIIII", LC_SYMTAB, 24, symoff, len(self.symbols), stroff, len(strtab)
                )
            )

        header = struct.pack(
            "<IIIIIIII",
            MH_MAGIC_64,
            self.cputype,
            0,
            self.filetype,
            len(commands),
            sizeofcmds,
            0,
            0,
        )
        return header + b"".join(commands) + bytes(nlists) + bytes(strtab)


def default_pe(wide: bool = False) -> PEBuilder:
    """An image with two imports from USER32.dll and one from KERNEL32.dll."""
    return PEBuilder(
        wide=wide,
        imports=[
            ("USER32.dll", "MessageBoxA"),
            ("USER32.dll", "MessageBoxW"),
            ("KERNEL32.dll", "ExitProcess"),
        ],
    )


def default_macho() -> MachOBuilder:
    """An executable with text, data and DWARF segments and two dylibs."""
    return MachOBuilder(
        segments=[
            MachOSegmentDef(
                "__TEXT",
                TEXT_VMADDR,
                0x4000,
                [
                    MachOSectionDef("__text", TEXT_VMADDR + 0x400, 0x100, 0x80000400),
                    MachOSectionDef("__cstring", TEXT_VMADDR + 0x500, 0x40, 0x2),
                ],
            ),
            MachOSegmentDef(
                "__DATA",
                TEXT_VMADDR + 0x4000,
                0x4000,
                [
                    MachOSectionDef("__data", TEXT_VMADDR + 0x4000, 0x20),
                    MachOSectionDef("__bss", TEXT_VMADDR + 0x4020, 0x20, 0x1),
                ],
            ),
            MachOSegmentDef(
                "__DWARF",
                TEXT_VMADDR + 0x8000,
                0x1000,
                [MachOSectionDef("__debug_info", TEXT_VMADDR + 0x8000, 0x80, 0x02000000)],
            ),
        ],
        dylibs=["/usr/lib/libSystem.B.dylib", "/usr/lib/libobjc.A.dylib"],
        entryoff=0x400,
        symbols=[
            NListDef("_main.c", N_FUN, 1, 0, TEXT_VMADDR + 0x400),
            NListDef("_main", N_SECT | N_EXT, 1, 0, TEXT_VMADDR + 0x400),
            NListDef("_helper", N_SECT | N_EXT | N_PEXT, 1, 0, TEXT_VMADDR + 0x480),
            NListDef("_counter", N_SECT, 3, 0, TEXT_VMADDR + 0x4000),
            NListDef("_printf", N_EXT, 0, 1 << 8),
            NListDef("_objc_msgSend", N_EXT, 0, 2 << 8),
            NListDef("_lookup", N_EXT, 0, 0xFE << 8),
            NListDef("_shared", N_EXT, 0, 0, 16),
        ],
    )


@pytest.fixture
def pe32_image() -> bytes:
    return default_pe().build()


@pytest.fixture
def pe64_image() -> bytes:
    return default_pe(wide=True).build()


@pytest.fixture
def macho_image() -> bytes:
    return default_macho().build()
