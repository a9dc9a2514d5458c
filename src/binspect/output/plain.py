"""Line oriented plain text output."""

from binspect.data import (
    Export,
    Import,
    Dependency,
    Difference,
    ChangeType,
    Information,
)
from binspect.output import PrintOutput


class PlainOutput(PrintOutput):
    """Prints one record per line, suitable for grep and diff."""

    def _line(self, text: str) -> None:
        self.console.print(text, markup=False, emoji=False, highlight=False, soft_wrap=True)

    def print_dependency(self, dependency: Dependency) -> None:
        self._line(format_dependency(dependency))

    def print_import(self, imported: Import) -> None:
        self._line(format_import(imported))

    def print_export(self, export: Export) -> None:
        self._line(format_export(export))

    def print_difference(self, difference: Difference) -> None:
        prefix = "+ " if difference.change == ChangeType.ADDED else "- "
        self._line(prefix + format_record(difference.data))

    def print_information(self, information: Information) -> None:
        line = self._line
        line(f"Architecture: {information.architecture.name}")
        line(f"Endianness: {information.endianness.name}")
        line(f"Is 64bit: {information.is_64}")
        line(f"ObjectKind: {information.kind.name}")
        line(f"Debug symbols available: {information.has_debug_symbols}")
        line(f"Virtual address of entry point: {information.entry_address:#x}")

        if information.coff_file_flags is not None:
            line(f"Flags: {information.coff_file_flags!s}")

        pdb = information.pdb_info
        if pdb is not None:
            line("")
            line("PDB:")
            line(f"\tAge: {pdb.age}")
            line(f"\tGUID: {pdb.guid}")
            line(f"\tPath: {pdb.path}")

        line("")
        line("Sections:")
        for section in information.sections:
            line(f"\tName: {section.name}")
            line(f"\tKind: {section.kind.name}")
            line(f"\tAddress: {section.address:#x}")
            line(f"\tSize: {section.size:#x}")
            if section.segment_name is not None:
                line(f"\tSegmentName: {section.segment_name}")
            if section.coff_section_flags is not None:
                line(f"\tFlags: {section.coff_section_flags!s}")
            line("")

        line("")
        line("Symbols:")
        for symbol in information.symbols:
            line(f"\tName: {symbol.name}")
            line(f"\tAddress: {symbol.address:#x}")
            line(f"\tSize: {symbol.size:#x}")
            line(f"\tKind: {symbol.kind.name}")
            line(f"\tScope: {symbol.scope.name}")
            line(f"\tSection: {symbol.section}")
            line("")


def format_dependency(dependency: Dependency) -> str:
    return dependency.library


def format_import(imported: Import) -> str:
    return f"{imported.library}: {imported.function} {imported.function_demangled}"


def format_export(export: Export) -> str:
    # Forwarded exports have no address and print as zero
    text = f"{export.address or 0:#018x}: {export.function} {export.function_demangled}"
    if export.target is not None:
        text += f" -> {export.target}"
    return text


def format_record(data) -> str:
    """Format any record that can appear in a difference."""
    if isinstance(data, Dependency):
        return format_dependency(data)
    if isinstance(data, Import):
        return format_import(data)
    return format_export(data)
