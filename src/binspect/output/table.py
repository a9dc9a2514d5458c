"""Rich table output."""

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from binspect.data import (
    Export,
    Import,
    Dependency,
    Difference,
    Information,
)
from binspect.output import PrintOutput


class TableOutput(PrintOutput):
    """Renders records as rich tables.

    The list methods render one table for the whole sequence; the single
    record methods render a one-row table.
    """

    def print_dependency(self, dependency: Dependency) -> None:
        self.print_dependencies([dependency])

    def print_import(self, imported: Import) -> None:
        self.print_imports([imported])

    def print_export(self, export: Export) -> None:
        self.print_exports([export])

    def print_difference(self, difference: Difference) -> None:
        self.print_differences([difference])

    def print_dependencies(self, dependencies: list[Dependency]) -> None:
        table = Table(title="Dependencies")
        table.add_column("Library", style="cyan")
        for dependency in dependencies:
            table.add_row(Text(dependency.library))
        self.console.print(table)
        self.console.print(f"\nTotal: {len(dependencies)} dependencies")

    def print_imports(self, imports: list[Import]) -> None:
        table = Table(title="Imports")
        table.add_column("Library", style="cyan")
        table.add_column("Function")
        table.add_column("Demangled", style="yellow")
        for imported in imports:
            table.add_row(
                Text(imported.library),
                Text(imported.function),
                Text(imported.function_demangled),
            )
        self.console.print(table)
        self.console.print(f"\nTotal: {len(imports)} imports")

    def print_exports(self, exports: list[Export]) -> None:
        table = Table(title="Exports")
        table.add_column("Address", style="green")
        table.add_column("Function", style="cyan")
        table.add_column("Demangled", style="yellow")
        table.add_column("Forwarded To")
        for export in exports:
            table.add_row(
                f"{export.address:#x}" if export.address is not None else "",
                Text(export.function),
                Text(export.function_demangled),
                Text(str(export.target)) if export.target is not None else "",
            )
        self.console.print(table)
        self.console.print(f"\nTotal: {len(exports)} exports")

    def print_differences(self, differences: list[Difference]) -> None:
        table = Table(title="Differences")
        table.add_column("Change")
        table.add_column("Kind", style="cyan")
        table.add_column("Record")
        for difference in differences:
            if difference.is_added:
                change = "[green]+ added[/green]"
            else:
                change = "[red]- removed[/red]"
            table.add_row(change, type(difference.data).__name__, Text(_describe(difference.data)))
        self.console.print(table)

        added = sum(1 for d in differences if d.is_added)
        self.console.print(
            f"\nTotal: {len(differences)} differences "
            f"([green]{added} added[/green], [red]{len(differences) - added} removed[/red])"
        )

    def print_information(self, information: Information) -> None:
        self.console.print(Panel.fit("[bold]Binary Info[/bold]"))

        table = Table(show_header=False)
        table.add_column("Property", style="cyan")
        table.add_column("Value")

        table.add_row("Architecture", information.architecture.name)
        table.add_row("Endianness", information.endianness.name)
        table.add_row("64-bit", str(information.is_64))
        table.add_row("Kind", information.kind.name)
        table.add_row("Debug Symbols", str(information.has_debug_symbols))
        table.add_row("Entry Point", f"{information.entry_address:#x}")
        if information.coff_file_flags is not None:
            table.add_row("Flags", str(information.coff_file_flags))
        if information.pdb_info is not None:
            pdb = information.pdb_info
            table.add_row("PDB", Text(f"{pdb.path} (GUID {pdb.guid}, age {pdb.age})"))
        table.add_row("Sections", str(len(information.sections)))
        table.add_row("Symbols", str(len(information.symbols)))

        self.console.print(table)

        self.console.print("\n[bold]Sections:[/bold]")
        sec_table = Table()
        sec_table.add_column("Name")
        sec_table.add_column("Kind", style="cyan")
        sec_table.add_column("Address", style="green")
        sec_table.add_column("Size")
        sec_table.add_column("Segment")
        sec_table.add_column("Flags")

        for section in information.sections:
            sec_table.add_row(
                Text(section.name),
                section.kind.name,
                f"{section.address:#x}",
                f"{section.size:#x}",
                Text(section.segment_name or ""),
                str(section.coff_section_flags) if section.coff_section_flags is not None else "",
            )

        self.console.print(sec_table)

        self.console.print("\n[bold]Symbols:[/bold]")
        sym_table = Table()
        sym_table.add_column("Address", style="green")
        sym_table.add_column("Name", style="cyan")
        sym_table.add_column("Size")
        sym_table.add_column("Kind")
        sym_table.add_column("Scope")
        sym_table.add_column("Section")

        for symbol in information.symbols:
            sym_table.add_row(
                f"{symbol.address:#x}",
                Text(symbol.name),
                f"{symbol.size:#x}",
                symbol.kind.name,
                symbol.scope.name,
                str(symbol.section),
            )

        self.console.print(sym_table)


def _describe(data) -> str:
    if isinstance(data, Dependency):
        return data.library
    if isinstance(data, Import):
        return f"{data.library}: {data.function}"
    if data.target is not None:
        return f"{data.function} -> {data.target}"
    return f"{data.function} @ {data.address:#x}"
