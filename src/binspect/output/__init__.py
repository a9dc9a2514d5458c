"""Rendering of canonical records."""

from abc import ABC, abstractmethod
from enum import IntEnum, auto

from rich.console import Console

from binspect.data import Export, Import, Dependency, Difference, Information


class OutputType(IntEnum):
    """Selectable output formats."""

    PLAIN = auto()  # Line oriented text
    TABLE = auto()  # Rich tables and panels

    @classmethod
    def choices(cls) -> list[str]:
        return [member.name.lower() for member in cls]

    @classmethod
    def from_name(cls, name: str) -> "OutputType":
        return cls[name.upper()]


class PrintOutput(ABC):
    """One render operation per record kind."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    @abstractmethod
    def print_dependency(self, dependency: Dependency) -> None: ...

    @abstractmethod
    def print_import(self, imported: Import) -> None: ...

    @abstractmethod
    def print_export(self, export: Export) -> None: ...

    @abstractmethod
    def print_information(self, information: Information) -> None: ...

    @abstractmethod
    def print_difference(self, difference: Difference) -> None: ...

    def print_dependencies(self, dependencies: list[Dependency]) -> None:
        for dependency in dependencies:
            self.print_dependency(dependency)

    def print_imports(self, imports: list[Import]) -> None:
        for imported in imports:
            self.print_import(imported)

    def print_exports(self, exports: list[Export]) -> None:
        for export in exports:
            self.print_export(export)

    def print_differences(self, differences: list[Difference]) -> None:
        for difference in differences:
            self.print_difference(difference)


def to_output(output_type: OutputType, console: Console | None = None) -> PrintOutput:
    """Create the renderer for an output type."""
    from binspect.output.plain import PlainOutput
    from binspect.output.table import TableOutput

    if output_type == OutputType.TABLE:
        return TableOutput(console)
    return PlainOutput(console)


__all__ = ["OutputType", "PrintOutput", "to_output"]
