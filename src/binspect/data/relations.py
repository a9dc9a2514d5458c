"""Dependency, import and export records."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Dependency:
    """A library the binary depends on."""

    library: str

    @property
    def key(self) -> tuple:
        return (self.library,)


@dataclass(frozen=True)
class Import:
    """A function imported from a library."""

    library: str
    function: str
    function_demangled: str

    @property
    def key(self) -> tuple:
        return (self.library, self.function)


@dataclass(frozen=True)
class ForwardByName:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ForwardByOrdinal:
    ordinal: int

    def __str__(self) -> str:
        return str(self.ordinal)


ForwardType = ForwardByName | ForwardByOrdinal


@dataclass(frozen=True)
class ExportTarget:
    """Library and symbol a forwarded export redirects to."""

    library: str
    forward: ForwardType

    def __str__(self) -> str:
        return f"{self.library}.{self.forward}"


@dataclass(frozen=True)
class Export:
    """An exported function.

    Exactly one of ``address`` and ``target`` is set: direct exports have an
    address, forwarded exports have a target.
    """

    address: int | None
    function: str
    function_demangled: str
    target: ExportTarget | None = None

    @property
    def is_forwarded(self) -> bool:
        return self.target is not None

    @property
    def key(self) -> tuple:
        return (self.function, self.address, self.target)


@dataclass(frozen=True)
class Relations:
    """Everything the diff engine compares for one binary."""

    dependencies: tuple[Dependency, ...] = ()
    imports: tuple[Import, ...] = ()
    exports: tuple[Export, ...] = ()
