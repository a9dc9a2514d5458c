"""Records produced by comparing two binaries."""

from dataclasses import dataclass
from enum import IntEnum, auto

from binspect.data.relations import Export, Import, Dependency

ChangedData = Dependency | Import | Export


class ChangeType(IntEnum):
    """Direction of a change between the old and the new binary."""

    ADDED = auto()
    REMOVED = auto()

    @property
    def inverse(self) -> "ChangeType":
        return ChangeType.REMOVED if self == ChangeType.ADDED else ChangeType.ADDED


@dataclass(frozen=True)
class Difference:
    """One record present on only one side of a diff."""

    change: ChangeType
    data: ChangedData

    @classmethod
    def added(cls, data: ChangedData) -> "Difference":
        return cls(ChangeType.ADDED, data)

    @classmethod
    def removed(cls, data: ChangedData) -> "Difference":
        return cls(ChangeType.REMOVED, data)

    @property
    def is_added(self) -> bool:
        return self.change == ChangeType.ADDED

    @property
    def is_removed(self) -> bool:
        return self.change == ChangeType.REMOVED

    def inverted(self) -> "Difference":
        """The same record with the opposite change direction."""
        return Difference(self.change.inverse, self.data)

    def __repr__(self) -> str:
        return f"{self.change.name.capitalize()}({self.data!r})"
