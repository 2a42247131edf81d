"""
Plans and reports for multi-object operations.

A TransferPlan is built entirely from read-only listings before any
file is written or deleted; an OperationReport accounts for what the
execution of that plan did, entry by entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from kindle_mtp.core.device.models import ObjectEntry
from kindle_mtp.core.transfer.paths import PathSegments
from kindle_mtp.exceptions import KindleMTPError


class OperationState(Enum):
    """Lifecycle of a top-level operation."""

    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PlanEntry:
    """
    One object to act on.

    Attributes:
        source: The device object
        relative_path: Location relative to the operation's root
                       (empty for the root object itself)
    """

    source: ObjectEntry
    relative_path: PathSegments

    @property
    def is_directory(self) -> bool:
        return self.source.is_directory


@dataclass
class TransferPlan:
    """Entries of an operation in depth-first pre-order."""

    root: ObjectEntry
    root_path: PathSegments
    entries: list[PlanEntry] = field(default_factory=list)

    def __iter__(self) -> Iterator[PlanEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __reversed__(self) -> Iterator[PlanEntry]:
        return reversed(self.entries)

    @property
    def files(self) -> list[PlanEntry]:
        return [entry for entry in self.entries if not entry.is_directory]

    @property
    def total_bytes(self) -> int:
        return sum(entry.source.size for entry in self.files)

    def device_path(self, entry: PlanEntry) -> PathSegments:
        """Absolute device path of a planned entry."""
        return self.root_path.joinpath(entry.relative_path)


@dataclass(frozen=True)
class EntryFailure:
    """A planned entry that could not be processed."""

    path: str
    error: KindleMTPError

    @property
    def kind(self) -> str:
        return self.error.kind

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "kind": self.error.kind,
            "message": str(self.error),
        }


@dataclass
class OperationReport:
    """
    Progress and outcome of a top-level operation.

    Attributes:
        operation: "pull", "delete", "mkdir" or "push"
        root: Device path the operation was invoked on
        state: Current lifecycle state
        planned: Number of planned entries
        completed: Device paths of entries that succeeded
        failures: Entries that failed, with their error
        total_bytes: Bytes the plan expects to move
        completed_bytes: Bytes moved so far
        current: Device path being processed
        destination: Local destination, for pulls
    """

    operation: str
    root: str
    state: OperationState = OperationState.PLANNING
    planned: int = 0
    completed: list[str] = field(default_factory=list)
    failures: list[EntryFailure] = field(default_factory=list)
    total_bytes: int = 0
    completed_bytes: int = 0
    current: Optional[str] = None
    destination: Optional[str] = None

    @property
    def percentage(self) -> float:
        """Get completion percentage."""
        if self.total_bytes == 0:
            if self.planned == 0:
                return 0.0
            done = len(self.completed) + len(self.failures)
            return (done / self.planned) * 100
        return (self.completed_bytes / self.total_bytes) * 100

    @property
    def failed_paths(self) -> list[str]:
        return [failure.path for failure in self.failures]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "operation": self.operation,
            "root": self.root,
            "state": self.state.value,
            "planned": self.planned,
            "completed": len(self.completed),
            "failed": [failure.to_dict() for failure in self.failures],
            "bytes": self.completed_bytes,
        }
        if self.destination is not None:
            data["destination"] = self.destination
        return data
