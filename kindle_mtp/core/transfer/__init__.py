"""
Path-based file operations on a Kindle.

This module resolves device paths to objects and pulls, pushes and
deletes them.

Example:
    from kindle_mtp.core.transfer import FileManager

    with DeviceSession.open() as session:
        manager = FileManager(session)
        for entry in manager.list_directory("/documents"):
            print(f"{entry.name} - {entry.size}")

        manager.pull("/documents", Path("./backup"), recursive=True)
"""

from kindle_mtp.core.transfer.manager import FileManager
from kindle_mtp.core.transfer.paths import ROOT_PATH, PathSegments, normalize
from kindle_mtp.core.transfer.plan import (
    EntryFailure,
    OperationReport,
    OperationState,
    PlanEntry,
    TransferPlan,
)
from kindle_mtp.core.transfer.resolver import DirectoryCache, PathResolver

__all__ = [
    "DirectoryCache",
    "EntryFailure",
    "FileManager",
    "OperationReport",
    "OperationState",
    "PathResolver",
    "PathSegments",
    "PlanEntry",
    "ROOT_PATH",
    "TransferPlan",
    "normalize",
]
