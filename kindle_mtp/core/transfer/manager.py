"""
File operations on a Kindle: pull, push, delete and mkdir.

Every multi-object operation runs in two phases. Planning resolves the
path and walks the subtree using listings only, so a failure there
leaves nothing changed on either side. Execution then processes the plan
best-effort: a failed entry is recorded and the rest still run, unless
the failure means the device itself is gone.
"""

from __future__ import annotations

import functools
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Union

from kindle_mtp.core.device.models import ObjectEntry, ObjectKind
from kindle_mtp.core.localfs import LocalFilesystem
from kindle_mtp.core.transfer.paths import PathSegments, normalize
from kindle_mtp.core.transfer.plan import (
    EntryFailure,
    OperationReport,
    OperationState,
    PlanEntry,
    TransferPlan,
)
from kindle_mtp.core.transfer.resolver import PathResolver, sort_entries
from kindle_mtp.exceptions import (
    AlreadyExistsError,
    InvalidPathError,
    KindleMTPError,
    PartiallyFailedError,
    PathNotADirectoryError,
    error_from_oserror,
)

if TYPE_CHECKING:
    from kindle_mtp.core.device.session import DeviceSession

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[OperationReport], None]
DevicePath = Union[str, PathSegments]


def local_target(base: Path, names: tuple[str, ...], device_path: PathSegments) -> Path:
    """
    Map device names onto a path under a local base directory.

    Raises:
        InvalidPathError: If a name is not usable as a local file name
            (empty, "." or "..", or containing a separator or NUL), or
            the result would fall outside base.
    """
    for name in names:
        if (
            name in ("", ".", "..")
            or "\x00" in name
            or os.sep in name
            or (os.altsep and os.altsep in name)
        ):
            raise InvalidPathError(str(device_path), f"device name {name!r} cannot be used as a local file name")

    target = base.joinpath(*names)
    if not Path(os.path.abspath(target)).is_relative_to(os.path.abspath(base)):
        raise InvalidPathError(str(device_path), f"local target {target} is outside {base}")
    return target


class FileManager:
    """
    Manages file operations against one open device session.

    Example:
        with DeviceSession.open() as session:
            manager = FileManager(session)

            # Pull one book
            manager.pull("/documents/book.mobi", Path("."))

            # Pull a whole directory with progress
            def on_progress(report):
                print(f"{report.percentage:.1f}% - {report.current}")

            manager.pull("/documents", Path("./backup"), recursive=True,
                         progress_callback=on_progress)
    """

    def __init__(
        self,
        session: DeviceSession,
        resolver: Optional[PathResolver] = None,
        filesystem: Optional[LocalFilesystem] = None,
        overwrite: bool = True,
    ):
        """
        Initialize file manager.

        Args:
            session: Open device session.
            resolver: Path resolver sharing the session's cache.
            filesystem: Local filesystem for pull destinations.
            overwrite: Whether pulls may replace existing local files.
        """
        self.session = session
        self.resolver = resolver or PathResolver(session)
        self.filesystem = filesystem or session.filesystem
        self.overwrite = overwrite

    def resolve(self, path: DevicePath) -> ObjectEntry:
        return self.resolver.resolve(path)

    def list_directory(self, path: DevicePath = "/") -> list[ObjectEntry]:
        return self.resolver.list_directory(path)

    def plan(self, path: DevicePath, root: Optional[ObjectEntry] = None) -> TransferPlan:
        """
        Build the depth-first pre-order plan for a path.

        Directories precede their contents; siblings are visited in name
        order. Only listing calls are made.
        """
        segments = normalize(path)
        if root is None:
            root = self.resolver.resolve(segments)

        plan = TransferPlan(root=root, root_path=segments)
        plan.entries.append(PlanEntry(root, PathSegments()))
        if root.is_directory:
            self._walk(root, PathSegments(), plan.entries)
        return plan

    def _walk(self, directory: ObjectEntry, relative: PathSegments, entries: list[PlanEntry]) -> None:
        for child in sort_entries(self.resolver.children(directory.id)):
            child_path = relative.child(child.name)
            entries.append(PlanEntry(child, child_path))
            if child.is_directory:
                self._walk(child, child_path, entries)

    def _plan_operation(
        self,
        operation: str,
        path: DevicePath,
        recursive: bool,
    ) -> tuple[TransferPlan, OperationReport]:
        segments = normalize(path)
        report = OperationReport(operation=operation, root=str(segments))

        root = self.resolver.resolve(segments)
        if root.is_directory and not recursive:
            raise InvalidPathError(str(segments), "is a directory (use --recursive)")

        plan = self.plan(segments, root)
        report.planned = len(plan)
        report.total_bytes = plan.total_bytes
        report.state = OperationState.EXECUTING
        logger.debug(f"Planned {operation} of {segments}: {len(plan)} entries")
        return plan, report

    def pull(
        self,
        remote_path: DevicePath,
        local_path: Path,
        recursive: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> OperationReport:
        """
        Pull (download) a file or directory from the device.

        If local_path is an existing directory the object is placed inside
        it under its own name; otherwise local_path is the destination.

        Args:
            remote_path: Path on device.
            local_path: Local destination path.
            recursive: Required to pull a directory.
            progress_callback: Called with the report after each entry.

        Returns:
            OperationReport of a fully successful pull.

        Raises:
            PartiallyFailedError: If some entries failed.
            KindleMTPError: If planning failed, the only entry failed, or
                the device was lost mid-operation.
        """
        plan, report = self._plan_operation("pull", remote_path, recursive)

        local_path = Path(local_path)
        # Inside an existing directory the object keeps its own name
        if self.filesystem.is_dir(local_path) and not plan.root.is_root:
            prefix: tuple[str, ...] = (plan.root.name,)
        else:
            prefix = ()
        report.destination = str(local_path.joinpath(*prefix))

        for entry in plan:
            pull_entry = functools.partial(self._pull_entry, plan, entry, local_path, prefix, report)
            self._execute(plan, report, entry, pull_entry)
            if progress_callback:
                progress_callback(report)

        return self._finish(report)

    def _pull_entry(
        self,
        plan: TransferPlan,
        entry: PlanEntry,
        local_path: Path,
        prefix: tuple[str, ...],
        report: OperationReport,
    ) -> None:
        target = local_target(local_path, prefix + entry.relative_path.parts, plan.device_path(entry))
        try:
            if entry.is_directory:
                self.filesystem.makedirs(target)
                return
            if not self.overwrite and self.filesystem.exists(target):
                raise AlreadyExistsError(str(target), "local file exists and overwrite is disabled")
            self.filesystem.makedirs(target.parent)
        except OSError as e:
            raise error_from_oserror(e, target) from e

        report.completed_bytes += self.session.fetch(entry.source.id, target)

    def delete(
        self,
        remote_path: DevicePath,
        recursive: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> OperationReport:
        """
        Delete a file or directory on the device.

        Entries are deleted in reverse pre-order, so every directory is
        emptied before it is itself deleted.

        Raises:
            InvalidPathError: For the root, or a directory without recursive.
            PartiallyFailedError: If some entries failed.
        """
        if normalize(remote_path).is_root:
            raise InvalidPathError("/", "refusing to delete the root directory")

        plan, report = self._plan_operation("delete", remote_path, recursive)

        for entry in reversed(plan):
            self._execute(plan, report, entry, lambda e=entry: self._delete_entry(e))
            if progress_callback:
                progress_callback(report)

        return self._finish(report)

    def _delete_entry(self, entry: PlanEntry) -> None:
        self.session.delete(entry.source.id)
        self.resolver.record_deleted(entry.source.parent, entry.source.id)

    def _execute(
        self,
        plan: TransferPlan,
        report: OperationReport,
        entry: PlanEntry,
        action: Callable[[], None],
    ) -> None:
        """Run one planned action, recording its outcome."""
        device_path = str(plan.device_path(entry))
        report.current = device_path
        try:
            action()
        except KindleMTPError as e:
            report.failures.append(EntryFailure(device_path, e))
            if e.connection_fatal:
                logger.error(f"{report.operation} aborted at {device_path}: {e}")
                report.state = OperationState.ABORTED
                e.report = report
                raise
            logger.warning(f"Failed to {report.operation} {device_path}: {e}")
            return

        report.completed.append(device_path)
        logger.debug(f"{report.operation}: {device_path}")

    def _finish(self, report: OperationReport) -> OperationReport:
        report.current = None
        if not report.failures:
            report.state = OperationState.COMPLETED
            logger.info(f"{report.operation} of {report.root} completed ({len(report.completed)} entries)")
            return report

        report.state = OperationState.PARTIALLY_FAILED
        if report.planned == 1:
            error = report.failures[0].error
            error.report = report
            raise error
        raise PartiallyFailedError(report)

    def mkdir(self, path: DevicePath, force: bool = False) -> tuple[ObjectEntry, bool]:
        """
        Create a directory.

        Args:
            path: Path of the new directory; its parent must exist.
            force: Accept an existing directory of the same name.

        Returns:
            The directory entry, and whether it was newly created.

        Raises:
            PathNotFoundError: If the parent does not exist.
            AlreadyExistsError: If the name is taken and force is not set.
            PathNotADirectoryError: If the parent, or with force the
                existing object, is a file.
        """
        segments = normalize(path)
        if segments.is_root:
            raise AlreadyExistsError("/")

        parent = self.resolver.resolve(segments.parent)
        if not parent.is_directory:
            raise PathNotADirectoryError(str(segments.parent), segments.parent.name)

        existing = self.resolver.find_child(parent.id, segments.name)
        if existing is not None:
            if not force:
                raise AlreadyExistsError(str(segments))
            if not existing.is_directory:
                raise PathNotADirectoryError(str(segments), segments.name)
            return existing, False

        object_id = self.session.create_directory(parent.id, segments.name)
        entry = ObjectEntry(
            id=object_id,
            name=segments.name,
            kind=ObjectKind.DIRECTORY,
            parent=parent.id,
        )
        self.resolver.record_created(parent.id, entry)
        return entry, True

    def push(
        self,
        local_path: Path,
        remote_dir: DevicePath,
        force: bool = False,
    ) -> ObjectEntry:
        """
        Push (upload) a single file into a device directory.

        Args:
            local_path: Local file.
            remote_dir: Destination directory on the device.
            force: Replace an existing file of the same name. The new
                file is uploaded before the old one is deleted.

        Raises:
            InvalidPathError: If local_path is not a regular file.
            PathNotADirectoryError: If remote_dir is a file.
            AlreadyExistsError: If the name is taken (by a directory, or
                by a file without force).
        """
        local_path = Path(local_path)
        if not local_path.is_file():
            raise InvalidPathError(str(local_path), "not a regular file")

        segments = normalize(remote_dir)
        target = self.resolver.resolve(segments)
        if not target.is_directory:
            raise PathNotADirectoryError(str(segments), segments.name)

        name = local_path.name
        existing = self.resolver.find_child(target.id, name)
        if existing is not None:
            if existing.is_directory:
                raise AlreadyExistsError(str(segments.child(name)), "a directory has that name")
            if not force:
                raise AlreadyExistsError(str(segments.child(name)), "use --force to replace it")

        # Upload first: a failed send leaves the existing file untouched
        entry = self.session.send(local_path, target.id, name)
        self.resolver.record_created(target.id, entry)

        if existing is not None:
            try:
                self.session.delete(existing.id)
            except KindleMTPError:
                logger.warning(f"Uploaded {name} but could not remove the file it replaces (object {existing.id})")
                raise
            self.resolver.record_deleted(target.id, existing.id)
        return entry
