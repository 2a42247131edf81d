"""
Error taxonomy for the kindle_mtp package.

Every failure surfaced to the command layer is a KindleMTPError subclass,
whatever layer it came from (device I/O, path resolution or the local
filesystem). Each class carries the process exit code it maps to, so the
CLI never has to inspect raw libmtp or OS errors.
"""

from __future__ import annotations

import errno
from typing import TYPE_CHECKING, Any, Optional

from kindle_mtp.constants import EXIT_INTERRUPTED

if TYPE_CHECKING:
    from kindle_mtp.core.transfer.plan import OperationReport


class KindleMTPError(Exception):
    """Base exception for all kindle_mtp errors."""

    kind = "internal"
    exit_code = 1
    connection_fatal = False

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        self.report: Optional[OperationReport] = None
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        data: dict[str, Any] = {
            "kind": self.kind,
            "message": str(self),
            "exit_code": self.exit_code,
        }
        if self.report is not None:
            data["report"] = self.report.to_dict()
        return data


class InternalError(KindleMTPError):
    """Condition not otherwise classified, e.g. an unexpected libmtp failure."""

    kind = "internal"
    exit_code = 1


# Device errors
class DeviceNotFoundError(KindleMTPError):
    """No allow-listed device is attached (or the selector matched none)."""

    kind = "device_not_found"
    exit_code = 2
    connection_fatal = True

    def __init__(self, selector: Optional[str] = None, details: Optional[str] = None):
        self.selector = selector
        if details is None and selector:
            details = f"No Kindle found matching '{selector}'"
        super().__init__("No Kindle device found", details)


class DeviceDisconnectedError(DeviceNotFoundError):
    """The device went away while the session was open."""

    def __init__(self, details: Optional[str] = None):
        self.selector = None
        KindleMTPError.__init__(self, "Kindle disconnected", details)


class AmbiguousDeviceError(KindleMTPError):
    """More than one allow-listed device matched and no selector disambiguates."""

    kind = "ambiguous_device"
    exit_code = 2

    def __init__(self, locations: list[str]):
        self.locations = locations
        super().__init__(
            "Multiple Kindle devices found",
            f"Select one with --device ({', '.join(locations)})",
        )


# Path errors
class PathNotFoundError(KindleMTPError):
    """A path segment has no matching child."""

    kind = "path_not_found"
    exit_code = 3

    def __init__(self, path: str, segment: str):
        self.path = path
        self.segment = segment
        super().__init__(
            f"File not found: {path}",
            f"'{segment}' not found in path",
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(path=self.path, segment=self.segment)
        return data


class PathNotADirectoryError(KindleMTPError):
    """A directory was required but the path names a file."""

    kind = "not_a_directory"
    exit_code = 3

    def __init__(self, path: str, segment: Optional[str] = None):
        self.path = path
        self.segment = segment
        details = f"'{segment}' is not a directory" if segment else None
        super().__init__(f"Not a directory: {path}", details)


class InvalidPathError(KindleMTPError):
    """The path argument cannot be used for the requested operation."""

    kind = "invalid_path"
    exit_code = 1

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Invalid path: {path}", reason)


class AlreadyExistsError(KindleMTPError):
    """An object with the requested name already exists."""

    kind = "already_exists"
    exit_code = 1

    def __init__(self, path: str, details: Optional[str] = None):
        self.path = path
        super().__init__(f"Already exists: {path}", details)


# Transfer errors
class PermissionDeniedError(KindleMTPError):
    """The device or the local filesystem refused access."""

    kind = "permission_denied"
    exit_code = 4


class StorageFullError(KindleMTPError):
    """No space left on the device or on the local disk."""

    kind = "storage_full"
    exit_code = 5


class TransferFailedError(KindleMTPError):
    """A file transfer was interrupted or rejected."""

    kind = "transfer_failed"
    exit_code = 6

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        connection_lost: bool = False,
    ):
        super().__init__(message, details)
        self.connection_fatal = connection_lost


class PartiallyFailedError(KindleMTPError):
    """A bulk operation ran to completion but some entries failed."""

    kind = "partially_failed"
    exit_code = 6

    def __init__(self, report: OperationReport):
        failed = len(report.failures)
        super().__init__(
            f"{report.operation.capitalize()} partially failed",
            f"{failed} of {report.planned} entries failed",
        )
        self.report = report

    @property
    def failures(self):
        return self.report.failures


def exit_code_for(exc: BaseException) -> int:
    """Map any exception to the process exit code."""
    if isinstance(exc, KindleMTPError):
        return exc.exit_code
    if isinstance(exc, KeyboardInterrupt):
        return EXIT_INTERRUPTED
    return InternalError.exit_code


def error_from_oserror(exc: OSError, path: Any) -> KindleMTPError:
    """Translate a local filesystem error into the taxonomy."""
    reason = exc.strerror or str(exc)
    if exc.errno in (errno.EACCES, errno.EPERM):
        return PermissionDeniedError("Permission denied", f"{path}: {reason}")
    if exc.errno in (errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)):
        return StorageFullError("Storage full", f"{path}: {reason}")
    return TransferFailedError("Transfer failed", f"{path}: {reason}")
