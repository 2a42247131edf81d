"""
Device session for Kindle e-readers.

A session owns exactly one open libmtp handle for the duration of one
command. It is the only layer that sees LibMTPError: every raw library
failure is translated into the package's error taxonomy here.

Example:
    with DeviceSession.open() as session:
        for entry in session.list_children():
            print(entry.name)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from kindle_mtp.constants import (
    AMAZON_VENDOR_ID,
    CONNECTION_LOST_ERRORS,
    LIBMTP_ERROR_CANCELLED,
    LIBMTP_ERROR_STORAGE_FULL,
    ROOT_ID,
)
from kindle_mtp.core.device.libmtp import LibMTP, LibMTPError, get_library
from kindle_mtp.core.device.models import (
    DeviceInfo,
    ObjectEntry,
    ObjectKind,
    RawDevice,
    StorageInfo,
)
from kindle_mtp.core.localfs import LocalFilesystem
from kindle_mtp.exceptions import (
    AmbiguousDeviceError,
    DeviceDisconnectedError,
    DeviceNotFoundError,
    InternalError,
    KindleMTPError,
    PermissionDeniedError,
    StorageFullError,
    TransferFailedError,
    error_from_oserror,
)

logger = logging.getLogger(__name__)

_PERMISSION_MARKERS = ("access denied", "access_denied", "write protect", "write_protected", "permission")
_STORAGE_FULL_MARKERS = ("store full", "store_full", "storage full", "no space")


def translate_error(exc: LibMTPError, operation: str, transfer: bool = False) -> KindleMTPError:
    """
    Map a libmtp failure onto the error taxonomy.

    Args:
        exc: The raw library error.
        operation: Short description used in the message.
        transfer: Whether the failing call moved file content, in which
                  case unclassified failures are TransferFailed rather
                  than InternalError.
    """
    text = exc.message.lower()

    if exc.code in CONNECTION_LOST_ERRORS:
        if transfer:
            return TransferFailedError(
                f"{operation} interrupted", exc.message, connection_lost=True
            )
        return DeviceDisconnectedError(f"{operation}: {exc.message}")

    if exc.code == LIBMTP_ERROR_STORAGE_FULL or any(m in text for m in _STORAGE_FULL_MARKERS):
        return StorageFullError("Storage full", exc.message)

    if any(m in text for m in _PERMISSION_MARKERS):
        return PermissionDeniedError("Permission denied", exc.message)

    if exc.code == LIBMTP_ERROR_CANCELLED or transfer:
        return TransferFailedError(f"{operation} failed", exc.message)

    return InternalError(f"{operation} failed", exc.message)


class DeviceSession:
    """
    One open connection to an allow-listed MTP device.

    Opening and closing a session resets the USB connection on some
    hosts, so one session must span a whole top-level command.

    Example:
        with DeviceSession.open(selector="1:7") as session:
            print(session.storage_info().free_capacity)
    """

    def __init__(
        self,
        library: Optional[LibMTP] = None,
        vendor_id: int = AMAZON_VENDOR_ID,
        filesystem: Optional[LocalFilesystem] = None,
    ):
        """
        Initialize an unopened session.

        Args:
            library: libmtp binding. Defaults to the process-wide one.
            vendor_id: USB vendor identifier devices must match.
            filesystem: Local filesystem used for pull destinations.
        """
        self._library = library
        self.vendor_id = vendor_id
        self.filesystem = filesystem or LocalFilesystem()
        self._device: Any = None
        self._raw: Optional[RawDevice] = None
        self._storage: Optional[StorageInfo] = None

    @classmethod
    def open(
        cls,
        selector: Optional[str] = None,
        library: Optional[LibMTP] = None,
        vendor_id: int = AMAZON_VENDOR_ID,
        filesystem: Optional[LocalFilesystem] = None,
    ) -> DeviceSession:
        """
        Open a session on the single matching device.

        Args:
            selector: Bus location ("bus:devnum") picking one device.
            library: libmtp binding.
            vendor_id: USB vendor identifier devices must match.
            filesystem: Local filesystem used for pull destinations.

        Raises:
            DeviceNotFoundError: If no device matches.
            AmbiguousDeviceError: If several devices match and no
                selector picks one.
        """
        session = cls(library=library, vendor_id=vendor_id, filesystem=filesystem)
        session._open(selector)
        return session

    @property
    def library(self) -> LibMTP:
        if self._library is None:
            try:
                self._library = get_library()
            except LibMTPError as e:
                raise InternalError("libmtp unavailable", e.message) from e
        return self._library

    @property
    def is_open(self) -> bool:
        return self._device is not None

    def detect(self) -> list[RawDevice]:
        """
        List attached allow-listed devices without opening any of them.

        Product identifiers are informational and never filtered on.
        """
        try:
            devices = self.library.enumerate_devices()
        except LibMTPError as e:
            raise translate_error(e, "Device detection") from e

        matches = [d for d in devices if d.vendor_id == self.vendor_id]
        logger.debug(f"Detected {len(devices)} MTP device(s), {len(matches)} allow-listed")
        return matches

    def _open(self, selector: Optional[str]) -> None:
        matches = self.detect()
        if selector:
            matches = [d for d in matches if d.location == selector]

        if not matches:
            raise DeviceNotFoundError(selector)
        if len(matches) > 1:
            raise AmbiguousDeviceError([d.location for d in matches])

        raw = matches[0]
        try:
            self._device = self.library.open(raw)
        except LibMTPError as e:
            raise DeviceNotFoundError(selector, e.message) from e

        self._raw = raw
        logger.info(f"Opened {raw.vendor} {raw.product} at {raw.location}")

    def _ensure_open(self) -> Any:
        if self._device is None:
            raise InternalError("Device session is closed")
        return self._device

    def close(self) -> None:
        """Release the device handle. Safe to call more than once."""
        device = self._device
        if device is None:
            return
        self._device = None
        self._storage = None
        try:
            self.library.close(device)
        except LibMTPError as e:
            logger.warning(f"Failed to release device cleanly: {e}")
        logger.debug("Device session closed")

    def __enter__(self) -> DeviceSession:
        """Context manager entry."""
        self._ensure_open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    def device_info(self) -> DeviceInfo:
        """Get the identity of the opened device."""
        device = self._ensure_open()
        try:
            strings = self.library.device_strings(device)
        except LibMTPError as e:
            raise translate_error(e, "Reading device information") from e

        raw = self._raw
        return DeviceInfo(
            manufacturer=strings.get("manufacturer") or "Unknown",
            model=strings.get("model") or "Unknown",
            serial=strings.get("serial") or "",
            friendly_name=strings.get("friendly_name") or "Kindle",
            vendor_id=raw.vendor_id if raw else self.vendor_id,
            product_id=raw.product_id if raw else 0,
            location=raw.location if raw else "",
        )

    def storage_info(self) -> StorageInfo:
        """
        Query capacity of the primary storage.

        Always asks the device, so free space reflects transfers made
        earlier in the same session.
        """
        device = self._ensure_open()
        try:
            storages = self.library.get_storage_info(device)
        except LibMTPError as e:
            raise translate_error(e, "Reading storage") from e

        if not storages:
            raise InternalError("No storage found", "Is the device unlocked?")
        self._storage = storages[0]
        return self._storage

    def _storage_id(self) -> int:
        if self._storage is None:
            self.storage_info()
        return self._storage.storage_id

    def list_children(self, parent_id: int = ROOT_ID) -> list[ObjectEntry]:
        """
        List the immediate children of a directory, in device order.

        Args:
            parent_id: Directory object identifier, or ROOT_ID.
        """
        device = self._ensure_open()
        storage_id = self._storage_id()
        logger.debug(f"Listing children of {parent_id:#x}")
        try:
            return self.library.list_children(device, storage_id, parent_id)
        except LibMTPError as e:
            raise translate_error(e, "Listing directory") from e

    def fetch(self, object_id: int, destination: Path) -> int:
        """
        Download a file to a local destination.

        The content is written to a temporary file beside the destination
        and renamed into place only once complete, so the destination is
        either absent or whole, also on interruption.

        Returns:
            Number of bytes written.
        """
        device = self._ensure_open()
        destination = Path(destination)
        try:
            with self.filesystem.atomic_write(destination) as temp_path:
                self.library.read_file(device, object_id, temp_path)
        except LibMTPError as e:
            raise translate_error(e, "Transfer", transfer=True) from e
        except OSError as e:
            raise error_from_oserror(e, destination) from e

        size = self.filesystem.size(destination)
        logger.debug(f"Fetched object {object_id} -> {destination} ({size} bytes)")
        return size

    def send(self, source: Path, parent_id: int, name: str) -> ObjectEntry:
        """Upload a local file into a directory."""
        device = self._ensure_open()
        storage_id = self._storage_id()
        source = Path(source)
        try:
            object_id = self.library.write_file(device, source, parent_id, storage_id, name)
            size = source.stat().st_size
        except LibMTPError as e:
            raise translate_error(e, "Upload", transfer=True) from e
        except OSError as e:
            raise error_from_oserror(e, source) from e

        logger.info(f"Uploaded {source} as object {object_id}")
        return ObjectEntry(
            id=object_id, name=name, kind=ObjectKind.FILE, size=size, parent=parent_id
        )

    def delete(self, object_id: int) -> None:
        """Delete a single object."""
        device = self._ensure_open()
        try:
            self.library.delete_object(device, object_id)
        except LibMTPError as e:
            raise translate_error(e, "Delete") from e
        logger.debug(f"Deleted object {object_id}")

    def create_directory(self, parent_id: int, name: str) -> int:
        """Create a directory and return its object identifier."""
        device = self._ensure_open()
        storage_id = self._storage_id()
        try:
            object_id = self.library.create_folder(device, parent_id, storage_id, name)
        except LibMTPError as e:
            raise translate_error(e, "Creating directory") from e
        logger.info(f"Created directory {name} as object {object_id}")
        return object_id
