"""
ctypes bindings to libmtp.

Exposes the handful of LIBMTP_* calls the device session needs, with
raw C structures converted into ObjectEntry / StorageInfo / RawDevice
values. Every failing call raises LibMTPError carrying the libmtp error
number and the text drained from the device error stack; nothing in
this module knows about the package's error taxonomy.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import os
from ctypes import (
    POINTER,
    Structure,
    c_char_p,
    c_int,
    c_long,
    c_uint8,
    c_uint16,
    c_uint32,
    c_uint64,
    c_void_p,
)
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from kindle_mtp.constants import (
    LIBMTP_ERROR_CONNECTING,
    LIBMTP_ERROR_GENERAL,
    LIBMTP_ERROR_NONE,
    LIBMTP_ERROR_NO_DEVICE_ATTACHED,
    LIBMTP_FILETYPE_FOLDER,
    LIBMTP_LIBRARY_NAMES,
    LIBMTP_PATH_ENV,
)
from kindle_mtp.core.device.models import ObjectEntry, ObjectKind, RawDevice, StorageInfo

logger = logging.getLogger(__name__)

LIBMTP_FILETYPE_UNKNOWN = 44


class LibMTPError(Exception):
    """A libmtp call failed."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{message} (libmtp error {code})")


# Define libmtp data structures
class LIBMTP_device_entry_struct(Structure):
    _fields_ = [
        ("vendor", c_char_p),
        ("vendor_id", c_uint16),
        ("product", c_char_p),
        ("product_id", c_uint16),
        ("device_flags", c_uint32),
    ]


class LIBMTP_raw_device_struct(Structure):
    _fields_ = [
        ("device_entry", LIBMTP_device_entry_struct),
        ("bus_location", c_uint32),
        ("devnum", c_uint8),
    ]


class LIBMTP_error_struct(Structure):
    pass


LIBMTP_error_struct._fields_ = [
    ("errornumber", c_int),
    ("error_text", c_char_p),
    ("next", POINTER(LIBMTP_error_struct)),
]


class LIBMTP_devicestorage_struct(Structure):
    pass


LIBMTP_devicestorage_struct._fields_ = [
    ("id", c_uint32),
    ("storage_type", c_uint16),
    ("filesystem_type", c_uint16),
    ("access_capability", c_uint16),
    ("maximum_capacity", c_uint64),
    ("free_space_in_bytes", c_uint64),
    ("free_space_in_objects", c_uint64),
    ("storage_description", c_char_p),
    ("volume_identifier", c_char_p),
    ("next", POINTER(LIBMTP_devicestorage_struct)),
    ("prev", POINTER(LIBMTP_devicestorage_struct)),
]


# Only the leading members are read; the rest of the struct is opaque.
class LIBMTP_mtpdevice_struct(Structure):
    _fields_ = [
        ("object_bitsize", c_uint8),
        ("params", c_void_p),
        ("usbinfo", c_void_p),
        ("storage", POINTER(LIBMTP_devicestorage_struct)),
        ("errorstack", POINTER(LIBMTP_error_struct)),
    ]


class LIBMTP_file_struct(Structure):
    pass


LIBMTP_file_struct._fields_ = [
    ("item_id", c_uint32),
    ("parent_id", c_uint32),
    ("storage_id", c_uint32),
    ("filename", c_char_p),
    ("filesize", c_uint64),
    ("modificationdate", c_long),
    ("filetype", c_int),
    ("next", POINTER(LIBMTP_file_struct)),
]


DevicePointer = POINTER(LIBMTP_mtpdevice_struct)


def _decode(value: Optional[bytes]) -> str:
    return value.decode("utf-8", errors="replace") if value else ""


def entry_from_file_struct(file: LIBMTP_file_struct) -> ObjectEntry:
    """Convert one LIBMTP_file_t node into an ObjectEntry."""
    is_folder = file.filetype == LIBMTP_FILETYPE_FOLDER
    modified = None
    if file.modificationdate > 0:
        try:
            modified = datetime.fromtimestamp(file.modificationdate)
        except (OverflowError, OSError, ValueError):
            modified = None

    return ObjectEntry(
        id=file.item_id,
        name=_decode(file.filename),
        kind=ObjectKind.DIRECTORY if is_folder else ObjectKind.FILE,
        size=0 if is_folder else file.filesize,
        parent=file.parent_id,
        modified=modified,
    )


def storage_from_struct(storage: LIBMTP_devicestorage_struct) -> StorageInfo:
    """Convert one LIBMTP_devicestorage_t node into a StorageInfo."""
    return StorageInfo(
        total_capacity=storage.maximum_capacity,
        free_capacity=storage.free_space_in_bytes,
        description=_decode(storage.storage_description) or "Internal Storage",
        storage_id=storage.id,
    )


class LibMTP:
    """
    Thin wrapper over the libmtp shared library.

    Device handles returned by open() are opaque to callers and must be
    passed back to the other methods, then released with close().
    """

    def __init__(self, lib: Any = None):
        """
        Load libmtp and initialise it.

        Args:
            lib: Already loaded library object (used by tests).

        Raises:
            LibMTPError: If the shared library cannot be found.
        """
        self.lib = lib if lib is not None else self._load_libmtp()
        self._libc = self._load_libc()
        self._setup_function_prototypes()
        self.lib.LIBMTP_Init()

    @staticmethod
    def _load_libmtp() -> Any:
        """Load libmtp using ctypes, honouring KINDLE_MTP_LIBMTP."""
        candidates = []
        explicit = os.environ.get(LIBMTP_PATH_ENV)
        if explicit:
            candidates.append(explicit)
        candidates.extend(LIBMTP_LIBRARY_NAMES)
        found = ctypes.util.find_library("mtp")
        if found:
            candidates.append(found)

        for name in candidates:
            try:
                lib = ctypes.CDLL(name)
                logger.debug(f"Loaded libmtp from {name}")
                return lib
            except OSError:
                continue

        raise LibMTPError(
            LIBMTP_ERROR_GENERAL,
            "Failed to load libmtp. Please make sure libmtp is installed",
        )

    @staticmethod
    def _load_libc() -> Any:
        name = ctypes.util.find_library("c")
        if not name:
            return None
        try:
            return ctypes.CDLL(name)
        except OSError:
            return None

    def _setup_function_prototypes(self) -> None:
        """Define function prototypes for libmtp."""
        lib = self.lib

        lib.LIBMTP_Init.argtypes = []
        lib.LIBMTP_Init.restype = None

        lib.LIBMTP_Detect_Raw_Devices.argtypes = [
            POINTER(POINTER(LIBMTP_raw_device_struct)),
            POINTER(c_int),
        ]
        lib.LIBMTP_Detect_Raw_Devices.restype = c_int

        lib.LIBMTP_Open_Raw_Device_Uncached.argtypes = [POINTER(LIBMTP_raw_device_struct)]
        lib.LIBMTP_Open_Raw_Device_Uncached.restype = DevicePointer

        lib.LIBMTP_Release_Device.argtypes = [DevicePointer]
        lib.LIBMTP_Release_Device.restype = None

        lib.LIBMTP_Get_Storage.argtypes = [DevicePointer, c_int]
        lib.LIBMTP_Get_Storage.restype = c_int

        lib.LIBMTP_Get_Files_And_Folders.argtypes = [DevicePointer, c_uint32, c_uint32]
        lib.LIBMTP_Get_Files_And_Folders.restype = POINTER(LIBMTP_file_struct)

        lib.LIBMTP_destroy_file_t.argtypes = [POINTER(LIBMTP_file_struct)]
        lib.LIBMTP_destroy_file_t.restype = None

        lib.LIBMTP_Get_File_To_File.argtypes = [
            DevicePointer, c_uint32, c_char_p, c_void_p, c_void_p,
        ]
        lib.LIBMTP_Get_File_To_File.restype = c_int

        lib.LIBMTP_Send_File_From_File.argtypes = [
            DevicePointer, c_char_p, POINTER(LIBMTP_file_struct), c_void_p, c_void_p,
        ]
        lib.LIBMTP_Send_File_From_File.restype = c_int

        lib.LIBMTP_Delete_Object.argtypes = [DevicePointer, c_uint32]
        lib.LIBMTP_Delete_Object.restype = c_int

        lib.LIBMTP_Create_Folder.argtypes = [DevicePointer, c_char_p, c_uint32, c_uint32]
        lib.LIBMTP_Create_Folder.restype = c_uint32

        lib.LIBMTP_Get_Errorstack.argtypes = [DevicePointer]
        lib.LIBMTP_Get_Errorstack.restype = POINTER(LIBMTP_error_struct)

        lib.LIBMTP_Clear_Errorstack.argtypes = [DevicePointer]
        lib.LIBMTP_Clear_Errorstack.restype = None

        # String getters return malloc'd memory the caller must free
        for getter in (
            "LIBMTP_Get_Manufacturername",
            "LIBMTP_Get_Modelname",
            "LIBMTP_Get_Serialnumber",
            "LIBMTP_Get_Friendlyname",
        ):
            func = getattr(lib, getter)
            func.argtypes = [DevicePointer]
            func.restype = c_void_p

    def enumerate_devices(self) -> list[RawDevice]:
        """
        Detect attached MTP devices without opening them.

        Returns:
            List of RawDevice, empty when nothing is attached.
        """
        num_devices = c_int()
        raw_devices = POINTER(LIBMTP_raw_device_struct)()

        res = self.lib.LIBMTP_Detect_Raw_Devices(
            ctypes.byref(raw_devices), ctypes.byref(num_devices)
        )
        if res == LIBMTP_ERROR_NO_DEVICE_ATTACHED:
            return []
        if res != LIBMTP_ERROR_NONE:
            raise LibMTPError(res, "Failed to detect MTP devices")

        devices = []
        for i in range(num_devices.value):
            raw = raw_devices[i]
            entry = raw.device_entry
            devices.append(RawDevice(
                vendor_id=entry.vendor_id,
                product_id=entry.product_id,
                vendor=_decode(entry.vendor),
                product=_decode(entry.product),
                bus_location=raw.bus_location,
                devnum=raw.devnum,
                handle=raw,
            ))
        return devices

    def open(self, raw: RawDevice) -> Any:
        """Open an uncached connection to a raw device."""
        logger.debug(f"Opening device at {raw.location} ({raw.vendor_id:04x}:{raw.product_id:04x})")
        device = self.lib.LIBMTP_Open_Raw_Device_Uncached(ctypes.byref(raw.handle))
        if not device:
            raise LibMTPError(LIBMTP_ERROR_CONNECTING, f"Failed to open MTP device at {raw.location}")
        return device

    def close(self, device: Any) -> None:
        """Release the device handle."""
        self.lib.LIBMTP_Release_Device(device)

    def get_storage_info(self, device: Any) -> list[StorageInfo]:
        """Refresh and return the storages reported by the device."""
        rc = self.lib.LIBMTP_Get_Storage(device, 0)
        if rc != 0:
            self._raise_last_error(device, "LIBMTP_Get_Storage failed")

        storages = []
        storage_ptr = device.contents.storage
        while storage_ptr:
            storage = storage_ptr.contents
            storages.append(storage_from_struct(storage))
            storage_ptr = storage.next
        return storages

    def list_children(self, device: Any, storage_id: int, parent_id: int) -> list[ObjectEntry]:
        """
        List the immediate children of a folder, in device order.

        libmtp returns NULL both for an empty folder and on failure, so
        the error stack decides which one it was.
        """
        self.lib.LIBMTP_Clear_Errorstack(device)
        file_ptr = self.lib.LIBMTP_Get_Files_And_Folders(device, storage_id, parent_id)

        entries = []
        while file_ptr:
            file = file_ptr.contents
            entries.append(entry_from_file_struct(file))
            next_ptr = file.next
            self.lib.LIBMTP_destroy_file_t(file_ptr)
            file_ptr = next_ptr

        if not entries:
            code, text = self._drain_errorstack(device)
            if code != LIBMTP_ERROR_NONE:
                raise LibMTPError(code, text or f"Failed to list folder {parent_id}")
        return entries

    def read_file(self, device: Any, object_id: int, destination: Path) -> None:
        """Copy an object's content to a local path."""
        result = self.lib.LIBMTP_Get_File_To_File(
            device, object_id, str(destination).encode("utf-8"), None, None
        )
        if result != 0:
            self._raise_last_error(device, f"Failed to download object {object_id}")

    def write_file(
        self,
        device: Any,
        source: Path,
        parent_id: int,
        storage_id: int,
        name: str,
    ) -> int:
        """Upload a local file and return its new object identifier."""
        file_struct = LIBMTP_file_struct()
        file_struct.parent_id = parent_id
        file_struct.storage_id = storage_id
        file_struct.filename = name.encode("utf-8")
        file_struct.filesize = source.stat().st_size
        file_struct.filetype = LIBMTP_FILETYPE_UNKNOWN

        result = self.lib.LIBMTP_Send_File_From_File(
            device, str(source).encode("utf-8"), ctypes.byref(file_struct), None, None
        )
        if result != 0:
            self._raise_last_error(device, f"Failed to upload {source}")
        return file_struct.item_id

    def delete_object(self, device: Any, object_id: int) -> None:
        """Delete a single object."""
        if self.lib.LIBMTP_Delete_Object(device, object_id) != 0:
            self._raise_last_error(device, f"Failed to delete object {object_id}")

    def create_folder(self, device: Any, parent_id: int, storage_id: int, name: str) -> int:
        """Create a folder and return its new object identifier."""
        # libmtp may rewrite the name in place
        buffer = ctypes.create_string_buffer(name.encode("utf-8"))
        folder_id = self.lib.LIBMTP_Create_Folder(device, buffer, parent_id, storage_id)
        if folder_id == 0:
            self._raise_last_error(device, f"Failed to create folder {name}")
        return folder_id

    def device_strings(self, device: Any) -> dict[str, Optional[str]]:
        """Read the identity strings of an opened device."""
        return {
            "manufacturer": self._get_string(self.lib.LIBMTP_Get_Manufacturername, device),
            "model": self._get_string(self.lib.LIBMTP_Get_Modelname, device),
            "serial": self._get_string(self.lib.LIBMTP_Get_Serialnumber, device),
            "friendly_name": self._get_string(self.lib.LIBMTP_Get_Friendlyname, device),
        }

    def _get_string(self, getter: Any, device: Any) -> Optional[str]:
        ptr = getter(device)
        if not ptr:
            return None
        try:
            return _decode(ctypes.string_at(ptr))
        finally:
            if self._libc is not None:
                self._libc.free(c_void_p(ptr))

    def _drain_errorstack(self, device: Any) -> tuple[int, str]:
        """Return the first error number and all error texts, then clear the stack."""
        code = LIBMTP_ERROR_NONE
        texts = []
        error_ptr = self.lib.LIBMTP_Get_Errorstack(device)
        while error_ptr:
            error = error_ptr.contents
            if code == LIBMTP_ERROR_NONE:
                code = error.errornumber
            if error.error_text:
                texts.append(_decode(error.error_text))
            error_ptr = error.next
        self.lib.LIBMTP_Clear_Errorstack(device)
        return code, "; ".join(texts)

    def _raise_last_error(self, device: Any, message: str) -> None:
        code, text = self._drain_errorstack(device)
        if code == LIBMTP_ERROR_NONE:
            code = LIBMTP_ERROR_GENERAL
        raise LibMTPError(code, f"{message}: {text}" if text else message)


_library: Optional[LibMTP] = None


def get_library() -> LibMTP:
    """Get the process-wide libmtp binding (loaded on first use)."""
    global _library
    if _library is None:
        _library = LibMTP()
    return _library
