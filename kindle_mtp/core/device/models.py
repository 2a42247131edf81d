"""
Value types produced by the device session.

ObjectEntry and StorageInfo are immutable snapshots taken at listing
time; they are only meaningful within the session that produced them,
since the device may renumber objects on reconnect.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from kindle_mtp.constants import ROOT_ID


class ObjectKind(Enum):
    """Kind of object in the device's object graph."""

    FILE = "file"
    DIRECTORY = "directory"


def format_size(size: int) -> str:
    """Format bytes as a human-readable string."""
    if size >= 1_000_000_000:
        return f"{size / 1_000_000_000:.1f}G"
    if size >= 1_000_000:
        return f"{size / 1_000_000:.1f}M"
    if size >= 1_000:
        return f"{size / 1_000:.1f}K"
    return f"{size}B"


@dataclass(frozen=True)
class ObjectEntry:
    """
    A file or directory on the device.

    Attributes:
        id: Object identifier assigned by the device
        name: Object name (not unique: siblings may share a name)
        kind: File or directory
        size: Size in bytes (0 for directories)
        parent: Parent object identifier, None for the root itself
        modified: Last modification time, if the device reports one
    """

    id: int
    name: str
    kind: ObjectKind
    size: int = 0
    parent: Optional[int] = ROOT_ID
    modified: Optional[datetime] = None

    @property
    def is_directory(self) -> bool:
        return self.kind is ObjectKind.DIRECTORY

    @property
    def is_root(self) -> bool:
        return self.id == ROOT_ID

    @property
    def size_human(self) -> str:
        """Get human-readable size string."""
        if self.is_directory:
            return "-"
        return format_size(self.size)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "is_folder": self.is_directory,
            "size": self.size,
            "parent": self.parent,
            "modified": self.modified.isoformat() if self.modified else None,
        }


ROOT_ENTRY = ObjectEntry(id=ROOT_ID, name="", kind=ObjectKind.DIRECTORY, parent=None)


@dataclass(frozen=True)
class StorageInfo:
    """Capacity of the storage the session operates on."""

    total_capacity: int
    free_capacity: int
    description: str
    storage_id: int = 0

    @property
    def used_capacity(self) -> int:
        return max(self.total_capacity - self.free_capacity, 0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "storage_id": self.storage_id,
            "description": self.description,
            "total_bytes": self.total_capacity,
            "free_bytes": self.free_capacity,
            "used_bytes": self.used_capacity,
        }


@dataclass(frozen=True)
class RawDevice:
    """
    An attached MTP device as enumerated by libmtp, before opening.

    Attributes:
        vendor_id: USB vendor identifier
        product_id: USB product identifier (informational only)
        vendor: Vendor name from libmtp's device table
        product: Product name from libmtp's device table
        bus_location: USB bus number
        devnum: Device number on the bus
        handle: Opaque library handle used to open the device
    """

    vendor_id: int
    product_id: int
    vendor: str
    product: str
    bus_location: int
    devnum: int
    handle: Any = None

    @property
    def location(self) -> str:
        """Selector string identifying this device on the bus."""
        return f"{self.bus_location}:{self.devnum}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "location": self.location,
            "vendor_id": f"{self.vendor_id:04x}",
            "product_id": f"{self.product_id:04x}",
            "vendor": self.vendor,
            "product": self.product,
        }


@dataclass(frozen=True)
class DeviceInfo:
    """Identity of an opened device."""

    manufacturer: str
    model: str
    serial: str
    friendly_name: str
    vendor_id: int
    product_id: int
    location: str

    @property
    def display_name(self) -> str:
        """Get a display-friendly name for the device."""
        return self.friendly_name or self.model

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "device": self.friendly_name,
            "manufacturer": self.manufacturer,
            "model": self.model,
            "serial": self.serial,
            "vendor_id": f"{self.vendor_id:04x}",
            "product_id": f"{self.product_id:04x}",
            "location": self.location,
        }
