"""
Device access for Kindle e-readers over MTP.

Example:
    from kindle_mtp.core.device import DeviceSession

    with DeviceSession.open() as session:
        print(session.device_info().display_name)
        print(session.storage_info().free_capacity)
"""

from kindle_mtp.core.device.models import (
    DeviceInfo,
    ObjectEntry,
    ObjectKind,
    RawDevice,
    StorageInfo,
    format_size,
)
from kindle_mtp.core.device.session import DeviceSession, translate_error

__all__ = [
    "DeviceInfo",
    "DeviceSession",
    "ObjectEntry",
    "ObjectKind",
    "RawDevice",
    "StorageInfo",
    "format_size",
    "translate_error",
]
