"""
kindle_mtp core library modules.

This package contains the device session over libmtp, path resolution
on the device's object graph, and the transfer and delete orchestrator.
"""

from kindle_mtp.core.device import DeviceSession
from kindle_mtp.core.transfer import FileManager, PathResolver

__all__ = [
    "DeviceSession",
    "FileManager",
    "PathResolver",
]
