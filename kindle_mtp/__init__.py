"""
kindle-mtp - Manage Kindle files over MTP from the command line.

This package presents a Kindle's MTP object graph as an ordinary
path namespace: list, pull, push, delete and create directories by
path instead of by numeric object identifier.
"""

from kindle_mtp.constants import VERSION

__version__ = VERSION
__author__ = "kindle-mtp Contributors"

from kindle_mtp.core.device import DeviceInfo, DeviceSession, ObjectEntry
from kindle_mtp.core.transfer import FileManager, PathResolver

__all__ = [
    "DeviceInfo",
    "DeviceSession",
    "FileManager",
    "ObjectEntry",
    "PathResolver",
    "__version__",
]
