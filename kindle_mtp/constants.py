"""
Constants used throughout the kindle_mtp package.

This module contains the device allow-list, libmtp sentinels and
default paths. Import from here rather than hardcoding values elsewhere.
"""

from pathlib import Path

# Version info
VERSION = "0.1.0"
APP_NAME = "kindle-mtp"

# Device allow-list (Amazon)
AMAZON_VENDOR_ID = 0x1949

# Default paths
DEFAULT_CONFIG_DIR = Path.home() / ".kindle-mtp"
DEFAULT_LOG_DIR = DEFAULT_CONFIG_DIR / "logs"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"
LOG_FILE_NAME = "kindle-mtp.log"

# Environment variable naming an explicit libmtp shared library
LIBMTP_PATH_ENV = "KINDLE_MTP_LIBMTP"
LIBMTP_LIBRARY_NAMES = ["libmtp.so.9", "libmtp.so", "libmtp.dylib", "libmtp.dll"]

# libmtp object model
ROOT_ID = 0xFFFFFFFF  # LIBMTP_FILES_AND_FOLDERS_ROOT
LIBMTP_FILETYPE_FOLDER = 0

# libmtp error numbers (LIBMTP_error_number_t)
LIBMTP_ERROR_NONE = 0
LIBMTP_ERROR_GENERAL = 1
LIBMTP_ERROR_PTP_LAYER = 2
LIBMTP_ERROR_USB_LAYER = 3
LIBMTP_ERROR_MEMORY_ALLOCATION = 4
LIBMTP_ERROR_NO_DEVICE_ATTACHED = 5
LIBMTP_ERROR_STORAGE_FULL = 6
LIBMTP_ERROR_CONNECTING = 7
LIBMTP_ERROR_CANCELLED = 8

# Errors after which the device handle is no longer usable
CONNECTION_LOST_ERRORS = frozenset({
    LIBMTP_ERROR_USB_LAYER,
    LIBMTP_ERROR_NO_DEVICE_ATTACHED,
    LIBMTP_ERROR_CONNECTING,
})

# Local temporary files written next to pull destinations
TEMP_FILE_PREFIX = ".kindle-mtp-"
TEMP_FILE_SUFFIX = ".part"

# Exit codes
EXIT_INTERRUPTED = 130
