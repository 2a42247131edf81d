"""
Local filesystem access for pull destinations.

Downloads land in a temporary file next to their destination and are
renamed into place only when complete, so an interrupted transfer never
leaves a truncated file behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from kindle_mtp.constants import TEMP_FILE_PREFIX, TEMP_FILE_SUFFIX

logger = logging.getLogger(__name__)


class LocalFilesystem:
    """Directory creation and atomic file writes on the host."""

    def makedirs(self, path: Path) -> None:
        """Create a directory and any missing parents."""
        Path(path).mkdir(parents=True, exist_ok=True)

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir()

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def size(self, path: Path) -> int:
        return Path(path).stat().st_size

    def remove(self, path: Path) -> None:
        """Remove a file if it exists."""
        try:
            Path(path).unlink()
        except FileNotFoundError:
            pass

    @contextmanager
    def atomic_write(self, destination: Path) -> Iterator[Path]:
        """
        Yield a temporary path to write, then move it onto destination.

        The temporary file is removed on any exit other than success,
        including KeyboardInterrupt.

        Example:
            with fs.atomic_write(Path("book.mobi")) as temp_path:
                temp_path.write_bytes(data)
        """
        destination = Path(destination)
        fd, temp_name = tempfile.mkstemp(
            prefix=TEMP_FILE_PREFIX,
            suffix=TEMP_FILE_SUFFIX,
            dir=destination.parent,
        )
        os.close(fd)
        temp_path = Path(temp_name)

        try:
            yield temp_path
            os.replace(temp_path, destination)
        except BaseException:
            self.remove(temp_path)
            logger.debug(f"Discarded partial download {temp_path}")
            raise
