"""Tests for local filesystem access."""

from __future__ import annotations

from pathlib import Path

import pytest

from kindle_mtp.constants import TEMP_FILE_SUFFIX
from kindle_mtp.core.localfs import LocalFilesystem


@pytest.fixture
def fs() -> LocalFilesystem:
    return LocalFilesystem()


class TestAtomicWrite:
    """Tests for LocalFilesystem.atomic_write."""

    def test_success_moves_into_place(self, fs: LocalFilesystem, tmp_path: Path) -> None:
        """Content should appear at the destination only on success."""
        destination = tmp_path / "book.mobi"

        with fs.atomic_write(destination) as temp_path:
            assert temp_path.parent == tmp_path
            assert temp_path.name.endswith(TEMP_FILE_SUFFIX)
            temp_path.write_bytes(b"content")
            assert not destination.exists()

        assert destination.read_bytes() == b"content"
        assert list(tmp_path.iterdir()) == [destination]

    def test_replaces_existing(self, fs: LocalFilesystem, tmp_path: Path) -> None:
        """An existing destination should be replaced."""
        destination = tmp_path / "book.mobi"
        destination.write_bytes(b"old")

        with fs.atomic_write(destination) as temp_path:
            temp_path.write_bytes(b"new")

        assert destination.read_bytes() == b"new"

    def test_failure_leaves_nothing(self, fs: LocalFilesystem, tmp_path: Path) -> None:
        """On error neither the destination nor the temp file should remain."""
        destination = tmp_path / "book.mobi"

        with pytest.raises(RuntimeError):
            with fs.atomic_write(destination) as temp_path:
                temp_path.write_bytes(b"partial")
                raise RuntimeError("dropped")

        assert list(tmp_path.iterdir()) == []

    def test_interrupt_leaves_nothing(self, fs: LocalFilesystem, tmp_path: Path) -> None:
        """KeyboardInterrupt should also discard the temp file."""
        destination = tmp_path / "book.mobi"

        with pytest.raises(KeyboardInterrupt):
            with fs.atomic_write(destination) as temp_path:
                temp_path.write_bytes(b"partial")
                raise KeyboardInterrupt

        assert list(tmp_path.iterdir()) == []

    def test_failure_keeps_existing_destination(self, fs: LocalFilesystem, tmp_path: Path) -> None:
        """A failed write should not touch a previous file."""
        destination = tmp_path / "book.mobi"
        destination.write_bytes(b"old")

        with pytest.raises(RuntimeError):
            with fs.atomic_write(destination) as temp_path:
                temp_path.write_bytes(b"partial")
                raise RuntimeError("dropped")

        assert destination.read_bytes() == b"old"


class TestLocalFilesystem:
    """Tests for the simple helpers."""

    def test_makedirs(self, fs: LocalFilesystem, tmp_path: Path) -> None:
        """makedirs should create parents and tolerate existing dirs."""
        target = tmp_path / "a" / "b"
        fs.makedirs(target)
        fs.makedirs(target)
        assert fs.is_dir(target)

    def test_remove_missing(self, fs: LocalFilesystem, tmp_path: Path) -> None:
        """remove should ignore missing files."""
        fs.remove(tmp_path / "missing")

    def test_size_and_exists(self, fs: LocalFilesystem, tmp_path: Path) -> None:
        """size and exists should reflect the file."""
        path = tmp_path / "f"
        assert not fs.exists(path)
        path.write_bytes(b"12345")
        assert fs.exists(path)
        assert fs.size(path) == 5
