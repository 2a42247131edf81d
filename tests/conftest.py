"""
Pytest configuration and fixtures for kindle_mtp tests.

This module provides an in-memory stand-in for the libmtp binding with
an editable object tree and failure injection, plus sessions, resolvers
and managers wired to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import pytest
from click.testing import CliRunner

from kindle_mtp.config import Config
from kindle_mtp.constants import (
    AMAZON_VENDOR_ID,
    LIBMTP_ERROR_GENERAL,
    LIBMTP_ERROR_USB_LAYER,
    ROOT_ID,
)
from kindle_mtp.core.device.libmtp import LibMTPError
from kindle_mtp.core.device.models import ObjectEntry, ObjectKind, RawDevice, StorageInfo
from kindle_mtp.core.device.session import DeviceSession
from kindle_mtp.core.transfer.manager import FileManager
from kindle_mtp.core.transfer.resolver import PathResolver


# Test device data
TEST_PRODUCT_ID = 0x9981
TEST_STORAGE_ID = 0x00010001
TEST_TOTAL_BYTES = 8_000_000_000
TEST_FREE_BYTES = 6_500_000_000
BOOK_SIZE = 1_048_576

# libmtp reports the parent of top-level objects as 0, not the root sentinel
LIBMTP_ROOT_PARENT = 0


def make_raw_device(
    vendor_id: int = AMAZON_VENDOR_ID,
    product_id: int = TEST_PRODUCT_ID,
    bus_location: int = 1,
    devnum: int = 7,
) -> RawDevice:
    """Create a RawDevice as enumerated by libmtp."""
    return RawDevice(
        vendor_id=vendor_id,
        product_id=product_id,
        vendor="Amazon",
        product="Kindle",
        bus_location=bus_location,
        devnum=devnum,
    )


@dataclass
class FakeObject:
    entry: ObjectEntry
    content: bytes = b""


class FakeLibMTP:
    """
    In-memory libmtp binding.

    Objects live in a dict keyed by object id, in creation order, so
    listings come back in "device order". Every call that touches the
    device is recorded in `calls`.
    """

    def __init__(self, devices: Optional[list[RawDevice]] = None):
        self.devices = devices if devices is not None else [make_raw_device()]
        self.storages = [
            StorageInfo(
                total_capacity=TEST_TOTAL_BYTES,
                free_capacity=TEST_FREE_BYTES,
                description="Internal Storage",
                storage_id=TEST_STORAGE_ID,
            )
        ]
        self.strings: dict[str, Optional[str]] = {
            "manufacturer": "Amazon",
            "model": "Kindle Paperwhite",
            "serial": "G000TEST0001",
            "friendly_name": "My Kindle",
        }
        self.objects: dict[int, FakeObject] = {}
        self.calls: list[tuple] = []
        self.opened = 0
        self.closed = 0
        self._next_id = 100

        # Failure injection
        self.open_error: Optional[LibMTPError] = None
        self.list_errors: dict[int, LibMTPError] = {}
        self.read_errors: dict[int, LibMTPError] = {}
        self.delete_errors: dict[int, LibMTPError] = {}
        self.write_error: Optional[LibMTPError] = None
        self.drop_during_read: set[int] = set()

    # Tree building

    def _add(self, parent_id: int, name: str, kind: ObjectKind, content: bytes = b"") -> int:
        object_id = self._next_id
        self._next_id += 1
        parent = LIBMTP_ROOT_PARENT if parent_id == ROOT_ID else parent_id
        entry = ObjectEntry(
            id=object_id,
            name=name,
            kind=kind,
            size=len(content),
            parent=parent,
        )
        self.objects[object_id] = FakeObject(entry, content)
        return object_id

    def add_dir(self, parent_id: int, name: str) -> int:
        return self._add(parent_id, name, ObjectKind.DIRECTORY)

    def add_file(self, parent_id: int, name: str, content: bytes = b"") -> int:
        return self._add(parent_id, name, ObjectKind.FILE, content)

    def fail(self, code: int = LIBMTP_ERROR_GENERAL, message: str = "PTP error") -> LibMTPError:
        return LibMTPError(code, message)

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    @property
    def mutating_calls(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in ("write", "delete", "mkdir")]

    # LibMTP interface

    def enumerate_devices(self) -> list[RawDevice]:
        self.calls.append(("enumerate",))
        return list(self.devices)

    def open(self, raw: RawDevice) -> object:
        self.calls.append(("open", raw.location))
        if self.open_error is not None:
            raise self.open_error
        self.opened += 1
        return object()

    def close(self, device: object) -> None:
        self.calls.append(("close",))
        self.closed += 1

    def get_storage_info(self, device: object) -> list[StorageInfo]:
        self.calls.append(("storage",))
        return list(self.storages)

    def list_children(self, device: object, storage_id: int, parent_id: int) -> list[ObjectEntry]:
        self.calls.append(("list", parent_id))
        if parent_id in self.list_errors:
            raise self.list_errors[parent_id]
        wanted = LIBMTP_ROOT_PARENT if parent_id == ROOT_ID else parent_id
        return [obj.entry for obj in self.objects.values() if obj.entry.parent == wanted]

    def read_file(self, device: object, object_id: int, destination: Path) -> None:
        self.calls.append(("read", object_id))
        content = self.objects[object_id].content
        if object_id in self.drop_during_read:
            Path(destination).write_bytes(content[: len(content) // 2])
            raise LibMTPError(LIBMTP_ERROR_USB_LAYER, "USB transfer interrupted")
        if object_id in self.read_errors:
            raise self.read_errors[object_id]
        Path(destination).write_bytes(content)

    def write_file(
        self,
        device: object,
        source: Path,
        parent_id: int,
        storage_id: int,
        name: str,
    ) -> int:
        self.calls.append(("write", parent_id, name))
        if self.write_error is not None:
            raise self.write_error
        return self.add_file(parent_id, name, Path(source).read_bytes())

    def delete_object(self, device: object, object_id: int) -> None:
        self.calls.append(("delete", object_id))
        if object_id in self.delete_errors:
            raise self.delete_errors[object_id]
        del self.objects[object_id]

    def create_folder(self, device: object, parent_id: int, storage_id: int, name: str) -> int:
        self.calls.append(("mkdir", parent_id, name))
        return self.add_dir(parent_id, name)

    def device_strings(self, device: object) -> dict[str, Optional[str]]:
        return dict(self.strings)


@dataclass
class SampleTree:
    """Object ids of the sample tree."""

    documents: int
    fonts: int
    book: int


@pytest.fixture
def fake_library() -> FakeLibMTP:
    """Create an empty fake libmtp with one attached Kindle."""
    return FakeLibMTP()


@pytest.fixture
def sample_tree(fake_library: FakeLibMTP) -> SampleTree:
    """
    Populate the device with:

        /documents/book.mobi  (1 MiB)
        /fonts/
    """
    documents = fake_library.add_dir(ROOT_ID, "documents")
    fonts = fake_library.add_dir(ROOT_ID, "fonts")
    book = fake_library.add_file(documents, "book.mobi", b"\x00" * BOOK_SIZE)
    return SampleTree(documents=documents, fonts=fonts, book=book)


@pytest.fixture
def session(fake_library: FakeLibMTP) -> Iterator[DeviceSession]:
    """Open a session on the fake device."""
    with DeviceSession.open(library=fake_library) as opened:
        yield opened


@pytest.fixture
def resolver(session: DeviceSession) -> PathResolver:
    """Create a resolver over the open session."""
    return PathResolver(session)


@pytest.fixture
def manager(session: DeviceSession, resolver: PathResolver) -> FileManager:
    """Create a file manager sharing the resolver's cache."""
    return FileManager(session, resolver=resolver)


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Create a test configuration with temp directories."""
    return Config(
        config_dir=tmp_path / "config",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def patch_library(fake_library: FakeLibMTP, monkeypatch: pytest.MonkeyPatch) -> FakeLibMTP:
    """Make sessions opened by the CLI use the fake library."""
    monkeypatch.setattr("kindle_mtp.core.device.session.get_library", lambda: fake_library)
    return fake_library
