"""Tests for path resolution and the directory cache."""

from __future__ import annotations

import pytest

from conftest import BOOK_SIZE, FakeLibMTP, SampleTree
from kindle_mtp.constants import ROOT_ID
from kindle_mtp.core.device.models import ObjectEntry, ObjectKind
from kindle_mtp.core.transfer.resolver import DirectoryCache, PathResolver, sort_entries
from kindle_mtp.exceptions import InvalidPathError, PathNotADirectoryError, PathNotFoundError


def entry(object_id: int, name: str, kind: ObjectKind = ObjectKind.FILE) -> ObjectEntry:
    return ObjectEntry(id=object_id, name=name, kind=kind)


class TestDirectoryCache:
    """Tests for DirectoryCache."""

    def test_hit_and_miss_counts(self) -> None:
        """get should count hits and misses."""
        cache = DirectoryCache()
        assert cache.get(1) is None
        cache.store(1, [entry(2, "a")])
        assert cache.get(1) == [entry(2, "a")]
        assert (cache.hits, cache.misses) == (1, 1)
        assert 1 in cache
        assert len(cache) == 1

    def test_add_child_only_when_cached(self) -> None:
        """add_child should not invent listings that were never fetched."""
        cache = DirectoryCache()
        cache.add_child(1, entry(2, "a"))
        assert 1 not in cache

        cache.store(1, [])
        cache.add_child(1, entry(2, "a"))
        assert cache.get(1) == [entry(2, "a")]

    def test_remove_child_drops_own_listing(self) -> None:
        """Removing a directory should also forget its listing."""
        cache = DirectoryCache()
        cache.store(1, [entry(2, "sub", ObjectKind.DIRECTORY)])
        cache.store(2, [entry(3, "x")])

        cache.remove_child(1, 2)

        assert cache.get(1) == []
        assert 2 not in cache

    def test_clear(self) -> None:
        cache = DirectoryCache()
        cache.store(1, [])
        cache.clear()
        assert len(cache) == 0


class TestSortEntries:
    """Tests for sort_entries."""

    def test_case_sensitive_and_stable(self) -> None:
        """Sorting should be by name, case-sensitive, keeping duplicate order."""
        entries = [entry(1, "b"), entry(2, "B"), entry(3, "a"), entry(4, "a")]
        assert [e.id for e in sort_entries(entries)] == [2, 3, 4, 1]


class TestPathResolver:
    """Tests for PathResolver.resolve."""

    def test_resolve_file(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """A file path should resolve to its id and size."""
        book = resolver.resolve("/documents/book.mobi")
        assert book.id == sample_tree.book
        assert book.size == BOOK_SIZE
        assert book.kind is ObjectKind.FILE

    def test_resolve_id(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """resolve_id should return just the identifier."""
        assert resolver.resolve_id("documents/book.mobi") == sample_tree.book

    def test_missing_segment(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """A missing name should identify the failing segment."""
        with pytest.raises(PathNotFoundError) as exc_info:
            resolver.resolve("/documents/missing.pdf")
        assert exc_info.value.segment == "missing.pdf"
        assert exc_info.value.path == "/documents/missing.pdf"

    def test_missing_first_segment(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """Resolution should stop at the first missing segment."""
        with pytest.raises(PathNotFoundError) as exc_info:
            resolver.resolve("/music/a/b")
        assert exc_info.value.segment == "music"

    def test_walk_through_file(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """A file in the middle of a path should be NotADirectory."""
        with pytest.raises(PathNotADirectoryError) as exc_info:
            resolver.resolve("/documents/book.mobi/extra")
        assert exc_info.value.segment == "book.mobi"

    def test_root(self, fake_library: FakeLibMTP, resolver: PathResolver) -> None:
        """The root should resolve without any device call."""
        root = resolver.resolve("/")
        assert root.id == ROOT_ID
        assert root.is_directory
        assert fake_library.calls_named("list") == []

    def test_invalid_path(self, resolver: PathResolver) -> None:
        """A NUL character should be rejected before any lookup."""
        with pytest.raises(InvalidPathError):
            resolver.resolve("/doc\x00uments")

    def test_equivalent_spellings(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """Different spellings of one path should resolve identically."""
        assert resolver.resolve("documents//book.mobi/") == resolver.resolve("/documents/book.mobi")

    def test_cache_avoids_second_listing(
        self,
        fake_library: FakeLibMTP,
        sample_tree: SampleTree,
        resolver: PathResolver,
    ) -> None:
        """Re-resolving a path should list each directory only once."""
        resolver.resolve("/documents/book.mobi")
        first = len(fake_library.calls_named("list"))
        resolver.resolve("/documents/book.mobi")

        assert first == 2
        assert len(fake_library.calls_named("list")) == first
        assert resolver.cache.hits >= 2

    def test_sibling_lookup_reuses_parent(
        self,
        fake_library: FakeLibMTP,
        sample_tree: SampleTree,
        resolver: PathResolver,
    ) -> None:
        """Resolving a sibling should not list the parent again."""
        resolver.resolve("/documents")
        resolver.resolve("/fonts")
        assert fake_library.calls_named("list") == [("list", ROOT_ID)]

    def test_duplicate_names_first_wins(self, fake_library: FakeLibMTP, resolver: PathResolver) -> None:
        """With duplicate sibling names, the first in device order wins."""
        first = fake_library.add_file(ROOT_ID, "dup.txt", b"1")
        fake_library.add_file(ROOT_ID, "dup.txt", b"22")
        assert resolver.resolve("/dup.txt").id == first

    def test_root_children_parent_normalized(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """Top-level entries should have the root as parent."""
        assert resolver.resolve("/documents").parent == ROOT_ID


class TestListDirectory:
    """Tests for PathResolver.list_directory."""

    def test_sorted(self, fake_library: FakeLibMTP, resolver: PathResolver) -> None:
        """Entries should be sorted by name whatever the device order."""
        fake_library.add_file(ROOT_ID, "zeta.txt")
        fake_library.add_dir(ROOT_ID, "Alpha")
        fake_library.add_file(ROOT_ID, "beta.txt")

        names = [e.name for e in resolver.list_directory("/")]

        assert names == ["Alpha", "beta.txt", "zeta.txt"]

    def test_file_rejected(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """Listing a file should be NotADirectory."""
        with pytest.raises(PathNotADirectoryError):
            resolver.list_directory("/documents/book.mobi")

    def test_empty(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """An empty directory should list as empty."""
        assert resolver.list_directory("/fonts") == []


class TestCacheUpdates:
    """Tests for record_created / record_deleted."""

    def test_record_created(self, fake_library: FakeLibMTP, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """A created object should be resolvable without relisting."""
        resolver.list_directory("/fonts")
        calls = len(fake_library.calls_named("list"))

        resolver.record_created(sample_tree.fonts, entry(999, "new.ttf"))

        assert resolver.resolve("/fonts/new.ttf").id == 999
        assert len(fake_library.calls_named("list")) == calls

    def test_record_deleted(self, sample_tree: SampleTree, resolver: PathResolver) -> None:
        """A deleted object should no longer resolve."""
        resolver.resolve("/documents/book.mobi")
        resolver.record_deleted(sample_tree.documents, sample_tree.book)

        with pytest.raises(PathNotFoundError):
            resolver.resolve("/documents/book.mobi")
