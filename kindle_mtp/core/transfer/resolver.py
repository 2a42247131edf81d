"""
Path resolution over the device's object graph.

MTP addresses objects by numeric identifier and only offers "list the
children of X". The resolver walks a path one segment at a time from
the root, caching every directory listing it fetches for the rest of
the session.

Example:
    resolver = PathResolver(session)
    entry = resolver.resolve("/documents/book.mobi")
    print(entry.id, entry.size)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Optional, Union

from kindle_mtp.constants import ROOT_ID
from kindle_mtp.core.device.models import ROOT_ENTRY, ObjectEntry
from kindle_mtp.core.transfer.paths import PathSegments, normalize
from kindle_mtp.exceptions import PathNotADirectoryError, PathNotFoundError

if TYPE_CHECKING:
    from kindle_mtp.core.device.session import DeviceSession

logger = logging.getLogger(__name__)


def sort_entries(entries: list[ObjectEntry]) -> list[ObjectEntry]:
    """Sort by name, case-sensitive. Stable, so duplicate names keep device order."""
    return sorted(entries, key=lambda entry: entry.name)


class DirectoryCache:
    """
    Directory listings keyed by directory object identifier.

    Listings are kept in device-reported order. The cache lives exactly
    as long as the session that filled it and is never invalidated
    piecemeal: nothing else can mutate the device while the session
    holds its only connection.
    """

    def __init__(self) -> None:
        self._children: dict[int, list[ObjectEntry]] = {}
        self.hits = 0
        self.misses = 0

    def __contains__(self, directory_id: int) -> bool:
        return directory_id in self._children

    def __len__(self) -> int:
        return len(self._children)

    def get(self, directory_id: int) -> Optional[list[ObjectEntry]]:
        children = self._children.get(directory_id)
        if children is None:
            self.misses += 1
        else:
            self.hits += 1
        return children

    def store(self, directory_id: int, children: list[ObjectEntry]) -> None:
        self._children[directory_id] = list(children)

    def add_child(self, directory_id: int, entry: ObjectEntry) -> None:
        """Append a newly created object to a cached listing, if present."""
        if directory_id in self._children:
            self._children[directory_id].append(entry)

    def remove_child(self, directory_id: int, object_id: int) -> None:
        """Drop a deleted object (and its own listing) from the cache."""
        children = self._children.get(directory_id)
        if children is not None:
            self._children[directory_id] = [c for c in children if c.id != object_id]
        self._children.pop(object_id, None)

    def clear(self) -> None:
        self._children.clear()


class PathResolver:
    """
    Translate device paths into object entries.

    Attributes:
        session: Open device session used for listings.
        cache: Directory listings fetched so far in this session.
    """

    def __init__(self, session: DeviceSession, cache: Optional[DirectoryCache] = None):
        self.session = session
        self.cache = cache if cache is not None else DirectoryCache()

    def children(self, directory_id: int) -> list[ObjectEntry]:
        """Children of a directory in device order, listing it on first access."""
        children = self.cache.get(directory_id)
        if children is None:
            logger.debug(f"Cache miss for directory {directory_id:#x}")
            children = [
                child if child.parent == directory_id else replace(child, parent=directory_id)
                for child in self.session.list_children(directory_id)
            ]
            self.cache.store(directory_id, children)
        return list(children)

    def find_child(self, directory_id: int, name: str) -> Optional[ObjectEntry]:
        """
        First child with exactly this name, in device order.

        Sibling names are not unique in MTP; the first match wins.
        """
        for child in self.children(directory_id):
            if child.name == name:
                return child
        return None

    def resolve(self, path: Union[str, PathSegments]) -> ObjectEntry:
        """
        Resolve a path to its object entry.

        Raises:
            PathNotFoundError: At the first segment with no matching child.
            PathNotADirectoryError: If a non-final segment is a file.
        """
        segments = normalize(path)
        current = ROOT_ENTRY
        walked = PathSegments()

        for segment in segments:
            if not current.is_directory:
                raise PathNotADirectoryError(str(segments), walked.name)

            found = self.find_child(current.id, segment)
            if found is None:
                raise PathNotFoundError(str(segments), segment)

            current = found
            walked = walked.child(segment)

        return current

    def resolve_id(self, path: Union[str, PathSegments]) -> int:
        """Resolve a path to its object identifier (ROOT_ID for "/")."""
        return self.resolve(path).id

    def list_directory(self, path: Union[str, PathSegments]) -> list[ObjectEntry]:
        """
        List a directory's children sorted by name.

        Raises:
            PathNotFoundError: If the path does not resolve.
            PathNotADirectoryError: If the path names a file.
        """
        segments = normalize(path)
        entry = self.resolve(segments)
        if not entry.is_directory:
            raise PathNotADirectoryError(str(segments), segments.name)
        return sort_entries(self.children(entry.id))

    def record_created(self, parent_id: int, entry: ObjectEntry) -> None:
        """Make an object created in this session visible to later lookups."""
        self.cache.add_child(parent_id, entry)

    def record_deleted(self, parent_id: Optional[int], object_id: int) -> None:
        """Forget an object deleted in this session."""
        self.cache.remove_child(parent_id if parent_id is not None else ROOT_ID, object_id)
