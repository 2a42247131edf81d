"""
Device path normalization.

Device paths are always absolute: "books/a.mobi", "/books/a.mobi" and
"//books//a.mobi/" all name the same object. "." and ".." are ordinary
names here, since device-assigned names may legitimately be either.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

from kindle_mtp.exceptions import InvalidPathError

SEPARATOR = "/"


@dataclass(frozen=True)
class PathSegments:
    """
    An absolute device path as an ordered tuple of names.

    Names are carried as the device reports them. Only paths typed by the
    user are checked, in from_string.
    """

    parts: tuple[str, ...] = ()

    @classmethod
    def from_string(cls, path: str) -> PathSegments:
        if "\x00" in path:
            raise InvalidPathError(path, "path contains a NUL character")
        return cls(tuple(part for part in path.split(SEPARATOR) if part))

    @property
    def is_root(self) -> bool:
        return not self.parts

    @property
    def name(self) -> str:
        """Last segment, empty for the root."""
        return self.parts[-1] if self.parts else ""

    @property
    def parent(self) -> PathSegments:
        return PathSegments(self.parts[:-1])

    def child(self, name: str) -> PathSegments:
        return PathSegments(self.parts + (name,))

    def joinpath(self, other: PathSegments) -> PathSegments:
        return PathSegments(self.parts + other.parts)

    def __iter__(self) -> Iterator[str]:
        return iter(self.parts)

    def __len__(self) -> int:
        return len(self.parts)

    def __str__(self) -> str:
        return SEPARATOR + SEPARATOR.join(self.parts)


ROOT_PATH = PathSegments()


def normalize(path: Union[str, PathSegments]) -> PathSegments:
    """
    Normalize a device path.

    Idempotent: normalize(normalize(p)) == normalize(p).

    Raises:
        InvalidPathError: If the path contains a NUL character.
    """
    if isinstance(path, PathSegments):
        return path
    return PathSegments.from_string(path)
