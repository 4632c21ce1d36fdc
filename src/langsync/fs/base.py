"""Filesystem protocol and shared types.

Paths are POSIX strings. Implementations raise the built-in OS errors
(``FileNotFoundError``, ``FileExistsError``, ...) so callers can branch on
the exception type the same way for every backend.
"""

from __future__ import annotations

import posixpath
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class FileStat:
    """Result of ``Filesystem.stat``."""

    is_dir: bool
    size: int = 0
    mtime: float = 0.0

    @property
    def is_file(self) -> bool:
        return not self.is_dir


@dataclass(frozen=True)
class WatchEvent:
    """A change somewhere below a watched directory.

    ``filename`` is relative to the watched directory.
    """

    filename: str
    kind: str = "change"


@runtime_checkable
class Filesystem(Protocol):
    """Protocol that all filesystem backends must implement."""

    async def read_file(self, path: str) -> str: ...

    async def write_file(self, path: str, data: str) -> None: ...

    async def readdir(self, path: str) -> list[str]:
        """Names of the entries in a directory (not paths)."""
        ...

    async def stat(self, path: str) -> FileStat: ...

    async def mkdir(self, path: str, *, recursive: bool = False) -> None: ...

    async def rm(self, path: str, *, recursive: bool = False) -> None: ...

    def watch(self, path: str, *, recursive: bool = True) -> AsyncIterator[WatchEvent]:
        """Async stream of changes below ``path``; ends when the consuming task is cancelled."""
        ...


def normalize_path(path: str) -> str:
    """Collapse duplicate slashes, ``.`` and ``..``; drop any trailing slash."""
    if not path:
        return path
    normalized = posixpath.normpath(path)
    # normpath keeps a leading "//"
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def is_absolute_path(path: str) -> bool:
    """POSIX absolute paths and Windows drive paths both count."""
    if path.startswith("/"):
        return True
    return len(path) > 2 and path[0].isalpha() and path[1] == ":" and path[2] in "/\\"


def relative_to(path: str, root: str) -> str | None:
    """``path`` relative to ``root``, or ``None`` if it lies outside."""
    path = normalize_path(path)
    root = normalize_path(root)
    if path == root:
        return ""
    prefix = root if root.endswith("/") else root + "/"
    if not path.startswith(prefix):
        return None
    return path[len(prefix):]
