"""In-process filesystem, seedable from a snapshot.

Used by tests and by embedders that keep a project in memory. ``watch``
is backed by one ``asyncio.Queue`` per active watcher; every write or
removal below the watched directory is delivered to it in order.
"""

from __future__ import annotations

import asyncio
import errno
import os
import posixpath
import time
from collections.abc import AsyncIterator

from langsync.fs.base import FileStat, WatchEvent, normalize_path, relative_to


def _not_found(path: str) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)


class _Watcher:
    """Registered on creation so no event is lost before the first ``__anext__``."""

    def __init__(self, fs: MemoryFilesystem, root: str, recursive: bool) -> None:
        self.root = root
        self.recursive = recursive
        self.queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
        self._fs = fs
        fs._watchers.append(self)

    def __aiter__(self) -> _Watcher:
        return self

    async def __anext__(self) -> WatchEvent:
        if self not in self._fs._watchers:
            raise StopAsyncIteration
        return await self.queue.get()

    async def aclose(self) -> None:
        if self in self._fs._watchers:
            self._fs._watchers.remove(self)

    def offer(self, path: str, kind: str) -> None:
        rel = relative_to(path, self.root)
        if not rel:
            return
        if not self.recursive and "/" in rel:
            return
        self.queue.put_nowait(WatchEvent(filename=rel, kind=kind))


class MemoryFilesystem:
    """Filesystem held in two dicts: file contents and directory set."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self._files: dict[str, str] = {}
        self._mtimes: dict[str, float] = {}
        self._dirs: set[str] = {"/"}
        self._watchers: list[_Watcher] = []
        for path, content in (files or {}).items():
            self._put(normalize_path(path), content)

    @classmethod
    def from_snapshot(cls, files: dict[str, str]) -> MemoryFilesystem:
        return cls(files)

    def snapshot(self) -> dict[str, str]:
        """All files as ``{path: content}``."""
        return dict(sorted(self._files.items()))

    # ── Internal helpers ─────────────────────────────────────

    def _put(self, path: str, content: str) -> None:
        parent = posixpath.dirname(path)
        while parent not in self._dirs:
            self._dirs.add(parent)
            parent = posixpath.dirname(parent)
        self._files[path] = content
        self._mtimes[path] = time.time()

    def _notify(self, path: str, kind: str) -> None:
        for watcher in list(self._watchers):
            watcher.offer(path, kind)

    def _require_parent(self, path: str) -> None:
        parent = posixpath.dirname(path)
        if parent in self._files:
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), parent)
        if parent not in self._dirs:
            raise _not_found(parent)

    # ── Filesystem protocol ──────────────────────────────────

    async def read_file(self, path: str) -> str:
        path = normalize_path(path)
        if path in self._dirs:
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
        if path not in self._files:
            raise _not_found(path)
        return self._files[path]

    async def write_file(self, path: str, data: str) -> None:
        path = normalize_path(path)
        if path in self._dirs:
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
        self._require_parent(path)
        self._files[path] = data
        self._mtimes[path] = time.time()
        self._notify(path, "change")

    async def readdir(self, path: str) -> list[str]:
        path = normalize_path(path)
        if path in self._files:
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), path)
        if path not in self._dirs:
            raise _not_found(path)
        names = {
            posixpath.basename(entry)
            for entry in [*self._files, *self._dirs]
            if entry != path and posixpath.dirname(entry) == path
        }
        return sorted(names)

    async def stat(self, path: str) -> FileStat:
        path = normalize_path(path)
        if path in self._dirs:
            return FileStat(is_dir=True)
        if path in self._files:
            return FileStat(
                is_dir=False,
                size=len(self._files[path].encode("utf-8")),
                mtime=self._mtimes.get(path, 0.0),
            )
        raise _not_found(path)

    async def mkdir(self, path: str, *, recursive: bool = False) -> None:
        path = normalize_path(path)
        if path in self._dirs or path in self._files:
            if recursive and path in self._dirs:
                return
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), path)
        if recursive:
            parent = path
            while parent not in self._dirs:
                if parent in self._files:
                    raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), parent)
                self._dirs.add(parent)
                parent = posixpath.dirname(parent)
        else:
            self._require_parent(path)
            self._dirs.add(path)

    async def rm(self, path: str, *, recursive: bool = False) -> None:
        path = normalize_path(path)
        if path in self._files:
            del self._files[path]
            self._mtimes.pop(path, None)
            self._notify(path, "rename")
            return
        if path not in self._dirs:
            raise _not_found(path)
        children = [p for p in [*self._files, *self._dirs] if relative_to(p, path)]
        if children and not recursive:
            raise OSError(errno.ENOTEMPTY, os.strerror(errno.ENOTEMPTY), path)
        for child in children:
            if child in self._files:
                del self._files[child]
                self._mtimes.pop(child, None)
                self._notify(child, "rename")
            else:
                self._dirs.discard(child)
        self._dirs.discard(path)

    def watch(self, path: str, *, recursive: bool = True) -> AsyncIterator[WatchEvent]:
        return _Watcher(self, normalize_path(path), recursive)
