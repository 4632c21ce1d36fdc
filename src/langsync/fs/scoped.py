"""Filesystem wrapper that resolves relative paths against a base directory.

Plugins address files relative to the directory that contains the project
folder (``./locales/en.json`` for ``/repo/project.inlang``).
"""

from __future__ import annotations

import posixpath
from collections.abc import AsyncIterator

from langsync.fs.base import FileStat, Filesystem, WatchEvent, is_absolute_path, normalize_path


class ProjectScopedFilesystem:
    def __init__(self, fs: Filesystem, base_dir: str) -> None:
        self._fs = fs
        self.base_dir = normalize_path(base_dir)

    def resolve(self, path: str) -> str:
        if is_absolute_path(path):
            return normalize_path(path)
        return normalize_path(posixpath.join(self.base_dir, path))

    async def read_file(self, path: str) -> str:
        return await self._fs.read_file(self.resolve(path))

    async def write_file(self, path: str, data: str) -> None:
        await self._fs.write_file(self.resolve(path), data)

    async def readdir(self, path: str) -> list[str]:
        return await self._fs.readdir(self.resolve(path))

    async def stat(self, path: str) -> FileStat:
        return await self._fs.stat(self.resolve(path))

    async def mkdir(self, path: str, *, recursive: bool = False) -> None:
        await self._fs.mkdir(self.resolve(path), recursive=recursive)

    async def rm(self, path: str, *, recursive: bool = False) -> None:
        await self._fs.rm(self.resolve(path), recursive=recursive)

    def watch(self, path: str, *, recursive: bool = True) -> AsyncIterator[WatchEvent]:
        return self._fs.watch(self.resolve(path), recursive=recursive)


def project_scoped(fs: Filesystem, project_path: str) -> ProjectScopedFilesystem:
    """Scope ``fs`` to the directory containing ``project_path``."""
    return ProjectScopedFilesystem(fs, posixpath.dirname(normalize_path(project_path)))
