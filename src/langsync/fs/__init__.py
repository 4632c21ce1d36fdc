"""Filesystem backends.

- ``LocalFilesystem``: local disk, inotify or polling watch
- ``MemoryFilesystem``: in-process, used by tests and embedders
- ``ProjectScopedFilesystem``: relative paths resolved against the project's parent dir
"""

from langsync.fs.base import FileStat, Filesystem, WatchEvent, is_absolute_path, normalize_path
from langsync.fs.local import LocalFilesystem
from langsync.fs.memory import MemoryFilesystem
from langsync.fs.scoped import ProjectScopedFilesystem, project_scoped

__all__ = [
    "FileStat",
    "Filesystem",
    "LocalFilesystem",
    "MemoryFilesystem",
    "ProjectScopedFilesystem",
    "WatchEvent",
    "is_absolute_path",
    "normalize_path",
    "project_scoped",
]
