"""Find ``*.inlang`` project folders below a directory."""

from __future__ import annotations

import logging
import posixpath

from langsync.fs.base import Filesystem, normalize_path

logger = logging.getLogger(__name__)

MAX_DEPTH = 5
_SKIPPED_DIRS = {"node_modules"}


async def list_projects(fs: Filesystem, start: str, *, max_depth: int = MAX_DEPTH) -> list[str]:
    """Absolute paths of all project folders at most ``max_depth`` levels below ``start``."""
    projects: list[str] = []
    await _walk(fs, normalize_path(start), 0, max_depth, projects)
    return sorted(projects)


async def _walk(fs: Filesystem, directory: str, depth: int, max_depth: int, found: list[str]) -> None:
    if depth > max_depth:
        return
    try:
        names = await fs.readdir(directory)
    except (FileNotFoundError, NotADirectoryError, PermissionError) as err:
        logger.debug("skip %s: %s", directory, err)
        return

    for name in names:
        if name in _SKIPPED_DIRS:
            continue
        path = posixpath.join(directory, name)
        try:
            stat = await fs.stat(path)
        except FileNotFoundError:
            continue
        if not stat.is_dir:
            continue
        if name.endswith(".inlang"):
            found.append(path)
        else:
            await _walk(fs, path, depth + 1, max_depth, found)
