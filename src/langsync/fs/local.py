"""Local disk filesystem.

Blocking ``pathlib`` calls run in the default executor via ``asyncio.to_thread``.

Two watch backends:
    inotify: ``inotify_simple`` (Linux). New subdirectories are picked up
             while watching.
    poll:    rescans the tree every ``poll_interval`` seconds and diffs
             mtimes. Works everywhere, including Docker bind mounts.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat as stat_module
from collections.abc import AsyncIterator
from pathlib import Path

from langsync.fs.base import FileStat, WatchEvent

logger = logging.getLogger(__name__)

_INOTIFY_TIMEOUT_MS = 1000
WATCH_BACKENDS = ("inotify", "poll")


class LocalFilesystem:
    """Filesystem backed by the local disk."""

    def __init__(self, *, watch_backend: str = "inotify", poll_interval: float = 1.0) -> None:
        if watch_backend not in WATCH_BACKENDS:
            raise ValueError(f"Unknown watch backend: {watch_backend}")
        self.watch_backend = watch_backend
        self.poll_interval = poll_interval

    async def read_file(self, path: str) -> str:
        return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")

    async def write_file(self, path: str, data: str) -> None:
        await asyncio.to_thread(Path(path).write_text, data, encoding="utf-8")

    async def readdir(self, path: str) -> list[str]:
        return sorted(await asyncio.to_thread(os.listdir, path))

    async def stat(self, path: str) -> FileStat:
        result = await asyncio.to_thread(os.stat, path)
        return FileStat(
            is_dir=stat_module.S_ISDIR(result.st_mode),
            size=result.st_size,
            mtime=result.st_mtime,
        )

    async def mkdir(self, path: str, *, recursive: bool = False) -> None:
        await asyncio.to_thread(Path(path).mkdir, parents=recursive, exist_ok=recursive)

    async def rm(self, path: str, *, recursive: bool = False) -> None:
        def _remove() -> None:
            target = Path(path)
            if target.is_dir() and not target.is_symlink():
                if recursive:
                    shutil.rmtree(target)
                else:
                    target.rmdir()
            else:
                target.unlink()

        await asyncio.to_thread(_remove)

    def watch(self, path: str, *, recursive: bool = True) -> AsyncIterator[WatchEvent]:
        if self.watch_backend == "poll":
            return self._watch_poll(Path(path), recursive)
        return self._watch_inotify(Path(path), recursive)

    # ── inotify ──────────────────────────────────────────────

    async def _watch_inotify(self, root: Path, recursive: bool) -> AsyncIterator[WatchEvent]:
        import inotify_simple  # type: ignore[import]

        inotify = inotify_simple.INotify()
        flags = inotify_simple.flags  # type: ignore[attr-defined]
        mask = flags.CREATE | flags.CLOSE_WRITE | flags.MOVED_TO | flags.MOVED_FROM | flags.DELETE

        # watch descriptor → directory
        watched: dict[int, Path] = {}

        def add_watch(directory: Path) -> None:
            try:
                watched[inotify.add_watch(str(directory), mask)] = directory
            except OSError:
                logger.debug("could not watch %s", directory)

        add_watch(root)
        if recursive:
            for sub in root.rglob("*"):
                if sub.is_dir():
                    add_watch(sub)
        logger.debug("inotify watching %s (%d dirs)", root, len(watched))

        try:
            while True:
                events = await asyncio.to_thread(inotify.read, timeout=_INOTIFY_TIMEOUT_MS)
                for event in events:
                    if not event.name or event.wd not in watched:
                        continue
                    changed = watched[event.wd] / event.name
                    if event.mask & flags.ISDIR:
                        if recursive and event.mask & (flags.CREATE | flags.MOVED_TO):
                            add_watch(changed)
                        continue
                    kind = "change" if event.mask & flags.CLOSE_WRITE else "rename"
                    yield WatchEvent(filename=changed.relative_to(root).as_posix(), kind=kind)
        finally:
            inotify.close()

    # ── Polling ──────────────────────────────────────────────

    @staticmethod
    def _scan(root: Path, recursive: bool) -> dict[str, tuple[int, int]]:
        found: dict[str, tuple[int, int]] = {}
        if not root.is_dir():
            return found
        entries = root.rglob("*") if recursive else root.iterdir()
        for entry in entries:
            try:
                st = entry.stat()
            except OSError:
                continue
            if stat_module.S_ISREG(st.st_mode):
                found[entry.relative_to(root).as_posix()] = (st.st_mtime_ns, st.st_size)
        return found

    async def _watch_poll(self, root: Path, recursive: bool) -> AsyncIterator[WatchEvent]:
        seen = await asyncio.to_thread(self._scan, root, recursive)
        logger.debug("polling %s every %.1fs", root, self.poll_interval)
        while True:
            await asyncio.sleep(self.poll_interval)
            current = await asyncio.to_thread(self._scan, root, recursive)
            for rel, signature in current.items():
                if seen.get(rel) != signature:
                    yield WatchEvent(filename=rel, kind="rename" if rel not in seen else "change")
            for rel in seen.keys() - current.keys():
                yield WatchEvent(filename=rel, kind="rename")
            seen = current
