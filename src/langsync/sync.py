"""Keeps the message store and the on-disk message tree consistent.

Three flows, all on the event loop that owns the project:

1. Initial load (LOADING → READY | FAILED): walk the message directory,
   decode every message file, commit the result as one snapshot. A file
   that fails to decode is recorded and skipped.
2. Outbound persistence: every message in the store has a tracked
   registration. Each value change is encoded and written in a background
   task; removing a message removes its file. Writes for the same id are
   serialized with a per-id lock. Failures land in ``errors``.
3. Watcher loop: consumes ``fs.watch(message_dir)`` one event at a time and
   applies external changes to the store. Events whose decoded content
   encodes identically to the stored value are no-ops, which is what stops
   our own writes from echoing back. Events for an id with an outbound
   write in flight are skipped: that write is newer than whatever is on disk.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import posixpath
from collections import Counter
from collections.abc import AsyncIterator, Coroutine
from dataclasses import dataclass
from functools import partial
from typing import Any

from langsync.codec import encode_message, get_message_id_from_path, get_path_from_message_id, parse_message
from langsync.errors import MessageLoadError, MessageParseError, MessagePersistError, WatcherError
from langsync.fs.base import Filesystem, WatchEvent
from langsync.models import Message
from langsync.reactive import Observable, Unsubscribe
from langsync.store import MessageStore

logger = logging.getLogger(__name__)


class SyncState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
    DISPOSED = "disposed"


@dataclass
class TrackedMessage:
    """Persistence registration of one message id."""

    message_id: str
    dispose: Unsubscribe


class FilesystemSynchronizer:
    """Owns the message store's link to ``message_dir`` on ``fs``."""

    def __init__(self, fs: Filesystem, store: MessageStore, message_dir: str) -> None:
        self.fs = fs
        self.store = store
        self.message_dir = message_dir
        self.state = SyncState.IDLE
        self.errors: Observable[list[Exception]] = Observable([])
        self._parse_errors: dict[str, MessageParseError] = {}
        self._background_errors: list[Exception] = []
        self._tracked: dict[str, TrackedMessage] = {}
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._pending: Counter[str] = Counter()
        self._tasks: set[asyncio.Task] = set()
        self._watch_task: asyncio.Task | None = None
        self._unsubscribe_keys: Unsubscribe | None = None

    def message_path(self, message_id: str) -> str:
        return posixpath.join(self.message_dir, get_path_from_message_id(message_id))

    @property
    def parse_errors(self) -> dict[str, MessageParseError]:
        return dict(self._parse_errors)

    @property
    def tracked_message_ids(self) -> frozenset[str]:
        return frozenset(self._tracked)

    # ── 1. Initial load ──────────────────────────────────────

    async def load(self) -> None:
        """Read every message file into the store. Raises ``MessageLoadError`` if the directory is unusable."""
        self.state = SyncState.LOADING
        messages: list[Message] = []
        try:
            try:
                await self.fs.mkdir(self.message_dir, recursive=True)
            except FileExistsError:
                pass

            for rel_path in await self._list_files(""):
                message = await self._load_file(rel_path)
                if message is not None:
                    messages.append(message)
        except Exception as err:
            self.state = SyncState.FAILED
            raise MessageLoadError(self.message_dir) from err

        self._unsubscribe_keys = self.store.keys_changed.subscribe(self._reconcile_tracked)
        self.store.load_snapshot(messages)
        self.state = SyncState.READY
        self._publish_errors()
        logger.info(
            "Loaded %d messages from %s (%d unreadable)",
            len(messages),
            self.message_dir,
            len(self._parse_errors),
        )

    async def _list_files(self, rel_dir: str) -> list[str]:
        found: list[str] = []
        directory = posixpath.join(self.message_dir, rel_dir) if rel_dir else self.message_dir
        for name in await self.fs.readdir(directory):
            rel_path = posixpath.join(rel_dir, name) if rel_dir else name
            stat = await self.fs.stat(posixpath.join(self.message_dir, rel_path))
            if stat.is_dir:
                found.extend(await self._list_files(rel_path))
            else:
                found.append(rel_path)
        return found

    async def _load_file(self, rel_path: str) -> Message | None:
        message_id = get_message_id_from_path(rel_path)
        if message_id is None:
            # not every file below the message directory is a message
            return None
        try:
            return await self._read_message(rel_path, message_id)
        except FileNotFoundError:
            return None
        except MessageParseError as err:
            logger.warning("Skipping message file %s: %s", rel_path, err)
            self._parse_errors[message_id] = err
            return None

    async def _read_message(self, rel_path: str, message_id: str) -> Message:
        """Read and parse one file. Unreadable content raises ``MessageParseError``."""
        try:
            raw = await self.fs.read_file(posixpath.join(self.message_dir, rel_path))
        except UnicodeDecodeError as err:
            raise MessageParseError(rel_path, "not valid UTF-8", message_id=message_id) from err
        except IsADirectoryError as err:
            raise MessageParseError(rel_path, "is a directory", message_id=message_id) from err
        return parse_message(rel_path, raw)

    # ── 2. Outbound persistence ──────────────────────────────

    def _reconcile_tracked(self, message_ids: frozenset[str]) -> None:
        for message_id in message_ids - set(self._tracked):
            unsubscribe = self.store.watch_message(message_id, self._on_message_changed)
            self._tracked[message_id] = TrackedMessage(message_id, unsubscribe)

        for message_id in set(self._tracked) - message_ids:
            self._tracked.pop(message_id).dispose()
            self._spawn(message_id, self._remove(message_id))

    def _on_message_changed(self, message: Message) -> None:
        self._spawn(message.id, self._persist(message.id, encode_message(message)))

    def _spawn(self, message_id: str, coro: Coroutine[Any, Any, None]) -> None:
        self._pending[message_id] += 1
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(partial(self._on_task_done, message_id))

    def _on_task_done(self, message_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._pending[message_id] -= 1
        if self._pending[message_id] <= 0:
            del self._pending[message_id]
        if task.cancelled() or task.exception() is None:
            return
        logger.error("%s (%s)", task.exception(), task.exception().__cause__)
        self._background_errors.append(task.exception())
        self._publish_errors()

    def _lock_for(self, message_id: str) -> asyncio.Lock:
        return self._write_locks.setdefault(message_id, asyncio.Lock())

    async def _persist(self, message_id: str, encoded: str) -> None:
        path = self.message_path(message_id)
        async with self._lock_for(message_id):
            try:
                try:
                    await self.fs.mkdir(posixpath.dirname(path), recursive=True)
                except FileExistsError:
                    pass
                await self.fs.write_file(path, encoded)
            except OSError as err:
                raise MessagePersistError(message_id, path) from err
        logger.debug("wrote %s", path)

    async def _remove(self, message_id: str) -> None:
        path = self.message_path(message_id)
        async with self._lock_for(message_id):
            try:
                await self.fs.rm(path)
            except FileNotFoundError:
                pass
            except OSError as err:
                raise MessagePersistError(message_id, path, action="delete") from err
        logger.debug("removed %s", path)

    async def flush(self) -> None:
        """Wait until every dispatched write and delete has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── 3. Watcher loop ──────────────────────────────────────

    def start_watching(self) -> None:
        if self.state is not SyncState.READY:
            raise RuntimeError(f"Cannot watch in state {self.state.value}")
        if self._watch_task is not None:
            return
        events = self.fs.watch(self.message_dir, recursive=True)
        self._watch_task = asyncio.get_running_loop().create_task(self._watch_loop(events))
        self._watch_task.add_done_callback(self._on_watch_done)

    async def _watch_loop(self, events: AsyncIterator[WatchEvent]) -> None:
        logger.info("Watching %s", self.message_dir)
        try:
            async for event in events:
                await self.handle_event(event)
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

    async def handle_event(self, event: WatchEvent) -> None:
        """Apply one filesystem change to the store."""
        message_id = get_message_id_from_path(event.filename)
        if message_id is None:
            return
        if self._pending.get(message_id):
            logger.debug("skip event for %s: outbound write in flight", message_id)
            return

        try:
            message = await self._read_message(event.filename, message_id)
        except FileNotFoundError:
            self._clear_parse_error(message_id)
            if self.store.delete(message_id):
                logger.info("Message %s removed on disk", message_id)
            return
        except MessageParseError as err:
            # likely a partial write; the next event brings the full file
            logger.warning("Ignoring unparsable message file %s: %s", event.filename, err)
            self._parse_errors[message_id] = err
            self._publish_errors()
            return
        self._clear_parse_error(message_id)

        current = self.store.get(message_id)
        if current is not None and encode_message(current) == encode_message(message):
            return
        logger.debug("Message %s changed on disk", message_id)
        self.store.upsert(message_id, message)

    def _on_watch_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.info("Stopped watching %s", self.message_dir)
            return
        exc = task.exception()
        if exc is None:
            logger.info("Watch stream for %s ended", self.message_dir)
            return
        error = WatcherError(self.message_dir)
        error.__cause__ = exc
        logger.error("Watcher for %s crashed: %s", self.message_dir, exc)
        self.state = SyncState.FAILED
        self._background_errors.append(error)
        self._publish_errors()

    # ── Errors & teardown ────────────────────────────────────

    def _clear_parse_error(self, message_id: str) -> None:
        if self._parse_errors.pop(message_id, None) is not None:
            self._publish_errors()

    def _publish_errors(self) -> None:
        self.errors.set([*self._parse_errors.values(), *self._background_errors])

    def dispose(self) -> None:
        """Sever store subscriptions and stop the watcher. Writes already dispatched keep running."""
        if self._unsubscribe_keys is not None:
            self._unsubscribe_keys()
            self._unsubscribe_keys = None
        for tracked in self._tracked.values():
            tracked.dispose()
        self._tracked.clear()
        if self._watch_task is not None and not self._watch_task.done():
            self._watch_task.cancel()
        self.state = SyncState.DISPOSED

    async def close(self) -> None:
        """``dispose`` and wait for the watcher task to finish."""
        watch_task = self._watch_task
        self.dispose()
        if watch_task is not None:
            await asyncio.gather(watch_task, return_exceptions=True)
        self.errors.clear()
