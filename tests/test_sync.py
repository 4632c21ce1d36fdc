"""Tests for the filesystem synchronizer."""

import asyncio

import pytest

from langsync.codec import encode_message
from langsync.errors import MessageLoadError, MessageParseError, MessagePersistError, WatcherError
from langsync.fs.base import WatchEvent
from langsync.fs.local import LocalFilesystem
from langsync.fs.memory import MemoryFilesystem
from langsync.store import MessageStore
from langsync.sync import FilesystemSynchronizer, SyncState

from helpers import MESSAGES, eventually, message, message_file, message_path


def make_sync(fs: MemoryFilesystem) -> FilesystemSynchronizer:
    return FilesystemSynchronizer(fs, MessageStore(), MESSAGES)


class FailingWriteFilesystem(MemoryFilesystem):
    async def write_file(self, path: str, data: str) -> None:
        raise PermissionError(13, "Permission denied", path)


class BrokenWatchFilesystem(MemoryFilesystem):
    def watch(self, path: str, *, recursive: bool = True):
        async def events():
            raise RuntimeError("watch backend died")
            yield  # pragma: no cover

        return events()


class TestInitialLoad:
    @pytest.mark.asyncio
    async def test_empty_directory_is_created(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()

        assert sync.state is SyncState.READY
        assert (await fs.stat(MESSAGES)).is_dir
        assert len(sync.store) == 0
        assert sync.errors.get() == []

    @pytest.mark.asyncio
    async def test_loads_nested_files(self):
        hello = message("en_hello")
        deep = message("happy_big_cat_jump", "Deep")
        fs = MemoryFilesystem(dict([message_file(hello), message_file(deep)]))
        sync = make_sync(fs)
        await sync.load()

        assert sync.store.get("en_hello") == hello
        assert sync.store.get("happy_big_cat_jump") == deep
        assert sync.tracked_message_ids == frozenset({"en_hello", "happy_big_cat_jump"})

    @pytest.mark.asyncio
    async def test_unreadable_file_is_skipped(self):
        good = message("en_hello")
        fs = MemoryFilesystem(
            {
                **dict([message_file(good)]),
                MESSAGES + "/en/broken.json": "{ nope",
                MESSAGES + "/README.md": "not a message",
            }
        )
        sync = make_sync(fs)
        await sync.load()

        assert sync.store.included_message_ids() == frozenset({"en_hello"})
        [error] = sync.errors.get()
        assert isinstance(error, MessageParseError)
        assert error.message_id == "en_broken"

    @pytest.mark.asyncio
    async def test_invalid_utf8_file_is_skipped(self, tmp_path):
        messages_dir = tmp_path / "messages"
        (messages_dir / "en").mkdir(parents=True)
        (messages_dir / "en" / "good.json").write_text(encode_message(message("en_good")), encoding="utf-8")
        (messages_dir / "en" / "bad.json").write_bytes(b"\xff\xfe")
        sync = FilesystemSynchronizer(LocalFilesystem(), MessageStore(), str(messages_dir))
        await sync.load()

        assert sync.state is SyncState.READY
        assert sync.store.included_message_ids() == frozenset({"en_good"})
        assert set(sync.parse_errors) == {"en_bad"}
        assert isinstance(sync.parse_errors["en_bad"].__cause__, UnicodeDecodeError)

    @pytest.mark.asyncio
    async def test_initial_load_does_not_write(self):
        hello = message("en_hello")
        fs = MemoryFilesystem(dict([message_file(hello)]))
        watcher = fs.watch(MESSAGES)
        sync = make_sync(fs)
        await sync.load()
        await sync.flush()
        assert watcher.queue.empty()
        await watcher.aclose()

    @pytest.mark.asyncio
    async def test_message_dir_is_a_file(self):
        fs = MemoryFilesystem({MESSAGES: "oops"})
        sync = make_sync(fs)
        with pytest.raises(MessageLoadError):
            await sync.load()
        assert sync.state is SyncState.FAILED


class TestPersistence:
    @pytest.mark.asyncio
    async def test_create_update_delete(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()

        sync.store.create(message("en_hello"))
        await sync.flush()
        assert await fs.read_file(message_path("en_hello")) == encode_message(message("en_hello"))

        sync.store.update("en_hello", message("en_hello", "Hi"))
        await sync.flush()
        assert await fs.read_file(message_path("en_hello")) == encode_message(message("en_hello", "Hi"))

        sync.store.delete("en_hello")
        await sync.flush()
        assert message_path("en_hello") not in fs.snapshot()
        assert "en_hello" not in sync.tracked_message_ids

    @pytest.mark.asyncio
    async def test_writes_land_in_mutation_order(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()

        sync.store.create(message("en_hello", "1"))
        for text in ["2", "3", "4"]:
            sync.store.upsert("en_hello", message("en_hello", text))
        await sync.flush()

        assert await fs.read_file(message_path("en_hello")) == encode_message(message("en_hello", "4"))

    @pytest.mark.asyncio
    async def test_delete_then_recreate(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()

        sync.store.create(message("en_hello"))
        sync.store.delete("en_hello")
        sync.store.create(message("en_hello", "Back"))
        await sync.flush()

        assert await fs.read_file(message_path("en_hello")) == encode_message(message("en_hello", "Back"))

    @pytest.mark.asyncio
    async def test_write_failure_is_collected(self):
        fs = FailingWriteFilesystem()
        sync = make_sync(fs)
        await sync.load()

        sync.store.create(message("en_hello"))
        await sync.flush()

        [error] = sync.errors.get()
        assert isinstance(error, MessagePersistError)
        assert error.message_id == "en_hello"
        assert isinstance(error.__cause__, PermissionError)
        assert "en_hello" in sync.store

    @pytest.mark.asyncio
    async def test_disposed_sync_stops_writing(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()
        sync.dispose()

        sync.store.create(message("en_hello"))
        await sync.flush()
        assert message_path("en_hello") not in fs.snapshot()
        assert sync.state is SyncState.DISPOSED


class TestWatchEvents:
    @pytest.mark.asyncio
    async def test_external_change_is_applied(self):
        fs = MemoryFilesystem(dict([message_file(message("en_hello"))]))
        sync = make_sync(fs)
        await sync.load()

        changed = message("en_hello", "Changed outside")
        await fs.write_file(message_path("en_hello"), encode_message(changed))
        await sync.handle_event(WatchEvent("en/hello.json"))

        assert sync.store.get("en_hello") == changed
        await sync.flush()

    @pytest.mark.asyncio
    async def test_identical_content_is_a_no_op(self):
        hello = message("en_hello")
        fs = MemoryFilesystem(dict([message_file(hello)]))
        sync = make_sync(fs)
        await sync.load()
        notified = []
        sync.store.watch_message("en_hello", notified.append)

        # same content, different formatting
        await fs.write_file(message_path("en_hello"), encode_message(hello).replace("    ", "  "))
        await sync.handle_event(WatchEvent("en/hello.json"))
        await sync.handle_event(WatchEvent("en/hello.json"))

        assert notified == []

    @pytest.mark.asyncio
    async def test_deleted_file_removes_message(self):
        fs = MemoryFilesystem(dict([message_file(message("en_hello"))]))
        sync = make_sync(fs)
        await sync.load()

        await fs.rm(message_path("en_hello"))
        await sync.handle_event(WatchEvent("en/hello.json", kind="rename"))
        await sync.flush()

        assert "en_hello" not in sync.store
        assert sync.errors.get() == []

    @pytest.mark.asyncio
    async def test_invalid_utf8_event_does_not_stop_sync(self, tmp_path):
        messages_dir = tmp_path / "messages"
        sync = FilesystemSynchronizer(LocalFilesystem(), MessageStore(), str(messages_dir))
        await sync.load()

        (messages_dir / "en").mkdir()
        bad = messages_dir / "en" / "bad.json"
        bad.write_bytes(b"\xff\xfe")
        await sync.handle_event(WatchEvent("en/bad.json"))

        assert sync.state is SyncState.READY
        assert "en_bad" not in sync.store
        [error] = sync.errors.get()
        assert isinstance(error, MessageParseError)

        fixed = message("en_bad", "Fixed")
        bad.write_text(encode_message(fixed), encoding="utf-8")
        await sync.handle_event(WatchEvent("en/bad.json"))
        await sync.flush()

        assert sync.store.get("en_bad") == fixed
        assert sync.errors.get() == []

    @pytest.mark.asyncio
    async def test_directory_named_like_a_message_is_a_parse_error(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()

        await fs.mkdir(MESSAGES + "/en/odd.json", recursive=True)
        await sync.handle_event(WatchEvent("en/odd.json"))

        assert sync.state is SyncState.READY
        assert isinstance(sync.parse_errors["en_odd"], MessageParseError)

    @pytest.mark.asyncio
    async def test_new_file_is_added(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()

        await fs.mkdir(MESSAGES + "/en")
        await fs.write_file(message_path("en_new"), encode_message(message("en_new")))
        await sync.handle_event(WatchEvent("en/new.json", kind="rename"))

        assert sync.store.get("en_new") == message("en_new")
        assert "en_new" in sync.tracked_message_ids
        await sync.flush()

    @pytest.mark.asyncio
    async def test_parse_error_is_recorded_then_cleared(self):
        fs = MemoryFilesystem(dict([message_file(message("en_hello"))]))
        sync = make_sync(fs)
        await sync.load()

        await fs.write_file(message_path("en_hello"), "{ half written")
        await sync.handle_event(WatchEvent("en/hello.json"))
        assert "en_hello" in sync.parse_errors
        assert sync.store.get("en_hello") == message("en_hello")

        await fs.write_file(message_path("en_hello"), encode_message(message("en_hello", "Fixed")))
        await sync.handle_event(WatchEvent("en/hello.json"))
        assert sync.parse_errors == {}
        assert sync.errors.get() == []
        await sync.flush()

    @pytest.mark.asyncio
    async def test_non_message_files_are_ignored(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()
        await sync.handle_event(WatchEvent("notes.txt"))
        assert len(sync.store) == 0

    @pytest.mark.asyncio
    async def test_event_during_outbound_write_is_skipped(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()

        sync.store.create(message("en_hello", "Mine"))
        # the write task has not run yet; disk has nothing for en_hello
        await sync.handle_event(WatchEvent("en/hello.json", kind="rename"))
        assert "en_hello" in sync.store

        await sync.flush()
        assert await fs.read_file(message_path("en_hello")) == encode_message(message("en_hello", "Mine"))


class TestWatchLoop:
    @pytest.mark.asyncio
    async def test_watcher_applies_external_delete(self):
        fs = MemoryFilesystem(dict([message_file(message("en_hello"))]))
        sync = make_sync(fs)
        await sync.load()
        sync.start_watching()
        try:
            await fs.rm(message_path("en_hello"))
            await eventually(lambda: "en_hello" not in sync.store)
        finally:
            await sync.close()

    @pytest.mark.asyncio
    async def test_own_writes_do_not_echo(self):
        fs = MemoryFilesystem()
        sync = make_sync(fs)
        await sync.load()
        sync.start_watching()
        notified = []
        try:
            sync.store.create(message("en_hello"))
            sync.store.watch_message("en_hello", notified.append)
            await sync.flush()
            for _ in range(5):
                await asyncio.sleep(0)
            assert notified == []
            assert sync.store.get("en_hello") == message("en_hello")
        finally:
            await sync.close()

    @pytest.mark.asyncio
    async def test_start_requires_ready(self):
        sync = make_sync(MemoryFilesystem())
        with pytest.raises(RuntimeError):
            sync.start_watching()

    @pytest.mark.asyncio
    async def test_watcher_crash_is_surfaced(self):
        fs = BrokenWatchFilesystem()
        sync = make_sync(fs)
        await sync.load()
        sync.start_watching()

        await eventually(lambda: sync.state is SyncState.FAILED)
        [error] = sync.errors.get()
        assert isinstance(error, WatcherError)
        assert isinstance(error.__cause__, RuntimeError)
        sync.dispose()
