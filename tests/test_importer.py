"""Tests for alias-based import reconciliation."""

import pytest

from langsync.codec import get_path_from_message_id
from langsync.errors import DuplicateAliasError, MessageIdExhaustedError, PluginLoadMessagesError
from langsync.fs.local import LocalFilesystem
from langsync.fs.memory import MemoryFilesystem
from langsync.human_id import human_id_hash
from langsync.importer import DOWNSTREAM_ALIAS_KEY, ImportReconciler
from langsync.store import MessageStore

from helpers import message, message_file, message_path

PLUGIN = "plugin.test.json"


def loader(*messages):
    async def load_messages():
        return [m.copy() for m in messages]

    return load_messages


def make_reconciler(fs=None, store=None, **kwargs) -> ImportReconciler:
    return ImportReconciler(fs or MemoryFilesystem(), store or MessageStore(), message_path, **kwargs)


class TestNewMessages:
    @pytest.mark.asyncio
    async def test_unmatched_message_gets_fresh_id_and_aliases(self):
        reconciler = make_reconciler()
        summary = await reconciler.run(PLUGIN, loader(message("greeting")))

        [created] = reconciler.store.get_all()
        assert created.id == human_id_hash("greeting", 0)
        assert created.alias == {PLUGIN: "greeting", DOWNSTREAM_ALIAS_KEY: "greeting"}
        assert created.variants == message("greeting").variants
        assert summary.created == 1

    @pytest.mark.asyncio
    async def test_fresh_ids_skip_existing_files(self):
        taken = human_id_hash("a", 0)
        fs = MemoryFilesystem({message_path(taken): "{}"})
        reconciler = make_reconciler(fs)

        await reconciler.run(PLUGIN, loader(message("a"), message("b"), message("c")))

        ids = [m.id for m in reconciler.store.get_all()]
        assert len(set(ids)) == 3
        assert taken not in ids
        for message_id in ids:
            assert message_path(message_id) not in fs.snapshot()

    @pytest.mark.asyncio
    async def test_fresh_ids_skip_stored_messages(self):
        store = MessageStore()
        store.create(message(human_id_hash("a", 0), alias={"plugin.other.x": "a"}))
        reconciler = make_reconciler(store=store)

        await reconciler.run(PLUGIN, loader(message("a")))

        assert len(store) == 2
        new = [m for m in store.get_all() if m.alias.get(PLUGIN) == "a"]
        assert new[0].id != human_id_hash("a", 0)

    @pytest.mark.asyncio
    async def test_probing_is_bounded(self):
        fs = MemoryFilesystem({message_path(human_id_hash("a", 0)): "{}"})
        reconciler = make_reconciler(fs, max_id_probes=1)

        with pytest.raises(MessageIdExhaustedError) as exc_info:
            await reconciler.run(PLUGIN, loader(message("a")))
        assert exc_info.value.seed == "a"
        assert len(reconciler.store) == 0

    @pytest.mark.asyncio
    async def test_file_in_place_of_directory_leaves_id_free(self, tmp_path):
        messages_dir = tmp_path / "messages"
        messages_dir.mkdir()
        candidate = human_id_hash("greeting", 0)
        # a plain file where the id's directory would go
        (messages_dir / candidate.split("_", 1)[0]).write_text("", encoding="utf-8")
        reconciler = ImportReconciler(
            LocalFilesystem(),
            MessageStore(),
            lambda message_id: str(messages_dir / get_path_from_message_id(message_id)),
        )

        await reconciler.run(PLUGIN, loader(message("greeting")))

        [created] = reconciler.store.get_all()
        assert created.id == candidate


class TestExistingMessages:
    @pytest.mark.asyncio
    async def test_match_by_alias_updates_in_place(self):
        store = MessageStore()
        existing = message("happy_cat", "Old", alias={PLUGIN: "greeting", DOWNSTREAM_ALIAS_KEY: "greeting"})
        store.create(existing)
        reconciler = make_reconciler(store=store)

        summary = await reconciler.run(PLUGIN, loader(message("greeting", "New", alias={PLUGIN: "ignored"})))

        [updated] = store.get_all()
        assert updated.id == "happy_cat"
        assert updated.alias == existing.alias
        assert updated.variants[0].pattern[0]["value"] == "New"
        assert summary.updated == 1

    @pytest.mark.asyncio
    async def test_unchanged_content_is_skipped(self):
        store = MessageStore()
        store.create(message("happy_cat", "Same", alias={PLUGIN: "greeting"}))
        notified = []
        store.watch_message("happy_cat", notified.append)
        reconciler = make_reconciler(store=store)

        summary = await reconciler.run(PLUGIN, loader(message("greeting", "Same")))

        assert notified == []
        assert summary.unchanged == 1
        assert summary.mutations == 0

    @pytest.mark.asyncio
    async def test_import_twice_is_idempotent(self):
        reconciler = make_reconciler()
        load = loader(message("greeting"), message("farewell", "Bye"))

        first = await reconciler.run(PLUGIN, load)
        before = {m.id: m for m in reconciler.store.get_all()}
        keys = []
        reconciler.store.keys_changed.subscribe(keys.append)
        second = await reconciler.run(PLUGIN, load)

        assert first.created == 2
        assert second.mutations == 0
        assert keys == []
        assert {m.id: m for m in reconciler.store.get_all()} == before


class TestFailures:
    @pytest.mark.asyncio
    async def test_duplicate_alias_fails_before_any_mutation(self):
        store = MessageStore()
        store.create(message("one_x", alias={PLUGIN: "zdup"}))
        store.create(message("two_x", alias={PLUGIN: "zdup"}))
        reconciler = make_reconciler(store=store)
        keys = []
        store.keys_changed.subscribe(keys.append)

        # "alpha" sorts first and would be created if matching ran lazily
        with pytest.raises(DuplicateAliasError) as exc_info:
            await reconciler.run(PLUGIN, loader(message("zdup"), message("alpha")))

        assert exc_info.value.alias == "zdup"
        assert exc_info.value.message_ids == ["one_x", "two_x"]
        assert keys == []
        assert store.included_message_ids() == frozenset({"one_x", "two_x"})

    @pytest.mark.asyncio
    async def test_loader_failure_is_wrapped(self):
        async def load_messages():
            raise ValueError("bad source file")

        with pytest.raises(PluginLoadMessagesError) as exc_info:
            await make_reconciler().run(PLUGIN, load_messages)
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_fresh_id_checks_disk_not_only_memory(self):
        # a file that failed to parse is not in the store, but its path is taken
        taken = human_id_hash("greeting", 0)
        path, _ = message_file(message(taken))
        fs = MemoryFilesystem({path: "{ broken"})
        reconciler = make_reconciler(fs)

        await reconciler.run(PLUGIN, loader(message("greeting")))
        [created] = reconciler.store.get_all()
        assert created.id != taken
