"""Tests for the in-memory message store."""

import pytest

from langsync.store import MessageStore

from helpers import message


@pytest.fixture
def store() -> MessageStore:
    s = MessageStore()
    s.load_snapshot([message("en_hello"), message("en_bye", "Bye")])
    return s


class TestQueries:
    def test_get_returns_copy(self, store: MessageStore):
        got = store.get("en_hello")
        got.variants[0].pattern[0]["value"] = "changed"
        assert store.get("en_hello").variants[0].pattern[0]["value"] == "Hello"

    def test_missing(self, store: MessageStore):
        assert store.get("nope") is None
        assert "nope" not in store

    def test_included_ids(self, store: MessageStore):
        assert store.included_message_ids() == frozenset({"en_hello", "en_bye"})
        assert len(store) == 2


class TestMutations:
    def test_create_rejects_existing(self, store: MessageStore):
        assert store.create(message("en_hello", "Again")) is False
        assert store.get("en_hello").variants[0].pattern[0]["value"] == "Hello"
        assert store.create(message("en_new")) is True

    def test_update_requires_existing(self, store: MessageStore):
        assert store.update("en_new", message("en_new")) is False
        assert store.update("en_hello", message("en_hello", "Hi")) is True
        assert store.get("en_hello").variants[0].pattern[0]["value"] == "Hi"

    def test_delete(self, store: MessageStore):
        assert store.delete("en_hello") is True
        assert store.delete("en_hello") is False
        assert store.included_message_ids() == frozenset({"en_bye"})

    def test_id_mismatch(self, store: MessageStore):
        with pytest.raises(ValueError):
            store.upsert("en_hello", message("en_other"))

    def test_stored_value_is_detached(self, store: MessageStore):
        msg = message("en_new")
        store.create(msg)
        msg.variants[0].pattern[0]["value"] = "mutated"
        assert store.get("en_new").variants[0].pattern[0]["value"] == "Hello"


class TestNotifications:
    def test_keys_changed_before_value(self):
        store = MessageStore()
        events: list[str] = []

        def on_keys(ids: frozenset[str]) -> None:
            events.append(f"keys:{sorted(ids)}")
            for message_id in ids:
                store.watch_message(message_id, lambda m: events.append(f"value:{m.id}"))

        store.keys_changed.subscribe(on_keys)
        store.create(message("en_hello"))
        assert events == ["keys:['en_hello']", "value:en_hello"]

    def test_update_does_not_change_keys(self, store: MessageStore):
        keys: list[frozenset[str]] = []
        values: list[str] = []
        store.keys_changed.subscribe(keys.append)
        store.watch_message("en_hello", lambda m: values.append(m.variants[0].pattern[0]["value"]))

        store.upsert("en_hello", message("en_hello", "Hi"))
        assert keys == []
        assert values == ["Hi"]

    def test_snapshot_fires_keys_only(self):
        store = MessageStore()
        keys: list[frozenset[str]] = []
        values: list[str] = []
        store.keys_changed.subscribe(keys.append)
        store.watch_message("en_hello", lambda m: values.append(m.id))

        store.load_snapshot([message("en_hello")])
        assert keys == [frozenset({"en_hello"})]
        assert values == []

    def test_unwatch(self, store: MessageStore):
        values: list[str] = []
        unsubscribe = store.watch_message("en_hello", lambda m: values.append(m.id))
        unsubscribe()
        store.upsert("en_hello", message("en_hello", "Hi"))
        assert values == []
