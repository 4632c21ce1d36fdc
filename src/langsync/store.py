"""In-memory message store with change notification.

All operations are synchronous and never touch the filesystem. Messages go
in and come out as deep copies, so readers always hold a consistent
snapshot and nobody can mutate the store behind its back.

Two kinds of notifications:
    keys_changed:      the set of message ids changed (create, new upsert,
                       delete, snapshot load); payload is the new id set
    watch_message(id): the value of one message changed (create, update,
                       upsert); payload is a copy of the new value

On creation ``keys_changed`` fires before the per-message notification so
that a listener registered during the key-set pass sees the first value.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from langsync.models import Message
from langsync.reactive import EventEmitter, Unsubscribe

logger = logging.getLogger(__name__)


class MessageStore:
    """Authoritative set of messages for one project session."""

    def __init__(self) -> None:
        self._messages: dict[str, Message] = {}
        self.keys_changed: EventEmitter[frozenset[str]] = EventEmitter()
        self._message_listeners: dict[str, EventEmitter[Message]] = {}

    # ── Queries ──────────────────────────────────────────────

    def get(self, message_id: str) -> Message | None:
        message = self._messages.get(message_id)
        return message.copy() if message else None

    def get_all(self) -> list[Message]:
        return [message.copy() for message in self._messages.values()]

    def included_message_ids(self) -> frozenset[str]:
        return frozenset(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def __len__(self) -> int:
        return len(self._messages)

    # ── Mutations ────────────────────────────────────────────

    def create(self, data: Message) -> bool:
        """Insert a new message. Returns False if the id is taken."""
        if data.id in self._messages:
            return False
        self._put(data.id, data)
        return True

    def update(self, message_id: str, data: Message) -> bool:
        """Replace an existing message. Returns False if it does not exist."""
        if message_id not in self._messages:
            return False
        self._put(message_id, data)
        return True

    def upsert(self, message_id: str, data: Message) -> None:
        self._put(message_id, data)

    def delete(self, message_id: str) -> bool:
        """Remove a message. Returns False if it does not exist."""
        if message_id not in self._messages:
            return False
        del self._messages[message_id]
        logger.debug("deleted message %s", message_id)
        self.keys_changed.emit(self.included_message_ids())
        return True

    def load_snapshot(self, messages: Iterable[Message]) -> None:
        """Replace the whole content at once (initial load). Only ``keys_changed`` fires."""
        self._messages = {message.id: message.copy() for message in messages}
        self.keys_changed.emit(self.included_message_ids())

    def _put(self, message_id: str, data: Message) -> None:
        if data.id != message_id:
            raise ValueError(f'Message id "{data.id}" does not match "{message_id}"')
        is_new = message_id not in self._messages
        self._messages[message_id] = data.copy()
        logger.debug("%s message %s", "created" if is_new else "updated", message_id)
        if is_new:
            self.keys_changed.emit(self.included_message_ids())
        listeners = self._message_listeners.get(message_id)
        if listeners:
            listeners.emit(data.copy())

    # ── Subscriptions ────────────────────────────────────────

    def watch_message(self, message_id: str, callback: Callable[[Message], None]) -> Unsubscribe:
        """Call ``callback`` with every new value of one message."""
        emitter = self._message_listeners.setdefault(message_id, EventEmitter())
        unsubscribe = emitter.subscribe(callback)

        def dispose() -> None:
            unsubscribe()
            if not len(emitter) and self._message_listeners.get(message_id) is emitter:
                del self._message_listeners[message_id]

        return dispose

    def dispose(self) -> None:
        self.keys_changed.clear()
        self._message_listeners.clear()
