"""One-shot reconciliation of a plugin's ``load_messages`` output into the store.

Imported messages are matched to stored ones by alias, never by id: a stored
message whose ``alias[plugin_id]`` equals the imported message's own id is the
same message. Unmatched messages get a fresh human-readable id whose file
path is free on disk.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from langsync.codec import encode_message
from langsync.errors import DuplicateAliasError, MessageIdExhaustedError, PluginLoadMessagesError
from langsync.fs.base import Filesystem
from langsync.human_id import human_id_hash
from langsync.models import Message
from langsync.store import MessageStore

logger = logging.getLogger(__name__)

# Alias key under which every imported message is also registered, so the
# downstream compiler can find it by its original id.
DOWNSTREAM_ALIAS_KEY = "library.inlang.paraglideJs"


@dataclass
class ImportSummary:
    created: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def mutations(self) -> int:
        return self.created + self.updated


class ImportReconciler:
    """Merges ``load_messages`` output into ``store``.

    ``message_path`` maps a message id to its absolute file path; it is used to
    check candidate ids against the disk.
    """

    def __init__(
        self,
        fs: Filesystem,
        store: MessageStore,
        message_path: Callable[[str], str],
        *,
        max_id_probes: int = 1000,
    ) -> None:
        self.fs = fs
        self.store = store
        self.message_path = message_path
        self.max_id_probes = max_id_probes

    async def run(
        self,
        plugin_id: str,
        load_messages: Callable[[], Awaitable[list[Message]]],
    ) -> ImportSummary:
        try:
            imported = await load_messages()
        except Exception as err:
            raise PluginLoadMessagesError(plugin_id) from err

        imported = sorted(imported, key=lambda m: m.id)
        matches = self._match_by_alias(plugin_id, imported)

        summary = ImportSummary()
        assigned: set[str] = set()
        for message in imported:
            existing = matches.get(message.id)
            if existing is None:
                await self._create(plugin_id, message, assigned)
                summary.created += 1
            elif self._update(message, existing):
                summary.updated += 1
            else:
                summary.unchanged += 1

        logger.info(
            "Imported %d messages from %s: %d created, %d updated, %d unchanged",
            len(imported),
            plugin_id,
            summary.created,
            summary.updated,
            summary.unchanged,
        )
        return summary

    def _match_by_alias(self, plugin_id: str, imported: list[Message]) -> dict[str, Message]:
        """Map imported id → stored message. Raises before anything is mutated."""
        by_alias: dict[str, list[Message]] = defaultdict(list)
        for stored in self.store.get_all():
            alias = stored.alias.get(plugin_id)
            if alias is not None:
                by_alias[alias].append(stored)

        matches: dict[str, Message] = {}
        for message in imported:
            found = by_alias.get(message.id, [])
            if len(found) > 1:
                raise DuplicateAliasError(plugin_id, message.id, sorted(m.id for m in found))
            if found:
                matches[message.id] = found[0]
        return matches

    async def _create(self, plugin_id: str, message: Message, assigned: set[str]) -> None:
        original_id = message.id
        new_id = await self._fresh_id(original_id, assigned)
        assigned.add(new_id)
        created = Message(
            id=new_id,
            alias={plugin_id: original_id, DOWNSTREAM_ALIAS_KEY: original_id},
            variants=message.copy().variants,
        )
        self.store.create(created)
        logger.debug("import: %s → new message %s", original_id, new_id)

    def _update(self, message: Message, existing: Message) -> bool:
        candidate = Message(
            id=existing.id,
            alias=dict(existing.alias),
            variants=message.copy().variants,
        )
        if encode_message(candidate) == encode_message(existing):
            return False
        self.store.upsert(existing.id, candidate)
        logger.debug("import: %s updated in place", existing.id)
        return True

    async def _fresh_id(self, seed: str, assigned: set[str]) -> str:
        for offset in range(self.max_id_probes):
            candidate = human_id_hash(seed, offset)
            if candidate in assigned or candidate in self.store:
                continue
            if not await self._exists(self.message_path(candidate)):
                return candidate
        raise MessageIdExhaustedError(seed, self.max_id_probes)

    async def _exists(self, path: str) -> bool:
        try:
            await self.fs.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return False
        return True
