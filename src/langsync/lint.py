"""Lint report query over the message store."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass

from langsync.models import LintLevel, Message, ProjectSettings
from langsync.modules import MessageLintRule, ResolvedModules
from langsync.store import MessageStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageLintReport:
    rule_id: str
    message_id: str
    language_tag: str
    level: LintLevel
    body: str


class MessageLintReportsQuery:
    """Runs the installed lint rules on demand.

    Rules and settings are read through callables so the query always uses the
    currently resolved modules.
    """

    def __init__(
        self,
        store: MessageStore,
        settings: Callable[[], ProjectSettings | None],
        resolved: Callable[[], ResolvedModules | None],
    ) -> None:
        self._store = store
        self._settings = settings
        self._resolved = resolved

    async def get(self, message_id: str) -> list[MessageLintReport]:
        message = self._store.get(message_id)
        if message is None:
            return []
        return await self._lint(message)

    async def get_all(self) -> list[MessageLintReport]:
        reports: list[MessageLintReport] = []
        for message in sorted(self._store.get_all(), key=lambda m: m.id):
            reports.extend(await self._lint(message))
        return reports

    async def _lint(self, message: Message) -> list[MessageLintReport]:
        resolved = self._resolved()
        settings = self._settings()
        if resolved is None or settings is None:
            return []
        reports: list[MessageLintReport] = []
        for rule in resolved.message_lint_rules:
            level = settings.message_lint_rule_levels.get(rule.id, "warning")
            reports.extend(await self._run_rule(rule, level, message, settings))
        return reports

    async def _run_rule(
        self, rule: MessageLintRule, level: LintLevel, message: Message, settings: ProjectSettings
    ) -> list[MessageLintReport]:
        found: list[MessageLintReport] = []

        def report(*, language_tag: str, body: str) -> None:
            found.append(MessageLintReport(rule.id, message.id, language_tag, level, body))

        try:
            result = rule.run(message=message, settings=settings, report=report)
            if inspect.isawaitable(result):
                await result
        except Exception as err:
            logger.warning("Lint rule %s failed on %s: %s", rule.id, message.id, err)
            return [
                MessageLintReport(
                    rule.id,
                    message.id,
                    settings.source_language_tag,
                    "error",
                    f"Lint rule failed: {err}",
                )
            ]
        return found
