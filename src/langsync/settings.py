"""Project settings: load, migrate, validate, persist.

Pipeline for every settings value that enters the engine:

    raw JSON → migrate_if_outdated → JSON Schema (jsonschema) → semantic checks → ProjectSettings

``SettingsStore.set`` runs the same pipeline and only commits valid values.
Committed values are written back to ``settings.json`` in the background,
except the very first one (it was just read from disk).
"""

from __future__ import annotations

import asyncio
import json
import logging
import posixpath
from typing import Any

from jsonschema import Draft202012Validator

from langsync.errors import (
    SettingsFileJSONSyntaxError,
    SettingsFileNotFoundError,
    SettingsFileReadError,
    SettingsInvalidError,
    SettingsIssue,
    SettingsPersistError,
)
from langsync.fs.base import Filesystem
from langsync.models import ProjectSettings, Result, source_language_tag_issue
from langsync.reactive import Observable

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"
SETTINGS_SCHEMA_ID = "https://inlang.com/schema/project-settings"

LANGUAGE_TAG_PATTERN = r"^[a-zA-Z]{2,3}(-[a-zA-Z0-9]{1,8})*$"
MODULE_PATH_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$"
NAMESPACED_KEY_PATTERN = r"^(plugin|messageLintRule)\.[a-zA-Z0-9]+\.[a-zA-Z0-9]+$"
LINT_RULE_ID_PATTERN = r"^messageLintRule\.[a-zA-Z0-9]+\.[a-zA-Z0-9]+$"

SETTINGS_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["sourceLanguageTag", "languageTags"],
    "properties": {
        "$schema": {"type": "string"},
        "sourceLanguageTag": {"$ref": "#/$defs/languageTag"},
        "languageTags": {
            "type": "array",
            "items": {"$ref": "#/$defs/languageTag"},
            "minItems": 1,
            "uniqueItems": True,
        },
        "modules": {
            "type": "array",
            "items": {"type": "string", "pattern": MODULE_PATH_PATTERN},
            "uniqueItems": True,
        },
        "messageLintRuleLevels": {
            "type": "object",
            "propertyNames": {"pattern": LINT_RULE_ID_PATTERN},
            "additionalProperties": {"enum": ["warning", "error"]},
        },
    },
    "patternProperties": {NAMESPACED_KEY_PATTERN: {"type": "object"}},
    "additionalProperties": False,
    "$defs": {"languageTag": {"type": "string", "pattern": LANGUAGE_TAG_PATTERN}},
}

_validator = Draft202012Validator(SETTINGS_SCHEMA)

# Pre-$schema key names → current key names
_LEGACY_KEYS = {
    "sourceLanguage": "sourceLanguageTag",
    "languages": "languageTags",
    "lintRuleLevels": "messageLintRuleLevels",
}


# ── Migration ────────────────────────────────────────────────


def migrate_if_outdated(raw: Any) -> Any:
    """Rewrite legacy settings shapes into the current schema.

    Current settings (carrying the current ``$schema`` marker) and non-objects
    are returned unchanged; validation reports the latter.
    """
    if not isinstance(raw, dict) or raw.get("$schema") == SETTINGS_SCHEMA_ID:
        return raw

    data = dict(raw)
    for old, new in _LEGACY_KEYS.items():
        if old in data and new not in data:
            data[new] = data.pop(old)

    # Module settings used to be nested under "settings"
    nested = data.get("settings")
    if isinstance(nested, dict):
        del data["settings"]
        for key, value in nested.items():
            data.setdefault(key, value)

    data["$schema"] = SETTINGS_SCHEMA_ID
    logger.info("Migrated outdated project settings to %s", SETTINGS_SCHEMA_ID)
    return data


async def maybe_migrate_to_directory(fs: Filesystem, project_path: str) -> None:
    """Turn a legacy ``project.inlang.json`` file into ``project.inlang/settings.json``."""
    if not project_path.endswith("project.inlang"):
        return
    settings_path = posixpath.join(project_path, SETTINGS_FILENAME)
    try:
        await fs.stat(settings_path)
        return
    except FileNotFoundError:
        pass

    legacy_path = project_path + ".json"
    try:
        legacy = await fs.read_file(legacy_path)
    except FileNotFoundError:
        return

    await fs.mkdir(project_path, recursive=True)
    await fs.write_file(settings_path, legacy)
    logger.info("Migrated %s to %s", legacy_path, settings_path)


# ── Validation ───────────────────────────────────────────────


def _issue_path(error: Any) -> str:
    return "/".join(str(part) for part in error.absolute_path)


def parse_settings(raw: Any) -> ProjectSettings:
    """Migrate and validate a raw settings value.

    Raises ``SettingsInvalidError`` with one ``SettingsIssue`` per violation.
    """
    data = migrate_if_outdated(raw)
    schema_errors = sorted(_validator.iter_errors(data), key=_issue_path)
    if schema_errors:
        raise SettingsInvalidError(
            [SettingsIssue(_issue_path(e), e.message, e.instance) for e in schema_errors]
        )

    if data["sourceLanguageTag"] not in data["languageTags"]:
        raise SettingsInvalidError(
            [source_language_tag_issue(data["sourceLanguageTag"], data["languageTags"])]
        )
    return ProjectSettings.from_dict(data)


async def load_settings(fs: Filesystem, path: str) -> ProjectSettings:
    try:
        text = await fs.read_file(path)
    except FileNotFoundError as err:
        raise SettingsFileNotFoundError(path) from err
    except UnicodeDecodeError as err:
        raise SettingsFileJSONSyntaxError(path) from err
    except OSError as err:
        raise SettingsFileReadError(path) from err

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as err:
        raise SettingsFileJSONSyntaxError(path) from err

    return parse_settings(raw)


def serialize_settings(settings: ProjectSettings) -> str:
    return json.dumps(settings.to_dict(), indent=2, ensure_ascii=False) + "\n"


# ── Store ────────────────────────────────────────────────────


class SettingsStore:
    """Holds the current settings of one project and writes changes back."""

    def __init__(self, fs: Filesystem, project_path: str) -> None:
        self.fs = fs
        self.path = posixpath.join(project_path, SETTINGS_FILENAME)
        self.current: Observable[ProjectSettings | None] = Observable(None)
        self.errors: Observable[list[Exception]] = Observable([])
        self._committed_once = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def value(self) -> ProjectSettings:
        settings = self.current.get()
        if settings is None:
            raise RuntimeError("Settings not loaded, call load() first")
        return settings

    async def load(self) -> ProjectSettings:
        settings = await load_settings(self.fs, self.path)
        self._commit(settings)
        logger.info(
            "Loaded settings from %s (source=%s, languages=%s)",
            self.path,
            settings.source_language_tag,
            ",".join(settings.language_tags),
        )
        return settings

    def set(self, new_settings: ProjectSettings | dict[str, Any]) -> Result[None, SettingsInvalidError]:
        """Validate and commit. Must be called from within the running event loop."""
        raw = new_settings.to_dict() if isinstance(new_settings, ProjectSettings) else new_settings
        try:
            validated = parse_settings(raw)
        except SettingsInvalidError as err:
            return Result(error=err)
        self._commit(validated)
        return Result()

    def _commit(self, settings: ProjectSettings) -> None:
        self.current.set(settings)
        if not self._committed_once:
            self._committed_once = True
            return
        task = asyncio.get_running_loop().create_task(self.persist())
        self._tasks.add(task)
        task.add_done_callback(self._on_write_done)

    async def persist(self) -> None:
        await self.fs.write_file(self.path, serialize_settings(self.value))
        logger.debug("Wrote settings to %s", self.path)

    def _on_write_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled() or task.exception() is None:
            return
        error = SettingsPersistError(self.path)
        error.__cause__ = task.exception()
        logger.error("Settings write failed: %s", task.exception())
        self.errors.set([*self.errors.get(), error])

    async def flush(self) -> None:
        """Wait for every dispatched settings write."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def dispose(self) -> None:
        self.current.clear()
        self.errors.clear()
