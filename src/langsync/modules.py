"""Plugins, lint rules and module resolution.

``settings.modules`` lists dotted Python import paths. Each module exposes a
``default`` attribute holding either a ``Plugin`` or a ``MessageLintRule``::

    # my_project/plugins/json_files.py
    default = Plugin(id="plugin.acme.jsonFiles", display_name="JSON files", load_messages=...)

Plugin and rule callables receive keyword arguments only and may be plain
functions or coroutines. Resolution problems never raise; they are collected
in ``ResolvedModules.errors`` so a project with one broken module still loads.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any

from langsync.codec import message_from_dict
from langsync.errors import (
    CustomApiConflictError,
    LangsyncError,
    ModuleError,
    ModuleExportIsInvalidError,
    ModuleHasNoExportsError,
    ModuleImportError,
    PluginFunctionAlreadyDefinedError,
)
from langsync.fs.base import Filesystem
from langsync.models import Message, ProjectSettings

logger = logging.getLogger(__name__)

PLUGIN_ID_PATTERN = re.compile(r"^plugin\.[a-zA-Z0-9]+\.[a-zA-Z0-9]+$")
LINT_RULE_ID_PATTERN = re.compile(r"^messageLintRule\.[a-zA-Z0-9]+\.[a-zA-Z0-9]+$")

ImportFunction = Callable[[str], ModuleType | Awaitable[ModuleType]]


@dataclass
class Plugin:
    """Import/export adapter.

    ``load_messages(settings=, fs=)`` returns ``Message`` objects (or their
    JSON dict shape); ``save_messages(settings=, fs=, messages=)`` writes them
    back; ``add_custom_api(settings=)`` returns a dict merged into the
    project's ``custom_api``.
    """

    id: str
    display_name: str | dict[str, str]
    description: str | dict[str, str] = ""
    load_messages: Callable[..., Any] | None = None
    save_messages: Callable[..., Any] | None = None
    add_custom_api: Callable[..., dict[str, Any]] | None = None


@dataclass
class MessageLintRule:
    """Check over one message.

    ``run(message=, settings=, report=)`` calls
    ``report(language_tag=, body=)`` once per finding.
    """

    id: str
    display_name: str | dict[str, str]
    run: Callable[..., Any]
    description: str | dict[str, str] = ""


@dataclass(frozen=True)
class ModuleMeta:
    module: str
    id: str


@dataclass
class ResolvedPluginApi:
    load_messages: Callable[[], Awaitable[list[Message]]] | None = None
    save_messages: Callable[[list[Message]], Awaitable[None]] | None = None
    custom_api: dict[str, Any] = field(default_factory=dict)
    load_messages_plugin_id: str | None = None
    save_messages_plugin_id: str | None = None


@dataclass
class ResolvedModules:
    plugins: list[Plugin] = field(default_factory=list)
    message_lint_rules: list[MessageLintRule] = field(default_factory=list)
    resolved_plugin_api: ResolvedPluginApi = field(default_factory=ResolvedPluginApi)
    meta: list[ModuleMeta] = field(default_factory=list)
    errors: list[LangsyncError] = field(default_factory=list)

    def module_of(self, module_id: str) -> str | None:
        for meta in self.meta:
            if meta.id == module_id:
                return meta.module
        return None


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _display_name(value: str | dict[str, str]) -> str:
    if isinstance(value, dict):
        return value.get("en") or next(iter(value.values()), "")
    return value


# ── Resolution ───────────────────────────────────────────────


async def _import(module_path: str, import_module: ImportFunction) -> ModuleType | None:
    try:
        return await _maybe_await(import_module(module_path))
    except Exception as err:
        logger.warning("Failed to import module %s: %s", module_path, err)
        raise ModuleImportError(module_path) from err


def _check_export(module_path: str, export: Any, seen_ids: set[str]) -> Plugin | MessageLintRule:
    if isinstance(export, Plugin):
        pattern = PLUGIN_ID_PATTERN
    elif isinstance(export, MessageLintRule):
        pattern = LINT_RULE_ID_PATTERN
    else:
        raise ModuleExportIsInvalidError(
            module_path, f"expected Plugin or MessageLintRule, got {type(export).__name__}"
        )
    if not pattern.match(export.id):
        raise ModuleExportIsInvalidError(module_path, f'id "{export.id}" is not namespaced correctly')
    if export.id in seen_ids:
        raise ModuleExportIsInvalidError(module_path, f'id "{export.id}" is already installed')
    return export


async def resolve_modules(
    settings: ProjectSettings,
    fs: Filesystem,
    *,
    import_module: ImportFunction | None = None,
) -> ResolvedModules:
    """Import ``settings.modules`` and combine their plugins into one API."""
    import_module = import_module or importlib.import_module
    resolved = ResolvedModules()
    seen_ids: set[str] = set()

    for module_path in settings.modules:
        try:
            module = await _import(module_path, import_module)
            if not hasattr(module, "default"):
                raise ModuleHasNoExportsError(module_path)
            export = _check_export(module_path, module.default, seen_ids)
        except ModuleError as err:
            resolved.errors.append(err)
            continue

        seen_ids.add(export.id)
        resolved.meta.append(ModuleMeta(module=module_path, id=export.id))
        if isinstance(export, Plugin):
            resolved.plugins.append(export)
        else:
            resolved.message_lint_rules.append(export)

    resolved.resolved_plugin_api = _resolve_plugin_api(resolved, settings, fs)
    logger.info(
        "Resolved %d plugins, %d lint rules (%d errors)",
        len(resolved.plugins),
        len(resolved.message_lint_rules),
        len(resolved.errors),
    )
    return resolved


def _resolve_plugin_api(
    resolved: ResolvedModules, settings: ProjectSettings, fs: Filesystem
) -> ResolvedPluginApi:
    api = ResolvedPluginApi()
    for plugin in resolved.plugins:
        module_path = resolved.module_of(plugin.id) or plugin.id

        if plugin.load_messages is not None:
            if api.load_messages is not None:
                resolved.errors.append(
                    PluginFunctionAlreadyDefinedError("load_messages", plugin.id, module=module_path)
                )
            else:
                api.load_messages = _bind_load(plugin, settings, fs)
                api.load_messages_plugin_id = plugin.id

        if plugin.save_messages is not None:
            if api.save_messages is not None:
                resolved.errors.append(
                    PluginFunctionAlreadyDefinedError("save_messages", plugin.id, module=module_path)
                )
            else:
                api.save_messages = _bind_save(plugin, settings, fs)
                api.save_messages_plugin_id = plugin.id

        if plugin.add_custom_api is not None:
            try:
                custom = plugin.add_custom_api(settings=settings)
            except Exception as err:
                error = ModuleExportIsInvalidError(module_path, f"add_custom_api failed: {err}")
                error.__cause__ = err
                resolved.errors.append(error)
                continue
            for key, value in (custom or {}).items():
                if key in api.custom_api:
                    resolved.errors.append(CustomApiConflictError(key, module=module_path))
                    continue
                api.custom_api[key] = value
    return api


def _bind_load(
    plugin: Plugin, settings: ProjectSettings, fs: Filesystem
) -> Callable[[], Awaitable[list[Message]]]:
    async def load_messages() -> list[Message]:
        result = await _maybe_await(plugin.load_messages(settings=settings, fs=fs))
        return [m if isinstance(m, Message) else message_from_dict(m) for m in result or []]

    return load_messages


def _bind_save(
    plugin: Plugin, settings: ProjectSettings, fs: Filesystem
) -> Callable[[list[Message]], Awaitable[None]]:
    async def save_messages(messages: Sequence[Message]) -> None:
        await _maybe_await(plugin.save_messages(settings=settings, fs=fs, messages=list(messages)))

    return save_messages


# ── Introspection ────────────────────────────────────────────


@dataclass(frozen=True)
class InstalledPlugin:
    id: str
    display_name: str
    description: str
    module: str


@dataclass(frozen=True)
class InstalledMessageLintRule:
    id: str
    display_name: str
    description: str
    module: str
    level: str


_UNKNOWN_MODULE = "Unknown module"


def installed_plugins(resolved: ResolvedModules | None) -> list[InstalledPlugin]:
    if resolved is None:
        return []
    return [
        InstalledPlugin(
            id=plugin.id,
            display_name=_display_name(plugin.display_name),
            description=_display_name(plugin.description),
            module=resolved.module_of(plugin.id) or _UNKNOWN_MODULE,
        )
        for plugin in resolved.plugins
    ]


def installed_message_lint_rules(
    resolved: ResolvedModules | None, settings: ProjectSettings | None
) -> list[InstalledMessageLintRule]:
    """Installed rules with their effective level; unset levels default to ``warning``."""
    if resolved is None:
        return []
    levels = settings.message_lint_rule_levels if settings else {}
    return [
        InstalledMessageLintRule(
            id=rule.id,
            display_name=_display_name(rule.display_name),
            description=_display_name(rule.description),
            module=resolved.module_of(rule.id) or _UNKNOWN_MODULE,
            level=levels.get(rule.id, "warning"),
        )
        for rule in resolved.message_lint_rules
    ]
