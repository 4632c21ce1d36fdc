"""Error taxonomy.

Construction-time errors (invalid project path, settings) are raised from
``load_project``. Everything that happens in background work (message
persistence, watcher, settings write-back) is collected into
``Project.errors`` instead of being raised into the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class LangsyncError(Exception):
    """Base class for all langsync errors."""


class LoadProjectInvalidArgument(LangsyncError):
    def __init__(self, message: str, *, argument: str) -> None:
        super().__init__(message)
        self.argument = argument


# ── Settings ─────────────────────────────────────────────────


@dataclass
class SettingsIssue:
    """One structured settings validation failure."""

    path: str
    message: str
    value: Any = None

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.message}"


class SettingsFileNotFoundError(LangsyncError):
    def __init__(self, path: str) -> None:
        super().__init__(f'Settings file not found at "{path}".')
        self.path = path


class SettingsFileJSONSyntaxError(LangsyncError):
    def __init__(self, path: str) -> None:
        super().__init__(f'Settings file at "{path}" is not valid JSON.')
        self.path = path


class SettingsFileReadError(LangsyncError):
    def __init__(self, path: str) -> None:
        super().__init__(f'Settings file at "{path}" could not be read.')
        self.path = path


class SettingsInvalidError(LangsyncError):
    def __init__(self, errors: list[SettingsIssue]) -> None:
        details = "\n".join(f"- {issue}" for issue in errors)
        super().__init__(f"The project settings are invalid:\n{details}")
        self.errors = errors


class SettingsPersistError(LangsyncError):
    def __init__(self, path: str) -> None:
        super().__init__(f'Failed to write settings to "{path}".')
        self.path = path


# ── Messages ─────────────────────────────────────────────────


class MessageParseError(LangsyncError):
    def __init__(self, path: str, reason: str, *, message_id: str | None = None) -> None:
        super().__init__(f'Failed to parse message file "{path}": {reason}')
        self.path = path
        self.message_id = message_id


class MessageLoadError(LangsyncError):
    """The message directory could not be loaded at all."""

    def __init__(self, path: str) -> None:
        super().__init__(f'Failed to load messages from "{path}".')
        self.path = path


class MessagePersistError(LangsyncError):
    def __init__(self, message_id: str, path: str, *, action: str = "write") -> None:
        super().__init__(f'Failed to {action} message "{message_id}" at "{path}".')
        self.message_id = message_id
        self.path = path
        self.action = action


class WatcherError(LangsyncError):
    def __init__(self, path: str) -> None:
        super().__init__(f'Watching "{path}" failed; filesystem changes are no longer picked up.')
        self.path = path


# ── Import ───────────────────────────────────────────────────


class DuplicateAliasError(LangsyncError):
    def __init__(self, plugin_id: str, alias: str, message_ids: list[str]) -> None:
        super().__init__(
            f'More than one message carries alias "{alias}" for "{plugin_id}": '
            f"{', '.join(message_ids)}"
        )
        self.plugin_id = plugin_id
        self.alias = alias
        self.message_ids = message_ids


class MessageIdExhaustedError(LangsyncError):
    def __init__(self, seed: str, probes: int) -> None:
        super().__init__(f'No free message id found for "{seed}" after {probes} attempts.')
        self.seed = seed
        self.probes = probes


class PluginLoadMessagesError(LangsyncError):
    def __init__(self, plugin_id: str) -> None:
        super().__init__(f'Plugin "{plugin_id}" failed to load messages.')
        self.plugin_id = plugin_id


class PluginSaveMessagesError(LangsyncError):
    def __init__(self, plugin_id: str) -> None:
        super().__init__(f'Plugin "{plugin_id}" failed to save messages.')
        self.plugin_id = plugin_id


# ── Module resolution (collected, never raised) ──────────────


class ModuleError(LangsyncError):
    def __init__(self, message: str, *, module: str) -> None:
        super().__init__(message)
        self.module = module


class ModuleImportError(ModuleError):
    def __init__(self, module: str) -> None:
        super().__init__(f'Could not import module "{module}".', module=module)


class ModuleHasNoExportsError(ModuleError):
    def __init__(self, module: str) -> None:
        super().__init__(
            f'Module "{module}" has no "default" export (a Plugin or MessageLintRule).',
            module=module,
        )


class ModuleExportIsInvalidError(ModuleError):
    def __init__(self, module: str, reason: str) -> None:
        super().__init__(f'Module "{module}" exports an invalid object: {reason}', module=module)


class PluginFunctionAlreadyDefinedError(ModuleError):
    def __init__(self, function: str, plugin_id: str, *, module: str) -> None:
        super().__init__(
            f'Plugin "{plugin_id}" defines "{function}", which another plugin already provides.',
            module=module,
        )
        self.function = function
        self.plugin_id = plugin_id


class CustomApiConflictError(ModuleError):
    def __init__(self, key: str, *, module: str) -> None:
        super().__init__(f'Custom API "{key}" is provided by more than one plugin.', module=module)
        self.key = key
