"""Project facade: wires settings, modules, message store and synchronizer.

Pipeline of ``load_project``::

    validate path → migrate folder → load settings → resolve modules
        → initial message load → start watcher → import from load_messages plugin

Only path and settings problems and a failed import raise; the partially
built project is closed before an import error propagates.
Everything after construction reports through ``Project.errors``.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
from typing import Any

from langsync.config import LangsyncConfig
from langsync.errors import (
    LangsyncError,
    LoadProjectInvalidArgument,
    MessageLoadError,
    PluginSaveMessagesError,
)
from langsync.fs.base import Filesystem, is_absolute_path, normalize_path
from langsync.fs.scoped import project_scoped
from langsync.importer import ImportReconciler, ImportSummary
from langsync.lint import MessageLintReportsQuery
from langsync.models import ProjectSettings, Result
from langsync.modules import (
    ImportFunction,
    InstalledMessageLintRule,
    InstalledPlugin,
    ResolvedModules,
    installed_message_lint_rules,
    installed_plugins,
    resolve_modules,
)
from langsync.reactive import Computed, Observable, Subscribable
from langsync.settings import SettingsStore, maybe_migrate_to_directory
from langsync.store import MessageStore
from langsync.sync import FilesystemSynchronizer

logger = logging.getLogger(__name__)

MESSAGE_DIR = "messages/v1"
_PROJECT_NAME_RE = re.compile(r"[^\\/]+\.inlang$")


def _validate_project_path(raw_path: str) -> str:
    if not is_absolute_path(raw_path):
        raise LoadProjectInvalidArgument(
            f'Expected an absolute path but received "{raw_path}".', argument="project_path"
        )
    project_path = normalize_path(raw_path)
    if not _PROJECT_NAME_RE.search(project_path):
        raise LoadProjectInvalidArgument(
            f'Expected a path ending in "{{name}}.inlang" but received "{project_path}".\n\n'
            "Valid examples:\n"
            '- "/path/to/micky-mouse.inlang"\n'
            '- "/path/to/green-elephant.inlang"\n',
            argument="project_path",
        )
    return project_path


class Installed:
    """Installed plugins and lint rules, recomputed when modules are re-resolved."""

    def __init__(
        self,
        plugins: Computed[list[InstalledPlugin]],
        message_lint_rules: Computed[list[InstalledMessageLintRule]],
    ) -> None:
        self.plugins = plugins
        self.message_lint_rules = message_lint_rules


class ProjectQuery:
    def __init__(self, messages: MessageStore, message_lint_reports: MessageLintReportsQuery) -> None:
        self.messages = messages
        self.message_lint_reports = message_lint_reports


class Project:
    """Handle of one loaded project. Use ``load_project`` to create it."""

    def __init__(
        self,
        *,
        project_path: str,
        fs: Filesystem,
        settings_store: SettingsStore,
        resolved: ResolvedModules,
        store: MessageStore,
        synchronizer: FilesystemSynchronizer,
        import_module: ImportFunction | None = None,
        max_id_probes: int = 1000,
    ) -> None:
        self.project_path = project_path
        self.fs = fs
        self._settings_store = settings_store
        self._store = store
        self._sync = synchronizer
        self._import_module = import_module
        self._max_id_probes = max_id_probes
        self._resolved: Observable[ResolvedModules | None] = Observable(resolved)
        self._init_error: Observable[LangsyncError | None] = Observable(None)
        self._resolve_tasks: set[asyncio.Task] = set()
        self._disposed = False

        self.installed = Installed(
            plugins=Computed(lambda: installed_plugins(self._resolved.get()), self._resolved),
            message_lint_rules=Computed(
                lambda: installed_message_lint_rules(self._resolved.get(), settings_store.current.get()),
                self._resolved,
                settings_store.current,
            ),
        )
        self.errors: Computed[list[Exception]] = Computed(
            self._collect_errors,
            self._init_error,
            self._resolved,
            synchronizer.errors,
            settings_store.errors,
        )
        self.query = ProjectQuery(
            messages=store,
            message_lint_reports=MessageLintReportsQuery(
                store, settings_store.current.get, self._resolved.get
            ),
        )
        self._unsubscribe_settings = settings_store.current.on_change(self._on_settings_changed)

    # ── Settings ─────────────────────────────────────────────

    @property
    def settings(self) -> Subscribable[ProjectSettings | None]:
        return self._settings_store.current

    def set_settings(self, settings: ProjectSettings | dict[str, Any]) -> Result[None, Exception]:
        """Validate and apply new settings; modules are re-resolved afterwards."""
        return self._settings_store.set(settings)

    def _on_settings_changed(self, settings: ProjectSettings | None) -> None:
        if settings is None or self._disposed:
            return
        task = asyncio.get_running_loop().create_task(self._reresolve(settings))
        self._resolve_tasks.add(task)
        task.add_done_callback(self._resolve_tasks.discard)

    async def _reresolve(self, settings: ProjectSettings) -> None:
        resolved = await resolve_modules(settings, self.fs, import_module=self._import_module)
        if self._disposed or self._settings_store.current.get() is not settings:
            # superseded by a newer settings value
            return
        self._resolved.set(resolved)

    # ── Modules ──────────────────────────────────────────────

    @property
    def resolved_modules(self) -> ResolvedModules | None:
        return self._resolved.get()

    @property
    def custom_api(self) -> dict[str, Any]:
        resolved = self._resolved.get()
        return dict(resolved.resolved_plugin_api.custom_api) if resolved else {}

    async def save_messages(self) -> bool:
        """Hand the current messages to the ``save_messages`` plugin. Returns False if none is installed."""
        resolved = self._resolved.get()
        api = resolved.resolved_plugin_api if resolved else None
        if api is None or api.save_messages is None:
            logger.info("No plugin provides save_messages; nothing exported")
            return False
        messages = sorted(self._store.get_all(), key=lambda m: m.id)
        try:
            await api.save_messages(messages)
        except Exception as err:
            raise PluginSaveMessagesError(api.save_messages_plugin_id or "unknown") from err
        logger.info("Exported %d messages via %s", len(messages), api.save_messages_plugin_id)
        return True

    async def import_messages(self) -> ImportSummary | None:
        """Merge the output of the ``load_messages`` plugin into the store.

        Returns None if no plugin provides ``load_messages``. Running it again
        with unchanged plugin output mutates nothing.
        """
        resolved = self._resolved.get()
        api = resolved.resolved_plugin_api if resolved else None
        if api is None or api.load_messages is None:
            return None
        reconciler = ImportReconciler(
            self.fs, self._store, self._sync.message_path, max_id_probes=self._max_id_probes
        )
        return await reconciler.run(api.load_messages_plugin_id or "unknown", api.load_messages)

    # ── Errors ───────────────────────────────────────────────

    def _collect_errors(self) -> list[Exception]:
        errors: list[Exception] = []
        init_error = self._init_error.get()
        if init_error is not None:
            errors.append(init_error)
        resolved = self._resolved.get()
        if resolved is not None:
            errors.extend(resolved.errors)
        errors.extend(self._sync.errors.get())
        errors.extend(self._settings_store.errors.get())
        return errors

    def _fail_init(self, error: LangsyncError) -> None:
        logger.error("Project %s failed to initialize: %s", self.project_path, error)
        self._init_error.set(error)

    # ── Lifecycle ────────────────────────────────────────────

    async def flush(self) -> None:
        """Wait for pending module resolution and every dispatched write."""
        while self._resolve_tasks:
            await asyncio.gather(*list(self._resolve_tasks), return_exceptions=True)
        await self._settings_store.flush()
        await self._sync.flush()

    def dispose(self) -> None:
        """Release every subscription and stop the watcher. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self._unsubscribe_settings()
        for task in self._resolve_tasks:
            task.cancel()
        self._sync.dispose()
        self._store.dispose()
        self._settings_store.dispose()
        self._resolved.clear()
        self._init_error.clear()
        logger.info("Disposed project %s", self.project_path)

    async def close(self) -> None:
        await self.flush()
        await self._sync.close()
        self.dispose()

    async def __aenter__(self) -> Project:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


async def load_project(
    project_path: str,
    fs: Filesystem,
    *,
    import_module: ImportFunction | None = None,
    config: LangsyncConfig | None = None,
) -> Project:
    """Load the project at ``project_path`` (an absolute ``*.inlang`` folder path).

    Raises ``LoadProjectInvalidArgument`` for a bad path, the settings errors
    for a missing or invalid ``settings.json``, and whatever the import raises
    (``DuplicateAliasError``, ``PluginLoadMessagesError``, ``MessageIdExhaustedError``
    or a filesystem error). The watcher is stopped before an import error propagates.
    """
    config = config or LangsyncConfig()
    project_path = _validate_project_path(project_path)

    await maybe_migrate_to_directory(fs, project_path)
    scoped_fs = project_scoped(fs, project_path)

    settings_store = SettingsStore(scoped_fs, project_path)
    settings = await settings_store.load()

    resolved = await resolve_modules(settings, scoped_fs, import_module=import_module)

    store = MessageStore()
    synchronizer = FilesystemSynchronizer(
        scoped_fs, store, posixpath.join(project_path, MESSAGE_DIR)
    )
    project = Project(
        project_path=project_path,
        fs=scoped_fs,
        settings_store=settings_store,
        resolved=resolved,
        store=store,
        synchronizer=synchronizer,
        import_module=import_module,
        max_id_probes=config.import_.max_id_probes,
    )

    try:
        await synchronizer.load()
    except MessageLoadError as err:
        project._fail_init(err)
        return project

    if config.watch.enabled:
        synchronizer.start_watching()

    try:
        await project.import_messages()
    except Exception:
        await project.close()
        raise

    logger.info(
        "Loaded project %s: %d messages, %d errors",
        project_path,
        len(store),
        len(project.errors.get()),
    )
    return project

