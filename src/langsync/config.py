"""Engine configuration from environment variables and langsync.toml.

This is configuration of the engine itself (logging, watching, import
limits). Project settings live in ``<project>.inlang/settings.json`` and are
handled by ``langsync.settings``.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_CONFIG_FILENAME = "langsync.toml"


@dataclass
class WatchConfig:
    """Filesystem watching."""

    enabled: bool = True
    backend: str = "inotify"
    poll_interval: float = 1.0


@dataclass
class ImportConfig:
    """Legacy loadMessages import."""

    max_id_probes: int = 1000


@dataclass
class LangsyncConfig:
    """Top-level engine configuration."""

    watch: WatchConfig = field(default_factory=WatchConfig)
    import_: ImportConfig = field(default_factory=ImportConfig)
    log_level: str = "INFO"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(config_path: Path | None = None) -> LangsyncConfig:
    """Load configuration from environment variables and optional langsync.toml.

    Priority: environment variables > langsync.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.langsync/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".langsync" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    watch_data = file_data.get("watch", {})
    import_data = file_data.get("import", {})

    config = LangsyncConfig(
        watch=WatchConfig(
            enabled=_env_bool("LANGSYNC_WATCH", watch_data.get("enabled", True)),
            backend=os.getenv("LANGSYNC_WATCH_BACKEND", watch_data.get("backend", "inotify")),
            poll_interval=float(
                os.getenv("LANGSYNC_POLL_INTERVAL", watch_data.get("poll_interval", 1.0))
            ),
        ),
        import_=ImportConfig(
            max_id_probes=int(
                os.getenv("LANGSYNC_MAX_ID_PROBES", import_data.get("max_id_probes", 1000))
            ),
        ),
        log_level=os.getenv("LANGSYNC_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
