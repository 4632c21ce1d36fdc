"""langsync: localization project engine.

Loads a ``*.inlang`` project, keeps its messages in an in-memory store and
in sync with the message files on disk.
"""

from langsync.config import LangsyncConfig, load_config
from langsync.discovery import list_projects
from langsync.errors import LangsyncError
from langsync.models import Message, ProjectSettings, Result, Variant
from langsync.modules import MessageLintRule, Plugin
from langsync.project import Project, load_project

__version__ = "0.1.0"

__all__ = [
    "LangsyncConfig",
    "LangsyncError",
    "Message",
    "MessageLintRule",
    "Plugin",
    "Project",
    "ProjectSettings",
    "Result",
    "Variant",
    "list_projects",
    "load_config",
    "load_project",
]
