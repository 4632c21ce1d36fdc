"""Shared builders for engine tests."""

from __future__ import annotations

import asyncio
import json
import posixpath
from types import SimpleNamespace
from typing import Callable

from langsync.codec import encode_message, get_path_from_message_id, text_pattern
from langsync.models import Message, Variant
from langsync.settings import SETTINGS_SCHEMA_ID

PROJECT = "/repo/project.inlang"
SETTINGS_PATH = PROJECT + "/settings.json"
MESSAGES = PROJECT + "/messages/v1"


def settings_dict(**overrides) -> dict:
    data = {
        "$schema": SETTINGS_SCHEMA_ID,
        "sourceLanguageTag": "en",
        "languageTags": ["en", "de"],
        "modules": [],
    }
    data.update(overrides)
    return data


def settings_json(**overrides) -> str:
    return json.dumps(settings_dict(**overrides), indent=2)


def message(message_id: str, text: str = "Hello", *, alias: dict | None = None, tag: str = "en") -> Message:
    return Message(id=message_id, alias=alias or {}, variants=[Variant(tag, text_pattern(text))])


def message_path(message_id: str) -> str:
    return posixpath.join(MESSAGES, get_path_from_message_id(message_id))


def message_file(msg: Message) -> tuple[str, str]:
    return message_path(msg.id), encode_message(msg)


def project_files(*messages: Message, **settings_overrides) -> dict[str, str]:
    files = {SETTINGS_PATH: settings_json(**settings_overrides)}
    for msg in messages:
        path, content = message_file(msg)
        files[path] = content
    return files


def fake_import(modules: dict) -> Callable[[str], object]:
    """``import_module`` replacement serving ``{name: default_export}``."""

    def import_module(name: str) -> object:
        if name not in modules:
            raise ModuleNotFoundError(f"No module named {name!r}")
        export = modules[name]
        return SimpleNamespace() if export is None else SimpleNamespace(default=export)

    return import_module


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
