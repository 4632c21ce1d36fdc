"""Message file codec: structured ``Message`` ↔ JSON text, id ↔ relative path.

Layout under the message directory: the first ``_`` of the id becomes a
directory separator, so ``happy_elephant_jump`` lives at
``happy/elephant_jump.json`` and ``hello`` at ``hello.json``. Reading a path
back joins all segments with ``_``.

Directory segments are part of the id: ``en/hello.json`` holds ``en_hello``,
never ``hello``. Every path thus maps back to exactly one id, and a file
whose stored id disagrees with its path is rejected as unparsable.

Encoding is normalized (fixed key order, sorted alias keys, variants sorted
by language tag) so two equal messages always encode to identical text.
"""

from __future__ import annotations

import json
from typing import Any

from langsync.errors import MessageParseError
from langsync.models import Message, Variant

FILE_EXTENSION = ".json"
_PATTERN_ELEMENT_FIELDS = {"Text": "value", "VariableReference": "name"}


def get_message_id_from_path(path: str) -> str | None:
    """Message id for a path relative to the message directory, or None if it is not a message file."""
    cleaned = path.strip("/")
    if not cleaned.endswith(FILE_EXTENSION):
        return None
    message_id = "_".join(cleaned.split("/"))[: -len(FILE_EXTENSION)]
    return message_id or None


def is_valid_message_id(message_id: object) -> bool:
    """Ids must survive the path round trip: no separators, no leading underscore."""
    return (
        isinstance(message_id, str)
        and bool(message_id)
        and not message_id.startswith("_")
        and "/" not in message_id
        and "\\" not in message_id
    )


def get_path_from_message_id(message_id: str) -> str:
    return message_id.replace("_", "/", 1) + FILE_EXTENSION


def encode_message(message: Message) -> str:
    data = {
        "id": message.id,
        "alias": dict(sorted(message.alias.items())),
        "variants": [
            {"languageTag": variant.language_tag, "pattern": variant.pattern}
            for variant in sorted(message.variants, key=lambda v: v.language_tag)
        ],
    }
    return json.dumps(data, indent=4, ensure_ascii=False) + "\n"


def parse_message(path: str, raw: str) -> Message:
    """Decode a message file. The id inside the file must match the id derived from ``path``."""
    expected_id = get_message_id_from_path(path)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as err:
        raise MessageParseError(path, f"invalid JSON ({err.msg})", message_id=expected_id) from err

    try:
        message = message_from_dict(data)
    except (KeyError, TypeError, ValueError) as err:
        raise MessageParseError(path, str(err), message_id=expected_id) from err

    if message.id != expected_id:
        raise MessageParseError(
            path,
            f'message id "{message.id}" does not match the file path (expected "{expected_id}")',
            message_id=expected_id,
        )
    return message


def message_from_dict(data: Any) -> Message:
    """Build a ``Message`` from its JSON shape, checking field types."""
    if not isinstance(data, dict):
        raise TypeError("a message must be a JSON object")
    message_id = data["id"]
    if not is_valid_message_id(message_id):
        raise ValueError(f"invalid message id: {message_id!r}")

    alias = data.get("alias", {})
    if not isinstance(alias, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in alias.items()
    ):
        raise TypeError("alias must map strings to strings")

    raw_variants = data.get("variants", [])
    if not isinstance(raw_variants, list):
        raise TypeError("variants must be a list")
    variants = [_variant_from_dict(v) for v in raw_variants]
    return Message(id=message_id, alias=dict(alias), variants=variants)


def message_to_dict(message: Message) -> dict[str, Any]:
    return json.loads(encode_message(message))


def _variant_from_dict(data: Any) -> Variant:
    if not isinstance(data, dict):
        raise TypeError("a variant must be a JSON object")
    language_tag = data["languageTag"]
    if not isinstance(language_tag, str) or not language_tag:
        raise ValueError(f"invalid languageTag: {language_tag!r}")
    pattern = data.get("pattern", [])
    if not isinstance(pattern, list):
        raise TypeError("pattern must be a list")
    for element in pattern:
        if not isinstance(element, dict):
            raise TypeError("pattern elements must be JSON objects")
        field = _PATTERN_ELEMENT_FIELDS.get(element.get("type"))
        if field is None:
            raise ValueError(f"unknown pattern element type: {element.get('type')!r}")
        if not isinstance(element.get(field), str):
            raise TypeError(f"{element['type']} element needs a string {field!r}")
    return Variant(language_tag=language_tag, pattern=pattern)


def text_pattern(text: str) -> list[dict[str, Any]]:
    """Shortcut for a pattern with a single text element."""
    return [{"type": "Text", "value": text}]
