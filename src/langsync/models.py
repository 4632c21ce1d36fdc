"""Core data types: messages, project settings and the set_settings result."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from langsync.errors import SettingsInvalidError, SettingsIssue

T = TypeVar("T")
E = TypeVar("E", bound=Exception)

LintLevel = Literal["warning", "error"]

# Pattern elements stay JSON-shaped:
#   {"type": "Text", "value": "Hello "}
#   {"type": "VariableReference", "name": "name"}
Pattern = list[dict[str, Any]]


@dataclass
class Variant:
    """The pattern of one message for one language tag."""

    language_tag: str
    pattern: Pattern = field(default_factory=list)


@dataclass
class Message:
    """A localizable unit of text.

    ``alias`` maps an external source (plugin id) to that source's own
    identifier for this message. Language tags within ``variants`` are unique.
    """

    id: str
    alias: dict[str, str] = field(default_factory=dict)
    variants: list[Variant] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for variant in self.variants:
            if variant.language_tag in seen:
                raise ValueError(
                    f'Message "{self.id}" has more than one variant for "{variant.language_tag}"'
                )
            seen.add(variant.language_tag)

    def variant(self, language_tag: str) -> Variant | None:
        for variant in self.variants:
            if variant.language_tag == language_tag:
                return variant
        return None

    def copy(self) -> Message:
        return copy.deepcopy(self)


# ── Project settings ─────────────────────────────────────────

_KNOWN_KEYS = {"$schema", "sourceLanguageTag", "languageTags", "modules", "messageLintRuleLevels"}


@dataclass(frozen=True)
class ProjectSettings:
    """Validated project configuration.

    ``extra`` holds the namespaced module settings (``plugin.x.y`` keys).
    """

    source_language_tag: str
    language_tags: tuple[str, ...]
    modules: tuple[str, ...] = ()
    message_lint_rule_levels: dict[str, LintLevel] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    schema: str | None = None

    def __post_init__(self) -> None:
        if not self.language_tags:
            raise SettingsInvalidError(
                [SettingsIssue("languageTags", "at least one language tag is required", [])]
            )
        if self.source_language_tag not in self.language_tags:
            raise SettingsInvalidError([source_language_tag_issue(self.source_language_tag, self.language_tags)])

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectSettings:
        """Build from the JSON shape. Schema validation happens in ``parse_settings``."""
        return cls(
            source_language_tag=data["sourceLanguageTag"],
            language_tags=tuple(data["languageTags"]),
            modules=tuple(data.get("modules", [])),
            message_lint_rule_levels=dict(data.get("messageLintRuleLevels", {})),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in _KNOWN_KEYS},
            schema=data.get("$schema"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.schema is not None:
            data["$schema"] = self.schema
        data["sourceLanguageTag"] = self.source_language_tag
        data["languageTags"] = list(self.language_tags)
        data["modules"] = list(self.modules)
        if self.message_lint_rule_levels:
            data["messageLintRuleLevels"] = dict(self.message_lint_rule_levels)
        for key, value in self.extra.items():
            data[key] = copy.deepcopy(value)
        return data

    def module_settings(self, module_id: str) -> dict[str, Any]:
        """Settings block of one plugin or lint rule (empty if unset)."""
        return copy.deepcopy(self.extra.get(module_id, {}))


def source_language_tag_issue(source_language_tag: str, language_tags: Any) -> SettingsIssue:
    tags = '", "'.join(language_tags)
    return SettingsIssue(
        path="sourceLanguageTag",
        message=(
            f'The sourceLanguageTag "{source_language_tag}" is not included in the '
            f'languageTags "{tags}". Please add it to the languageTags.'
        ),
        value=source_language_tag,
    )


@dataclass
class Result(Generic[T, E]):
    """Either ``data`` or ``error`` is set."""

    data: T | None = None
    error: E | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
