import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from usageboard.models import UNKNOWN

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class CategoryRule:
    label: "str"
    # lower-cased substrings, any of which selects the label
    needles: "tuple[str, ...]"

    def matches(self, text: "str") -> "bool":
        return any(needle in text for needle in self.needles)


def _default_provider_rules() -> "tuple[CategoryRule, ...]":
    return (
        CategoryRule("Anthropic", ("anthropic", "claude")),
        CategoryRule("OpenAI", ("openai", "gpt", "o1")),
        CategoryRule("Google", ("google", "gemini")),
    )


def _default_user_rules() -> "tuple[CategoryRule, ...]":
    return (
        CategoryRule("Don", ("don",)),
        CategoryRule("Amanda", ("amanda",)),
    )


def _resolve(rules: "tuple[CategoryRule, ...]", parts: "Iterable[str]") -> "str":
    text = " ".join(parts).lower()
    for rule in rules:
        if rule.matches(text):
            return rule.label
    return UNKNOWN


@dataclass(frozen=True, slots=True)
class CategoryRules:
    """
    CategoryRules maps free text onto provider and user
    labels by ordered substring search. The first matching
    rule wins and anything unmatched becomes "Unknown".
    """

    providers: "tuple[CategoryRule, ...]" = field(
        default_factory=_default_provider_rules
    )
    users: "tuple[CategoryRule, ...]" = field(default_factory=_default_user_rules)

    @property
    def provider_labels(self) -> "tuple[str, ...]":
        return tuple(rule.label for rule in self.providers)

    @property
    def user_labels(self) -> "tuple[str, ...]":
        return tuple(rule.label for rule in self.users)

    def provider_for(self, *parts: "str") -> "str":
        return _resolve(self.providers, parts)

    def user_for(self, *parts: "str") -> "str":
        return _resolve(self.users, parts)

    @classmethod
    def from_dict(cls, data: "dict[str, object]") -> "CategoryRules":
        """
        builds rules from a document shaped like
        {"providers": {"Label": ["needle", ...]}, "users": {...}}.
        A missing section keeps the built-in rules for it.
        """
        defaults = cls()
        return cls(
            providers=_parse_section(data.get("providers"), defaults.providers),
            users=_parse_section(data.get("users"), defaults.users),
        )


def _parse_section(
    section: "object",
    fallback: "tuple[CategoryRule, ...]",
) -> "tuple[CategoryRule, ...]":
    if not isinstance(section, dict):
        return fallback

    rules: "list[CategoryRule]" = []
    for label, needles in section.items():
        if isinstance(needles, str):
            needles = [needles]
        if not isinstance(needles, list):
            raise ValueError(f"category {label!r} must map to a list of strings")
        rules.append(
            CategoryRule(str(label), tuple(str(n).lower() for n in needles if n))
        )
    return tuple(rules)


def load_category_rules(path: "str | None") -> "CategoryRules":
    """
    loads category rules from a JSON file. Without a path the
    built-in rules are used. A broken file is a configuration
    error and is raised to the caller at startup.
    """
    if not path:
        return CategoryRules()

    data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"category file {path} must contain a JSON object")

    rules = CategoryRules.from_dict(data)
    logger.info(
        "category_rules_loaded",
        path=path,
        providers=list(rules.provider_labels),
        users=list(rules.user_labels),
    )
    return rules
