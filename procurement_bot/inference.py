from __future__ import annotations

from dataclasses import dataclass, field

from .constants import SERVER_RACK, SERVER_STANDALONE
from .models import Characteristics


def normalize_answer(text: str) -> str:
    return text.lower().strip().replace("ё", "е")


@dataclass(frozen=True, slots=True)
class InferenceRule:
    """One row of a rule table.

    A rule matches when any of its keywords is a substring of the normalized
    answer. A rule without keywords always matches and is used as the fallback
    row at the bottom of a table.
    """

    name: str
    keywords: tuple[str, ...] = ()
    updates: dict[str, int | str | bool] = field(default_factory=dict)

    def matches(self, normalized: str) -> bool:
        if not self.keywords:
            return True
        return any(keyword in normalized for keyword in self.keywords)


PURPOSE_RULES = [
    InferenceRule(
        name="storage",
        keywords=("хранен", "документ", "файл"),
        updates={"max_processors": 2},
    ),
]

USER_COUNT_RULES = [
    InferenceRule(
        name="moderate",
        keywords=("20", "20-50", "много"),
        updates={"installed_processors": 2, "max_processors": 2},
    ),
    InferenceRule(
        name="high",
        keywords=("50", "больше 50"),
        updates={"installed_processors": 4, "max_processors": 4},
    ),
    InferenceRule(
        name="low",
        updates={"installed_processors": 1, "max_processors": 1},
    ),
]

RELIABILITY_RULES = [
    InferenceRule(
        name="reliable",
        keywords=("надеж", "повыш", "максимал"),
        updates={"server_type": SERVER_RACK, "memory": 64},
    ),
    InferenceRule(
        name="normal",
        updates={"server_type": SERVER_STANDALONE, "memory": 32},
    ),
]

PREFERENCE_RULES = [
    InferenceRule(name="optimal", keywords=("оставить", "как есть")),
    InferenceRule(name="maximum", keywords=("мощн", "лучш", "максимал")),
    InferenceRule(name="minimum", keywords=("экономн", "минимал")),
    InferenceRule(name="custom"),
]

PREFERENCE_OVERRIDES: dict[str, dict[str, int | str | bool]] = {
    "maximum": {
        "installed_processors": 4,
        "max_processors": 8,
        "memory": 128,
        "cores": 16,
    },
    "minimum": {
        "installed_processors": 1,
        "max_processors": 2,
        "memory": 16,
    },
    "optimal": {},
    "custom": {},
}

# Step index -> rule table. Steps without a table capture the answer only.
STEP_RULES: dict[int, list[InferenceRule]] = {
    1: PURPOSE_RULES,
    2: USER_COUNT_RULES,
    3: RELIABILITY_RULES,
}


def first_match(rules: list[InferenceRule], text: str) -> InferenceRule | None:
    normalized = normalize_answer(text)
    for rule in rules:
        if rule.matches(normalized):
            return rule
    return None


def infer_for_step(step: int, text: str) -> Characteristics:
    rules = STEP_RULES.get(step)
    if not rules:
        return {}

    rule = first_match(rules, text)
    if rule is None:
        return {}
    return dict(rule.updates)


def parse_preference(text: str) -> str:
    rule = first_match(PREFERENCE_RULES, text)
    return rule.name if rule else "custom"


def preference_overrides(preference: str) -> Characteristics:
    return dict(PREFERENCE_OVERRIDES.get(preference, {}))
