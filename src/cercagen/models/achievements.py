"""Data models for achievements and the user-activity log."""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from cercagen.errors import AchievementRuleError

RULE_TYPES = ("count", "sum_points", "burst_count", "streak_days", "count_distinct", "ratio_approved")

BURST_WINDOWS: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "48h": timedelta(hours=48),
    "7d": timedelta(days=7),
}


def _normalize_list(values: list[str]) -> list[str]:
    out: list[str] = []
    for value in values:
        value = value.strip()
        if value and value not in out:
            out.append(value)
    return out


class RuleFilters(BaseModel):
    """Which activities a rule looks at; empty lists match everything."""

    model_config = ConfigDict(extra="forbid")

    rule_codes: list[str] = Field(default_factory=list)
    actions: list[str] = Field(default_factory=list)
    object_types: list[str] = Field(default_factory=list)
    status: list[str] = Field(default_factory=list)

    @field_validator("rule_codes", "actions", "object_types", "status")
    @classmethod
    def normalize(cls, v: list[str]) -> list[str]:
        return _normalize_list(v)


class AchievementRule(BaseModel):
    """Declarative award rule stored as JSON on an achievement."""

    model_config = ConfigDict(extra="forbid")

    type: str
    filters: RuleFilters = Field(default_factory=RuleFilters)
    event_code: str = ""
    threshold: int = 0
    window: str = ""
    min_days: int = 0
    min_ratio: float = 0.0

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("event_code", "window")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def check_rule(self) -> "AchievementRule":
        if self.type not in RULE_TYPES:
            raise ValueError(f"rule type invalid: {self.type}")
        if self.type in ("count", "sum_points", "count_distinct", "burst_count") and self.threshold <= 0:
            raise ValueError("threshold invalid")
        if self.type == "burst_count" and self.window not in BURST_WINDOWS:
            raise ValueError(f"window invalid: {self.window}")
        if self.type == "streak_days" and self.min_days <= 0:
            raise ValueError("min_days invalid")
        if self.type == "ratio_approved":
            if self.min_ratio <= 0 or self.min_ratio > 1:
                raise ValueError("min_ratio invalid")
            if self.threshold < 0:
                raise ValueError("threshold invalid")
        return self

    @classmethod
    def from_json(cls, rule_json: str) -> "AchievementRule":
        """Parse and validate a rule document.

        Raises:
            AchievementRuleError: If the JSON is malformed or the rule invalid
        """
        try:
            return cls.model_validate(json.loads(rule_json or "{}"))
        except (json.JSONDecodeError, ValidationError) as e:
            raise AchievementRuleError(str(e)) from e

    @property
    def window_delta(self) -> timedelta:
        return BURST_WINDOWS[self.window]


@dataclass
class Achievement:
    """An achievement definition."""

    id: int | None = None
    code: str = ""
    name: str = ""
    description: str = ""
    rule_json: str = "{}"
    is_repeatable: bool = False
    is_enabled: bool = True


@dataclass
class UserAchievement:
    id: int | None = None
    user_id: int = 0
    achievement_id: int = 0
    status: str = "active"
    meta_json: str = "{}"
    awarded_at: datetime | None = None


@dataclass
class UserActivity:
    """One entry of the activity log that drives achievements."""

    id: int | None = None
    user_id: int = 0
    rule_code: str = ""
    action: str = ""
    object_type: str = ""
    object_id: int | None = None
    status: str = "validat"
    points: int = 0
    created_at: datetime | None = None
    details: str = ""


@dataclass
class ActivityFilter:
    """Selection of a user's activities, as derived from ``RuleFilters``."""

    user_id: int
    rule_codes: list[str] | None = None
    actions: list[str] | None = None
    object_types: list[str] | None = None
    statuses: list[str] | None = None
    since: datetime | None = None
    until: datetime | None = None

    @classmethod
    def from_rule(cls, user_id: int, filters: RuleFilters) -> "ActivityFilter":
        return cls(
            user_id=user_id,
            rule_codes=filters.rule_codes or None,
            actions=filters.actions or None,
            object_types=filters.object_types or None,
            statuses=filters.status or None,
        )
