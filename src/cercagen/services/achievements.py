"""Achievement evaluation and activity registration.

Every appended user activity triggers an evaluation of the candidate
achievements for that user. A rule counts or sums the user's filtered
activity log; a match awards the achievement with a metadata blob.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from loguru import logger

from cercagen.database.dac import DataAccess
from cercagen.errors import AchievementRuleError, CercagenError
from cercagen.models.achievements import Achievement, AchievementRule, ActivityFilter, UserActivity
from cercagen.services.achievement_cache import AchievementCache, get_achievement_cache

DEFAULT_ACTIVITY_STATUS = "validat"
APPROVED_STATUSES = ["validat"]


@dataclass
class AchievementTrigger:
    """The activity that caused an evaluation."""

    activity_id: int | None = None
    rule_code: str = ""
    action: str = ""
    object_type: str = ""
    object_id: int | None = None
    status: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_activity(cls, activity: UserActivity) -> "AchievementTrigger":
        return cls(
            activity_id=activity.id,
            rule_code=activity.rule_code,
            action=activity.action,
            object_type=activity.object_type,
            object_id=activity.object_id,
            status=activity.status,
            created_at=activity.created_at,
        )

    def meta(self) -> dict[str, Any]:
        """Non-empty trigger fields for the award metadata."""
        out: dict[str, Any] = {}
        if self.activity_id:
            out["activity_id"] = self.activity_id
        if self.rule_code:
            out["rule_code"] = self.rule_code
        if self.action:
            out["action"] = self.action
        if self.object_type:
            out["object_type"] = self.object_type
        if self.object_id:
            out["object_id"] = self.object_id
        if self.status:
            out["status"] = self.status
        return out


def max_consecutive_days(days: list[date]) -> int:
    """Length of the longest run of consecutive calendar days (input sorted)."""
    if not days:
        return 0
    longest = current = 1
    for prev, nxt in zip(days, days[1:]):
        if prev + timedelta(days=1) == nxt:
            current += 1
        else:
            current = 1
        longest = max(longest, current)
    return longest


class AchievementsService:
    """Evaluates achievement rules against a user's activity log.

    Args:
        store: Data access
        candidates: Achievements to consider; all enabled ones when None
        dry_run: Report matches without awarding them
    """

    def __init__(self, store: DataAccess, candidates: list[Achievement] | None = None, dry_run: bool = False):
        self.store = store
        self.candidates = candidates
        self.dry_run = dry_run

    def evaluate_for_user(self, user_id: int, trigger: AchievementTrigger | None = None) -> list[Achievement]:
        """Award every candidate achievement whose rule the user now meets.

        Returns:
            The achievements awarded (or, in dry-run mode, that would be)

        Raises:
            ValueError: If user_id is not positive
        """
        if user_id <= 0:
            raise ValueError("user_id invalid")
        trigger = trigger or AchievementTrigger()
        achievements = self.candidates
        if achievements is None:
            achievements = self.store.list_enabled_achievements()

        earned = {ua.achievement_id for ua in self.store.list_user_achievements(user_id)}
        ref_time = trigger.created_at or datetime.now(timezone.utc)
        awarded: list[Achievement] = []

        for achievement in achievements:
            if not achievement.is_repeatable and achievement.id in earned:
                continue
            try:
                rule = AchievementRule.from_json(achievement.rule_json)
            except AchievementRuleError as e:
                logger.debug(f"Achievement {achievement.code} skipped, invalid rule: {e}")
                continue
            if rule.event_code and not self.store.is_achievement_event_active(rule.event_code, ref_time):
                continue

            matched, meta = self.evaluate_rule(user_id, rule, ref_time)
            if not matched:
                continue

            meta["rule_type"] = rule.type
            meta["achievement_code"] = achievement.code
            meta["evaluated_at"] = datetime.now(timezone.utc).isoformat()
            meta.update(trigger.meta())
            if not self.dry_run:
                if not self.store.award_achievement(user_id, achievement.id, "active", meta):
                    continue
                logger.info(f"User {user_id} earned achievement {achievement.code}")
            awarded.append(achievement)
        return awarded

    def evaluate_rule(self, user_id: int, rule: AchievementRule, ref_time: datetime) -> tuple[bool, dict[str, Any]]:
        """Check one rule; returns (matched, metadata)."""
        f = ActivityFilter.from_rule(user_id, rule.filters)

        if rule.type == "count":
            total = self.store.count_activities(f)
            return total >= rule.threshold, {"count": total, "threshold": rule.threshold}

        if rule.type == "sum_points":
            total = self.store.sum_activity_points(f)
            return total >= rule.threshold, {"points": total, "threshold": rule.threshold}

        if rule.type == "burst_count":
            f.since = ref_time - rule.window_delta
            f.until = ref_time
            total = self.store.count_activities(f)
            meta = {"count": total, "threshold": rule.threshold, "window": rule.window}
            return total >= rule.threshold, meta

        if rule.type == "streak_days":
            streak = max_consecutive_days(self.store.list_activity_days(f))
            return streak >= rule.min_days, {"streak": streak, "min_days": rule.min_days}

        if rule.type == "count_distinct":
            total = self.store.count_distinct_activity_objects(f)
            return total >= rule.threshold, {"distinct_count": total, "threshold": rule.threshold}

        if rule.type == "ratio_approved":
            approved_filter = ActivityFilter.from_rule(user_id, rule.filters)
            approved_filter.statuses = rule.filters.status or APPROVED_STATUSES
            f.statuses = None
            total = self.store.count_activities(f)
            approved = self.store.count_activities(approved_filter)
            meta = {
                "approved": approved,
                "total": total,
                "ratio": 0.0,
                "min_ratio": rule.min_ratio,
                "min_total": rule.threshold,
            }
            if rule.threshold > 0 and total < rule.threshold:
                return False, meta
            if total > 0:
                meta["ratio"] = approved / total
            return total > 0 and meta["ratio"] >= rule.min_ratio, meta

        raise AchievementRuleError(f"rule type invalid: {rule.type}")


def evaluate_achievements_for_user(
    store: DataAccess,
    user_id: int,
    trigger: AchievementTrigger,
    cache: AchievementCache | None = None,
) -> list[Achievement]:
    """Evaluate the cached candidates for a trigger; failures are logged."""
    cache = cache or get_achievement_cache()
    try:
        candidates = cache.candidates_for_trigger(store, trigger.rule_code)
    except CercagenError as e:
        logger.error(f"Achievement cache error for user {user_id}: {e}")
        candidates = None
    try:
        return AchievementsService(store, candidates).evaluate_for_user(user_id, trigger)
    except CercagenError as e:
        logger.error(f"Achievement evaluation failed for user {user_id}: {e}")
        return []


def register_activity(
    store: DataAccess,
    user_id: int,
    rule_code: str,
    action: str,
    object_type: str = "",
    object_id: int | None = None,
    status: str = "",
    details: str = "",
    cache: AchievementCache | None = None,
) -> tuple[int, list[Achievement]]:
    """Append an activity to the log and evaluate achievements for it.

    Points come from the rule-code table; the status defaults to ``validat``.

    Returns:
        (activity id, achievements awarded)
    """
    activity = UserActivity(
        user_id=user_id,
        rule_code=rule_code.strip(),
        action=action.strip(),
        object_type=object_type.strip(),
        object_id=object_id,
        status=status.strip() or DEFAULT_ACTIVITY_STATUS,
        points=store.get_points_for_rule(rule_code.strip()) if rule_code.strip() else 0,
        details=details,
    )
    activity_id = store.insert_activity(activity)
    awarded = evaluate_achievements_for_user(store, user_id, AchievementTrigger.from_activity(activity), cache)
    return activity_id, awarded


def save_achievement(store: DataAccess, achievement: Achievement, cache: AchievementCache | None = None) -> int:
    """Validate and store an achievement definition, then invalidate the cache.

    Raises:
        AchievementRuleError: If the rule document is invalid
    """
    AchievementRule.from_json(achievement.rule_json)
    achievement_id = store.save_achievement(achievement)
    (cache or get_achievement_cache()).invalidate()
    return achievement_id
