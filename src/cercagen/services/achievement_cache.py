"""In-memory index of enabled achievements by the rule code they listen to.

Readers take the current snapshot without locking; loading and invalidation
build or drop a whole snapshot under the writer lock, so a reader never sees
a half-built index.
"""

from dataclasses import dataclass, field
from threading import Lock

from loguru import logger

from cercagen.database.dac import DataAccess
from cercagen.errors import AchievementRuleError
from cercagen.models.achievements import Achievement, AchievementRule


@dataclass(frozen=True)
class _Snapshot:
    items: tuple[Achievement, ...] = ()
    globals: tuple[Achievement, ...] = ()
    by_rule_code: dict[str, tuple[Achievement, ...]] = field(default_factory=dict)


def build_snapshot(achievements: list[Achievement]) -> _Snapshot:
    """Split achievements into globals (no rule-code filter) and per-code lists."""
    globals_: list[Achievement] = []
    by_code: dict[str, list[Achievement]] = {}
    for achievement in achievements:
        try:
            rule = AchievementRule.from_json(achievement.rule_json)
        except AchievementRuleError:
            globals_.append(achievement)
            continue
        if not rule.filters.rule_codes:
            globals_.append(achievement)
            continue
        for code in rule.filters.rule_codes:
            by_code.setdefault(code, []).append(achievement)
    return _Snapshot(
        items=tuple(achievements),
        globals=tuple(globals_),
        by_rule_code={code: tuple(items) for code, items in by_code.items()},
    )


class AchievementCache:
    """Candidate achievements for an activity, loaded lazily from the store."""

    def __init__(self):
        self._lock = Lock()
        self._snapshot: _Snapshot | None = None

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    def _ensure_loaded(self, store: DataAccess) -> _Snapshot:
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot
        with self._lock:
            if self._snapshot is None:
                achievements = store.list_enabled_achievements()
                self._snapshot = build_snapshot(achievements)
                logger.debug(
                    f"Achievement cache loaded: {len(achievements)} enabled, "
                    f"{len(self._snapshot.globals)} global"
                )
            return self._snapshot

    def candidates_for_trigger(self, store: DataAccess, rule_code: str) -> list[Achievement]:
        """Achievements worth evaluating for an activity with this rule code.

        An empty rule code returns every enabled achievement; otherwise the
        globals come first, then those filtering on the code, without repeats.
        """
        snapshot = self._ensure_loaded(store)
        code = (rule_code or "").strip()
        if not code:
            return list(snapshot.items)
        candidates: list[Achievement] = []
        seen: set[int | None] = set()
        for achievement in (*snapshot.globals, *snapshot.by_rule_code.get(code, ())):
            if achievement.id in seen:
                continue
            seen.add(achievement.id)
            candidates.append(achievement)
        return candidates

    def invalidate(self) -> None:
        """Drop the index; the next lookup reloads it."""
        with self._lock:
            self._snapshot = None


# Global cache instance
_cache: AchievementCache | None = None


def get_achievement_cache() -> AchievementCache:
    global _cache
    if _cache is None:
        _cache = AchievementCache()
    return _cache
