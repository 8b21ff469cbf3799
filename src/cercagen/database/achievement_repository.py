"""Achievement definitions, awards, events, points rules and the activity log."""

import json
import sqlite3
from datetime import date, datetime, timezone

from cercagen.database.connection import SQLiteRepository
from cercagen.models.achievements import Achievement, ActivityFilter, UserAchievement, UserActivity

ACHIEVEMENT_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS achievements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    rule_json TEXT NOT NULL DEFAULT '{}',
    is_repeatable INTEGER NOT NULL DEFAULT 0,
    is_enabled INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS user_achievements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    achievement_id INTEGER NOT NULL REFERENCES achievements(id),
    status TEXT NOT NULL DEFAULT 'active',
    meta_json TEXT NOT NULL DEFAULT '{}',
    awarded_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_user_achievements_user ON user_achievements(user_id);

CREATE TABLE IF NOT EXISTS achievement_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL DEFAULT '',
    starts_at TEXT NOT NULL,
    ends_at TEXT NOT NULL,
    is_enabled INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS points_rules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT NOT NULL UNIQUE,
    points INTEGER NOT NULL DEFAULT 0,
    active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS user_activities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    rule_code TEXT NOT NULL DEFAULT '',
    action TEXT NOT NULL DEFAULT '',
    object_type TEXT NOT NULL DEFAULT '',
    object_id INTEGER,
    status TEXT NOT NULL DEFAULT 'validat',
    points INTEGER NOT NULL DEFAULT 0,
    details TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_user_activities_user ON user_activities(user_id, created_at);
"""


def _to_utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class AchievementRepository(SQLiteRepository):
    """Repository for achievements and user activity."""

    SCHEMA_SQL = ACHIEVEMENT_SCHEMA_SQL

    # -------------------------------------------------------------------------
    # Achievement Definitions
    # -------------------------------------------------------------------------

    def save_achievement(self, achievement: Achievement) -> int:
        """Insert or update (by code) an achievement definition."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO achievements (code, name, description, rule_json, is_repeatable, is_enabled)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(code) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    rule_json = excluded.rule_json,
                    is_repeatable = excluded.is_repeatable,
                    is_enabled = excluded.is_enabled
                """,
                (
                    achievement.code,
                    achievement.name,
                    achievement.description,
                    achievement.rule_json,
                    int(achievement.is_repeatable),
                    int(achievement.is_enabled),
                ),
            )
            row = conn.execute("SELECT id FROM achievements WHERE code = ?", (achievement.code,)).fetchone()
            achievement.id = row["id"]
            return achievement.id

    def list_enabled_achievements(self) -> list[Achievement]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM achievements WHERE is_enabled = 1 ORDER BY id").fetchall()
            return [self._row_to_achievement(r) for r in rows]

    def _row_to_achievement(self, row: sqlite3.Row) -> Achievement:
        return Achievement(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            description=row["description"],
            rule_json=row["rule_json"],
            is_repeatable=bool(row["is_repeatable"]),
            is_enabled=bool(row["is_enabled"]),
        )

    # -------------------------------------------------------------------------
    # Awards
    # -------------------------------------------------------------------------

    def award_achievement(self, user_id: int, achievement_id: int, status: str, meta: dict) -> bool:
        """Record an award; returns ``False`` when a non-repeatable one already exists."""
        with self._get_connection() as conn:
            repeatable = conn.execute(
                "SELECT is_repeatable FROM achievements WHERE id = ?", (achievement_id,)
            ).fetchone()
            if repeatable is None:
                return False
            if not repeatable["is_repeatable"]:
                existing = conn.execute(
                    "SELECT 1 FROM user_achievements WHERE user_id = ? AND achievement_id = ?",
                    (user_id, achievement_id),
                ).fetchone()
                if existing:
                    return False
            conn.execute(
                """
                INSERT INTO user_achievements (user_id, achievement_id, status, meta_json, awarded_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, achievement_id, status, json.dumps(meta, sort_keys=True), self._now_iso()),
            )
            return True

    def list_user_achievements(self, user_id: int) -> list[UserAchievement]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM user_achievements WHERE user_id = ? ORDER BY id", (user_id,)
            ).fetchall()
            return [
                UserAchievement(
                    id=r["id"],
                    user_id=r["user_id"],
                    achievement_id=r["achievement_id"],
                    status=r["status"],
                    meta_json=r["meta_json"],
                    awarded_at=self._parse_dt(r["awarded_at"]),
                )
                for r in rows
            ]

    # -------------------------------------------------------------------------
    # Events and Points Rules
    # -------------------------------------------------------------------------

    def save_achievement_event(self, code: str, starts_at: datetime, ends_at: datetime, name: str = "") -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO achievement_events (code, name, starts_at, ends_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(code) DO UPDATE SET
                    name = excluded.name, starts_at = excluded.starts_at, ends_at = excluded.ends_at
                """,
                (code, name, _to_utc_iso(starts_at), _to_utc_iso(ends_at)),
            )

    def is_achievement_event_active(self, code: str, at: datetime) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM achievement_events
                WHERE code = ? AND is_enabled = 1 AND starts_at <= ? AND ends_at >= ?
                """,
                (code, _to_utc_iso(at), _to_utc_iso(at)),
            ).fetchone()
            return row is not None

    def save_points_rule(self, code: str, points: int, active: bool = True) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO points_rules (code, points, active) VALUES (?, ?, ?)
                ON CONFLICT(code) DO UPDATE SET points = excluded.points, active = excluded.active
                """,
                (code, points, int(active)),
            )

    def get_points_for_rule(self, code: str) -> int:
        """Points of an active rule, ``0`` when unknown or inactive."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT points FROM points_rules WHERE code = ? AND active = 1", (code,)
            ).fetchone()
            return row["points"] if row else 0

    # -------------------------------------------------------------------------
    # Activity Log
    # -------------------------------------------------------------------------

    def insert_activity(self, activity: UserActivity) -> int:
        created = activity.created_at or datetime.now(timezone.utc)
        activity.created_at = created
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO user_activities (user_id, rule_code, action, object_type, object_id,
                                             status, points, details, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    activity.user_id,
                    activity.rule_code,
                    activity.action,
                    activity.object_type,
                    activity.object_id,
                    activity.status,
                    activity.points,
                    activity.details,
                    _to_utc_iso(created),
                ),
            )
            activity.id = cursor.lastrowid
            return activity.id

    def _activity_where(self, f: ActivityFilter) -> tuple[str, list]:
        params: list = [f.user_id]
        where = "WHERE user_id = ?"
        where += self._in_clause("rule_code", f.rule_codes, params)
        where += self._in_clause("action", f.actions, params)
        where += self._in_clause("object_type", f.object_types, params)
        where += self._in_clause("status", f.statuses, params)
        if f.since is not None:
            where += " AND created_at >= ?"
            params.append(_to_utc_iso(f.since))
        if f.until is not None:
            where += " AND created_at <= ?"
            params.append(_to_utc_iso(f.until))
        return where, params

    def count_activities(self, f: ActivityFilter) -> int:
        where, params = self._activity_where(f)
        with self._get_connection() as conn:
            return conn.execute(f"SELECT COUNT(*) AS n FROM user_activities {where}", params).fetchone()["n"]

    def sum_activity_points(self, f: ActivityFilter) -> int:
        where, params = self._activity_where(f)
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT COALESCE(SUM(points), 0) AS n FROM user_activities {where}", params
            ).fetchone()
            return row["n"]

    def count_distinct_activity_objects(self, f: ActivityFilter) -> int:
        where, params = self._activity_where(f)
        with self._get_connection() as conn:
            row = conn.execute(
                f"""
                SELECT COUNT(*) AS n FROM (
                    SELECT DISTINCT object_type, object_id FROM user_activities
                    {where} AND object_id IS NOT NULL
                )
                """,
                params,
            ).fetchone()
            return row["n"]

    def list_activity_days(self, f: ActivityFilter) -> list[date]:
        """Distinct UTC calendar days with activity, ascending."""
        where, params = self._activity_where(f)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT DISTINCT substr(created_at, 1, 10) AS day FROM user_activities {where} ORDER BY day",
                params,
            ).fetchall()
            return [date.fromisoformat(r["day"]) for r in rows]
