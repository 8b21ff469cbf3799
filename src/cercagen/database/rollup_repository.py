"""Denormalized aggregates: demography counters, name/surname frequencies,
the surname dictionary and the administrative closure they fan out over."""

import sqlite3

from cercagen.database.connection import SQLiteRepository
from cercagen.models.dictionary import CognomCanonical, CognomVariant, Nom

ROLLUP_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS admin_closure (
    municipality_id INTEGER NOT NULL,
    ancestor_type TEXT NOT NULL,
    ancestor_id INTEGER NOT NULL,
    PRIMARY KEY (municipality_id, ancestor_type, ancestor_id)
);

CREATE TABLE IF NOT EXISTS demography_counters (
    scope_type TEXT NOT NULL,
    scope_id INTEGER NOT NULL,
    year INTEGER NOT NULL,
    bucket TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0 CHECK (count >= 0),
    PRIMARY KEY (scope_type, scope_id, year, bucket)
);

CREATE TABLE IF NOT EXISTS name_frequencies (
    kind TEXT NOT NULL,
    entity_id INTEGER NOT NULL,
    scope_type TEXT NOT NULL,
    scope_id INTEGER NOT NULL,
    year INTEGER NOT NULL,
    count INTEGER NOT NULL DEFAULT 0 CHECK (count >= 0),
    PRIMARY KEY (kind, entity_id, scope_type, scope_id, year)
);

CREATE TABLE IF NOT EXISTS name_frequency_totals (
    kind TEXT NOT NULL,
    entity_id INTEGER NOT NULL,
    scope_type TEXT NOT NULL,
    scope_id INTEGER NOT NULL,
    total INTEGER NOT NULL DEFAULT 0 CHECK (total >= 0),
    PRIMARY KEY (kind, entity_id, scope_type, scope_id)
);

CREATE TABLE IF NOT EXISTS cognoms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    form TEXT NOT NULL,
    key TEXT NOT NULL,
    redirect_to_id INTEGER REFERENCES cognoms(id)
);

CREATE INDEX IF NOT EXISTS idx_cognoms_key ON cognoms(key);

CREATE TABLE IF NOT EXISTS cognom_variants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    canonical_id INTEGER NOT NULL REFERENCES cognoms(id),
    form TEXT NOT NULL,
    key TEXT NOT NULL,
    published INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_cognom_variants_key ON cognom_variants(key);

CREATE TABLE IF NOT EXISTS noms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    form TEXT NOT NULL,
    key TEXT NOT NULL UNIQUE
);
"""


class RollupRepository(SQLiteRepository):
    """Repository for roll-up counters and the name dictionaries."""

    SCHEMA_SQL = ROLLUP_SCHEMA_SQL

    # -------------------------------------------------------------------------
    # Administrative Closure
    # -------------------------------------------------------------------------

    def replace_admin_closure(self, municipality_id: int, entries: list[tuple[str, int]]) -> None:
        """Replace the closure rows of a municipality with ``(type, id)`` entries."""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM admin_closure WHERE municipality_id = ?", (municipality_id,))
            conn.executemany(
                """
                INSERT OR IGNORE INTO admin_closure (municipality_id, ancestor_type, ancestor_id)
                VALUES (?, ?, ?)
                """,
                [(municipality_id, kind, ancestor) for kind, ancestor in entries],
            )

    def list_admin_ancestors(self, municipality_id: int) -> list[int]:
        """Sorted, distinct administrative-level ancestors of a municipality."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT ancestor_id FROM admin_closure
                WHERE municipality_id = ? AND ancestor_type = 'nivell' AND ancestor_id > 0
                ORDER BY ancestor_id
                """,
                (municipality_id,),
            ).fetchall()
            return [r["ancestor_id"] for r in rows]

    # -------------------------------------------------------------------------
    # Demography Operations
    # -------------------------------------------------------------------------

    def apply_demography_delta(self, scope_type: str, scope_id: int, year: int, bucket: str, delta: int) -> None:
        """Add ``delta`` to a counter; counters never go below zero."""
        if delta == 0:
            return
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO demography_counters (scope_type, scope_id, year, bucket, count)
                VALUES (?, ?, ?, ?, MAX(?, 0))
                ON CONFLICT(scope_type, scope_id, year, bucket)
                DO UPDATE SET count = MAX(count + ?, 0)
                """,
                (scope_type, scope_id, year, bucket, delta, delta),
            )
            conn.execute("DELETE FROM demography_counters WHERE count = 0")

    def get_demography(self, scope_type: str, scope_id: int, year: int, bucket: str) -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT count FROM demography_counters
                WHERE scope_type = ? AND scope_id = ? AND year = ? AND bucket = ?
                """,
                (scope_type, scope_id, year, bucket),
            ).fetchone()
            return row["count"] if row else 0

    def list_demography(self, scope_type: str, scope_id: int) -> list[tuple[int, str, int]]:
        """``(year, bucket, count)`` rows of a scope, ordered by year."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT year, bucket, count FROM demography_counters
                WHERE scope_type = ? AND scope_id = ?
                ORDER BY year, bucket
                """,
                (scope_type, scope_id),
            ).fetchall()
            return [(r["year"], r["bucket"], r["count"]) for r in rows]

    def clear_demography(self, scope_type: str, scope_id: int) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM demography_counters WHERE scope_type = ? AND scope_id = ?",
                (scope_type, scope_id),
            )

    # -------------------------------------------------------------------------
    # Name Frequency Operations
    # -------------------------------------------------------------------------

    def apply_frequency_delta(
        self, kind: str, entity_id: int, scope_type: str, scope_id: int, year: int, delta: int
    ) -> None:
        """Add ``delta`` to the per-year and the total frequency of a name."""
        if delta == 0:
            return
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO name_frequencies (kind, entity_id, scope_type, scope_id, year, count)
                VALUES (?, ?, ?, ?, ?, MAX(?, 0))
                ON CONFLICT(kind, entity_id, scope_type, scope_id, year)
                DO UPDATE SET count = MAX(count + ?, 0)
                """,
                (kind, entity_id, scope_type, scope_id, year, delta, delta),
            )
            conn.execute(
                """
                INSERT INTO name_frequency_totals (kind, entity_id, scope_type, scope_id, total)
                VALUES (?, ?, ?, ?, MAX(?, 0))
                ON CONFLICT(kind, entity_id, scope_type, scope_id)
                DO UPDATE SET total = MAX(total + ?, 0)
                """,
                (kind, entity_id, scope_type, scope_id, delta, delta),
            )
            conn.execute("DELETE FROM name_frequencies WHERE count = 0")
            conn.execute("DELETE FROM name_frequency_totals WHERE total = 0")

    def get_frequency(
        self, kind: str, entity_id: int, scope_type: str, scope_id: int, year: int | None = None
    ) -> int:
        """Per-year count, or the total when ``year`` is ``None``."""
        with self._get_connection() as conn:
            if year is None:
                row = conn.execute(
                    """
                    SELECT total AS n FROM name_frequency_totals
                    WHERE kind = ? AND entity_id = ? AND scope_type = ? AND scope_id = ?
                    """,
                    (kind, entity_id, scope_type, scope_id),
                ).fetchone()
            else:
                row = conn.execute(
                    """
                    SELECT count AS n FROM name_frequencies
                    WHERE kind = ? AND entity_id = ? AND scope_type = ? AND scope_id = ? AND year = ?
                    """,
                    (kind, entity_id, scope_type, scope_id, year),
                ).fetchone()
            return row["n"] if row else 0

    def list_frequencies(self, kind: str, scope_type: str, scope_id: int) -> list[tuple[int, int, int]]:
        """``(entity_id, year, count)`` rows of a scope."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT entity_id, year, count FROM name_frequencies
                WHERE kind = ? AND scope_type = ? AND scope_id = ?
                ORDER BY entity_id, year
                """,
                (kind, scope_type, scope_id),
            ).fetchall()
            return [(r["entity_id"], r["year"], r["count"]) for r in rows]

    def clear_frequencies(self, kind: str, scope_type: str, scope_id: int) -> None:
        with self._get_connection() as conn:
            for table in ("name_frequencies", "name_frequency_totals"):
                conn.execute(
                    f"DELETE FROM {table} WHERE kind = ? AND scope_type = ? AND scope_id = ?",
                    (kind, scope_type, scope_id),
                )

    # -------------------------------------------------------------------------
    # Surname Dictionary
    # -------------------------------------------------------------------------

    def create_cognom(self, form: str, key: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute("INSERT INTO cognoms (form, key) VALUES (?, ?)", (form, key))
            return cursor.lastrowid

    def get_cognom(self, cognom_id: int) -> CognomCanonical | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM cognoms WHERE id = ?", (cognom_id,)).fetchone()
            return self._row_to_cognom(row) if row else None

    def find_cognom_by_key(self, key: str) -> CognomCanonical | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM cognoms WHERE key = ? ORDER BY redirect_to_id IS NOT NULL, id LIMIT 1",
                (key,),
            ).fetchone()
            return self._row_to_cognom(row) if row else None

    def set_cognom_redirect(self, cognom_id: int, target_id: int | None) -> None:
        with self._get_connection() as conn:
            conn.execute("UPDATE cognoms SET redirect_to_id = ? WHERE id = ?", (target_id, cognom_id))

    def add_cognom_variant(self, canonical_id: int, form: str, key: str, published: bool = True) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO cognom_variants (canonical_id, form, key, published) VALUES (?, ?, ?, ?)",
                (canonical_id, form, key, int(published)),
            )
            return cursor.lastrowid

    def find_variant_by_key(self, key: str) -> CognomVariant | None:
        """First published variant with this key."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM cognom_variants WHERE key = ? AND published = 1 ORDER BY id LIMIT 1",
                (key,),
            ).fetchone()
            return self._row_to_variant(row) if row else None

    def list_cognom_variants(self, canonical_id: int, published_only: bool = True) -> list[CognomVariant]:
        query = "SELECT * FROM cognom_variants WHERE canonical_id = ?"
        if published_only:
            query += " AND published = 1"
        with self._get_connection() as conn:
            rows = conn.execute(query + " ORDER BY id", (canonical_id,)).fetchall()
            return [self._row_to_variant(r) for r in rows]

    def _row_to_cognom(self, row: sqlite3.Row) -> CognomCanonical:
        return CognomCanonical(id=row["id"], form=row["form"], key=row["key"], redirect_to_id=row["redirect_to_id"])

    def _row_to_variant(self, row: sqlite3.Row) -> CognomVariant:
        return CognomVariant(
            id=row["id"],
            canonical_id=row["canonical_id"],
            form=row["form"],
            key=row["key"],
            published=bool(row["published"]),
        )

    # -------------------------------------------------------------------------
    # Given Names
    # -------------------------------------------------------------------------

    def get_or_create_nom(self, form: str, key: str) -> int:
        with self._get_connection() as conn:
            conn.execute("INSERT OR IGNORE INTO noms (form, key) VALUES (?, ?)", (form, key))
            row = conn.execute("SELECT id FROM noms WHERE key = ?", (key,)).fetchone()
            return row["id"]

    def find_nom_by_key(self, key: str) -> Nom | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM noms WHERE key = ?", (key,)).fetchone()
            return Nom(id=row["id"], form=row["form"], key=row["key"]) if row else None
