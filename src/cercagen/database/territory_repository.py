"""Countries, administrative levels and municipalities."""

import json
import sqlite3

from cercagen.database.connection import SQLiteRepository
from cercagen.models.territory import LEVEL_SLOTS, AdminLevel, Country, Municipality

TERRITORY_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS countries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    iso2 TEXT NOT NULL UNIQUE,
    iso3 TEXT NOT NULL DEFAULT '',
    num TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS admin_levels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    country_id INTEGER REFERENCES countries(id),
    level INTEGER NOT NULL DEFAULT 1,
    name TEXT NOT NULL DEFAULT '',
    kind TEXT NOT NULL DEFAULT '',
    code TEXT NOT NULL DEFAULT '',
    extra TEXT NOT NULL DEFAULT '',
    parent_id INTEGER REFERENCES admin_levels(id),
    start_year INTEGER,
    end_year INTEGER,
    status TEXT NOT NULL DEFAULT 'actiu'
);

CREATE TABLE IF NOT EXISTS municipalities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    country_id INTEGER REFERENCES countries(id),
    name TEXT NOT NULL DEFAULT '',
    kind TEXT NOT NULL DEFAULT '',
    parent_id INTEGER REFERENCES municipalities(id),
    level_ids TEXT NOT NULL DEFAULT '[]',
    postal_code TEXT NOT NULL DEFAULT '',
    latitude REAL,
    longitude REAL,
    what3words TEXT NOT NULL DEFAULT '',
    web TEXT NOT NULL DEFAULT '',
    wikipedia TEXT NOT NULL DEFAULT '',
    extra TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'actiu'
);
"""


class TerritoryRepository(SQLiteRepository):
    """Repository for the territory hierarchy."""

    SCHEMA_SQL = TERRITORY_SCHEMA_SQL

    # ----- Country Operations -----

    def create_country(self, country: Country) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO countries (iso2, iso3, num) VALUES (?, ?, ?)",
                (country.iso2.upper(), country.iso3, country.num),
            )
            country.id = cursor.lastrowid
            return country.id

    def get_country_by_iso2(self, iso2: str) -> Country | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM countries WHERE iso2 = ?", (iso2.upper(),)).fetchone()
            return Country(row["id"], row["iso2"], row["iso3"], row["num"]) if row else None

    def list_countries(self) -> list[Country]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM countries ORDER BY iso2").fetchall()
            return [Country(r["id"], r["iso2"], r["iso3"], r["num"]) for r in rows]

    # ----- Administrative Level Operations -----

    def create_level(self, level: AdminLevel) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO admin_levels (country_id, level, name, kind, code, extra,
                                          parent_id, start_year, end_year, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    level.country_id,
                    level.level,
                    level.name,
                    level.kind,
                    level.code,
                    level.extra,
                    level.parent_id,
                    level.start_year,
                    level.end_year,
                    level.status,
                ),
            )
            level.id = cursor.lastrowid
            return level.id

    def get_level(self, level_id: int) -> AdminLevel | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM admin_levels WHERE id = ?", (level_id,)).fetchone()
            return self._row_to_level(row) if row else None

    def list_levels(self) -> list[AdminLevel]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM admin_levels ORDER BY level, id").fetchall()
            return [self._row_to_level(r) for r in rows]

    def _row_to_level(self, row: sqlite3.Row) -> AdminLevel:
        return AdminLevel(
            id=row["id"],
            country_id=row["country_id"],
            level=row["level"],
            name=row["name"],
            kind=row["kind"],
            code=row["code"],
            extra=row["extra"],
            parent_id=row["parent_id"],
            start_year=row["start_year"],
            end_year=row["end_year"],
            status=row["status"],
        )

    # ----- Municipality Operations -----

    def create_municipality(self, mun: Municipality) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO municipalities (country_id, name, kind, parent_id, level_ids, postal_code,
                                            latitude, longitude, what3words, web, wikipedia, extra, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    mun.country_id,
                    mun.name,
                    mun.kind,
                    mun.parent_id,
                    json.dumps(_pad_levels(mun.level_ids)),
                    mun.postal_code,
                    mun.latitude,
                    mun.longitude,
                    mun.what3words,
                    mun.web,
                    mun.wikipedia,
                    mun.extra,
                    mun.status,
                ),
            )
            mun.id = cursor.lastrowid
            return mun.id

    def set_municipality_parent(self, municipality_id: int, parent_id: int | None) -> None:
        with self._get_connection() as conn:
            conn.execute("UPDATE municipalities SET parent_id = ? WHERE id = ?", (parent_id, municipality_id))

    def get_municipality(self, municipality_id: int) -> Municipality | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM municipalities WHERE id = ?", (municipality_id,)).fetchone()
            return self._row_to_municipality(row) if row else None

    def list_municipalities(self) -> list[Municipality]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM municipalities ORDER BY id").fetchall()
            return [self._row_to_municipality(r) for r in rows]

    def _row_to_municipality(self, row: sqlite3.Row) -> Municipality:
        return Municipality(
            id=row["id"],
            country_id=row["country_id"],
            name=row["name"],
            kind=row["kind"],
            parent_id=row["parent_id"],
            level_ids=_pad_levels(json.loads(row["level_ids"] or "[]")),
            postal_code=row["postal_code"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            what3words=row["what3words"],
            web=row["web"],
            wikipedia=row["wikipedia"],
            extra=row["extra"],
            status=row["status"],
        )


def _pad_levels(level_ids: list) -> list[int | None]:
    """Exactly ``LEVEL_SLOTS`` entries, ``0`` read as empty."""
    padded = [lid if lid else None for lid in list(level_ids)[:LEVEL_SLOTS]]
    return padded + [None] * (LEVEL_SLOTS - len(padded))
