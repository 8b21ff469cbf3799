"""Search documents storage."""

import sqlite3

from cercagen.database.connection import SQLiteRepository
from cercagen.models.search import SearchDoc

SEARCH_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS search_docs (
    entity_type TEXT NOT NULL,
    entity_id INTEGER NOT NULL,
    published INTEGER NOT NULL DEFAULT 1,
    person_nom_norm TEXT NOT NULL DEFAULT '',
    person_cognoms_norm TEXT NOT NULL DEFAULT '',
    person_full_norm TEXT NOT NULL DEFAULT '',
    person_tokens_norm TEXT NOT NULL DEFAULT '',
    cognoms_tokens_norm TEXT NOT NULL DEFAULT '',
    person_phonetic TEXT NOT NULL DEFAULT '',
    cognoms_phonetic TEXT NOT NULL DEFAULT '',
    cognoms_canon TEXT NOT NULL DEFAULT '',
    municipality_id INTEGER,
    book_id INTEGER,
    archive_id INTEGER,
    ecclesiastic_entity_id INTEGER,
    act_date TEXT,
    act_year INTEGER,
    PRIMARY KEY (entity_type, entity_id)
);

CREATE INDEX IF NOT EXISTS idx_search_docs_scope ON search_docs(municipality_id, act_year);
"""

_DOC_COLUMNS = [
    "entity_type", "entity_id", "published",
    "person_nom_norm", "person_cognoms_norm", "person_full_norm",
    "person_tokens_norm", "cognoms_tokens_norm",
    "person_phonetic", "cognoms_phonetic", "cognoms_canon",
    "municipality_id", "book_id", "archive_id", "ecclesiastic_entity_id",
    "act_date", "act_year",
]


class SearchRepository(SQLiteRepository):
    """Repository for denormalized search documents."""

    SCHEMA_SQL = SEARCH_SCHEMA_SQL

    def upsert_search_doc(self, doc: SearchDoc) -> None:
        values = [getattr(doc, c) for c in _DOC_COLUMNS]
        values[2] = int(doc.published)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _DOC_COLUMNS[2:])
        with self._get_connection() as conn:
            conn.execute(
                f"""
                INSERT INTO search_docs ({', '.join(_DOC_COLUMNS)})
                VALUES ({', '.join('?' for _ in _DOC_COLUMNS)})
                ON CONFLICT(entity_type, entity_id) DO UPDATE SET {updates}
                """,
                values,
            )

    def delete_search_doc(self, entity_type: str, entity_id: int) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM search_docs WHERE entity_type = ? AND entity_id = ?",
                (entity_type, entity_id),
            )

    def get_search_doc(self, entity_type: str, entity_id: int) -> SearchDoc | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM search_docs WHERE entity_type = ? AND entity_id = ?",
                (entity_type, entity_id),
            ).fetchone()
            return self._row_to_doc(row) if row else None

    def list_search_docs(
        self,
        municipality_id: int | None = None,
        book_id: int | None = None,
        archive_id: int | None = None,
        year_from: int | None = None,
        year_to: int | None = None,
    ) -> list[SearchDoc]:
        """Published documents within the given scope."""
        query = "SELECT * FROM search_docs WHERE published = 1"
        params: list = []
        for column, value in (
            ("municipality_id", municipality_id),
            ("book_id", book_id),
            ("archive_id", archive_id),
        ):
            if value:
                query += f" AND {column} = ?"
                params.append(value)
        if year_from is not None:
            query += " AND act_year >= ?"
            params.append(year_from)
        if year_to is not None:
            query += " AND act_year <= ?"
            params.append(year_to)
        with self._get_connection() as conn:
            rows = conn.execute(query + " ORDER BY entity_type, entity_id", params).fetchall()
            return [self._row_to_doc(r) for r in rows]

    def clear_search_docs(self, entity_type: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM search_docs WHERE entity_type = ?", (entity_type,))

    def _row_to_doc(self, row: sqlite3.Row) -> SearchDoc:
        data = {c: row[c] for c in _DOC_COLUMNS}
        data["published"] = bool(data["published"])
        return SearchDoc(**data)
