"""Books, transcription records, their people and attributes, page and indexing stats."""

import sqlite3

from loguru import logger

from cercagen.database.connection import SQLiteRepository
from cercagen.models.indexing import BookIndexingStats
from cercagen.models.records import (
    Book,
    PageStat,
    RecordBundle,
    TranscriptionAttribute,
    TranscriptionPerson,
    TranscriptionRecord,
)

# =============================================================================
# Schema
# =============================================================================

RECORDS_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL DEFAULT '',
    chronology TEXT NOT NULL DEFAULT '',
    municipality_id INTEGER,
    archive_id INTEGER,
    ecclesiastic_entity_id INTEGER,
    fully_indexed INTEGER NOT NULL DEFAULT 0,
    book_type TEXT NOT NULL DEFAULT 'other'
);

CREATE TABLE IF NOT EXISTS transcription_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id INTEGER NOT NULL REFERENCES books(id),
    record_type TEXT NOT NULL DEFAULT 'other',
    page_id INTEGER,
    page_label TEXT NOT NULL DEFAULT '',
    page_position INTEGER,
    document_year INTEGER CHECK (document_year IS NULL OR document_year BETWEEN 1200 AND 2100),
    act_date_text TEXT NOT NULL DEFAULT '',
    act_date_iso TEXT,
    act_date_quality TEXT NOT NULL DEFAULT '',
    literal_text TEXT NOT NULL DEFAULT '',
    marginal_notes TEXT NOT NULL DEFAULT '',
    paleographic_notes TEXT NOT NULL DEFAULT '',
    moderation_status TEXT NOT NULL DEFAULT 'pending',
    created_by INTEGER,
    created_at TEXT,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_records_book ON transcription_records(book_id, moderation_status);

CREATE TABLE IF NOT EXISTS transcription_persons (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    record_id INTEGER NOT NULL REFERENCES transcription_records(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK (role <> ''),
    given_name TEXT NOT NULL DEFAULT '',
    given_name_quality TEXT NOT NULL DEFAULT '',
    surname1 TEXT NOT NULL DEFAULT '',
    surname1_quality TEXT NOT NULL DEFAULT '',
    surname2 TEXT NOT NULL DEFAULT '',
    surname2_quality TEXT NOT NULL DEFAULT '',
    maiden_surname TEXT NOT NULL DEFAULT '',
    maiden_surname_quality TEXT NOT NULL DEFAULT '',
    sex TEXT NOT NULL DEFAULT '',
    sex_quality TEXT NOT NULL DEFAULT '',
    age TEXT NOT NULL DEFAULT '',
    age_quality TEXT NOT NULL DEFAULT '',
    civil_status TEXT NOT NULL DEFAULT '',
    civil_status_quality TEXT NOT NULL DEFAULT '',
    municipality TEXT NOT NULL DEFAULT '',
    municipality_quality TEXT NOT NULL DEFAULT '',
    occupation TEXT NOT NULL DEFAULT '',
    occupation_quality TEXT NOT NULL DEFAULT '',
    house TEXT NOT NULL DEFAULT '',
    house_quality TEXT NOT NULL DEFAULT '',
    notes TEXT NOT NULL DEFAULT '',
    person_id INTEGER
);

CREATE INDEX IF NOT EXISTS idx_persons_record ON transcription_persons(record_id);

CREATE TABLE IF NOT EXISTS transcription_attributes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    record_id INTEGER NOT NULL REFERENCES transcription_records(id) ON DELETE CASCADE,
    key TEXT NOT NULL,
    value_type TEXT NOT NULL DEFAULT 'text',
    value_text TEXT NOT NULL DEFAULT '',
    value_int INTEGER,
    value_date TEXT,
    value_bool INTEGER,
    quality TEXT NOT NULL DEFAULT '',
    notes TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_attributes_record ON transcription_attributes(record_id);

CREATE TABLE IF NOT EXISTS page_stats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id INTEGER NOT NULL REFERENCES books(id),
    page_label TEXT NOT NULL,
    total_records INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS book_indexing_stats (
    book_id INTEGER PRIMARY KEY REFERENCES books(id),
    total_records INTEGER NOT NULL DEFAULT 0,
    total_fields INTEGER NOT NULL DEFAULT 0,
    filled_fields INTEGER NOT NULL DEFAULT 0,
    percentage INTEGER NOT NULL DEFAULT 0,
    color TEXT NOT NULL DEFAULT 'pink',
    updated_at TEXT
);
"""

_PERSON_COLUMNS = [
    "record_id", "role",
    "given_name", "given_name_quality",
    "surname1", "surname1_quality",
    "surname2", "surname2_quality",
    "maiden_surname", "maiden_surname_quality",
    "sex", "sex_quality",
    "age", "age_quality",
    "civil_status", "civil_status_quality",
    "municipality", "municipality_quality",
    "occupation", "occupation_quality",
    "house", "house_quality",
    "notes", "person_id",
]

_RECORD_COLUMNS = [
    "book_id", "record_type", "page_id", "page_label", "page_position",
    "document_year", "act_date_text", "act_date_iso", "act_date_quality",
    "literal_text", "marginal_notes", "paleographic_notes",
    "moderation_status", "created_by",
]


class RecordRepository(SQLiteRepository):
    """Repository for books and transcription records."""

    SCHEMA_SQL = RECORDS_SCHEMA_SQL

    # -------------------------------------------------------------------------
    # Book Operations
    # -------------------------------------------------------------------------

    def create_book(self, book: Book) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO books (title, chronology, municipality_id, archive_id,
                                   ecclesiastic_entity_id, fully_indexed, book_type)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    book.title,
                    book.chronology,
                    book.municipality_id,
                    book.archive_id,
                    book.ecclesiastic_entity_id,
                    int(book.fully_indexed),
                    book.book_type,
                ),
            )
            book.id = cursor.lastrowid
            return book.id

    def get_book(self, book_id: int) -> Book | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            return self._row_to_book(row) if row else None

    def list_books(self, municipality_id: int | None = None, archive_id: int | None = None) -> list[Book]:
        query = "SELECT * FROM books WHERE 1=1"
        params: list = []
        if municipality_id:
            query += " AND municipality_id = ?"
            params.append(municipality_id)
        if archive_id:
            query += " AND archive_id = ?"
            params.append(archive_id)
        with self._get_connection() as conn:
            rows = conn.execute(query + " ORDER BY id", params).fetchall()
            return [self._row_to_book(r) for r in rows]

    def set_book_fully_indexed(self, book_id: int, fully_indexed: bool) -> None:
        with self._get_connection() as conn:
            conn.execute("UPDATE books SET fully_indexed = ? WHERE id = ?", (int(fully_indexed), book_id))

    def _row_to_book(self, row: sqlite3.Row) -> Book:
        return Book(
            id=row["id"],
            title=row["title"],
            chronology=row["chronology"],
            municipality_id=row["municipality_id"],
            archive_id=row["archive_id"],
            ecclesiastic_entity_id=row["ecclesiastic_entity_id"],
            fully_indexed=bool(row["fully_indexed"]),
            book_type=row["book_type"],
        )

    # -------------------------------------------------------------------------
    # Record Operations
    # -------------------------------------------------------------------------

    def create_record(self, record: TranscriptionRecord) -> int:
        now = self._now_iso()
        values = [getattr(record, c) for c in _RECORD_COLUMNS]
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                INSERT INTO transcription_records ({', '.join(_RECORD_COLUMNS)}, created_at, updated_at)
                VALUES ({', '.join('?' for _ in _RECORD_COLUMNS)}, ?, ?)
                """,
                (*values, now, now),
            )
            record.id = cursor.lastrowid
            logger.debug(f"Created transcription record {record.id} in book {record.book_id}")
            return record.id

    def update_record(self, record: TranscriptionRecord) -> None:
        assignments = ", ".join(f"{c} = ?" for c in _RECORD_COLUMNS)
        values = [getattr(record, c) for c in _RECORD_COLUMNS]
        with self._get_connection() as conn:
            conn.execute(
                f"UPDATE transcription_records SET {assignments}, updated_at = ? WHERE id = ?",
                (*values, self._now_iso(), record.id),
            )

    def set_record_status(self, record_id: int, status: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE transcription_records SET moderation_status = ?, updated_at = ? WHERE id = ?",
                (status, self._now_iso(), record_id),
            )

    def get_record(self, record_id: int) -> TranscriptionRecord | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM transcription_records WHERE id = ?", (record_id,)).fetchone()
            return self._row_to_record(row) if row else None

    def list_records(self, book_id: int, published_only: bool = False) -> list[TranscriptionRecord]:
        query = "SELECT * FROM transcription_records WHERE book_id = ?"
        if published_only:
            query += " AND moderation_status = 'published'"
        with self._get_connection() as conn:
            rows = conn.execute(query + " ORDER BY id", (book_id,)).fetchall()
            return [self._row_to_record(r) for r in rows]

    def list_published_records(self, municipality_id: int | None = None) -> list[TranscriptionRecord]:
        """Published records, optionally limited to books of one municipality."""
        query = """
            SELECT r.* FROM transcription_records r
            JOIN books b ON b.id = r.book_id
            WHERE r.moderation_status = 'published'
        """
        params: list = []
        if municipality_id:
            query += " AND b.municipality_id = ?"
            params.append(municipality_id)
        with self._get_connection() as conn:
            rows = conn.execute(query + " ORDER BY r.id", params).fetchall()
            return [self._row_to_record(r) for r in rows]

    def get_bundle(self, record_id: int) -> RecordBundle | None:
        record = self.get_record(record_id)
        if record is None:
            return None
        return RecordBundle(
            record=record,
            persons=self.list_persons(record_id),
            attributes=self.list_attributes(record_id),
        )

    def _row_to_record(self, row: sqlite3.Row) -> TranscriptionRecord:
        return TranscriptionRecord(
            id=row["id"],
            book_id=row["book_id"],
            record_type=row["record_type"],
            page_id=row["page_id"],
            page_label=row["page_label"],
            page_position=row["page_position"],
            document_year=row["document_year"],
            act_date_text=row["act_date_text"],
            act_date_iso=row["act_date_iso"],
            act_date_quality=row["act_date_quality"],
            literal_text=row["literal_text"],
            marginal_notes=row["marginal_notes"],
            paleographic_notes=row["paleographic_notes"],
            moderation_status=row["moderation_status"],
            created_by=row["created_by"],
            created_at=self._parse_dt(row["created_at"]),
            updated_at=self._parse_dt(row["updated_at"]),
        )

    # -------------------------------------------------------------------------
    # Person and Attribute Operations
    # -------------------------------------------------------------------------

    def create_person(self, person: TranscriptionPerson) -> int:
        values = [getattr(person, c) for c in _PERSON_COLUMNS]
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                INSERT INTO transcription_persons ({', '.join(_PERSON_COLUMNS)})
                VALUES ({', '.join('?' for _ in _PERSON_COLUMNS)})
                """,
                values,
            )
            person.id = cursor.lastrowid
            return person.id

    def list_persons(self, record_id: int) -> list[TranscriptionPerson]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM transcription_persons WHERE record_id = ? ORDER BY id", (record_id,)
            ).fetchall()
            return [
                TranscriptionPerson(id=r["id"], **{c: r[c] for c in _PERSON_COLUMNS}) for r in rows
            ]

    def create_attribute(self, attr: TranscriptionAttribute) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO transcription_attributes (record_id, key, value_type, value_text,
                                                      value_int, value_date, value_bool, quality, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    attr.record_id,
                    attr.key,
                    attr.value_type,
                    attr.value_text,
                    attr.value_int,
                    attr.value_date,
                    None if attr.value_bool is None else int(attr.value_bool),
                    attr.quality,
                    attr.notes,
                ),
            )
            attr.id = cursor.lastrowid
            return attr.id

    def list_attributes(self, record_id: int) -> list[TranscriptionAttribute]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM transcription_attributes WHERE record_id = ? ORDER BY id", (record_id,)
            ).fetchall()
            return [
                TranscriptionAttribute(
                    id=r["id"],
                    record_id=r["record_id"],
                    key=r["key"],
                    value_type=r["value_type"],
                    value_text=r["value_text"],
                    value_int=r["value_int"],
                    value_date=r["value_date"],
                    value_bool=None if r["value_bool"] is None else bool(r["value_bool"]),
                    quality=r["quality"],
                    notes=r["notes"],
                )
                for r in rows
            ]

    # -------------------------------------------------------------------------
    # Page and Indexing Stats
    # -------------------------------------------------------------------------

    def add_page_stat(self, stat: PageStat) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO page_stats (book_id, page_label, total_records) VALUES (?, ?, ?)",
                (stat.book_id, stat.page_label, stat.total_records),
            )

    def list_page_stats(self, book_id: int) -> list[PageStat]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM page_stats WHERE book_id = ? ORDER BY id", (book_id,)
            ).fetchall()
            return [PageStat(r["book_id"], r["page_label"], r["total_records"]) for r in rows]

    def count_records_by_page_value(self, book_id: int, value: str) -> int:
        """Records of the book whose page label or digital page equals ``value``."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(DISTINCT r.id) AS n
                FROM transcription_records r
                LEFT JOIN transcription_attributes a
                    ON a.record_id = r.id AND a.key = 'pagina_digital'
                WHERE r.book_id = ? AND (r.page_label = ? OR a.value_text = ?)
                """,
                (book_id, value, value),
            ).fetchone()
            return row["n"]

    def upsert_indexing_stats(self, stats: BookIndexingStats) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO book_indexing_stats (book_id, total_records, total_fields,
                                                 filled_fields, percentage, color, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(book_id) DO UPDATE SET
                    total_records = excluded.total_records,
                    total_fields = excluded.total_fields,
                    filled_fields = excluded.filled_fields,
                    percentage = excluded.percentage,
                    color = excluded.color,
                    updated_at = excluded.updated_at
                """,
                (
                    stats.book_id,
                    stats.total_records,
                    stats.total_fields,
                    stats.filled_fields,
                    stats.percentage,
                    stats.color,
                    self._now_iso(),
                ),
            )

    def get_indexing_stats(self, book_id: int) -> BookIndexingStats | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM book_indexing_stats WHERE book_id = ?", (book_id,)).fetchone()
            if not row:
                return None
            return BookIndexingStats(
                book_id=row["book_id"],
                total_records=row["total_records"],
                total_fields=row["total_fields"],
                filled_fields=row["filled_fields"],
                percentage=row["percentage"],
                color=row["color"],
            )
