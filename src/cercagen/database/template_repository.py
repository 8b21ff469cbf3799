"""Stored import templates."""

import sqlite3

from cercagen.database.connection import SQLiteRepository
from cercagen.models.template import ImportTemplate

TEMPLATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS import_templates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    owner_id INTEGER,
    visibility TEXT NOT NULL DEFAULT 'private' CHECK (visibility IN ('private', 'public')),
    separator TEXT NOT NULL DEFAULT ',',
    model_json TEXT NOT NULL,
    signature TEXT NOT NULL DEFAULT '',
    created_at TEXT,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_import_templates_signature ON import_templates(signature);
"""


class TemplateRepository(SQLiteRepository):
    """Repository for user-owned import templates."""

    SCHEMA_SQL = TEMPLATE_SCHEMA_SQL

    def create_template(self, template: ImportTemplate) -> int:
        now = self._now_iso()
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO import_templates (name, description, owner_id, visibility, separator,
                                              model_json, signature, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    template.name,
                    template.description,
                    template.owner_id,
                    template.visibility,
                    template.separator,
                    template.model_json,
                    template.signature,
                    now,
                    now,
                ),
            )
            template.id = cursor.lastrowid
            return template.id

    def update_template(self, template: ImportTemplate) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE import_templates
                SET name = ?, description = ?, visibility = ?, separator = ?,
                    model_json = ?, signature = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    template.name,
                    template.description,
                    template.visibility,
                    template.separator,
                    template.model_json,
                    template.signature,
                    self._now_iso(),
                    template.id,
                ),
            )

    def get_template(self, template_id: int) -> ImportTemplate | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM import_templates WHERE id = ?", (template_id,)).fetchone()
            return self._row_to_template(row) if row else None

    def list_templates(self, owner_id: int | None = None, include_public: bool = True) -> list[ImportTemplate]:
        """Templates visible to ``owner_id`` (all templates when ``None``)."""
        query = "SELECT * FROM import_templates"
        params: list = []
        if owner_id is not None:
            query += " WHERE owner_id = ?"
            params.append(owner_id)
            if include_public:
                query += " OR visibility = 'public'"
        with self._get_connection() as conn:
            rows = conn.execute(query + " ORDER BY name, id", params).fetchall()
            return [self._row_to_template(r) for r in rows]

    def _row_to_template(self, row: sqlite3.Row) -> ImportTemplate:
        return ImportTemplate(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            owner_id=row["owner_id"],
            visibility=row["visibility"],
            separator=row["separator"],
            model_json=row["model_json"],
            signature=row["signature"],
            created_at=self._parse_dt(row["created_at"]),
            updated_at=self._parse_dt(row["updated_at"]),
        )
