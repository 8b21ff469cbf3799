"""SQLite connection handling shared by the repositories.

Every public repository method opens its own connection and commits on
success, so each DAC call is atomic on its own and no transaction spans two
calls.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from cercagen.errors import StorageError


class SQLiteRepository:
    """Base class: owns the database path and applies the schema on start-up.

    Subclasses list their DDL in ``SCHEMA_SQL``; every class in the MRO that
    declares one gets it applied.
    """

    SCHEMA_SQL = ""

    def __init__(self, db_path: str | Path):
        """Initialize repository with database path.

        Args:
            db_path: Path to the SQLite file (``~`` is expanded)
        """
        self.db_path = Path(db_path).expanduser()
        self._ensure_db_exists()

    def _ensure_db_exists(self) -> None:
        """Create database directory and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        scripts: list[str] = []
        for klass in reversed(type(self).__mro__):
            script = klass.__dict__.get("SCHEMA_SQL")
            if script and script not in scripts:
                scripts.append(script)
        with self._get_connection() as conn:
            for script in scripts:
                conn.executescript(script)
        logger.debug(f"Database initialized: {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with context manager.

        Commits when the block succeeds and rolls back otherwise. SQLite
        errors surface as ``StorageError``.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row  # Access columns by name
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError("sqlite", str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _now_iso() -> str:
        """Return current UTC timestamp as ISO format string."""
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _parse_dt(value: str | None) -> datetime | None:
        if not value:
            return None
        return datetime.fromisoformat(value)

    @staticmethod
    def _in_clause(column: str, values: list | None, params: list) -> str:
        """``AND column IN (?, ...)`` for a non-empty list, else ``""``."""
        if not values:
            return ""
        params.extend(values)
        return f" AND {column} IN ({', '.join('?' for _ in values)})"
