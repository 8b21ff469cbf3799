"""SQLite implementation of the data-access contract."""

from pathlib import Path

from loguru import logger

from cercagen.config import get_config
from cercagen.database.achievement_repository import AchievementRepository
from cercagen.database.records_repository import RecordRepository
from cercagen.database.rollup_repository import RollupRepository
from cercagen.database.search_repository import SearchRepository
from cercagen.database.template_repository import TemplateRepository
from cercagen.database.territory_repository import TerritoryRepository


class SQLiteStore(
    RecordRepository,
    RollupRepository,
    SearchRepository,
    AchievementRepository,
    TemplateRepository,
    TerritoryRepository,
):
    """All repositories over a single SQLite file."""


_store: SQLiteStore | None = None


def get_store(db_path: str | Path | None = None) -> SQLiteStore:
    """Get the process-wide store, opening it on first use.

    Args:
        db_path: Overrides ``Config.database_path``; a different path
            replaces the cached store.
    """
    global _store
    path = Path(db_path or get_config().database_path).expanduser()
    if _store is None or _store.db_path != path:
        logger.info(f"Opening cercagen store at {path}")
        _store = SQLiteStore(path)
    return _store
