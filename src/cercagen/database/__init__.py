"""Data access: the DAC protocol and its SQLite implementation."""

from cercagen.database.dac import DataAccess
from cercagen.database.store import SQLiteStore, get_store

__all__ = ["DataAccess", "SQLiteStore", "get_store"]
