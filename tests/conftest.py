"""Shared fixtures for the cercagen test suite."""

import pytest

import cercagen.database.store as store_module
import cercagen.services.achievement_cache as achievement_cache_module
import cercagen.services.import_errors as import_errors_module
from cercagen.config import reset_config
from cercagen.database.store import SQLiteStore
from cercagen.models.records import Book
from cercagen.services.indexing_schema_registry import IndexingSchemaRegistry


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Point configuration at a temporary directory and drop cached globals."""
    monkeypatch.setenv("CERCAGEN_DATABASE_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("CERCAGEN_LOG_FILE", str(tmp_path / "logs" / "cercagen.log"))
    reset_config()
    IndexingSchemaRegistry.clear_cache()
    monkeypatch.setattr(store_module, "_store", None)
    monkeypatch.setattr(achievement_cache_module, "_cache", None)
    monkeypatch.setattr(import_errors_module, "_store", None)
    yield
    reset_config()


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite store in a temporary directory."""
    return SQLiteStore(tmp_path / "cercagen.db")


@pytest.fixture
def book(store):
    """A baptism book with no municipality."""
    b = Book(title="Baptismes 1800-1810", chronology="1800-1810", book_type="baptism")
    store.create_book(b)
    return b


@pytest.fixture
def baptism_template():
    """Baptism template: book id, principal person, birth date and year."""
    return {
        "record_type": "baptism",
        "book_resolution": {"mode": "by_id", "column": "llibre_id"},
        "mapping": {
            "columns": [
                {"header": "llibre_id", "required": True, "map_to": [{"target": "base.llibre_id"}]},
                {
                    "header": "batejat",
                    "map_to": [{"target": "person.batejat", "transforms": ["parse_person_from_cognoms"]}],
                },
                {"header": "any_doc", "map_to": [{"target": "base.any_doc"}]},
                {
                    "header": "data_naixement",
                    "map_to": [{"target": "attr.data_naixement.date", "transforms": ["parse_ddmmyyyy_to_iso"]}],
                },
            ]
        },
    }
