"""Per-page capacity check for batches from the interactive indexer.

A page whose record count is already established in the book's page stats
cannot receive more records than that count.
"""

from collections import Counter

from loguru import logger

from cercagen.database.dac import DataAccess
from cercagen.errors import CercagenError, PageLimitExceededError
from cercagen.models.indexing import IndexingSchema
from cercagen.services.indexing_schema_registry import IndexingSchemaRegistry

IndexerRow = dict[str, str]


def page_keys(schema: IndexingSchema) -> tuple[str, str]:
    """Field keys holding the page label and the digital page of a row."""
    page_key = digital_key = ""
    for field in schema.fields:
        if field.target == "raw" and field.raw_field == "num_pagina_text":
            page_key = field.key
        if field.target == "attr" and field.attr_key == "pagina_digital":
            digital_key = field.key
    return page_key, digital_key


def row_page_value(row: IndexerRow, page_key: str, digital_key: str) -> str:
    """Digital page when present, else the page label."""
    if digital_key:
        value = (row.get(digital_key) or "").strip()
        if value:
            return value
    if page_key:
        return (row.get(page_key) or "").strip()
    return ""


def is_row_empty(row: IndexerRow) -> bool:
    return not any((v or "").strip() for v in row.values())


def established_page_sizes(store: DataAccess, book_id: int) -> dict[str, int]:
    """First positive record count seen for each page label."""
    limits: dict[str, int] = {}
    for stat in store.list_page_stats(book_id):
        key = stat.page_label.strip()
        if stat.total_records <= 0 or not key:
            continue
        limits.setdefault(key, stat.total_records)
    return limits


def check_page_capacity(store: DataAccess, book_id: int, rows: list[IndexerRow]) -> None:
    """Reject a batch that would overfill an established page.

    Args:
        store: Data access
        book_id: Book receiving the rows
        rows: Indexer rows keyed by schema field key

    Raises:
        PageLimitExceededError: If existing plus new records exceed a page's size
    """
    book = store.get_book(book_id)
    if book is None:
        return
    page_key, digital_key = page_keys(IndexingSchemaRegistry.get_schema(book.book_type))
    if not page_key and not digital_key:
        return
    limits = established_page_sizes(store, book_id)
    if not limits:
        return

    new_counts: Counter = Counter()
    for row in rows:
        if is_row_empty(row):
            continue
        value = row_page_value(row, page_key, digital_key)
        if value:
            new_counts[value] += 1

    for page, new_count in new_counts.items():
        limit = limits.get(page, 0)
        if limit <= 0:
            continue
        try:
            existing = store.count_records_by_page_value(book_id, page)
        except CercagenError as e:
            logger.error(f"Could not count records of book {book_id} page {page}: {e}")
            continue
        if existing + new_count > limit:
            raise PageLimitExceededError(page, existing, new_count, limit)
