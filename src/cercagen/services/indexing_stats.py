"""Book indexing progress.

A book's percentage is the share of its schema's content fields that carry a
value, summed over the book's published records.
"""

import re
from decimal import ROUND_HALF_UP, Decimal

from loguru import logger

from cercagen.config.constants import INDEXING_COLOR_BANDS, RECORD_FIELDS
from cercagen.database.dac import DataAccess
from cercagen.models.indexing import BookIndexingStats, IndexingField
from cercagen.models.records import RecordBundle, TranscriptionPerson
from cercagen.services.indexing_schema_registry import IndexingSchemaRegistry

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def color_for_percentage(percentage: int) -> str:
    for floor, color in INDEXING_COLOR_BANDS:
        if percentage >= floor:
            return color
    return INDEXING_COLOR_BANDS[-1][1]


def person_key_index(person_key: str) -> int:
    """1-based slot encoded in a person key (``testimoni2`` -> 2, ``pare`` -> 1)."""
    match = _TRAILING_DIGITS.search(person_key or "")
    if not match:
        return 1
    return max(int(match.group(1)), 1)


def person_for_field(
    bundle: RecordBundle,
    field: IndexingField,
    cache: dict[str, TranscriptionPerson | None],
) -> TranscriptionPerson | None:
    """The person a schema field reads from.

    Persons of the field's role are ordered by id; a slot beyond the last
    person falls back to the first one.
    """
    if field.person_key in cache:
        return cache[field.person_key]
    if not field.role:
        return None
    persons = bundle.persons_with_role(field.role)
    if not persons:
        return None
    index = person_key_index(field.person_key)
    if index > len(persons):
        index = 1
    cache[field.person_key] = persons[index - 1]
    return cache[field.person_key]


def field_value(bundle: RecordBundle, field: IndexingField, cache: dict[str, TranscriptionPerson | None]) -> str:
    """Resolved, stripped value of one schema field for a record."""
    if field.target == "raw":
        attr = RECORD_FIELDS.get(field.raw_field)
        value = getattr(bundle.record, attr, None) if attr else None
        return "" if value is None else str(value).strip()
    if field.target == "attr":
        attribute = bundle.attribute(field.attr_key)
        return attribute.display_value().strip() if attribute else ""
    if field.target == "person":
        person = person_for_field(bundle, field, cache)
        return person.get_field(field.person_field).strip() if person else ""
    return ""


def percentage_of(filled: int, total: int) -> int:
    """``filled * 100 / total`` rounded half-up and clamped to 0..100."""
    if total <= 0:
        return 0
    value = (Decimal(filled) * 100 / Decimal(total)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return min(max(int(value), 0), 100)


def compute_book_stats(store: DataAccess, book_id: int) -> BookIndexingStats | None:
    """Compute indexing stats of a book without storing them.

    Returns:
        The stats, or None if the book does not exist
    """
    book = store.get_book(book_id)
    if book is None:
        return None

    fields = IndexingSchemaRegistry.get_schema(book.book_type).content_fields()
    stats = BookIndexingStats(book_id=book_id)
    records = store.list_records(book_id, published_only=True)
    stats.total_records = len(records)
    if not records or not fields:
        stats.color = color_for_percentage(0)
        return stats

    stats.total_fields = len(fields) * len(records)
    for record in records:
        bundle = RecordBundle(
            record=record,
            persons=store.list_persons(record.id),
            attributes=store.list_attributes(record.id),
        )
        cache: dict[str, TranscriptionPerson | None] = {}
        for field in fields:
            if field_value(bundle, field, cache):
                stats.filled_fields += 1

    stats.percentage = percentage_of(stats.filled_fields, stats.total_fields)
    stats.color = color_for_percentage(stats.percentage)
    return stats


def recompute_book_stats(store: DataAccess, book_id: int) -> BookIndexingStats | None:
    """Recompute and store a book's indexing stats."""
    stats = compute_book_stats(store, book_id)
    if stats is None:
        logger.debug(f"Book {book_id} not found, indexing stats not updated")
        return None
    store.upsert_indexing_stats(stats)
    logger.debug(
        f"Book {book_id} indexing: {stats.filled_fields}/{stats.total_fields} "
        f"({stats.percentage}%, {stats.color})"
    )
    return stats
