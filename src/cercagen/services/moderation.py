"""Moderation transitions of transcription records.

Every status change goes through here so that the roll-ups, the search
document and the book's indexing stats follow the record.
"""

from loguru import logger

from cercagen.database.dac import DataAccess
from cercagen.errors import CercagenError
from cercagen.models.records import ModerationStatus, TranscriptionRecord
from cercagen.services.indexing_stats import recompute_book_stats
from cercagen.services.rollups import apply_status_change


def _refresh_book(store: DataAccess, book_id: int | None) -> None:
    if not book_id:
        return
    try:
        recompute_book_stats(store, book_id)
    except CercagenError as e:
        logger.warning(f"Could not refresh indexing stats of book {book_id}: {e}")


def set_moderation_status(store: DataAccess, record_id: int, status: str) -> int:
    """Persist a new moderation status and propagate it.

    Args:
        store: Data access
        record_id: Record to moderate
        status: Target status, English or Catalan label

    Returns:
        The roll-up delta (+1 published, -1 unpublished, 0 otherwise)

    Raises:
        ValueError: If the status or the record is unknown
    """
    new_status = ModerationStatus.parse(status)
    if new_status is None:
        raise ValueError(f"Unknown moderation status: {status}")
    record = store.get_record(record_id)
    if record is None:
        raise ValueError(f"Record {record_id} not found")

    old_status = record.moderation_status
    if old_status == new_status.value:
        return 0
    store.set_record_status(record_id, new_status.value)
    delta = apply_status_change(store, record_id, old_status, new_status.value)
    _refresh_book(store, record.book_id)
    logger.info(f"Record {record_id} moderated: {old_status} -> {new_status.value}")
    return delta


def publish(store: DataAccess, record_id: int) -> int:
    return set_moderation_status(store, record_id, ModerationStatus.PUBLISHED.value)


def unpublish(store: DataAccess, record_id: int) -> int:
    return set_moderation_status(store, record_id, ModerationStatus.PENDING.value)


def update_record(store: DataAccess, record: TranscriptionRecord) -> int:
    """Save an edited record header; an edit sends the record back to moderation.

    A published record is first taken out of the roll-ups with its stored
    values, so that the counters never see the edited values.

    Returns:
        The roll-up delta of the implied status change
    """
    if record.id is None:
        raise ValueError("Record has no id")
    stored = store.get_record(record.id)
    if stored is None:
        raise ValueError(f"Record {record.id} not found")

    delta = 0
    if stored.is_published:
        store.set_record_status(record.id, ModerationStatus.PENDING.value)
        delta = apply_status_change(store, record.id, stored.moderation_status, ModerationStatus.PENDING.value)

    record.moderation_status = ModerationStatus.PENDING.value
    store.update_record(record)
    _refresh_book(store, stored.book_id)
    if record.book_id and record.book_id != stored.book_id:
        _refresh_book(store, record.book_id)
    return delta
