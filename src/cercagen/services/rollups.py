"""Roll-up maintainers driven by moderation-status transitions.

Publishing a record adds it to the municipality demography counters, the
given-name and surname frequency tables and the search index; unpublishing
takes it out again. Every counter is also kept for each administrative level
containing the municipality, read from the administrative closure.

Failures are logged and never raised: a roll-up that cannot be updated can
be rebuilt later with ``rebuild_demography`` / ``rebuild_frequencies``.
"""

from collections import Counter
from dataclasses import dataclass, field

from loguru import logger

from cercagen.config.constants import (
    DEMOGRAPHY_BUCKETS,
    FREQUENCY_ROLES,
    MAX_DOCUMENT_YEAR,
    MIN_DOCUMENT_YEAR,
)
from cercagen.database.dac import DataAccess
from cercagen.errors import CercagenError
from cercagen.models.records import (
    ModerationStatus,
    RecordType,
    TranscriptionPerson,
    TranscriptionRecord,
)
from cercagen.services.dictionary import resolve_or_create_cognom
from cercagen.services.search_index import index_record, remove_record
from cercagen.utils.normalize import (
    canonical_given_name_key,
    canonical_surname_key,
    sanitize_name_literal,
    sanitize_surname_literal,
)

SCOPE_MUNICIPALITY = "municipi"
SCOPE_LEVEL = "nivell"

KIND_NOM = "nom"
KIND_COGNOM = "cognom"

_UNUSABLE_QUALITIES = frozenset({"illegible", "no_record"})


def status_delta(old_status: str | None, new_status: str | None) -> int:
    """+1 when a record becomes published, -1 when it stops being published, else 0."""
    published = ModerationStatus.PUBLISHED.value
    was = old_status == published
    now = new_status == published
    if now and not was:
        return 1
    if was and not now:
        return -1
    return 0


def municipality_for_record(store: DataAccess, record: TranscriptionRecord) -> int:
    """Municipality of the record's book; 0 when unknown."""
    if not record.book_id:
        return 0
    book = store.get_book(record.book_id)
    if book is None or not book.municipality_id:
        return 0
    return book.municipality_id


# -----------------------------------------------------------------------------
# Demography
# -----------------------------------------------------------------------------


def demography_key(record: TranscriptionRecord) -> tuple[int, str] | None:
    """(year, bucket) a record counts under, or None."""
    kind = RecordType.parse(record.record_type, RecordType.OTHER).value
    bucket = DEMOGRAPHY_BUCKETS.get(kind)
    if bucket is None:
        return None
    year = record.act_year
    if year is None or not MIN_DOCUMENT_YEAR <= year <= MAX_DOCUMENT_YEAR:
        return None
    return year, bucket


def apply_demography(store: DataAccess, record: TranscriptionRecord, municipality_id: int, delta: int) -> bool:
    key = demography_key(record)
    if key is None or municipality_id <= 0 or delta == 0:
        return False
    year, bucket = key
    store.apply_demography_delta(SCOPE_MUNICIPALITY, municipality_id, year, bucket, delta)
    for level_id in store.list_admin_ancestors(municipality_id):
        store.apply_demography_delta(SCOPE_LEVEL, level_id, year, bucket, delta)
    return True


# -----------------------------------------------------------------------------
# Name and surname frequencies
# -----------------------------------------------------------------------------


@dataclass
class NameContribution:
    """Names a record contributes to the frequency tables, keyed by canonical key."""

    year: int = 0
    noms: Counter = field(default_factory=Counter)
    nom_forms: dict[str, str] = field(default_factory=dict)
    cognoms: Counter = field(default_factory=Counter)
    cognom_forms: dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return self.year <= 0 or (not self.noms and not self.cognoms)


def _usable(value: str, quality: str) -> bool:
    return "?" not in value and (quality or "").strip().lower() not in _UNUSABLE_QUALITIES


def name_contribution(record: TranscriptionRecord, persons: list[TranscriptionPerson]) -> NameContribution:
    """Given names and surnames of the record's principal roles."""
    contrib = NameContribution(year=record.act_year or 0)
    if contrib.year <= 0:
        return contrib
    kind = RecordType.parse(record.record_type, RecordType.OTHER).value
    roles = set(FREQUENCY_ROLES.get(kind, []))
    if not roles:
        return contrib

    for person in persons:
        if person.role.strip().lower() not in roles:
            continue
        if _usable(person.given_name, person.given_name_quality):
            form = sanitize_name_literal(person.given_name)
            key = canonical_given_name_key(form)
            if key:
                contrib.noms[key] += 1
                contrib.nom_forms.setdefault(key, form)
        for value, quality in (
            (person.surname1, person.surname1_quality),
            (person.surname2, person.surname2_quality),
        ):
            if not _usable(value, quality):
                continue
            form = sanitize_surname_literal(value)
            key = canonical_surname_key(form)
            if key:
                contrib.cognoms[key] += 1
                contrib.cognom_forms.setdefault(key, form)
    return contrib


def apply_frequencies(store: DataAccess, contrib: NameContribution, municipality_id: int, delta: int) -> bool:
    if contrib.is_empty() or municipality_id <= 0 or delta == 0:
        return False
    levels = store.list_admin_ancestors(municipality_id)

    def fan_out(kind: str, entity_id: int, amount: int) -> None:
        store.apply_frequency_delta(kind, entity_id, SCOPE_MUNICIPALITY, municipality_id, contrib.year, amount)
        for level_id in levels:
            store.apply_frequency_delta(kind, entity_id, SCOPE_LEVEL, level_id, contrib.year, amount)

    for key, count in contrib.noms.items():
        nom_id = store.get_or_create_nom(contrib.nom_forms.get(key) or key, key)
        fan_out(KIND_NOM, nom_id, count * delta)
    for key, count in contrib.cognoms.items():
        cognom_id = resolve_or_create_cognom(store, contrib.cognom_forms.get(key) or key)
        if cognom_id:
            fan_out(KIND_COGNOM, cognom_id, count * delta)
    return True


# -----------------------------------------------------------------------------
# Transitions
# -----------------------------------------------------------------------------


def apply_status_change(
    store: DataAccess,
    record_id: int,
    old_status: str | None,
    new_status: str | None,
) -> int:
    """Propagate a moderation-status change to every roll-up.

    Args:
        store: Data access
        record_id: Record whose status changed (already persisted)
        old_status: Status before the change, None for a new record
        new_status: Status after the change

    Returns:
        The applied delta (+1, 0 or -1)
    """
    delta = status_delta(old_status, new_status)
    if delta == 0:
        return 0

    try:
        bundle = store.get_bundle(record_id)
    except CercagenError as e:
        logger.warning(f"Roll-ups skipped for record {record_id}: {e}")
        return delta
    if bundle is None:
        logger.warning(f"Roll-ups skipped: record {record_id} not found")
        return delta

    record = bundle.record
    try:
        municipality_id = municipality_for_record(store, record)
    except CercagenError as e:
        logger.warning(f"Roll-ups skipped for record {record_id}: {e}")
        municipality_id = 0

    try:
        apply_demography(store, record, municipality_id, delta)
    except CercagenError as e:
        logger.warning(f"Demography not updated for record {record_id}: {e}")

    try:
        apply_frequencies(store, name_contribution(record, bundle.persons), municipality_id, delta)
    except CercagenError as e:
        logger.warning(f"Name frequencies not updated for record {record_id}: {e}")

    if delta > 0:
        index_record(store, record_id)
    else:
        remove_record(store, record_id)

    logger.debug(f"Record {record_id}: {old_status} -> {new_status} (delta {delta:+d})")
    return delta


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


@dataclass
class DemographyMeta:
    """Year span and per-bucket totals of a municipality."""

    municipality_id: int
    min_year: int | None = None
    max_year: int | None = None
    totals: dict[str, int] = field(default_factory=dict)


def demography_meta(store: DataAccess, municipality_id: int, scope_type: str = SCOPE_MUNICIPALITY) -> DemographyMeta:
    meta = DemographyMeta(municipality_id=municipality_id)
    rows = store.list_demography(scope_type, municipality_id)
    for year, bucket, count in rows:
        if count <= 0:
            continue
        meta.min_year = year if meta.min_year is None else min(meta.min_year, year)
        meta.max_year = year if meta.max_year is None else max(meta.max_year, year)
        meta.totals[bucket] = meta.totals.get(bucket, 0) + count
    return meta


def demography_series(
    store: DataAccess,
    scope_id: int,
    bucket: str | None = None,
    by: str = "year",
    scope_type: str = SCOPE_MUNICIPALITY,
) -> list[tuple[int, int]]:
    """``(period, count)`` pairs, by year or by decade, optionally for one bucket.

    Raises:
        ValueError: If ``by`` is neither "year" nor "decade"
    """
    if by not in ("year", "decade"):
        raise ValueError(f"Invalid series grouping: {by}")
    series: dict[int, int] = {}
    for year, row_bucket, count in store.list_demography(scope_type, scope_id):
        if bucket and row_bucket != bucket:
            continue
        period = year - year % 10 if by == "decade" else year
        series[period] = series.get(period, 0) + count
    return sorted(series.items())


# -----------------------------------------------------------------------------
# Rebuild
# -----------------------------------------------------------------------------


def _published_bundles(store: DataAccess, municipality_id: int):
    for record in store.list_published_records(municipality_id):
        yield record, store.list_persons(record.id)


def rebuild_demography(store: DataAccess, municipality_id: int) -> int:
    """Recount a municipality's demography from its published records.

    The municipality's current counters are first taken back out of its
    administrative levels, so running it twice gives the same counters.

    Returns:
        Number of records counted
    """
    if municipality_id <= 0:
        raise ValueError(f"Invalid municipality id: {municipality_id}")
    levels = store.list_admin_ancestors(municipality_id)
    for year, bucket, count in store.list_demography(SCOPE_MUNICIPALITY, municipality_id):
        for level_id in levels:
            store.apply_demography_delta(SCOPE_LEVEL, level_id, year, bucket, -count)
    store.clear_demography(SCOPE_MUNICIPALITY, municipality_id)

    counted = 0
    for record, _persons in _published_bundles(store, municipality_id):
        if apply_demography(store, record, municipality_id, 1):
            counted += 1
    logger.info(f"Demography of municipality {municipality_id} rebuilt from {counted} records")
    return counted


def rebuild_frequencies(store: DataAccess, municipality_id: int) -> int:
    """Recount a municipality's given-name and surname frequencies.

    Returns:
        Number of records counted
    """
    if municipality_id <= 0:
        raise ValueError(f"Invalid municipality id: {municipality_id}")
    levels = store.list_admin_ancestors(municipality_id)
    for kind in (KIND_NOM, KIND_COGNOM):
        for entity_id, year, count in store.list_frequencies(kind, SCOPE_MUNICIPALITY, municipality_id):
            for level_id in levels:
                store.apply_frequency_delta(kind, entity_id, SCOPE_LEVEL, level_id, year, -count)
        store.clear_frequencies(kind, SCOPE_MUNICIPALITY, municipality_id)

    counted = 0
    for record, persons in _published_bundles(store, municipality_id):
        if apply_frequencies(store, name_contribution(record, persons), municipality_id, 1):
            counted += 1
    logger.info(f"Name frequencies of municipality {municipality_id} rebuilt from {counted} records")
    return counted
