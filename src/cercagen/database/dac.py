"""Data-access contract consumed by the ingestion core.

Services depend on this protocol rather than on SQLite, so another backend
only has to provide these operations. Each call is atomic on its own; no
operation spans a multi-call transaction.
"""

from datetime import date, datetime
from typing import Protocol

from cercagen.models.achievements import Achievement, ActivityFilter, UserAchievement, UserActivity
from cercagen.models.dictionary import CognomCanonical, CognomVariant, Nom
from cercagen.models.indexing import BookIndexingStats
from cercagen.models.records import (
    Book,
    PageStat,
    RecordBundle,
    TranscriptionAttribute,
    TranscriptionPerson,
    TranscriptionRecord,
)
from cercagen.models.search import SearchDoc
from cercagen.models.template import ImportTemplate
from cercagen.models.territory import AdminLevel, Country, Municipality


class DataAccess(Protocol):
    # Books and records
    def get_book(self, book_id: int) -> Book | None: ...
    def list_books(self, municipality_id: int | None = None, archive_id: int | None = None) -> list[Book]: ...
    def create_record(self, record: TranscriptionRecord) -> int: ...
    def update_record(self, record: TranscriptionRecord) -> None: ...
    def set_record_status(self, record_id: int, status: str) -> None: ...
    def get_record(self, record_id: int) -> TranscriptionRecord | None: ...
    def list_records(self, book_id: int, published_only: bool = False) -> list[TranscriptionRecord]: ...
    def list_published_records(self, municipality_id: int | None = None) -> list[TranscriptionRecord]: ...
    def get_bundle(self, record_id: int) -> RecordBundle | None: ...
    def create_person(self, person: TranscriptionPerson) -> int: ...
    def list_persons(self, record_id: int) -> list[TranscriptionPerson]: ...
    def create_attribute(self, attr: TranscriptionAttribute) -> int: ...
    def list_attributes(self, record_id: int) -> list[TranscriptionAttribute]: ...
    def list_page_stats(self, book_id: int) -> list[PageStat]: ...
    def count_records_by_page_value(self, book_id: int, value: str) -> int: ...
    def upsert_indexing_stats(self, stats: BookIndexingStats) -> None: ...
    def get_indexing_stats(self, book_id: int) -> BookIndexingStats | None: ...

    # Territory
    def create_country(self, country: Country) -> int: ...
    def list_countries(self) -> list[Country]: ...
    def create_level(self, level: AdminLevel) -> int: ...
    def get_level(self, level_id: int) -> AdminLevel | None: ...
    def list_levels(self) -> list[AdminLevel]: ...
    def create_municipality(self, mun: Municipality) -> int: ...
    def set_municipality_parent(self, municipality_id: int, parent_id: int | None) -> None: ...
    def get_municipality(self, municipality_id: int) -> Municipality | None: ...
    def list_municipalities(self) -> list[Municipality]: ...
    def replace_admin_closure(self, municipality_id: int, entries: list[tuple[str, int]]) -> None: ...

    # Roll-ups and dictionaries
    def list_admin_ancestors(self, municipality_id: int) -> list[int]: ...
    def apply_demography_delta(self, scope_type: str, scope_id: int, year: int, bucket: str, delta: int) -> None: ...
    def list_demography(self, scope_type: str, scope_id: int) -> list[tuple[int, str, int]]: ...
    def clear_demography(self, scope_type: str, scope_id: int) -> None: ...
    def apply_frequency_delta(
        self, kind: str, entity_id: int, scope_type: str, scope_id: int, year: int, delta: int
    ) -> None: ...
    def list_frequencies(self, kind: str, scope_type: str, scope_id: int) -> list[tuple[int, int, int]]: ...
    def clear_frequencies(self, kind: str, scope_type: str, scope_id: int) -> None: ...
    def create_cognom(self, form: str, key: str) -> int: ...
    def get_cognom(self, cognom_id: int) -> CognomCanonical | None: ...
    def find_cognom_by_key(self, key: str) -> CognomCanonical | None: ...
    def find_variant_by_key(self, key: str) -> CognomVariant | None: ...
    def list_cognom_variants(self, canonical_id: int, published_only: bool = True) -> list[CognomVariant]: ...
    def get_or_create_nom(self, form: str, key: str) -> int: ...
    def find_nom_by_key(self, key: str) -> Nom | None: ...

    # Templates
    def create_template(self, template: ImportTemplate) -> int: ...
    def update_template(self, template: ImportTemplate) -> None: ...
    def get_template(self, template_id: int) -> ImportTemplate | None: ...
    def list_templates(self, owner_id: int | None = None, include_public: bool = True) -> list[ImportTemplate]: ...

    # Search
    def upsert_search_doc(self, doc: SearchDoc) -> None: ...
    def delete_search_doc(self, entity_type: str, entity_id: int) -> None: ...
    def clear_search_docs(self, entity_type: str) -> None: ...
    def list_search_docs(
        self,
        municipality_id: int | None = None,
        book_id: int | None = None,
        archive_id: int | None = None,
        year_from: int | None = None,
        year_to: int | None = None,
    ) -> list[SearchDoc]: ...

    # Achievements
    def save_achievement(self, achievement: Achievement) -> int: ...
    def list_enabled_achievements(self) -> list[Achievement]: ...
    def list_user_achievements(self, user_id: int) -> list[UserAchievement]: ...
    def award_achievement(self, user_id: int, achievement_id: int, status: str, meta: dict) -> bool: ...
    def is_achievement_event_active(self, code: str, at: datetime) -> bool: ...
    def get_points_for_rule(self, code: str) -> int: ...
    def insert_activity(self, activity: UserActivity) -> int: ...
    def count_activities(self, f: ActivityFilter) -> int: ...
    def sum_activity_points(self, f: ActivityFilter) -> int: ...
    def count_distinct_activity_objects(self, f: ActivityFilter) -> int: ...
    def list_activity_days(self, f: ActivityFilter) -> list[date]: ...
