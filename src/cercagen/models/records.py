"""Data models for books and transcription records.

A transcription record is a header (one act in a book) with the people named
in it and a set of typed attributes. Optional scalar fields are ``None`` when
absent; every text-bearing person field carries its own quality.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from cercagen.config.constants import MODERATION_ALIASES, PERSON_FIELDS, RECORD_TYPE_ALIASES


class RecordType(str, Enum):
    """Kind of act recorded in a book."""

    BAPTISM = "baptism"
    MARRIAGE = "marriage"
    DEATH = "death"
    CONFIRMATION = "confirmation"
    CENSUS = "census"
    RECRUITMENT = "recruitment"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None, default: "RecordType | None" = None) -> "RecordType | None":
        """Resolve an English or Catalan record-type label."""
        key = (value or "").strip().lower().replace("_", "").replace("ó", "o").replace("í", "i")
        canonical = RECORD_TYPE_ALIASES.get(key)
        if canonical is None:
            return default
        return cls(canonical)


class ModerationStatus(str, Enum):
    """Lifecycle of a transcription record."""

    PENDING = "pending"
    PUBLISHED = "published"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value: str | None, default: "ModerationStatus | None" = None) -> "ModerationStatus | None":
        """Resolve an English or Catalan moderation label."""
        canonical = MODERATION_ALIASES.get((value or "").strip().lower())
        if canonical is None:
            return default
        return cls(canonical)


class Quality(str, Enum):
    """Transcriber confidence in a field value."""

    CLEAR = "clear"
    DOUBTFUL = "doubtful"
    INCOMPLETE = "incomplete"
    ILLEGIBLE = "illegible"
    NO_RECORD = "no_record"


@dataclass
class Book:
    """A bound register; owned by the catalogue, read by the core."""

    id: int | None = None
    title: str = ""
    chronology: str = ""
    municipality_id: int | None = None
    archive_id: int | None = None
    ecclesiastic_entity_id: int | None = None
    fully_indexed: bool = False
    book_type: str = "other"


@dataclass
class TranscriptionRecord:
    """Header of one transcribed act."""

    id: int | None = None
    book_id: int | None = None
    record_type: str = RecordType.OTHER.value
    page_id: int | None = None
    page_label: str = ""
    page_position: int | None = None
    document_year: int | None = None
    act_date_text: str = ""
    act_date_iso: str | None = None
    act_date_quality: str = ""
    literal_text: str = ""
    marginal_notes: str = ""
    paleographic_notes: str = ""
    moderation_status: str = ModerationStatus.PENDING.value
    created_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_published(self) -> bool:
        return self.moderation_status == ModerationStatus.PUBLISHED.value

    @property
    def act_year(self) -> int | None:
        """Document year, else the year of the ISO act date."""
        if self.document_year:
            return self.document_year
        return year_from_iso(self.act_date_iso)


@dataclass
class TranscriptionPerson:
    """A person named in a record under a role."""

    id: int | None = None
    record_id: int | None = None
    role: str = ""
    given_name: str = ""
    given_name_quality: str = ""
    surname1: str = ""
    surname1_quality: str = ""
    surname2: str = ""
    surname2_quality: str = ""
    maiden_surname: str = ""
    maiden_surname_quality: str = ""
    sex: str = ""
    sex_quality: str = ""
    age: str = ""
    age_quality: str = ""
    civil_status: str = ""
    civil_status_quality: str = ""
    municipality: str = ""
    municipality_quality: str = ""
    occupation: str = ""
    occupation_quality: str = ""
    house: str = ""
    house_quality: str = ""
    notes: str = ""
    person_id: int | None = None

    def is_empty(self) -> bool:
        """A person with no name parts and no notes is not stored."""
        return not any(
            v.strip()
            for v in (self.given_name, self.surname1, self.surname2, self.maiden_surname, self.notes)
        )

    def get_field(self, name: str) -> str:
        """Read a field by its template name (``nom``, ``cognom1``, ``nom_estat`` ...)."""
        if name.endswith("_estat"):
            attr = PERSON_FIELDS.get(name[: -len("_estat")])
            return getattr(self, f"{attr}_quality", "") if attr and attr != "notes" else ""
        attr = PERSON_FIELDS.get(name)
        return getattr(self, attr, "") if attr else ""

    def surnames(self) -> list[str]:
        return [s for s in (self.surname1, self.surname2) if s.strip()]

    def full_name(self) -> str:
        return " ".join(p for p in (self.given_name, self.surname1, self.surname2) if p.strip())


@dataclass
class TranscriptionAttribute:
    """A typed key/value attached to a record."""

    id: int | None = None
    record_id: int | None = None
    key: str = ""
    value_type: str = "text"
    value_text: str = ""
    value_int: int | None = None
    value_date: str | None = None
    value_bool: bool | None = None
    quality: str = ""
    notes: str = ""

    def is_empty(self) -> bool:
        return (
            not self.value_text.strip()
            and self.value_int is None
            and self.value_date is None
            and self.value_bool is None
        )

    def display_value(self) -> str:
        """Populated value as text: date, else int, else bool, else text."""
        if self.value_date:
            return self.value_date
        if self.value_int is not None:
            return str(self.value_int)
        if self.value_bool is not None:
            return "1" if self.value_bool else "0"
        return self.value_text


@dataclass
class RecordBundle:
    """A record together with its people and attributes."""

    record: TranscriptionRecord
    persons: list[TranscriptionPerson] = field(default_factory=list)
    attributes: list[TranscriptionAttribute] = field(default_factory=list)

    def persons_with_role(self, role: str) -> list[TranscriptionPerson]:
        return sorted(
            (p for p in self.persons if p.role == role),
            key=lambda p: p.id or 0,
        )

    def attribute(self, key: str) -> TranscriptionAttribute | None:
        for attr in self.attributes:
            if attr.key == key:
                return attr
        return None


@dataclass
class PageStat:
    """Established number of records on a page of a book."""

    book_id: int
    page_label: str
    total_records: int


def year_from_iso(iso: str | None) -> int | None:
    """Year of an ISO ``YYYY-MM-DD`` date, or ``None``."""
    if not iso or len(iso) < 4 or not iso[:4].isdigit():
        return None
    return int(iso[:4])
