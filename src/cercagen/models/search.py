"""Search document and search hit models."""

from dataclasses import dataclass, field


@dataclass
class SearchDoc:
    """Denormalized, pre-tokenized view of one publishable entity."""

    entity_type: str
    entity_id: int
    published: bool = True
    person_nom_norm: str = ""
    person_cognoms_norm: str = ""
    person_full_norm: str = ""
    person_tokens_norm: str = ""
    cognoms_tokens_norm: str = ""
    person_phonetic: str = ""
    cognoms_phonetic: str = ""
    cognoms_canon: str = ""
    municipality_id: int | None = None
    book_id: int | None = None
    archive_id: int | None = None
    ecclesiastic_entity_id: int | None = None
    act_date: str | None = None
    act_year: int | None = None


@dataclass
class SearchHit:
    doc: SearchDoc
    score: int
    reasons: list[str] = field(default_factory=list)
