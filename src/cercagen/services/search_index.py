"""Search documents for published transcription records, and the query side.

Each published record with at least one named person gets one SearchDoc.
Name, surname and full-name strings come from the record's principal
person; the token and phonetic strings cover every person in the record so
that parents, godparents and witnesses are searchable too.
"""

from dataclasses import dataclass, field

from loguru import logger

from cercagen.config import get_config
from cercagen.config.constants import SEARCH_STOPWORDS
from cercagen.database.dac import DataAccess
from cercagen.errors import CercagenError
from cercagen.models.records import Book, RecordBundle, TranscriptionPerson
from cercagen.models.search import SearchDoc, SearchHit
from cercagen.services.dictionary import resolve_cognom
from cercagen.utils.normalize import normalize_search_text, phonetic_code, phonetic_string, tokenize

ENTITY_TYPE = "transcription"

# Roles checked in order when picking a record's principal person
PRINCIPAL_ROLES = ("batejat", "difunt", "confirmat", "nuvi", "novia", "persona_principal")

REASON_WEIGHTS: dict[str, int] = {
    "exact_full": 100,
    "surname_variant": 60,
    "partial_tokens": 30,
    "phonetic": 10,
}

MATCH_INFO_LIMIT = 3


@dataclass
class SearchFilters:
    municipality_id: int | None = None
    book_id: int | None = None
    archive_id: int | None = None
    year_from: int | None = None
    year_to: int | None = None


@dataclass
class SearchQuery:
    """A user query after normalization and dictionary expansion."""

    text: str
    norm: str = ""
    tokens: list[str] = field(default_factory=list)
    canon_tokens: list[str] = field(default_factory=list)
    variant_tokens: list[str] = field(default_factory=list)
    phonetic_codes: list[str] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Document building
# -----------------------------------------------------------------------------


def principal_person(persons: list[TranscriptionPerson]) -> TranscriptionPerson | None:
    """The record's subject by role priority, else its first named person."""
    named = [p for p in persons if not p.is_empty()]
    for role in PRINCIPAL_ROLES:
        for person in named:
            if person.role == role:
                return person
    return named[0] if named else None


def canonical_surnames(store: DataAccess, surnames: list[str]) -> list[str]:
    """Normalized canonical form of each surname, raw form when unknown; no duplicates."""
    out: list[str] = []
    for surname in surnames:
        if not surname.strip():
            continue
        cognom = resolve_cognom(store, surname)
        canon = normalize_search_text(cognom.form) if cognom else ""
        if not canon:
            canon = normalize_search_text(surname)
        if canon and canon not in out:
            out.append(canon)
    return out


def build_search_doc(store: DataAccess, bundle: RecordBundle, book: Book | None) -> SearchDoc | None:
    """Build the search document of a record, or None when nobody is named."""
    principal = principal_person(bundle.persons)
    if principal is None:
        return None

    given_names = [p.given_name for p in bundle.persons if p.given_name.strip()]
    surnames = [s for p in bundle.persons for s in p.surnames()]
    person_tokens = tokenize(*given_names, *surnames)
    surname_tokens = tokenize(*surnames)

    nom_norm = normalize_search_text(principal.given_name)
    cognoms_norm = normalize_search_text(" ".join(principal.surnames()))
    record = bundle.record
    doc = SearchDoc(
        entity_type=ENTITY_TYPE,
        entity_id=record.id,
        published=True,
        person_nom_norm=nom_norm,
        person_cognoms_norm=cognoms_norm,
        person_full_norm=" ".join(p for p in (nom_norm, cognoms_norm) if p),
        person_tokens_norm=" ".join(person_tokens),
        cognoms_tokens_norm=" ".join(surname_tokens),
        person_phonetic=phonetic_string(person_tokens),
        cognoms_phonetic=phonetic_string(surname_tokens),
        cognoms_canon=" ".join(canonical_surnames(store, surnames)),
        act_date=record.act_date_iso,
        act_year=record.act_year,
    )
    if book is not None:
        doc.municipality_id = book.municipality_id
        doc.book_id = book.id
        doc.archive_id = book.archive_id
        doc.ecclesiastic_entity_id = book.ecclesiastic_entity_id
    return doc


def _index_record(store: DataAccess, record_id: int) -> bool:
    bundle = store.get_bundle(record_id)
    if bundle is None or not bundle.record.is_published:
        store.delete_search_doc(ENTITY_TYPE, record_id)
        return False
    book = store.get_book(bundle.record.book_id) if bundle.record.book_id else None
    doc = build_search_doc(store, bundle, book)
    if doc is None:
        store.delete_search_doc(ENTITY_TYPE, record_id)
        return False
    store.upsert_search_doc(doc)
    return True


def index_record(store: DataAccess, record_id: int) -> bool:
    """Upsert the record's document when published, delete it otherwise.

    Storage failures are logged, never raised.

    Returns:
        True if a document now exists for the record
    """
    try:
        return _index_record(store, record_id)
    except CercagenError as e:
        logger.warning(f"Could not index record {record_id}: {e}")
        return False


def remove_record(store: DataAccess, record_id: int) -> None:
    try:
        store.delete_search_doc(ENTITY_TYPE, record_id)
    except CercagenError as e:
        logger.warning(f"Could not remove search document of record {record_id}: {e}")


def rebuild_search_index(store: DataAccess) -> tuple[int, int]:
    """Re-derive every record document from scratch.

    Returns:
        (indexed, failed) counts
    """
    store.clear_search_docs(ENTITY_TYPE)
    indexed = failed = 0
    for record in store.list_published_records():
        try:
            if _index_record(store, record.id):
                indexed += 1
        except CercagenError as e:
            failed += 1
            logger.warning(f"Search rebuild: record {record.id} failed: {e}")
    logger.info(f"Search index rebuilt: {indexed} documents, {failed} failures")
    return indexed, failed


# -----------------------------------------------------------------------------
# Query side
# -----------------------------------------------------------------------------


def normalize_query_tokens(text: str) -> list[str]:
    """Query tokens: ``y`` read as ``i``, particles and 1-letter tokens dropped."""
    out: list[str] = []
    for token in normalize_search_text(text).split():
        if token == "y":
            token = "i"
        elif token in SEARCH_STOPWORDS:
            continue
        if len(token) < 2 or token in out:
            continue
        out.append(token)
    return out


def expand_surname_tokens(store: DataAccess, tokens: list[str]) -> tuple[list[str], list[str]]:
    """Canonical and variant token lists for the query tokens.

    A token that resolves to a canonical surname contributes the canonical's
    normalized form, and all published variant forms become variant tokens.
    Unknown tokens stand for themselves as canonicals.
    """
    canon: list[str] = []
    variants: list[str] = []
    for token in tokens:
        canon_token = token
        cognom = resolve_cognom(store, token)
        if cognom is not None:
            canon_token = normalize_search_text(cognom.form) or token
            forms = [cognom.form] + [v.form for v in store.list_cognom_variants(cognom.id)]
            for form in forms:
                norm = normalize_search_text(form)
                if norm and norm not in variants:
                    variants.append(norm)
            if canon_token != token and token not in variants:
                variants.append(token)
        if canon_token not in canon:
            canon.append(canon_token)
    return canon, variants


def prepare_query(store: DataAccess, text: str) -> SearchQuery:
    query = SearchQuery(text=text, norm=normalize_search_text(text))
    query.tokens = normalize_query_tokens(text)
    if query.tokens:
        query.canon_tokens, query.variant_tokens = expand_surname_tokens(store, query.tokens)
        query.phonetic_codes = [c for c in (phonetic_code(t) for t in query.tokens) if c]
    return query


def _contains_any(haystack: str, needles: list[str]) -> bool:
    if not haystack.strip():
        return False
    return any(n and n in haystack for n in needles)


def match_reasons(doc: SearchDoc, query: SearchQuery) -> list[str]:
    """Reason codes under which a document matches the query."""
    if not query.norm:
        return []
    reasons: list[str] = []
    if doc.person_full_norm == query.norm:
        reasons.append("exact_full")
    if query.variant_tokens and _contains_any(doc.cognoms_canon, query.canon_tokens):
        reasons.append("surname_variant")
    if _contains_any(doc.person_tokens_norm, query.tokens) or _contains_any(doc.cognoms_tokens_norm, query.tokens):
        reasons.append("partial_tokens")
    if _contains_any(doc.person_phonetic, query.phonetic_codes) or _contains_any(
        doc.cognoms_phonetic, query.phonetic_codes
    ):
        reasons.append("phonetic")
    return reasons


def score_reasons(reasons: list[str]) -> int:
    return sum(REASON_WEIGHTS.get(r, 0) for r in reasons)


def search(
    store: DataAccess,
    text: str,
    filters: SearchFilters | None = None,
    limit: int | None = None,
) -> list[SearchHit]:
    """Run a free-text person query against the published documents.

    Hits are ranked by score, then by act year and entity id.
    """
    filters = filters or SearchFilters()
    limit = limit or get_config().search_result_limit
    query = prepare_query(store, text)
    if not query.norm:
        return []

    hits: list[SearchHit] = []
    docs = store.list_search_docs(
        municipality_id=filters.municipality_id,
        book_id=filters.book_id,
        archive_id=filters.archive_id,
        year_from=filters.year_from,
        year_to=filters.year_to,
    )
    for doc in docs:
        reasons = match_reasons(doc, query)
        if reasons:
            hits.append(SearchHit(doc=doc, score=score_reasons(reasons), reasons=reasons))

    hits.sort(key=lambda h: (-h.score, h.doc.act_year or 0, h.doc.entity_id))
    logger.debug(f"Search '{text}': {len(hits)} hits (tokens={query.tokens}, canon={query.canon_tokens})")
    return hits[:limit]


def match_info(labels: list[str]) -> str:
    """Short summary of matched labels: the first three, then ``+N``."""
    unique: list[str] = []
    for label in labels:
        if label and label not in unique:
            unique.append(label)
    if not unique:
        return ""
    shown = " · ".join(unique[:MATCH_INFO_LIMIT])
    extra = len(unique) - MATCH_INFO_LIMIT
    return f"{shown} · +{extra}" if extra > 0 else shown
