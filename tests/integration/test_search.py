"""Integration tests for the search index and person queries."""

import pytest

from cercagen.models.records import TranscriptionPerson, TranscriptionRecord
from cercagen.services.moderation import publish, unpublish
from cercagen.services.search_index import (
    ENTITY_TYPE,
    SearchFilters,
    match_info,
    normalize_query_tokens,
    principal_person,
    rebuild_search_index,
    search,
)

pytestmark = pytest.mark.integration


def _published(store, book_id: int, year: int, *persons: TranscriptionPerson) -> int:
    record = TranscriptionRecord(book_id=book_id, record_type="baptism", document_year=year)
    store.create_record(record)
    for person in persons:
        person.record_id = record.id
        store.create_person(person)
    publish(store, record.id)
    return record.id


@pytest.fixture
def joan(store, book) -> int:
    return _published(
        store,
        book.id,
        1803,
        TranscriptionPerson(role="batejat", given_name="Joan", surname1="Puig", surname2="Ferrer"),
        TranscriptionPerson(role="padri", given_name="Pere", surname1="Mas"),
    )


class TestSearchDocument:
    """Test the stored search document."""

    def test_document_fields(self, store, book, joan: int) -> None:
        """Test names come from the principal and tokens from everyone."""
        doc = store.get_search_doc(ENTITY_TYPE, joan)

        assert doc.person_nom_norm == "joan"
        assert doc.person_cognoms_norm == "puig ferrer"
        assert doc.person_full_norm == "joan puig ferrer"
        assert doc.person_tokens_norm == "joan pere puig ferrer mas"
        assert doc.cognoms_tokens_norm == "puig ferrer mas"
        assert doc.book_id == book.id
        assert doc.act_year == 1803

    def test_record_without_names_has_no_document(self, store, book) -> None:
        """Test records naming nobody are not indexed."""
        record_id = _published(store, book.id, 1803)
        assert store.get_search_doc(ENTITY_TYPE, record_id) is None

    def test_principal_person_priority(self) -> None:
        """Test role priority, then the first named person."""
        padri = TranscriptionPerson(role="padri", given_name="Pere")
        batejat = TranscriptionPerson(role="batejat", given_name="Joan")
        assert principal_person([padri, batejat]) is batejat
        assert principal_person([TranscriptionPerson(role="pare"), padri]) is padri
        assert principal_person([]) is None


class TestSearch:
    """Test query matching and ranking."""

    def test_given_name(self, store, joan: int) -> None:
        """Test a single given name matches by token and sound."""
        [hit] = search(store, "Joan")

        assert hit.doc.entity_id == joan
        assert hit.reasons == ["partial_tokens", "phonetic"]
        assert hit.score == 40

    def test_exact_full_name(self, store, joan: int) -> None:
        """Test the full normalized name scores highest."""
        [hit] = search(store, "Joan Puig Ferrer")

        assert hit.reasons == ["exact_full", "partial_tokens", "phonetic"]
        assert hit.score == 140

    def test_partial_tokens_needs_one_token(self, store, joan: int) -> None:
        """Test a single matching token is enough for a partial match."""
        [hit] = search(store, "Joan Xyzq")

        assert hit.doc.entity_id == joan
        assert "partial_tokens" in hit.reasons

    def test_accents_and_case_ignored(self, store, joan: int) -> None:
        """Test folded matching."""
        assert [h.doc.entity_id for h in search(store, "JOÀN")] == [joan]

    def test_surname_variant(self, store, joan: int) -> None:
        """Test a dictionary variant finds records of its canonical surname."""
        canonical_id = store.create_cognom("Puig", "PUIG")
        store.add_cognom_variant(canonical_id, "Puch", "PUCH")

        [hit] = search(store, "Puch")

        assert hit.reasons == ["surname_variant", "phonetic"]
        assert hit.score == 70

    def test_ranking(self, store, book, joan: int) -> None:
        """Test higher scores first, then older records."""
        other = _published(store, book.id, 1801, TranscriptionPerson(role="batejat", given_name="Joan", surname1="Mas"))

        hits = search(store, "Joan Puig Ferrer")

        assert [h.doc.entity_id for h in hits] == [joan, other]

    def test_filters(self, store, book, joan: int) -> None:
        """Test book and year filters."""
        assert search(store, "Joan", SearchFilters(book_id=book.id)) != []
        assert search(store, "Joan", SearchFilters(year_from=1804)) == []
        assert search(store, "Joan", SearchFilters(year_to=1803)) != []

    def test_unpublished_not_found(self, store, joan: int) -> None:
        """Test unpublishing hides the record."""
        unpublish(store, joan)
        assert search(store, "Joan") == []

    def test_empty_query(self, store, joan: int) -> None:
        """Test a blank query matches nothing."""
        assert search(store, "  ") == []

    def test_limit(self, store, book) -> None:
        """Test the result limit."""
        for year in (1801, 1802, 1803):
            _published(store, book.id, year, TranscriptionPerson(role="batejat", given_name="Joan"))
        assert len(search(store, "Joan", limit=2)) == 2


class TestQueryTokens:
    """Test query tokenization."""

    def test_particles_dropped(self) -> None:
        """Test particles and one-letter tokens are dropped."""
        assert normalize_query_tokens("Maria de la Puig y Ferrer") == ["maria", "puig", "ferrer"]

    def test_duplicates_dropped(self) -> None:
        """Test repeated tokens appear once."""
        assert normalize_query_tokens("Puig puig") == ["puig"]


class TestRebuild:
    """Test rebuilding the index."""

    def test_rebuild(self, store, book, joan: int) -> None:
        """Test every published record is indexed again."""
        store.clear_search_docs(ENTITY_TYPE)

        assert rebuild_search_index(store) == (1, 0)
        assert store.get_search_doc(ENTITY_TYPE, joan) is not None


class TestMatchInfo:
    """Test match_info."""

    def test_truncated(self) -> None:
        """Test the first three labels then a count."""
        assert match_info(["a", "b", "a", "c", "d", "e"]) == "a · b · c · +2"

    def test_short(self) -> None:
        """Test fewer labels than the limit."""
        assert match_info(["Puig", "", "Ferrer"]) == "Puig · Ferrer"
        assert match_info([]) == ""
