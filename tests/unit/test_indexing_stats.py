"""Tests for book indexing progress and the indexing schema registry."""

import pytest

from cercagen.models.indexing import IndexingField
from cercagen.models.records import (
    Book,
    RecordBundle,
    TranscriptionAttribute,
    TranscriptionPerson,
    TranscriptionRecord,
)
from cercagen.services.indexing_schema_registry import IndexingSchemaRegistry
from cercagen.services.indexing_stats import (
    color_for_percentage,
    compute_book_stats,
    field_value,
    percentage_of,
    person_key_index,
    recompute_book_stats,
)


class TestHelpers:
    """Test the arithmetic helpers."""

    @pytest.mark.parametrize(
        "filled,total,expected",
        [(1, 8, 13), (1, 3, 33), (2, 3, 67), (0, 0, 0), (5, 4, 100), (1, 2, 50)],
    )
    def test_percentage_rounds_half_up(self, filled: int, total: int, expected: int) -> None:
        """Test rounding and clamping of the percentage."""
        assert percentage_of(filled, total) == expected

    @pytest.mark.parametrize(
        "percentage,color",
        [(100, "green"), (80, "green"), (79, "yellow"), (60, "yellow"), (45, "orange"), (30, "orange"), (0, "pink")],
    )
    def test_color_bands(self, percentage: int, color: str) -> None:
        """Test each band's lower bound."""
        assert color_for_percentage(percentage) == color

    def test_person_key_index(self) -> None:
        """Test slot numbers in person keys."""
        assert person_key_index("testimoni2") == 2
        assert person_key_index("pare") == 1
        assert person_key_index("testimoni0") == 1


class TestSchemaRegistry:
    """Test IndexingSchemaRegistry."""

    def test_other_schema_content_fields(self) -> None:
        """Test quality companions are excluded from content fields."""
        schema = IndexingSchemaRegistry.get_schema("other")
        keys = [f.key for f in schema.content_fields()]
        assert keys == [
            "subjecte_cognom1",
            "subjecte_cognom2",
            "subjecte_nom",
            "data_acte",
            "any",
            "pagina_llibre",
            "notes_marginals",
        ]

    def test_catalan_label_resolves(self) -> None:
        """Test a Catalan record type loads the matching schema."""
        assert IndexingSchemaRegistry.get_schema("baptisme").record_type == "baptism"

    def test_unknown_type_falls_back(self) -> None:
        """Test an unknown type uses the generic schema."""
        assert IndexingSchemaRegistry.get_schema("desconegut").record_type == "other"

    def test_schema_is_cached(self) -> None:
        """Test repeated lookups return the same object."""
        assert IndexingSchemaRegistry.get_schema("death") is IndexingSchemaRegistry.get_schema("obit")

    def test_every_type_has_a_file(self) -> None:
        """Test the packaged schema files."""
        assert "baptism" in IndexingSchemaRegistry.list_record_types()
        assert "other" in IndexingSchemaRegistry.list_record_types()


class TestFieldValue:
    """Test field resolution against a record bundle."""

    def test_witness_slot_falls_back_to_first(self) -> None:
        """Test a missing nth person reads the first one."""
        bundle = RecordBundle(
            record=TranscriptionRecord(id=1),
            persons=[TranscriptionPerson(id=5, role="testimoni", given_name="Pere")],
        )
        field = IndexingField(
            key="testimoni2_nom", target="person", person_key="testimoni2", role="testimoni", person_field="nom"
        )
        assert field_value(bundle, field, {}) == "Pere"

    def test_attr_and_raw(self) -> None:
        """Test attribute and header fields."""
        bundle = RecordBundle(
            record=TranscriptionRecord(id=1, document_year=1850),
            attributes=[TranscriptionAttribute(key="data_acte", value_date="1850-01-02")],
        )
        attr = IndexingField(key="data_acte", target="attr", attr_key="data_acte")
        raw = IndexingField(key="any", target="raw", raw_field="any_doc")
        empty = IndexingField(key="notes_marginals", target="raw", raw_field="notes_marginals")
        assert field_value(bundle, attr, {}) == "1850-01-02"
        assert field_value(bundle, raw, {}) == "1850"
        assert field_value(bundle, empty, {}) == ""


class TestBookStats:
    """Test computing and storing a book's stats."""

    def test_counts_published_records_only(self, store) -> None:
        """Test a pending record does not count."""
        book = Book(title="Altres", book_type="other")
        store.create_book(book)
        published = TranscriptionRecord(book_id=book.id, document_year=1850, moderation_status="published")
        store.create_record(published)
        store.create_person(
            TranscriptionPerson(record_id=published.id, role="subjecte", given_name="Joan", surname1="Puig")
        )
        store.create_record(TranscriptionRecord(book_id=book.id, document_year=1851))

        stats = compute_book_stats(store, book.id)

        assert stats.total_records == 1
        assert stats.total_fields == 7
        assert stats.filled_fields == 3
        assert stats.percentage == 43
        assert stats.color == "orange"

    def test_empty_book(self, store, book) -> None:
        """Test a book without published records is at zero."""
        stats = compute_book_stats(store, book.id)
        assert stats.total_records == 0
        assert stats.percentage == 0
        assert stats.color == "pink"

    def test_missing_book(self, store) -> None:
        """Test an unknown book has no stats."""
        assert compute_book_stats(store, 999) is None
        assert recompute_book_stats(store, 999) is None

    def test_recompute_stores(self, store, book) -> None:
        """Test recomputed stats are persisted."""
        recompute_book_stats(store, book.id)
        stored = store.get_indexing_stats(book.id)
        assert stored is not None
        assert stored.book_id == book.id
        assert stored.color == "pink"
