"""Integration tests for CSV ingestion against a SQLite store."""

import copy
import io
import threading

import pytest

from cercagen.import_templates.export import export_sample_csv
from cercagen.import_templates.validation import load_template
from cercagen.models.records import Book, TranscriptionPerson, TranscriptionRecord
from cercagen.models.territory import LEVEL_SLOTS, Country, Municipality
from cercagen.services.ingestion import ImportScope, ingest
from cercagen.services.moderation import publish, unpublish
from cercagen.services.search_index import ENTITY_TYPE, search
from cercagen.services.territory import rebuild_admin_closure

pytestmark = pytest.mark.integration

HEADER = "llibre_id,batejat,any_doc,data_naixement\n"


def _csv(text: str) -> io.StringIO:
    return io.StringIO(text, newline="")


def _with_policies(template: dict, policies: dict) -> dict:
    doc = copy.deepcopy(template)
    doc["policies"] = policies
    return doc


MERGE_POLICY = {
    "merge_existing": {
        "mode": "by_principal_person_if_book_indexed",
        "update_missing_only": True,
        "add_missing_attrs": True,
    }
}


@pytest.fixture
def indexed_book(store) -> Book:
    book = Book(title="Baptismes 1800-1810", chronology="1800-1810", book_type="baptism", fully_indexed=True)
    store.create_book(book)
    return book


def _existing_baptism(store, book_id: int) -> int:
    record = TranscriptionRecord(book_id=book_id, record_type="baptism")
    store.create_record(record)
    store.create_person(TranscriptionPerson(record_id=record.id, role="batejat", given_name="Joan", surname1="Puig"))
    return record.id


class TestCreate:
    """Test rows that create new records."""

    def test_creates_record_with_people_and_attributes(self, store, book, baptism_template: dict) -> None:
        """Test one row becomes a header, a person and an attribute."""
        result = ingest(store, baptism_template, _csv(HEADER + f"{book.id},Puig Joan,1803,12/03/1803\n"))

        assert result.created == 1
        assert result.failed == 0
        assert result.touched_book_ids == {book.id}

        [record] = store.list_records(book.id)
        assert record.record_type == "baptism"
        assert record.document_year == 1803
        assert record.moderation_status == "pending"
        assert record.act_date_quality == "no_record"

        [person] = store.list_persons(record.id)
        assert person.role == "batejat"
        assert person.surname1 == "Puig"
        assert person.given_name == "Joan"

        [attr] = store.list_attributes(record.id)
        assert attr.key == "data_naixement"
        assert attr.value_date == "1803-03-12"

    def test_blank_lines_are_skipped(self, store, book, baptism_template: dict) -> None:
        """Test rows without any value are ignored and keep numbering."""
        text = HEADER + f"{book.id},Puig Joan,1803,\n,,,\n999,Puig Pere,1804,\n"
        result = ingest(store, baptism_template, _csv(text))

        assert result.created == 1
        assert [e.row for e in result.errors] == [4]

    def test_header_aliases(self, store, book) -> None:
        """Test a column is found through an alias and normalized headers."""
        template = {
            "record_type": "baptism",
            "mapping": {
                "columns": [
                    {"header": "llibre_id", "aliases": ["Llibre"], "required": True, "map_to": ["base.llibre_id"]},
                    {"header": "batejat", "aliases": ["Nom del batejat"], "map_to": ["person.batejat"]},
                ]
            },
        }
        result = ingest(store, template, _csv(f"Llibre,NOM DEL BATEJAT\n{book.id},Puig Joan\n"))

        assert result.created == 1
        [record] = store.list_records(book.id)
        assert store.list_persons(record.id)[0].surname1 == "Puig"

    def test_conditional_column(self, store, book) -> None:
        """Test a column condition chooses between its two branches."""
        template = {
            "record_type": "generic",
            "mapping": {
                "columns": [
                    {"header": "llibre_id", "map_to": ["base.llibre_id"]},
                    {"header": "batejat", "map_to": ["person.batejat"]},
                    {
                        "header": "legitim",
                        "condition": {
                            "expr": "value == 'si'",
                            "then": {"map_to": ["attr.legitim.bool"]},
                            "else": {"map_to": ["base.notes_marginals"]},
                        },
                    },
                ]
            },
        }
        text = f"llibre_id,batejat,legitim\n{book.id},Puig Joan,si\n{book.id},Puig Pere,potser\n"
        result = ingest(store, template, _csv(text))

        assert result.created == 2
        first, second = store.list_records(book.id)
        [attr] = store.list_attributes(first.id)
        assert attr.key == "legitim"
        assert attr.value_bool is True
        assert first.marginal_notes == ""
        assert second.marginal_notes == "potser"
        assert store.list_attributes(second.id) == []

    def test_user_is_stamped(self, store, book, baptism_template: dict) -> None:
        """Test created_by comes from the caller."""
        ingest(store, baptism_template, _csv(HEADER + f"{book.id},Puig Joan,1803,\n"), user_id=42)
        assert store.list_records(book.id)[0].created_by == 42

    def test_published_policy_indexes_record(self, store, book, baptism_template: dict) -> None:
        """Test records imported as published are searchable at once."""
        template = _with_policies(baptism_template, {"moderation_status": "publicat"})

        result = ingest(store, template, _csv(HEADER + f"{book.id},Puig Joan,1803,12/03/1803\n"))

        [record] = store.list_records(book.id)
        assert result.created == 1
        assert record.moderation_status == "published"
        assert store.get_search_doc(ENTITY_TYPE, record.id) is not None
        assert [hit.doc.entity_id for hit in search(store, "Puig")] == [record.id]

    def test_sample_file_ingests_cleanly(self, store, book, baptism_template: dict) -> None:
        """Test the sample CSV of a template imports without failures."""
        model = load_template(baptism_template)
        sample = export_sample_csv(model, ",", book_ids=[book.id])

        result = ingest(store, model, _csv(sample))

        assert result.failed == 0
        assert result.created == 2


class TestRowErrors:
    """Test row-level problems are reported, not raised."""

    def test_within_file_dedup(self, store, book) -> None:
        """Test an identical key on a later row reports the first row."""
        template = {
            "record_type": "baptism",
            "book_resolution": {"mode": "by_id", "column": "llibre"},
            "mapping": {
                "columns": [
                    {"header": "llibre", "map_to": ["base.llibre_id"]},
                    {
                        "header": "cognoms",
                        "map_to": [{"target": "person.batejat", "transforms": ["parse_person_from_cognoms"]}],
                    },
                    {
                        "header": "bateig",
                        "map_to": [{"target": "attr.data_bateig.date", "transforms": ["parse_ddmmyyyy_to_iso"]}],
                    },
                ]
            },
            "policies": {"dedup": {"key_fields": ["llibre", "cognoms", "bateig"]}},
        }
        row = f"{book.id},Puig Joan,12/03/1803\n"

        result = ingest(store, template, _csv("llibre,cognoms,bateig\n" + row + row))

        assert result.created == 1
        assert result.failed == 1
        error = result.errors[0]
        assert error.row == 3
        assert error.reason == "duplicate_row"
        assert error.fields == {"duplicate_row": "2"}

    def test_book_not_found(self, store, book, baptism_template: dict) -> None:
        """Test an unknown book id is reported with the book cell."""
        result = ingest(store, baptism_template, _csv(HEADER + "999,Puig Joan,1803,\n"))

        assert result.created == 0
        error = result.errors[0]
        assert error.row == 2
        assert error.reason == "book_not_found"
        assert error.fields == {"llibre_id": "999"}

    def test_missing_book_id(self, store, book, baptism_template: dict) -> None:
        """Test an empty book cell is a missing book."""
        result = ingest(store, baptism_template, _csv(HEADER + ",Puig Joan,1803,\n"))
        assert result.errors[0].reason == "book_not_found"

    def test_invalid_year(self, store, book, baptism_template: dict) -> None:
        """Test years outside the accepted range are rejected."""
        result = ingest(store, baptism_template, _csv(HEADER + f"{book.id},Puig Joan,1100,\n"))

        assert result.created == 0
        assert result.errors[0].reason == "invalid_year"
        assert result.errors[0].fields == {"any_doc": "1100"}
        assert store.list_records(book.id) == []

    def test_year_from_act_date(self, store, book) -> None:
        """Test the document year falls back to the year of the act date."""
        template = {
            "record_type": "baptism",
            "mapping": {
                "columns": [
                    {"header": "llibre_id", "map_to": ["base.llibre_id"]},
                    {
                        "header": "data",
                        "map_to": [
                            {"target": "base.data_acte_iso", "transforms": ["parse_date_flexible_to_base_data_acte"]}
                        ],
                    },
                ]
            },
        }
        ingest(store, template, _csv(f"llibre_id,data\n{book.id},12/03/1803\n"))

        [record] = store.list_records(book.id)
        assert record.act_date_iso == "1803-03-12"
        assert record.act_date_quality == "clear"
        assert record.document_year == 1803


class TestFileErrors:
    """Test problems that stop the whole file."""

    def test_missing_required_column(self, store, book, baptism_template: dict) -> None:
        """Test a required column absent from the header."""
        result = ingest(store, baptism_template, _csv("batejat,any_doc\nPuig Joan,1803\n"))

        assert result.created == 0
        error = result.errors[0]
        assert error.row == 0
        assert error.reason == "missing_column"
        assert error.fields == {"column": "llibre_id"}

    def test_invalid_separator(self, store, baptism_template: dict) -> None:
        """Test separators outside the allowed set."""
        result = ingest(store, baptism_template, _csv(HEADER), separator=":")
        assert result.errors[0].reason == "invalid_separator"

    def test_escaped_tab_separator(self, store, book, baptism_template: dict) -> None:
        """Test a literal backslash-t is read as tab."""
        text = "llibre_id\tbatejat\tany_doc\tdata_naixement\n" + f"{book.id}\tPuig Joan\t1803\t\n"
        result = ingest(store, baptism_template, _csv(text), separator="\\t")
        assert result.created == 1

    def test_empty_file(self, store, baptism_template: dict) -> None:
        """Test a file with no header."""
        result = ingest(store, baptism_template, _csv(""))
        assert result.errors[0].reason == "invalid_header"

    @pytest.mark.parametrize(
        "template",
        [
            "{bad",
            {"mapping": {"columns": [{"header": "a", "map_to": ["foo.bar"]}]}},
        ],
    )
    def test_invalid_template(self, store, template) -> None:
        """Test unparseable and rule-breaking templates."""
        result = ingest(store, template, _csv(HEADER))

        assert result.failed == 1
        assert result.errors[0].row == 0
        assert result.errors[0].reason == "invalid_template"

    def test_cancelled_before_first_row(self, store, book, baptism_template: dict) -> None:
        """Test a set cancel event stops the run."""
        cancel = threading.Event()
        cancel.set()

        result = ingest(store, baptism_template, _csv(HEADER + f"{book.id},Puig Joan,1803,\n"), cancel_event=cancel)

        assert result.cancelled is True
        assert result.created == 0
        assert result.to_dict()["cancelled"] is True


class TestBookResolution:
    """Test how each row finds its book."""

    def test_fixed_book(self, store, book, baptism_template: dict) -> None:
        """Test an empty book cell goes to the fixed book."""
        result = ingest(store, baptism_template, _csv(HEADER + ",Puig Joan,1803,\n"), fixed_book_id=book.id)

        assert result.created == 1
        assert len(store.list_records(book.id)) == 1

    def test_fixed_book_mismatch(self, store, book, baptism_template: dict) -> None:
        """Test a row naming another book is rejected."""
        other = Book(title="Altres", chronology="1811-1820", book_type="baptism")
        store.create_book(other)

        result = ingest(
            store, baptism_template, _csv(HEADER + f"{other.id},Puig Joan,1803,\n"), fixed_book_id=book.id
        )

        assert result.errors[0].reason == "book_mismatch"

    def test_unknown_fixed_book(self, store, baptism_template: dict) -> None:
        """Test an unknown fixed book stops the file."""
        result = ingest(store, baptism_template, _csv(HEADER + "1,Puig Joan,1803,\n"), fixed_book_id=404)

        assert result.errors[0].row == 0
        assert result.errors[0].reason == "book_not_found"

    def test_scope_restricts_books(self, store, baptism_template: dict) -> None:
        """Test books outside the caller's municipality are not found."""
        elsewhere = Book(title="Fora", chronology="1800-1810", municipality_id=2)
        store.create_book(elsewhere)

        result = ingest(
            store,
            baptism_template,
            _csv(HEADER + f"{elsewhere.id},Puig Joan,1803,\n"),
            scope=ImportScope(municipality_id=1),
        )

        assert result.errors[0].reason == "book_not_found"

    @pytest.fixture
    def chronology_template(self) -> dict:
        return {
            "record_type": "baptism",
            "book_resolution": {"mode": "cronologia_lookup", "column": "cronologia", "normalize_cronologia": True},
            "mapping": {
                "columns": [
                    {"header": "cronologia", "required": True, "map_to": ["base.llibre_id"]},
                    {"header": "batejat", "map_to": ["person.batejat"]},
                ]
            },
        }

    def test_by_chronology(self, store, book, chronology_template: dict) -> None:
        """Test a chronology label finds its book."""
        result = ingest(store, chronology_template, _csv("cronologia,batejat\n1800 - 1810,Puig Joan\n"))

        assert result.created == 1
        assert len(store.list_records(book.id)) == 1

    def test_ambiguous_chronology(self, store, book, chronology_template: dict) -> None:
        """Test two books sharing a label fail by default."""
        store.create_book(Book(title="Duplicat", chronology="1800-1810"))

        result = ingest(store, chronology_template, _csv("cronologia,batejat\n1800-1810,Puig Joan\n"))

        assert result.errors[0].reason == "book_ambiguous"
        assert result.errors[0].fields == {"cronologia": "1800-1810"}

    def test_first_match_policy(self, store, book, chronology_template: dict) -> None:
        """Test first_match picks the lowest book id."""
        store.create_book(Book(title="Duplicat", chronology="1800-1810"))
        chronology_template["book_resolution"]["ambiguity_policy"] = "first_match"

        result = ingest(store, chronology_template, _csv("cronologia,batejat\n1800-1810,Puig Joan\n"))

        assert result.created == 1
        assert len(store.list_records(book.id)) == 1


class TestMerge:
    """Test merging rows into records of fully indexed books."""

    def test_merge_updates_existing_record(self, store, indexed_book: Book, baptism_template: dict) -> None:
        """Test a known principal fills missing fields instead of creating a record."""
        record_id = _existing_baptism(store, indexed_book.id)
        template = _with_policies(baptism_template, MERGE_POLICY)

        result = ingest(store, template, _csv(HEADER + f"{indexed_book.id},Puig Joan,1803,12/03/1803\n"))

        assert result.updated == 1
        assert result.created == 0
        assert [r.id for r in store.list_records(indexed_book.id)] == [record_id]
        assert store.get_record(record_id).document_year == 1803
        assert [a.key for a in store.list_attributes(record_id)] == ["data_naixement"]
        assert len(store.list_persons(record_id)) == 1

    def test_missing_only_keeps_existing_values(self, store, indexed_book: Book, baptism_template: dict) -> None:
        """Test fields that already have a value are not overwritten."""
        record = TranscriptionRecord(book_id=indexed_book.id, record_type="baptism", document_year=1801)
        store.create_record(record)
        store.create_person(TranscriptionPerson(record_id=record.id, role="batejat", given_name="Joan", surname1="Puig"))
        template = _with_policies(baptism_template, MERGE_POLICY)

        ingest(store, template, _csv(HEADER + f"{indexed_book.id},Puig Joan,1803,\n"))

        assert store.get_record(record.id).document_year == 1801

    def test_book_not_indexed_creates(self, store, book, baptism_template: dict) -> None:
        """Test merging only applies to fully indexed books."""
        _existing_baptism(store, book.id)
        template = _with_policies(baptism_template, MERGE_POLICY)

        result = ingest(store, template, _csv(HEADER + f"{book.id},Puig Joan,1803,\n"))

        assert result.created == 1
        assert result.updated == 0
        assert len(store.list_records(book.id)) == 2

    def test_duplicate_principal_in_file(self, store, indexed_book: Book, baptism_template: dict) -> None:
        """Test the same principal twice in a file is reported once created."""
        policies = copy.deepcopy(MERGE_POLICY)
        policies["merge_existing"]["avoid_duplicate_rows_by_principal_name_per_book"] = True
        template = _with_policies(baptism_template, policies)
        row = f"{indexed_book.id},Puig Joan,1803,\n"

        result = ingest(store, template, _csv(HEADER + row + row))

        assert result.created == 1
        assert result.errors[0].row == 3
        assert result.errors[0].reason == "duplicate_principal"
        assert result.errors[0].fields == {"duplicate_row": "2"}

    def test_merge_into_published_record_keeps_rollups(self, store, baptism_template: dict) -> None:
        """Test a merge that sets the year moves the counters with it."""
        country = Country(iso2="ES", iso3="ESP")
        store.create_country(country)
        valls = Municipality(country_id=country.id, name="Valls", level_ids=[None] * LEVEL_SLOTS)
        store.create_municipality(valls)
        rebuild_admin_closure(store, valls.id)
        book = Book(title="Baptismes Valls", chronology="1800-1810", book_type="baptism",
                    municipality_id=valls.id, fully_indexed=True)
        store.create_book(book)

        other = TranscriptionRecord(book_id=book.id, record_type="baptism", document_year=1803)
        store.create_record(other)
        store.create_person(TranscriptionPerson(record_id=other.id, role="batejat", given_name="Pere", surname1="Mas"))
        publish(store, other.id)
        undated_id = _existing_baptism(store, book.id)
        publish(store, undated_id)
        assert store.get_demography("municipi", valls.id, 1803, "births") == 1

        template = _with_policies(baptism_template, MERGE_POLICY)
        result = ingest(store, template, _csv(HEADER + f"{book.id},Puig Joan,1803,\n"))

        assert result.updated == 1
        assert store.get_record(undated_id).is_published
        assert store.get_demography("municipi", valls.id, 1803, "births") == 2
        joan = store.find_nom_by_key("JOAN")
        assert store.get_frequency("nom", joan.id, "municipi", valls.id, 1803) == 1

        unpublish(store, undated_id)

        assert store.get_demography("municipi", valls.id, 1803, "births") == 1
        assert store.get_frequency("nom", joan.id, "municipi", valls.id, 1803) == 0

    def test_existing_principal_found_by_role_priority(self, store) -> None:
        """Test existing records are keyed by role priority, not storage order."""
        book = Book(title="Matrimonis", chronology="1800-1810", book_type="marriage", fully_indexed=True)
        store.create_book(book)
        record = TranscriptionRecord(book_id=book.id, record_type="marriage")
        store.create_record(record)
        store.create_person(TranscriptionPerson(record_id=record.id, role="novia", given_name="Maria", surname1="Vidal"))
        store.create_person(TranscriptionPerson(record_id=record.id, role="nuvi", given_name="Joan", surname1="Puig"))

        policies = copy.deepcopy(MERGE_POLICY)
        policies["merge_existing"]["principal_roles"] = ["nuvi", "novia"]
        template = {
            "record_type": "marriage",
            "book_resolution": {"mode": "by_id", "column": "llibre_id"},
            "mapping": {
                "columns": [
                    {"header": "llibre_id", "required": True, "map_to": [{"target": "base.llibre_id"}]},
                    {
                        "header": "nuvi",
                        "map_to": [{"target": "person.nuvi", "transforms": ["parse_person_from_cognoms"]}],
                    },
                    {
                        "header": "novia",
                        "map_to": [{"target": "person.novia", "transforms": ["parse_person_from_cognoms"]}],
                    },
                ]
            },
            "policies": policies,
        }

        result = ingest(store, template, _csv(f"llibre_id,nuvi,novia\n{book.id},Puig Joan,Vidal Maria\n"))

        assert (result.created, result.updated) == (0, 1)
        assert [r.id for r in store.list_records(book.id)] == [record.id]
