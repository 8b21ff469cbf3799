"""Tests for the transcription record CSV export."""

import csv
import io

from cercagen.models.records import TranscriptionPerson, TranscriptionRecord
from cercagen.services.record_export import (
    EXPORT_HEADER,
    LITERAL_HEADER,
    export_records_csv,
    names_by_role,
    record_row,
    subject_name,
)


def _person(role: str, given: str, surname1: str = "", surname2: str = "") -> TranscriptionPerson:
    return TranscriptionPerson(role=role, given_name=given, surname1=surname1, surname2=surname2)


class TestSubjectName:
    """Test choosing the subject of an act."""

    def test_subject_role_preferred(self) -> None:
        """Test the type's subject role wins over earlier persons."""
        persons = [_person("pare", "Pere", "Puig"), _person("batejat", "Joan", "Puig", "Ferrer")]
        assert subject_name("baptism", persons) == "Joan Puig Ferrer"

    def test_catalan_record_type(self) -> None:
        """Test a Catalan type label resolves."""
        assert subject_name("obit", [_person("difunt", "Anna", "Vila")]) == "Anna Vila"

    def test_falls_back_to_first_named(self) -> None:
        """Test records without a subject role use the first named person."""
        persons = [_person("pare", "", ""), _person("testimoni", "Pau", "Roca")]
        assert subject_name("baptism", persons) == "Pau Roca"
        assert subject_name("other", []) == ""


class TestRecordRow:
    """Test flattening one record."""

    def test_names_by_role(self) -> None:
        """Test roles are lowercased and unnamed persons skipped."""
        persons = [_person("Testimoni", "Pau", "Roca"), _person("testimoni", "Jaume"), _person("pare", "")]
        assert names_by_role(persons) == {"testimoni": ["Pau Roca", "Jaume"]}

    def test_marriage_row(self) -> None:
        """Test the marriage columns and joined witnesses."""
        record = TranscriptionRecord(
            book_id=4, record_type="marriage", document_year=1851, act_date_iso="1851-05-02", literal_text="..."
        )
        persons = [
            _person("nuvi", "Joan", "Puig"),
            _person("novia", "Maria", "Vila"),
            _person("testimoni", "Pau", "Roca"),
            _person("testimoni", "Jaume", "Mas"),
        ]
        row = dict(zip(EXPORT_HEADER + LITERAL_HEADER, record_row(record, persons, include_literal=True)))

        assert row["llibre_id"] == "4"
        assert row["pagina_id"] == ""
        assert row["any_doc"] == "1851"
        assert row["data_acte_iso"] == "1851-05-02"
        assert row["subject"] == "Joan Puig"
        assert row["husband"] == "Joan Puig"
        assert row["wife"] == "Maria Vila"
        assert row["witnesses"] == "Pau Roca; Jaume Mas"
        assert row["transcripcio_literal"] == "..."

    def test_without_literal(self) -> None:
        """Test the literal columns are optional."""
        row = record_row(TranscriptionRecord(book_id=1), [], include_literal=False)
        assert len(row) == len(EXPORT_HEADER)


class TestExportRecordsCsv:
    """Test export_records_csv against a store."""

    def test_export(self, store, book) -> None:
        """Test one line per record after the header."""
        record = TranscriptionRecord(book_id=book.id, record_type="baptism", document_year=1803)
        store.create_record(record)
        store.create_person(TranscriptionPerson(record_id=record.id, role="batejat", given_name="Joan", surname1="Puig"))
        store.create_person(TranscriptionPerson(record_id=record.id, role="pare", given_name="Pere", surname1="Puig"))

        rows = list(csv.reader(io.StringIO(export_records_csv(store, [record], include_literal=False))))

        assert rows[0] == EXPORT_HEADER
        assert len(rows) == 2
        line = dict(zip(EXPORT_HEADER, rows[1]))
        assert line["subject"] == "Joan Puig"
        assert line["father"] == "Pere Puig"
        assert line["tipus_acte"] == "baptism"

    def test_separator(self, store) -> None:
        """Test a custom separator."""
        text = export_records_csv(store, [], include_literal=True, separator=";")
        assert text.strip() == ";".join(EXPORT_HEADER + LITERAL_HEADER)
