"""Tests for template sample spreadsheets."""

import io
import zipfile

import pytest

from cercagen.import_templates.export import (
    build_sample_table,
    column_name,
    column_widths,
    export_sample_csv,
    export_sample_xlsx,
    sample_filename,
    sample_value,
    sheet_xml,
)
from cercagen.import_templates.validation import load_template


@pytest.fixture
def model(baptism_template):
    return load_template(baptism_template)


class TestSampleTable:
    """Test the sample headers and rows."""

    def test_baptism_sample(self, model) -> None:
        """Test each column gets a value shaped by its transforms."""
        headers, rows = build_sample_table(model)

        assert headers == ["llibre_id", "batejat", "any_doc", "data_naixement"]
        assert rows == [
            ["120", "Puig i Ferrer (Valls)", "1890", "12/03/1890"],
            ["121", "¿Maria Puig (Valls)", "1890", "??/??/1890"],
        ]

    def test_book_ids(self, model) -> None:
        """Test real book ids replace the placeholders."""
        _, rows = build_sample_table(model, book_ids=[7])
        assert [row[0] for row in rows] == ["7", "7"]

    def test_conditional_column_adds_row(self) -> None:
        """Test a condition gives a third row with then/else samples."""
        model = load_template(
            {
                "record_type": "generic",
                "mapping": {
                    "columns": [
                        {
                            "header": "qui",
                            "map_to": ["person.batejat.nom"],
                            "condition": {
                                "expr": "not_empty",
                                "else": {"map_to": ["base.notes_marginals"]},
                            },
                        }
                    ]
                },
            }
        )
        _, rows = build_sample_table(model)
        assert rows == [["Joan"], ["Exemple 2"], ["Joan"]]

    @pytest.mark.parametrize(
        "transforms,target,expected",
        [
            (["split_couple_i"], "person.pare", "Joan X i Maria Y"),
            (["normalize_cronologia"], "base.notes_marginals", "1890-1891"),
            ([], "base.tipus_acte", "baptisme"),
            ([], "base.posicio_pagina", "1"),
            ([], "attr.edat.int", "30"),
            ([], "person.pare.cognom1", "Puig"),
            ([], "attr.ofici.text", "Exemple 1"),
        ],
    )
    def test_sample_value(self, transforms: list[str], target: str, expected: str) -> None:
        """Test the sample chosen for a transform or target."""
        assert sample_value(transforms, 0, target) == expected


class TestCsvSample:
    """Test the CSV sample."""

    def test_separator(self, model) -> None:
        """Test the chosen separator is used."""
        lines = export_sample_csv(model, ";").splitlines()
        assert lines[0] == "llibre_id;batejat;any_doc;data_naixement"
        assert len(lines) == 3

    def test_tab_escape(self, model) -> None:
        """Test the escaped tab separator."""
        assert export_sample_csv(model, "\\t").splitlines()[0] == "llibre_id\tbatejat\tany_doc\tdata_naixement"


class TestXlsxSample:
    """Test the XLSX sample."""

    def test_workbook_parts(self, model) -> None:
        """Test the workbook has the minimal package parts and the data."""
        data = export_sample_xlsx(model)
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = zf.namelist()
            sheet = zf.read("xl/worksheets/sheet1.xml").decode("utf-8")

        assert len(names) == 5
        assert "[Content_Types].xml" in names
        assert "Puig i Ferrer (Valls)" in sheet
        assert '<autoFilter ref="A1:D1"/>' in sheet
        assert 'state="frozen"' in sheet

    def test_sheet_escapes_values(self) -> None:
        """Test XML special characters are escaped."""
        sheet = sheet_xml(["a&b"], [["<x>"]])
        assert "a&amp;b" in sheet
        assert "&lt;x&gt;" in sheet

    def test_column_name(self) -> None:
        """Test spreadsheet column letters."""
        assert column_name(1) == "A"
        assert column_name(26) == "Z"
        assert column_name(27) == "AA"
        assert column_name(0) == "A"

    def test_column_widths_clamped(self) -> None:
        """Test widths stay between the minimum and maximum."""
        assert column_widths(["a"], []) == [10]
        assert column_widths(["llibre_id"], [["1"]]) == [11]
        assert column_widths(["a"], [["x" * 50]]) == [40]


class TestSampleFilename:
    """Test sample file names."""

    def test_slug(self) -> None:
        """Test spaces become underscores."""
        assert sample_filename("Plantilla Bateigs 1890", "csv") == "Plantilla_Bateigs_1890.csv"

    def test_non_ascii_dropped(self) -> None:
        """Test accented letters are dropped."""
        assert sample_filename("Òbits", "xlsx") == "bits.xlsx"

    def test_fallback(self) -> None:
        """Test empty or symbol-only names."""
        assert sample_filename("", "csv") == "plantilla.csv"
        assert sample_filename("¿?", "csv") == "plantilla.csv"
