"""Tests for CLI module."""

import json
import zipfile
from pathlib import Path

import pytest

from cercagen.cli import cli_main
from cercagen.config import reset_config
from cercagen.database import get_store
from cercagen.models.records import Book, TranscriptionRecord

CSV_HEADER = "llibre_id,batejat,any_doc,data_naixement\n"


@pytest.fixture
def template_file(tmp_path: Path, baptism_template: dict) -> Path:
    path = tmp_path / "bateigs.json"
    path.write_text(json.dumps(baptism_template), encoding="utf-8")
    return path


@pytest.fixture
def cli_book() -> Book:
    """A book in the store the CLI opens."""
    book = Book(title="Baptismes", chronology="1800-1810", book_type="baptism")
    get_store().create_book(book)
    return book


class TestCLICommands:
    """Test CLI command parsing and execution."""

    def test_cli_help(self, capsys: pytest.CaptureFixture) -> None:
        """Test help command."""
        exit_code = cli_main(["help"])

        assert exit_code == 0

        captured = capsys.readouterr()
        assert "Usage: cercagen" in captured.out
        assert "Commands:" in captured.out
        assert "ingest" in captured.out
        assert "validate-template" in captured.out

    def test_cli_no_args(self, capsys: pytest.CaptureFixture) -> None:
        """Test CLI with no arguments shows help."""
        exit_code = cli_main([])

        assert exit_code == 0

        captured = capsys.readouterr()
        assert "Usage: cercagen" in captured.out

    def test_cli_version(self, capsys: pytest.CaptureFixture) -> None:
        """Test version command."""
        exit_code = cli_main(["version"])

        assert exit_code == 0

        captured = capsys.readouterr()
        assert "cercagen v" in captured.out

    def test_cli_unknown_command(self, capsys: pytest.CaptureFixture) -> None:
        """Test unknown command shows error."""
        exit_code = cli_main(["invalid_command"])

        assert exit_code == 1

        captured = capsys.readouterr()
        assert "Unknown command" in captured.out

    def test_cli_init_db(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Test init-db creates the configured database."""
        exit_code = cli_main(["init-db"])

        assert exit_code == 0
        assert (tmp_path / "cli.db").exists()
        assert "✓ Database ready" in capsys.readouterr().out


class TestTemplateCommands:
    """Test template validation and samples."""

    def test_validate_template(self, template_file: Path, capsys: pytest.CaptureFixture) -> None:
        """Test a valid template."""
        exit_code = cli_main(["validate-template", str(template_file)])

        assert exit_code == 0
        assert "✓ Template is valid (4 columns, record type baptism)" in capsys.readouterr().out

    def test_validate_invalid_template(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Test rule violations are listed."""
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"mapping": {"columns": [{"header": "a", "map_to": ["foo.bar"]}]}}))

        exit_code = cli_main(["validate-template", str(path)])

        assert exit_code == 1
        out = capsys.readouterr().out
        assert "✗ Template is invalid" in out
        assert "unrecognised target: foo.bar" in out

    def test_validate_unparseable_template(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Test a non-JSON file is reported as an error."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        assert cli_main(["validate-template", str(path)]) == 1
        assert "✗ Error" in capsys.readouterr().out

    def test_validate_missing_argument(self) -> None:
        """Test usage errors return 2."""
        assert cli_main(["validate-template"]) == 2

    def test_export_sample_csv_and_xlsx(self, tmp_path: Path, template_file: Path) -> None:
        """Test both sample formats are written."""
        csv_path = tmp_path / "mostra.csv"
        xlsx_path = tmp_path / "mostra.xlsx"

        assert cli_main(["export-sample", str(template_file), str(csv_path), "--separator", ";"]) == 0
        assert cli_main(["export-sample", str(template_file), str(xlsx_path)]) == 0

        assert csv_path.read_text(encoding="utf-8").startswith("llibre_id;batejat")
        assert zipfile.is_zipfile(xlsx_path)

    def test_save_and_find_similar(self, template_file: Path, capsys: pytest.CaptureFixture) -> None:
        """Test a saved public template is suggested for the same document."""
        args = ["save-template", str(template_file), "--name", "Bateigs", "--user", "1", "--public", "yes"]
        assert cli_main(args) == 0
        assert "saved (public)" in capsys.readouterr().out

        assert cli_main(["similar-templates", str(template_file), "--user", "2"]) == 0
        output = capsys.readouterr().out
        assert "1.00" in output
        assert "Bateigs" in output
        assert "1 similar template(s)" in output

    def test_save_template_requires_name(self, template_file: Path) -> None:
        """Test usage errors return 2."""
        assert cli_main(["save-template", str(template_file)]) == 2


class TestIngestCommand:
    """Test the ingest command."""

    def test_ingest(self, tmp_path: Path, template_file: Path, cli_book: Book, capsys: pytest.CaptureFixture) -> None:
        """Test a clean file imports every row."""
        csv_path = tmp_path / "bateigs.csv"
        csv_path.write_text(CSV_HEADER + f"{cli_book.id},Puig Joan,1803,12/03/1803\n", encoding="utf-8")

        exit_code = cli_main(["ingest", str(template_file), str(csv_path)])

        assert exit_code == 0
        assert "Imported: 1  Updated: 0  Failed: 0" in capsys.readouterr().out
        assert len(get_store().list_records(cli_book.id)) == 1

    def test_ingest_writes_error_report(
        self, tmp_path: Path, template_file: Path, cli_book: Book, capsys: pytest.CaptureFixture
    ) -> None:
        """Test failed rows go to the --errors file."""
        csv_path = tmp_path / "bateigs.csv"
        csv_path.write_text(CSV_HEADER + "999,Puig Joan,1803,12/03/1803\n", encoding="utf-8")
        errors_path = tmp_path / "errors.csv"

        exit_code = cli_main(["ingest", str(template_file), str(csv_path), "--errors", str(errors_path)])

        assert exit_code == 1
        assert "Failed: 1" in capsys.readouterr().out
        lines = errors_path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "row,error,llibre_id"
        assert lines[1].startswith("2,")

    def test_ingest_rejects_large_upload(
        self, tmp_path: Path, template_file: Path, monkeypatch, capsys: pytest.CaptureFixture
    ) -> None:
        """Test files above the configured limit are refused."""
        monkeypatch.setenv("CERCAGEN_MAX_UPLOAD_BYTES", "1024")
        reset_config()
        csv_path = tmp_path / "gran.csv"
        csv_path.write_text(CSV_HEADER + "1,Puig Joan,1803,12/03/1803\n" * 100, encoding="utf-8")

        assert cli_main(["ingest", str(template_file), str(csv_path)]) == 1
        assert "the limit is 1024" in capsys.readouterr().out

    def test_ingest_bad_option(self, tmp_path: Path, template_file: Path) -> None:
        """Test a non-integer --book is an error."""
        csv_path = tmp_path / "bateigs.csv"
        csv_path.write_text(CSV_HEADER, encoding="utf-8")
        assert cli_main(["ingest", str(template_file), str(csv_path), "--book", "x"]) == 1


class TestRecordCommands:
    """Test moderation, stats, search and territory commands."""

    def test_publish_and_unpublish(self, cli_book: Book, capsys: pytest.CaptureFixture) -> None:
        """Test the deltas printed for a status change."""
        record = TranscriptionRecord(book_id=cli_book.id, record_type="baptism", document_year=1803)
        get_store().create_record(record)

        assert cli_main(["publish", str(record.id)]) == 0
        assert f"✓ Record {record.id} published (delta +1)" in capsys.readouterr().out
        assert cli_main(["unpublish", str(record.id)]) == 0
        assert f"✓ Record {record.id} unpublished (delta -1)" in capsys.readouterr().out

    def test_publish_unknown_record(self, capsys: pytest.CaptureFixture) -> None:
        """Test an unknown record is an error."""
        assert cli_main(["publish", "404"]) == 1
        assert "not found" in capsys.readouterr().out

    def test_stats(self, cli_book: Book, capsys: pytest.CaptureFixture) -> None:
        """Test stats of an empty book."""
        assert cli_main(["stats", str(cli_book.id)]) == 0
        assert f"Book {cli_book.id}: 0 records" in capsys.readouterr().out
        assert cli_main(["stats", "404"]) == 1

    def test_search_empty(self, capsys: pytest.CaptureFixture) -> None:
        """Test a search with no documents."""
        assert cli_main(["search", "Puig"]) == 0
        assert "0 result(s)" in capsys.readouterr().out

    def test_rebuild_search(self, capsys: pytest.CaptureFixture) -> None:
        """Test rebuilding an empty index."""
        assert cli_main(["rebuild-search"]) == 0
        assert "0 indexed, 0 failed" in capsys.readouterr().out

    def test_territory_round_trip(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Test export then import through files."""
        out = tmp_path / "territori.json"
        doc = {
            "countries": [{"iso2": "ad", "iso3": "and"}],
            "municipalities": [{"id": 1, "pais_iso2": "AD", "nom": "Canillo"}],
        }
        source = tmp_path / "in.json"
        source.write_text(json.dumps(doc), encoding="utf-8")

        assert cli_main(["territory-import", str(source)]) == 0
        assert "municipalities_created: 1" in capsys.readouterr().out
        assert cli_main(["territory-export", str(out)]) == 0

        exported = json.loads(out.read_text(encoding="utf-8"))
        assert exported["countries"][0]["iso2"] == "AD"
        assert exported["municipalities"][0]["nom"] == "Canillo"
