"""Command-line interface for cercagen.

Thin wrappers around the services: every command opens the configured
store, runs one operation and returns an exit code.
"""

import io
import json
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from cercagen.config import get_config, setup_logging
from cercagen.database import get_store
from cercagen.errors import CercagenError, TemplateValidationError, UploadTooLargeError
from cercagen.import_templates.export import export_sample_csv, export_sample_xlsx
from cercagen.import_templates.validation import load_template
from cercagen.models.template import ImportTemplate
from cercagen.services.import_errors import errors_to_csv
from cercagen.services.indexing_stats import recompute_book_stats
from cercagen.services.ingestion import ingest
from cercagen.services.moderation import publish, unpublish
from cercagen.services.search_index import match_info, rebuild_search_index, search
from cercagen.services.territory import export_territory, import_territory
from cercagen.services.templates import save_template, similar_templates
from cercagen.version import format_version_string

__all__ = ["cli_main"]


def print_version() -> None:
    print(format_version_string())


def parse_options(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split ``--name value`` options from positional arguments."""
    positional: list[str] = []
    options: dict[str, str] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg.startswith("--") and i + 1 < len(args):
            options[arg[2:]] = args[i + 1]
            i += 2
            continue
        positional.append(arg)
        i += 1
    return positional, options


def _int_option(options: dict[str, str], name: str) -> int | None:
    value = options.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise CercagenError(f"--{name} must be an integer, got {value!r}") from None


def read_csv_file(path: Path, max_bytes: int) -> str:
    """Read a CSV upload, refusing files above the configured limit.

    Raises:
        UploadTooLargeError: If the file is larger than ``max_bytes``
    """
    size = path.stat().st_size
    if size > max_bytes:
        raise UploadTooLargeError(f"{path} is {size} bytes, the limit is {max_bytes}")
    return path.read_text(encoding="utf-8-sig")


# ---- Commands ----


def cmd_init_db() -> int:
    store = get_store()
    print(f"✓ Database ready at {store.db_path}")
    return 0


def cmd_ingest(args: list[str]) -> int:
    """Ingest a CSV file with a template.

    Usage: ingest <template.json> <file.csv> [--separator S] [--book ID] [--user ID] [--errors OUT.csv]
    """
    positional, options = parse_options(args)
    if len(positional) < 2:
        print("✗ Usage: cercagen ingest <template.json> <file.csv> [--separator S] [--book ID] [--user ID]")
        return 2
    config = get_config()
    template_doc = Path(positional[0]).read_text(encoding="utf-8")
    content = read_csv_file(Path(positional[1]), config.max_upload_bytes)

    result = ingest(
        get_store(),
        template_doc,
        io.StringIO(content, newline=""),
        separator=options.get("separator", config.default_separator),
        user_id=_int_option(options, "user"),
        fixed_book_id=_int_option(options, "book"),
    )
    print(f"Imported: {result.created}  Updated: {result.updated}  Failed: {result.failed}")
    if result.errors:
        errors_path = options.get("errors")
        if errors_path:
            Path(errors_path).write_text(errors_to_csv(result.errors), encoding="utf-8")
            print(f"Errors written to {errors_path}")
        else:
            for err in result.errors[:20]:
                print(f"  row {err.row}: {err.reason} {err.message}")
    return 0 if result.failed == 0 else 1


def cmd_validate_template(args: list[str]) -> int:
    if not args:
        print("✗ Usage: cercagen validate-template <template.json>")
        return 2
    try:
        model = load_template(Path(args[0]).read_text(encoding="utf-8"))
    except TemplateValidationError as e:
        print("✗ Template is invalid:")
        for message in e.errors:
            print(f"  - {message}")
        return 1
    print(f"✓ Template is valid ({len(model.columns)} columns, record type {model.metadata.record_type})")
    return 0


def cmd_export_sample(args: list[str]) -> int:
    positional, options = parse_options(args)
    if len(positional) < 2:
        print("✗ Usage: cercagen export-sample <template.json> <out.csv|out.xlsx> [--separator S]")
        return 2
    model = load_template(Path(positional[0]).read_text(encoding="utf-8"))
    out = Path(positional[1])
    if out.suffix.lower() == ".xlsx":
        out.write_bytes(export_sample_xlsx(model))
    else:
        separator = options.get("separator", get_config().default_separator)
        out.write_text(export_sample_csv(model, separator), encoding="utf-8")
    print(f"✓ Sample written to {out}")
    return 0


def cmd_save_template(args: list[str]) -> int:
    positional, options = parse_options(args)
    if not positional or not options.get("name"):
        print("✗ Usage: cercagen save-template <template.json> --name NAME [--user ID] [--public yes] [--id ID]")
        return 2
    template = ImportTemplate(
        id=_int_option(options, "id"),
        name=options["name"],
        owner_id=_int_option(options, "user"),
        visibility="public" if options.get("public", "").lower() in ("yes", "true", "1") else "private",
        separator=options.get("separator", get_config().default_separator),
        model_json=Path(positional[0]).read_text(encoding="utf-8"),
    )
    template_id = save_template(get_store(), template)
    print(f"✓ Template {template_id} saved ({template.visibility})")
    return 0


def cmd_similar_templates(args: list[str]) -> int:
    positional, options = parse_options(args)
    if not positional:
        print("✗ Usage: cercagen similar-templates <template.json> [--user ID] [--limit N]")
        return 2
    results = similar_templates(
        get_store(),
        Path(positional[0]).read_text(encoding="utf-8"),
        viewer_id=_int_option(options, "user"),
        limit=_int_option(options, "limit"),
    )
    for item in results:
        print(f"{item.score:.2f}  #{item.id}  {item.name}  ({item.visibility})")
    print(f"{len(results)} similar template(s)")
    return 0


def cmd_moderation(command: str, args: list[str]) -> int:
    if not args:
        print(f"✗ Usage: cercagen {command} <record_id>")
        return 2
    store = get_store()
    record_id = int(args[0])
    delta = publish(store, record_id) if command == "publish" else unpublish(store, record_id)
    print(f"✓ Record {record_id} {command}ed (delta {delta:+d})")
    return 0


def cmd_stats(args: list[str]) -> int:
    if not args:
        print("✗ Usage: cercagen stats <book_id>")
        return 2
    stats = recompute_book_stats(get_store(), int(args[0]))
    if stats is None:
        print(f"✗ Book {args[0]} not found")
        return 1
    print(
        f"Book {stats.book_id}: {stats.total_records} records, "
        f"{stats.filled_fields}/{stats.total_fields} fields, {stats.percentage}% ({stats.color})"
    )
    return 0


def cmd_search(args: list[str]) -> int:
    positional, options = parse_options(args)
    if not positional:
        print("✗ Usage: cercagen search <query> [--limit N]")
        return 2
    hits = search(get_store(), " ".join(positional), limit=_int_option(options, "limit"))
    for hit in hits:
        doc = hit.doc
        year = doc.act_year if doc.act_year else "-"
        print(f"{hit.score:>4}  #{doc.entity_id}  {doc.person_full_norm}  ({year})  {match_info(hit.reasons)}")
    print(f"{len(hits)} result(s)")
    return 0


def cmd_territory_export(args: list[str]) -> int:
    if not args:
        print("✗ Usage: cercagen territory-export <out.json>")
        return 2
    payload = export_territory(get_store())
    Path(args[0]).write_text(json.dumps(payload.to_json_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
    print(f"✓ Territory written to {args[0]}")
    return 0


def cmd_territory_import(args: list[str]) -> int:
    if not args:
        print("✗ Usage: cercagen territory-import <in.json>")
        return 2
    result = import_territory(get_store(), Path(args[0]).read_text(encoding="utf-8"))
    for key, value in result.to_dict().items():
        print(f"  {key}: {value}")
    return 0


def cmd_rebuild_search() -> int:
    indexed, failed = rebuild_search_index(get_store())
    print(f"✓ Search index rebuilt: {indexed} indexed, {failed} failed")
    return 0 if failed == 0 else 1


def print_help() -> None:
    print_version()
    print()
    print("Usage: cercagen [COMMAND] [ARGS]")
    print()
    print("Commands:")
    print("  init-db                              Create the database schema")
    print("  ingest TEMPLATE CSV [options]        Import a CSV file with a template")
    print("       --separator S  --book ID  --user ID  --errors OUT.csv")
    print("  validate-template TEMPLATE           Check a template document")
    print("  export-sample TEMPLATE OUT           Write a sample .csv or .xlsx for a template")
    print("  save-template TEMPLATE --name N      Validate and store a template")
    print("       --user ID  --public yes  --id ID  --separator S")
    print("  similar-templates TEMPLATE           List stored templates resembling a document")
    print("       --user ID  --limit N")
    print("  publish RECORD_ID                    Publish a transcription record")
    print("  unpublish RECORD_ID                  Return a record to pending")
    print("  stats BOOK_ID                        Recompute a book's indexing progress")
    print("  search QUERY [--limit N]             Search published records by person name")
    print("  territory-export OUT.json            Export countries, levels and municipalities")
    print("  territory-import IN.json             Import a territory document")
    print("  rebuild-search                       Rebuild every search document")
    print("  version                              Show version information")
    print("  help                                 Show this help message")
    print()


def cli_main(args: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if args is None:
        args = sys.argv[1:]

    if not args or args[0] in ("help", "-h", "--help"):
        print_help()
        return 0

    command = args[0].lower()
    rest = args[1:]
    if command == "version":
        print_version()
        return 0

    setup_logging()
    try:
        if command == "init-db":
            return cmd_init_db()
        elif command == "ingest":
            return cmd_ingest(rest)
        elif command == "validate-template":
            return cmd_validate_template(rest)
        elif command == "export-sample":
            return cmd_export_sample(rest)
        elif command == "save-template":
            return cmd_save_template(rest)
        elif command == "similar-templates":
            return cmd_similar_templates(rest)
        elif command in ("publish", "unpublish"):
            return cmd_moderation(command, rest)
        elif command == "stats":
            return cmd_stats(rest)
        elif command == "search":
            return cmd_search(rest)
        elif command == "territory-export":
            return cmd_territory_export(rest)
        elif command == "territory-import":
            return cmd_territory_import(rest)
        elif command == "rebuild-search":
            return cmd_rebuild_search()
        else:
            print(f"✗ Unknown command: {command}")
            print()
            print_help()
            return 1
    except (CercagenError, ValueError, OSError) as e:
        logger.error(f"Command {command} failed: {e}")
        print(f"✗ Error: {e}")
        return 1
