"""
CSV Ingestion Engine

Reads a CSV export row by row and turns each row into a transcription
record (header, people by role, typed attributes) by walking a loaded
import template. Rows are processed strictly in file order. Each row is
created, merged into an existing record, or reported with a reason code;
nothing is ever raised for a row-level problem.
"""

import csv
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from cercagen.config.constants import (
    MAX_DOCUMENT_YEAR,
    MIN_DOCUMENT_YEAR,
    PERSON_FIELDS,
    RECORD_FIELDS,
    TRUE_VALUES,
)
from cercagen.config.settings import ALLOWED_SEPARATORS
from cercagen.database.dac import DataAccess
from cercagen.errors import CercagenError, TemplateParseError, TemplateValidationError
from cercagen.import_templates.transforms import DATE_ESTAT, QUALITY, TransformContext, apply_transforms
from cercagen.import_templates.validation import load_template
from cercagen.models.records import (
    Book,
    ModerationStatus,
    RecordType,
    TranscriptionAttribute,
    TranscriptionPerson,
    TranscriptionRecord,
    year_from_iso,
)
from cercagen.models.template import (
    Column,
    ColumnCondition,
    ImportTemplateModel,
    InlineCondition,
    MapEntry,
    TargetRef,
)
from cercagen.parsers.dates import is_iso_date, parse_flexible_date
from cercagen.parsers.names import (
    GIVEN_NAME_FIRST,
    SURNAME_FIRST,
    ParsedPerson,
    parse_person,
    parse_person_for_transform,
)
from cercagen.parsers.quality import QualityConfig, default_quality, extract_quality, normalize_quality
from cercagen.services.indexing_stats import recompute_book_stats
from cercagen.services.rollups import apply_status_change
from cercagen.utils.normalize import normalize_cronologia, normalize_csv_header, person_name_key

# Reason codes reported in RowError.reason
REASON_INVALID_TEMPLATE = "invalid_template"
REASON_INVALID_SEPARATOR = "invalid_separator"
REASON_INVALID_HEADER = "invalid_header"
REASON_MISSING_COLUMN = "missing_column"
REASON_UNREADABLE_ROW = "unreadable_row"
REASON_BOOK_NOT_FOUND = "book_not_found"
REASON_BOOK_AMBIGUOUS = "book_ambiguous"
REASON_BOOK_MISMATCH = "book_mismatch"
REASON_DUPLICATE_ROW = "duplicate_row"
REASON_DUPLICATE_PRINCIPAL = "duplicate_principal"
REASON_INVALID_YEAR = "invalid_year"
REASON_CREATE_FAILED = "create_failed"
REASON_UPDATE_FAILED = "update_failed"

MERGE_BY_PRINCIPAL = "by_principal_person_if_book_indexed"
FIRST_MATCH = "first_match"

# Name orders accepted in ``metadata.name_order`` for bare person targets
_GIVEN_NAME_FIRST_LABELS = frozenset({"nom_cognoms", "given_name_first", "nom", "given"})

# First data row; the header is row 1
FIRST_DATA_ROW = 2

_AMBIGUOUS = -1


@dataclass
class RowError:
    """A row that could not be ingested."""

    row: int
    reason: str
    message: str = ""
    fields: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "reason": self.reason, "message": self.message, "fields": dict(self.fields)}


@dataclass
class IngestResult:
    """Outcome of an ingestion run."""

    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[RowError] = field(default_factory=list)
    touched_book_ids: set[int] = field(default_factory=set)
    cancelled: bool = False

    def add_error(self, row: int, reason: str, message: str = "", fields: dict[str, str] | None = None) -> None:
        self.failed += 1
        self.errors.append(RowError(row=row, reason=reason, message=message or reason, fields=fields or {}))
        logger.debug(f"Row {row} failed: {reason} {message}")

    def mark_book(self, book_id: int) -> None:
        self.touched_book_ids.add(book_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "errors": [e.to_dict() for e in self.errors],
            "touched_book_ids": sorted(self.touched_book_ids),
            "cancelled": self.cancelled,
        }


@dataclass
class ImportScope:
    """Caller's catalogue context, used to restrict book lookups."""

    municipality_id: int | None = None
    archive_id: int | None = None


@dataclass
class RowContext:
    """Trimmed cell values of one row, by normalized header and by column key."""

    header_values: dict[str, str] = field(default_factory=dict)
    column_values: dict[str, str] = field(default_factory=dict)

    def lookup(self, ref: str) -> str:
        key = normalize_csv_header(ref)
        return self.column_values.get(key) or self.header_values.get(key, "")


@dataclass
class RowDraft:
    """Entities assembled from one row before they are stored."""

    record: TranscriptionRecord
    persons: dict[str, TranscriptionPerson] = field(default_factory=dict)
    attributes: dict[str, TranscriptionAttribute] = field(default_factory=dict)
    mapped: dict[str, str] = field(default_factory=dict)

    def person(self, role: str) -> TranscriptionPerson:
        if role not in self.persons:
            self.persons[role] = TranscriptionPerson(role=role)
        return self.persons[role]

    def attribute(self, key: str) -> TranscriptionAttribute:
        if key not in self.attributes:
            self.attributes[key] = TranscriptionAttribute(key=key)
        return self.attributes[key]


@dataclass
class _BookInfo:
    id: int
    indexed: bool = False


# =============================================================================
# Conditions
# =============================================================================


def evaluate_column_condition(condition: ColumnCondition, value: str, ctx: RowContext) -> bool:
    """Whether a column takes its ``then`` branch."""
    if not condition.valid:
        return False
    if condition.op == "not_empty":
        return bool(value.strip())
    left = value
    if condition.column:
        left = ctx.lookup(condition.column)
    if condition.op == "equals":
        return left == condition.value
    return left != condition.value


def evaluate_inline_condition(condition: InlineCondition | None, ctx: RowContext) -> bool:
    if condition is None:
        return True
    op = condition.op.lower()
    if op == "not_empty":
        return bool(condition.column) and bool(ctx.lookup(condition.column).strip())
    if op == "equals":
        return ctx.lookup(condition.column) == condition.value
    return True


# =============================================================================
# Entity helpers
# =============================================================================


def _parse_int(value: str) -> int | None:
    try:
        return int(value.strip())
    except (ValueError, AttributeError):
        return None


def person_from_parsed(role: str, parsed: ParsedPerson) -> TranscriptionPerson:
    return TranscriptionPerson(
        role=role,
        given_name=parsed.given_name,
        given_name_quality=parsed.given_name_quality,
        surname1=parsed.surname1,
        surname1_quality=parsed.surname1_quality,
        surname2=parsed.surname2,
        surname2_quality=parsed.surname2_quality,
        municipality=parsed.municipality,
        municipality_quality=parsed.municipality_quality,
        notes=parsed.notes,
    )


def merge_person(base: TranscriptionPerson | None, incoming: TranscriptionPerson) -> TranscriptionPerson:
    """Fill empty fields of ``base`` from ``incoming``; existing values win."""
    if base is None:
        return incoming
    for attr in PERSON_FIELDS.values():
        if not getattr(base, attr) and getattr(incoming, attr):
            setattr(base, attr, getattr(incoming, attr))
        if attr != "notes":
            quality_attr = f"{attr}_quality"
            if not getattr(base, quality_attr) and getattr(incoming, quality_attr):
                setattr(base, quality_attr, getattr(incoming, quality_attr))
    return base


def principal_person_key(persons: dict[str, TranscriptionPerson], roles: list[str]) -> str:
    """Name key of the first principal role, in priority order, that names someone."""
    for role in roles or ["batejat", "persona_principal"]:
        person = persons.get(role)
        if person is None:
            continue
        key = person_name_key(person.given_name, person.surname1, person.surname2)
        if key:
            return key
    return ""


def person_identity(person: TranscriptionPerson) -> str:
    return f"{person.role}|{person_name_key(person.given_name, person.surname1, person.surname2)}"


def build_dedup_key(key_fields: list[str], ctx: RowContext, mapped: dict[str, str]) -> str:
    """Lower-trimmed values of the key fields joined with ``|``.

    Each field is read from the template column values, then from the raw
    header values, then from the values already mapped to a target.
    """
    parts: list[str] = []
    for key in key_fields:
        if not key:
            continue
        norm = normalize_csv_header(key)
        if norm in ctx.column_values:
            parts.append(ctx.column_values[norm])
        elif norm in ctx.header_values:
            parts.append(ctx.header_values[norm])
        elif key in mapped:
            parts.append(mapped[key])
    return "|".join(p.strip().lower() for p in parts)


# =============================================================================
# Engine
# =============================================================================


class IngestionEngine:
    """Applies one loaded template to CSV rows against a data-access store."""

    def __init__(self, store: DataAccess, model: ImportTemplateModel):
        self.store = store
        self.model = model
        self.quality_config: QualityConfig = model.quality_config()
        self.transform_context = TransformContext(date_format=model.metadata.date_format or "dd/mm")
        self.default_name_order = (
            GIVEN_NAME_FIRST
            if model.metadata.name_order.strip().lower() in _GIVEN_NAME_FIRST_LABELS
            else SURNAME_FIRST
        )

    # ----- Run -----

    def run(
        self,
        reader: Iterable[str],
        separator: str = ",",
        user_id: int | None = None,
        scope: ImportScope | None = None,
        fixed_book_id: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> IngestResult:
        result = IngestResult()
        if separator == "\\t":
            separator = "\t"
        if separator not in ALLOWED_SEPARATORS:
            result.add_error(0, REASON_INVALID_SEPARATOR, f"unsupported separator {separator!r}")
            return result

        rows = csv.reader(reader, delimiter=separator, skipinitialspace=True)
        try:
            headers = next(rows)
        except (StopIteration, csv.Error) as e:
            result.add_error(0, REASON_INVALID_HEADER, f"invalid CSV header: {e}" if str(e) else "empty CSV")
            return result

        header_index: dict[str, int] = {}
        for i, header in enumerate(headers):
            header_index.setdefault(normalize_csv_header(header), i)

        column_index: list[tuple[Column, int]] = []
        for column in self.model.columns:
            index = self._resolve_column_index(column, header_index)
            if column.required and index < 0:
                result.add_error(
                    0, REASON_MISSING_COLUMN, f"missing column {column.header}", {"column": column.header}
                )
                return result
            column_index.append((column, index))

        books_by_id, books_by_label = self._prepare_book_lookups(scope, fixed_book_id)
        if fixed_book_id and fixed_book_id not in books_by_id:
            result.add_error(0, REASON_BOOK_NOT_FOUND, f"book {fixed_book_id} not found")
            return result

        seen: dict[str, int] = {}
        seen_principal: dict[str, int] = {}
        existing_by_book: dict[int, dict[str, int]] = {}
        row_num = FIRST_DATA_ROW - 1

        while True:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.info(f"Ingestion cancelled after row {row_num}")
                break
            try:
                cells = next(rows)
            except StopIteration:
                break
            except csv.Error as e:
                row_num += 1
                result.add_error(row_num, REASON_UNREADABLE_ROW, f"could not read row: {e}")
                continue
            row_num += 1
            if not any(c.strip() for c in cells):
                continue
            self._process_row(
                row_num,
                cells,
                header_index,
                column_index,
                books_by_id,
                books_by_label,
                fixed_book_id,
                user_id,
                seen,
                seen_principal,
                existing_by_book,
                result,
            )

        self._refresh_touched_books(result)
        logger.info(
            f"Ingestion finished: {result.created} created, {result.updated} updated, "
            f"{result.failed} failed, books {sorted(result.touched_book_ids)}"
        )
        return result

    def _process_row(
        self,
        row_num: int,
        cells: list[str],
        header_index: dict[str, int],
        column_index: list[tuple[Column, int]],
        books_by_id: dict[int, _BookInfo],
        books_by_label: dict[str, _BookInfo],
        fixed_book_id: int | None,
        user_id: int | None,
        seen: dict[str, int],
        seen_principal: dict[str, int],
        existing_by_book: dict[int, dict[str, int]],
        result: IngestResult,
    ) -> None:
        ctx = self._build_row_context(cells, header_index, column_index)
        book, reason, message = self._resolve_book(ctx, books_by_id, books_by_label, fixed_book_id)
        if book is None:
            column = self.model.book_resolution.column
            result.add_error(row_num, reason, message, {column: ctx.lookup(column)})
            return

        draft = RowDraft(
            record=TranscriptionRecord(
                book_id=book.id,
                record_type=self._default_record_type(),
                moderation_status=self.model.policies.moderation_status,
                created_by=user_id,
            )
        )
        self._apply_base_defaults(draft.record)

        for column, index in column_index:
            if index < 0 or index >= len(cells):
                continue
            raw = cells[index].strip()
            if not raw and not column.has_default():
                continue
            self._apply_column(column, raw, ctx, draft)

        dedup = self.model.policies.dedup
        if dedup.enabled and dedup.key_fields:
            key = build_dedup_key(dedup.key_fields, ctx, draft.mapped)
            if key:
                if key in seen:
                    result.add_error(
                        row_num,
                        REASON_DUPLICATE_ROW,
                        "duplicate row",
                        {"duplicate_row": str(seen[key])},
                    )
                    return
                seen[key] = row_num

        merge = self.model.policies.merge_existing
        match_key = ""
        seen_key = ""
        if merge.mode == MERGE_BY_PRINCIPAL and book.indexed:
            match_key = principal_person_key(draft.persons, merge.principal_roles)
            if match_key and merge.avoid_duplicate_rows_by_principal_name_per_book:
                seen_key = f"{book.id}|{match_key}"
                if seen_key in seen_principal:
                    result.add_error(
                        row_num,
                        REASON_DUPLICATE_PRINCIPAL,
                        "duplicate principal person in this book",
                        {"duplicate_row": str(seen_principal[seen_key])},
                    )
                    return

        if match_key:
            existing = existing_by_book.get(book.id)
            if existing is None:
                existing = self._load_existing_by_principal(book.id, merge.principal_roles)
                existing_by_book[book.id] = existing
            existing_id = existing.get(match_key)
            if existing_id is not None:
                try:
                    merged = self._merge_row(existing_id, draft)
                except CercagenError as e:
                    logger.warning(f"Row {row_num}: merge into record {existing_id} failed: {e}")
                    result.add_error(row_num, REASON_UPDATE_FAILED, f"could not update record: {e}")
                    return
                if merged:
                    result.updated += 1
                    result.mark_book(book.id)
                    if seen_key:
                        seen_principal[seen_key] = row_num
                    return

        if self._create_row(row_num, draft, result):
            result.created += 1
            result.mark_book(book.id)
            if seen_key:
                seen_principal[seen_key] = row_num

    # ----- Columns and books -----

    @staticmethod
    def _resolve_column_index(column: Column, header_index: dict[str, int]) -> int:
        for name in [column.header, *column.aliases]:
            index = header_index.get(normalize_csv_header(name))
            if index is not None:
                return index
        return -1

    @staticmethod
    def _build_row_context(
        cells: list[str], header_index: dict[str, int], column_index: list[tuple[Column, int]]
    ) -> RowContext:
        ctx = RowContext()
        for key, index in header_index.items():
            if index < len(cells):
                ctx.header_values[key] = cells[index].strip()
        for column, index in column_index:
            if 0 <= index < len(cells):
                key = column.key or column.header
                if key:
                    ctx.column_values[normalize_csv_header(key)] = cells[index].strip()
        return ctx

    def _prepare_book_lookups(
        self, scope: ImportScope | None, fixed_book_id: int | None
    ) -> tuple[dict[int, _BookInfo], dict[str, _BookInfo]]:
        resolution = self.model.book_resolution
        scope = scope or ImportScope()
        if resolution.scope_filters:
            books = self.store.list_books(scope.municipality_id, scope.archive_id)
        else:
            books = self.store.list_books()

        by_id: dict[int, _BookInfo] = {}
        by_label: dict[str, _BookInfo] = {}
        for book in books:
            info = _BookInfo(book.id, book.fully_indexed)
            by_id[book.id] = info
            if resolution.mode != "by_chronology_label":
                continue
            key = normalize_cronologia(book.chronology)
            if not key:
                continue
            current = by_label.get(key)
            if current is None:
                by_label[key] = info
            elif current.id != book.id and resolution.ambiguity_policy != FIRST_MATCH:
                by_label[key] = _BookInfo(_AMBIGUOUS)

        if fixed_book_id and fixed_book_id not in by_id:
            book: Book | None = self.store.get_book(fixed_book_id)
            if book is not None:
                by_id[book.id] = _BookInfo(book.id, book.fully_indexed)
        return by_id, by_label

    def _resolve_book(
        self,
        ctx: RowContext,
        by_id: dict[int, _BookInfo],
        by_label: dict[str, _BookInfo],
        fixed_book_id: int | None,
    ) -> tuple[_BookInfo | None, str, str]:
        resolution = self.model.book_resolution
        raw = ctx.lookup(resolution.column)

        if fixed_book_id:
            info = by_id.get(fixed_book_id)
            if info is None:
                return None, REASON_BOOK_NOT_FOUND, f"book {fixed_book_id} not found"
            if resolution.mode == "by_id" and raw:
                book_id = _parse_int(raw)
                if book_id is not None and book_id != fixed_book_id:
                    return None, REASON_BOOK_MISMATCH, f"book id {book_id} does not match {fixed_book_id}"
            return info, "", ""

        if resolution.mode == "by_chronology_label":
            key = normalize_cronologia(raw) if resolution.normalize_chronology else raw
            info = by_label.get(key) if key else None
            if info is None:
                return None, REASON_BOOK_NOT_FOUND, f"no book with chronology '{raw}'"
            if info.id == _AMBIGUOUS:
                return None, REASON_BOOK_AMBIGUOUS, f"several books with chronology '{raw}'"
            return info, "", ""

        book_id = _parse_int(raw)
        if not book_id:
            return None, REASON_BOOK_NOT_FOUND, "book id is required"
        info = by_id.get(book_id)
        if info is None:
            return None, REASON_BOOK_NOT_FOUND, f"book {book_id} not found"
        return info, "", ""

    # ----- Template application -----

    def _default_record_type(self) -> str:
        parsed = RecordType.parse(self.model.metadata.record_type, RecordType.OTHER)
        return parsed.value

    def _apply_base_defaults(self, record: TranscriptionRecord) -> None:
        defaults = self.model.base_defaults
        record_type = RecordType.parse(defaults.get("tipus_acte"))
        if record_type:
            record.record_type = record_type.value
        status = ModerationStatus.parse(defaults.get("moderation_status"))
        if status:
            record.moderation_status = status.value

    def _apply_column(self, column: Column, raw: str, ctx: RowContext, draft: RowDraft) -> None:
        branch = column.then
        if column.condition is not None:
            if evaluate_column_condition(column.condition, raw, ctx):
                branch = column.then
            elif column.otherwise is not None:
                branch = column.otherwise
            else:
                return

        for entry in branch.entries:
            if not entry.target.raw:
                continue
            if not evaluate_inline_condition(entry.condition, ctx):
                continue
            extras: dict[str, str] = {}
            value = raw
            if branch.transforms:
                value = apply_transforms(value, branch.transforms, self.transform_context, extras).value
            outcome = apply_transforms(value, entry.transforms, self.transform_context, extras)
            self._dispatch(entry, outcome.value, outcome.extras, outcome.person_transform, draft)
            draft.mapped[entry.target.raw] = outcome.value

    def _dispatch(
        self, entry: MapEntry, value: str, extras: dict[str, str], person_transform: str, draft: RowDraft
    ) -> None:
        target = entry.target
        if target.family == "person" and not target.field:
            self._apply_person_role(target.name, value, person_transform, draft)
        elif target.family == "base":
            self._apply_base(target, value, extras, draft.record)
        elif target.family == "person":
            self._apply_person_field(target, value, extras, draft)
        elif target.family == "attr":
            self._apply_attr(target, value, extras, draft)

    def _apply_person_role(self, role: str, value: str, person_transform: str, draft: RowDraft) -> None:
        if not role or not value.strip():
            return
        if person_transform:
            parsed = parse_person_for_transform(person_transform, value, self.quality_config)
        else:
            parsed = parse_person(value, self.default_name_order, self.quality_config)
        if parsed.is_empty():
            return
        draft.persons[role] = merge_person(draft.persons.get(role), person_from_parsed(role, parsed))

    def _apply_base(self, target: TargetRef, value: str, extras: dict[str, str], record: TranscriptionRecord) -> None:
        name = target.name
        date_quality = extras.get(DATE_ESTAT, "")
        if name == "llibre_id":
            # Resolved through book_resolution before the columns are applied
            return
        if name in ("pagina_id", "posicio_pagina", "any_doc"):
            setattr(record, RECORD_FIELDS[name], _parse_int(value))
        elif name == "tipus_acte":
            parsed = RecordType.parse(value)
            if parsed:
                record.record_type = parsed.value
        elif name == "data_acte_iso":
            if is_iso_date(value):
                record.act_date_iso = value
            elif value and not record.act_date_text:
                record.act_date_text = value
            if date_quality:
                record.act_date_quality = date_quality
        elif name == "data_acte_estat":
            record.act_date_quality = normalize_quality(value)
        elif name == "data_acte_iso_text_estat":
            if value:
                if is_iso_date(value):
                    record.act_date_iso = value
                else:
                    record.act_date_text = value
            if date_quality:
                record.act_date_quality = date_quality
        elif name == "moderation_status":
            parsed_status = ModerationStatus.parse(value)
            if parsed_status:
                record.moderation_status = parsed_status.value
        elif name in RECORD_FIELDS:
            setattr(record, RECORD_FIELDS[name], value)

    def _apply_person_field(self, target: TargetRef, value: str, extras: dict[str, str], draft: RowDraft) -> None:
        person = draft.person(target.name)
        field_name = target.field
        explicit = extras.get(QUALITY, "")

        if field_name in ("ofici_text_with_quality", "municipi_text_with_quality"):
            attr = "occupation" if field_name.startswith("ofici") else "municipality"
            setattr(person, attr, value)
            setattr(person, f"{attr}_quality", default_quality(value, explicit))
            return
        if field_name.endswith("_estat"):
            attr = PERSON_FIELDS.get(field_name[: -len("_estat")])
            if attr and attr != "notes":
                setattr(person, f"{attr}_quality", normalize_quality(value))
            return

        attr = PERSON_FIELDS.get(field_name)
        if attr is None:
            return
        if field_name in ("nom", "cognom1", "cognom2", "cognom_soltera"):
            cleaned, found = extract_quality(value, self.quality_config)
            if cleaned or found:
                value = cleaned
            explicit = explicit or found
        setattr(person, attr, value)
        if attr != "notes":
            setattr(person, f"{attr}_quality", default_quality(value, explicit))

    def _apply_attr(self, target: TargetRef, value: str, extras: dict[str, str], draft: RowDraft) -> None:
        if not target.name:
            return
        attr = draft.attribute(target.name)
        attr_type = target.attr_type
        if attr_type in ("int", "int_nullable"):
            attr.value_type = "int"
            attr.value_int = _parse_int(value)
        elif attr_type == "date":
            attr.value_type = "date"
            if is_iso_date(value):
                attr.value_date = value
            else:
                attr.value_text = value
        elif attr_type == "bool":
            attr.value_type = "bool"
            lowered = value.strip().lower()
            if lowered:
                attr.value_bool = lowered in TRUE_VALUES
        elif attr_type == "estat":
            attr.quality = normalize_quality(value)
        elif attr_type == "date_or_text_with_quality":
            attr.value_type = "text"
            if is_iso_date(value):
                attr.value_date = value
            else:
                attr.value_text = value
            if extras.get(DATE_ESTAT):
                attr.quality = extras[DATE_ESTAT]
            elif value:
                attr.quality = parse_flexible_date(value, self.transform_context.date_format).quality
        elif attr_type == "text_with_quality":
            cleaned, found = extract_quality(value, self.quality_config)
            attr.value_type = "text"
            attr.value_text = cleaned
            attr.quality = default_quality(cleaned, extras.get(QUALITY, "") or found)
        else:
            attr.value_type = "text"
            attr.value_text = value

    # ----- Merge and create -----

    def _load_existing_by_principal(self, book_id: int, roles: list[str]) -> dict[str, int]:
        """Principal-name key -> record id for the records already in a book.

        The first record seen for a key wins.
        """
        existing: dict[str, int] = {}
        for record in self.store.list_records(book_id):
            by_role: dict[str, TranscriptionPerson] = {}
            for person in self.store.list_persons(record.id):
                by_role.setdefault(person.role, person)
            key = principal_person_key(by_role, roles)
            if key:
                existing.setdefault(key, record.id)
        logger.debug(f"Indexed {len(existing)} existing principals in book {book_id}")
        return existing

    def _merge_row(self, existing_id: int, draft: RowDraft) -> bool:
        policy = self.model.policies.merge_existing
        existing = self.store.get_record(existing_id)
        if existing is None:
            return False
        was_published = existing.is_published
        if was_published:
            apply_status_change(self.store, existing_id, existing.moderation_status, ModerationStatus.PENDING.value)

        try:
            if update_existing_record(existing, draft.record, policy.update_missing_only):
                self.store.update_record(existing)

            if policy.add_missing_people:
                known = {person_identity(p) for p in self.store.list_persons(existing_id)}
                for person in draft.persons.values():
                    if person.is_empty() or person_identity(person) in known:
                        continue
                    person.record_id = existing_id
                    self.store.create_person(person)
                    known.add(person_identity(person))

            if policy.add_missing_attrs:
                known_keys = {a.key for a in self.store.list_attributes(existing_id)}
                for attr in draft.attributes.values():
                    if attr.is_empty() or attr.key in known_keys:
                        continue
                    attr.record_id = existing_id
                    self.store.create_attribute(attr)
                    known_keys.add(attr.key)
        finally:
            if was_published:
                apply_status_change(self.store, existing_id, ModerationStatus.PENDING.value, existing.moderation_status)
        return True

    def _create_row(self, row_num: int, draft: RowDraft, result: IngestResult) -> bool:
        record = draft.record
        record.act_date_quality = normalize_quality(record.act_date_quality)
        if not record.act_date_quality:
            has_date = bool(record.act_date_text.strip() or record.act_date_iso)
            record.act_date_quality = "clear" if has_date else "no_record"
        if record.document_year is None:
            record.document_year = year_from_iso(record.act_date_iso)
        if record.document_year is not None and not (
            MIN_DOCUMENT_YEAR <= record.document_year <= MAX_DOCUMENT_YEAR
        ):
            result.add_error(
                row_num,
                REASON_INVALID_YEAR,
                f"year {record.document_year} out of range",
                {"any_doc": str(record.document_year)},
            )
            return False

        try:
            record_id = self.store.create_record(record)
        except CercagenError as e:
            logger.warning(f"Row {row_num}: could not create record: {e}")
            result.add_error(row_num, REASON_CREATE_FAILED, f"could not create record: {e}")
            return False

        for person in draft.persons.values():
            if person.is_empty():
                continue
            person.record_id = record_id
            try:
                self.store.create_person(person)
            except CercagenError as e:
                logger.warning(f"Row {row_num}: could not store person '{person.role}': {e}")
        for attr in draft.attributes.values():
            if attr.is_empty():
                continue
            attr.record_id = record_id
            try:
                self.store.create_attribute(attr)
            except CercagenError as e:
                logger.warning(f"Row {row_num}: could not store attribute '{attr.key}': {e}")

        if record.is_published:
            apply_status_change(self.store, record_id, None, record.moderation_status)
        return True

    def _refresh_touched_books(self, result: IngestResult) -> None:
        for book_id in sorted(result.touched_book_ids):
            try:
                recompute_book_stats(self.store, book_id)
            except CercagenError as e:
                logger.warning(f"Could not refresh indexing stats of book {book_id}: {e}")


def update_existing_record(existing: TranscriptionRecord, incoming: TranscriptionRecord, missing_only: bool) -> bool:
    """Copy header fields from ``incoming``; returns whether anything changed.

    With ``missing_only`` a field is written only when the existing value is
    empty; the act-date quality may also replace ``no_record``.
    """
    updated = False
    for attr in (
        "page_label",
        "page_position",
        "document_year",
        "act_date_text",
        "act_date_iso",
        "literal_text",
        "marginal_notes",
        "paleographic_notes",
    ):
        current = getattr(existing, attr)
        new = getattr(incoming, attr)
        if missing_only and current not in (None, ""):
            continue
        if new not in (None, "") and new != current:
            setattr(existing, attr, new)
            updated = True

    quality = normalize_quality(incoming.act_date_quality)
    if (not missing_only or existing.act_date_quality in ("", "no_record")) and quality:
        if quality != existing.act_date_quality:
            existing.act_date_quality = quality
            updated = True
    return updated


def ingest(
    store: DataAccess,
    template: ImportTemplateModel | str | bytes | dict[str, Any],
    reader: Iterable[str],
    separator: str = ",",
    user_id: int | None = None,
    scope: ImportScope | None = None,
    fixed_book_id: int | None = None,
    cancel_event: threading.Event | None = None,
) -> IngestResult:
    """Ingest CSV rows with a template.

    Args:
        store: Data-access implementation
        template: Loaded model, or a template document to load and validate
        reader: Text stream (or any iterable of lines) holding the CSV
        separator: One of ``,`` ``;`` ``|`` or tab
        user_id: Stamped as ``created_by`` on new records
        scope: Restricts book lookups to the caller's municipality/archive
        fixed_book_id: Ingest every row into this book
        cancel_event: Checked between rows; when set the partial result is returned

    Returns:
        IngestResult; template problems are reported as a row-0 error
    """
    if not isinstance(template, ImportTemplateModel):
        try:
            template = load_template(template)
        except TemplateParseError as e:
            result = IngestResult()
            result.add_error(0, REASON_INVALID_TEMPLATE, str(e))
            return result
        except TemplateValidationError as e:
            result = IngestResult()
            result.add_error(0, REASON_INVALID_TEMPLATE, str(e), {"errors": "; ".join(e.errors)})
            return result
    engine = IngestionEngine(store, template)
    return engine.run(reader, separator, user_id, scope, fixed_book_id, cancel_event)


__all__ = [
    "IngestResult",
    "IngestionEngine",
    "ImportScope",
    "RowContext",
    "RowError",
    "ingest",
]
