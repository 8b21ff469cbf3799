"""Turn a user-authored template JSON document into an ``ImportTemplateModel``.

Documents are lenient: transforms may be bare names or objects, some keys have
legacy spellings, and metadata may sit at the root. Everything is resolved
here so the engine never looks at raw JSON.
"""

import hashlib
import json
from typing import Any

from loguru import logger

from cercagen.errors import TemplateParseError
from cercagen.models.records import ModerationStatus
from cercagen.models.template import (
    BookResolution,
    Branch,
    Column,
    ColumnCondition,
    DedupPolicy,
    ImportTemplateModel,
    InlineCondition,
    MapEntry,
    MergePolicy,
    Policies,
    TargetRef,
    TemplateMetadata,
    TransformStep,
)

BOOK_MODE_ALIASES = {
    "by_id": "by_id",
    "llibre_id": "by_id",
    "by_chronology_label": "by_chronology_label",
    "cronologia_lookup": "by_chronology_label",
}


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return _as_str(value).lower() in ("1", "true", "yes", "si", "on")


def _as_int(value: Any, default: int) -> int:
    try:
        return int(_as_str(value))
    except ValueError:
        return default


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [_as_str(v) for v in value if _as_str(v)]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def parse_transforms(raw: Any) -> list[TransformStep]:
    """Transforms are ``"trim"`` or ``{"name"|"op": ..., "value"|"arg": ..., "args": {...}}``."""
    if isinstance(raw, (str, dict)):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    steps: list[TransformStep] = []
    for item in raw:
        if isinstance(item, str):
            if item.strip():
                steps.append(TransformStep(name=item.strip().lower()))
            continue
        if not isinstance(item, dict):
            continue
        name = _as_str(item.get("name")) or _as_str(item.get("op"))
        value = item.get("value", item.get("arg"))
        steps.append(
            TransformStep(
                name=name.lower(),
                value=_as_str(value) if not isinstance(value, dict) else "",
                args=_as_dict(item.get("args")) or (value if isinstance(value, dict) else {}),
            )
        )
    return steps


def parse_map_to(raw: Any) -> list[MapEntry]:
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    entries: list[MapEntry] = []
    for item in raw:
        if isinstance(item, str):
            entries.append(MapEntry(target=TargetRef.parse(item)))
            continue
        if not isinstance(item, dict):
            continue
        transforms = item.get("transforms", item.get("transform"))
        condition = None
        cond_raw = item.get("condition")
        if isinstance(cond_raw, dict):
            args = _as_dict(cond_raw.get("args"))
            condition = InlineCondition(
                op=_as_str(cond_raw.get("op")).lower(),
                column=_as_str(args.get("column", cond_raw.get("column"))),
                value=_as_str(args.get("value", cond_raw.get("value"))),
            )
        entries.append(
            MapEntry(
                target=TargetRef.parse(_as_str(item.get("target"))),
                transforms=parse_transforms(transforms),
                condition=condition,
            )
        )
    return entries


def _parse_branch(raw: Any) -> Branch | None:
    if not isinstance(raw, dict):
        return None
    return Branch(
        transforms=parse_transforms(raw.get("transforms")),
        entries=parse_map_to(raw.get("map_to")),
    )


def parse_column(raw: dict[str, Any]) -> Column:
    base_branch = Branch(entries=parse_map_to(raw.get("map_to")))
    column = Column(
        header=_as_str(raw.get("header")),
        key=_as_str(raw.get("key")),
        aliases=_as_str_list(raw.get("aliases")),
        required=_as_bool(raw.get("required")),
        then=base_branch,
    )
    cond_raw = raw.get("condition")
    if isinstance(cond_raw, dict):
        column.condition = ColumnCondition.from_expr(_as_str(cond_raw.get("expr")))
        then_branch = _parse_branch(cond_raw.get("then"))
        if then_branch is not None and (then_branch.entries or then_branch.transforms):
            if not then_branch.entries:
                then_branch.entries = base_branch.entries
            column.then = then_branch
        column.otherwise = _parse_branch(cond_raw.get("else"))
    return column


def _parse_policies(raw: dict[str, Any]) -> Policies:
    policies = Policies()
    moderation = ModerationStatus.parse(_as_str(raw.get("moderation_status")))
    if moderation:
        policies.moderation_status = moderation.value

    dedup = _as_dict(raw.get("dedup"))
    if dedup:
        keys = _as_str_list(dedup.get("key_fields")) + _as_str_list(dedup.get("key_columns"))
        enabled = _as_bool(dedup["within_file"]) if "within_file" in dedup else bool(keys)
        policies.dedup = DedupPolicy(enabled=enabled, key_fields=keys)

    merge = _as_dict(raw.get("merge_existing"))
    if merge:
        defaults = MergePolicy()
        policies.merge_existing = MergePolicy(
            mode=_as_str(merge.get("mode")) or "none",
            principal_roles=_as_str_list(merge.get("principal_roles")) or defaults.principal_roles,
            update_missing_only=_as_bool(merge.get("update_missing_only", True)),
            add_missing_people=_as_bool(merge.get("add_missing_people", True)),
            add_missing_attrs=_as_bool(merge.get("add_missing_attrs", True)),
            avoid_duplicate_rows_by_principal_name_per_book=_as_bool(
                merge.get("avoid_duplicate_rows_by_principal_name_per_book", False)
            ),
        )
    return policies


def parse_template(document: str | bytes | dict[str, Any]) -> ImportTemplateModel:
    """Parse a template document without applying validation rules.

    Raises:
        TemplateParseError: If the document is not a JSON object
    """
    if isinstance(document, (str, bytes)):
        try:
            root = json.loads(document)
        except json.JSONDecodeError as e:
            raise TemplateParseError(f"Template is not valid JSON: {e}") from e
    else:
        root = document
    if not isinstance(root, dict):
        raise TemplateParseError("Template root must be a JSON object")

    meta_raw = _as_dict(root.get("metadata"))
    metadata = TemplateMetadata(
        version=_as_int(meta_raw.get("version", root.get("version")), 1),
        kind=_as_str(meta_raw.get("kind", root.get("kind"))) or "transcripcions_raw",
        record_type=_as_str(root.get("record_type")) or _as_str(meta_raw.get("record_type")) or "generic",
        preset_code=_as_str(root.get("preset_code")) or _as_str(meta_raw.get("preset_code")),
        name_order=_as_str(root.get("name_order")),
        date_format=_as_str(root.get("date_format")) or "dd/mm",
    )

    book_raw = _as_dict(root.get("book_resolution"))
    mode = _as_str(book_raw.get("mode")) or "by_id"
    book_resolution = BookResolution(
        mode=BOOK_MODE_ALIASES.get(mode, mode),
        column=_as_str(book_raw.get("column")) or "llibre_id",
        normalize_chronology=any(
            _as_bool(book_raw.get(k))
            for k in ("normalize_chronology", "normalize_cronologia", "cronologia_normalize")
        ),
        ambiguity_policy=_as_str(book_raw.get("ambiguity_policy")) or "fail",
        scope_filters=_as_bool(book_raw.get("scope_filters", True)),
    )

    columns_raw = _as_dict(root.get("mapping")).get("columns")
    columns = [parse_column(c) for c in columns_raw if isinstance(c, dict)] if isinstance(columns_raw, list) else []

    quality_raw = _as_dict(root.get("quality"))
    model = ImportTemplateModel(
        metadata=metadata,
        book_resolution=book_resolution,
        base_defaults={k: _as_str(v) for k, v in _as_dict(root.get("base_defaults")).items()},
        columns=columns,
        policies=_parse_policies(_as_dict(root.get("policies"))),
        quality_labels=_as_bool(quality_raw.get("labels")),
        quality_markers={k: _as_str(v) for k, v in _as_dict(quality_raw.get("markers")).items()},
    )
    logger.debug(f"Parsed template with {len(model.columns)} columns (record type {metadata.record_type})")
    return model


def canonical_json(document: str | bytes | dict[str, Any]) -> str:
    """Sorted-key compact JSON of a document."""
    if isinstance(document, (str, bytes)):
        document = json.loads(document)
    return json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def template_signature(document: str | bytes | dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON; identical content, identical signature."""
    return hashlib.sha256(canonical_json(document).encode("utf-8")).hexdigest()
