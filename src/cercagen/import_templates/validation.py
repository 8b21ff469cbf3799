"""Authoring rules for import templates.

``validate_template`` collects every violation instead of stopping at the
first one, so a template editor can show them all at once.
"""

from typing import Any

from loguru import logger

from cercagen.config.constants import (
    ATTRIBUTE_TYPES,
    BASE_TARGETS,
    MAX_MAP_TO_ENTRIES,
    MAX_TEMPLATE_COLUMNS,
    MAX_TRANSFORMS_PER_ENTRY,
    PERSON_FIELDS,
)
from cercagen.errors import TemplateValidationError
from cercagen.import_templates.catalog import allowed_targets
from cercagen.import_templates.loader import parse_template
from cercagen.models.template import (
    Column,
    ImportTemplateModel,
    InlineCondition,
    MapEntry,
    TargetRef,
    TransformName,
    TransformStep,
)

_TRANSFORM_NAMES = frozenset(t.value for t in TransformName)
_PERSON_TARGET_FIELDS = frozenset(
    list(PERSON_FIELDS)
    + [f"{name}_estat" for name in PERSON_FIELDS if name != "notes"]
    + ["ofici_text_with_quality", "municipi_text_with_quality"]
)


def validate_transforms(steps: list[TransformStep], where: str) -> list[str]:
    errors: list[str] = []
    if len(steps) > MAX_TRANSFORMS_PER_ENTRY:
        errors.append(f"{where}: too many transforms ({len(steps)} > {MAX_TRANSFORMS_PER_ENTRY})")
    for step in steps:
        if step.name not in _TRANSFORM_NAMES:
            errors.append(f"{where}: unsupported transform '{step.name}'")
            continue
        if step.name == TransformName.MAP_VALUES.value and not step.args:
            errors.append(f"{where}: map_values requires args")
        elif step.name == TransformName.REGEX_EXTRACT.value and not step.arg("pattern").strip():
            errors.append(f"{where}: regex_extract requires a pattern")
        elif step.name == TransformName.SET_DEFAULT.value and not (step.value.strip() or step.arg("value").strip()):
            errors.append(f"{where}: set_default requires a value")
        elif step.name == TransformName.SPLIT_COUPLE_I.value:
            select = step.arg("select").strip() or step.value.strip()
            if select and select not in ("left", "right"):
                errors.append(f"{where}: split_couple_i select must be 'left' or 'right'")
    return errors


def validate_target(target: TargetRef, allowed: frozenset[str] | None) -> list[str]:
    if not target.raw:
        return ["empty mapping target"]
    if target.family == "base":
        if target.name not in BASE_TARGETS:
            return [f"unrecognised base target: {target.raw}"]
    elif target.family == "person":
        if not target.name:
            return [f"person target without role: {target.raw}"]
        if target.field and target.field not in _PERSON_TARGET_FIELDS:
            return [f"unrecognised person field: {target.raw}"]
    elif target.family == "attr":
        if not target.name:
            return [f"attribute target without key: {target.raw}"]
        if target.field and target.field not in ATTRIBUTE_TYPES:
            return [f"unrecognised attribute type: {target.raw}"]
    else:
        return [f"unrecognised target: {target.raw}"]
    if allowed is not None and target.raw not in allowed:
        return [f"target not allowed for this template type: {target.raw}"]
    return []


def validate_inline_condition(condition: InlineCondition | None) -> list[str]:
    if condition is None:
        return []
    if condition.op == "not_empty":
        if not condition.column.strip():
            return ["not_empty condition without column"]
    elif condition.op == "equals":
        if not condition.column.strip():
            return ["equals condition without column"]
        if not condition.value.strip():
            return ["equals condition without value"]
    else:
        return [f"unsupported inline condition: {condition.op or '(empty)'}"]
    return []


def _validate_entries(entries: list[MapEntry], where: str, allowed: frozenset[str] | None) -> list[str]:
    errors: list[str] = []
    if len(entries) > MAX_MAP_TO_ENTRIES:
        errors.append(f"{where}: too many map_to entries ({len(entries)} > {MAX_MAP_TO_ENTRIES})")
    for entry in entries:
        errors.extend(f"{where}: {msg}" for msg in validate_target(entry.target, allowed))
        errors.extend(validate_transforms(entry.transforms, where))
        errors.extend(f"{where}: {msg}" for msg in validate_inline_condition(entry.condition))
    return errors


def validate_column(column: Column, allowed: frozenset[str] | None) -> list[str]:
    where = f"column '{column.header}'" if column.header else "column"
    if not column.header.strip():
        return [f"{where}: empty header"]
    errors: list[str] = []
    if column.condition is not None and not column.condition.valid:
        errors.append(f"{where}: invalid condition '{column.condition.expr}'")
    if not column.then.entries and not (column.otherwise and column.otherwise.entries):
        errors.append(f"{where}: map_to must not be empty")
    for branch in column.branches():
        errors.extend(validate_transforms(branch.transforms, where))
        errors.extend(_validate_entries(branch.entries, where, allowed))
    return errors


def validate_template(model: ImportTemplateModel) -> list[str]:
    """Return every rule violation of ``model``; an empty list means valid."""
    errors: list[str] = []
    if len(model.columns) > MAX_TEMPLATE_COLUMNS:
        errors.append(f"too many columns ({len(model.columns)} > {MAX_TEMPLATE_COLUMNS})")
    if model.book_resolution.mode not in ("by_id", "by_chronology_label"):
        errors.append(f"unsupported book resolution mode: {model.book_resolution.mode}")
    if model.book_resolution.ambiguity_policy not in ("fail", "first_match"):
        errors.append(f"unsupported ambiguity policy: {model.book_resolution.ambiguity_policy}")
    if model.policies.merge_existing.mode not in ("none", "", "by_principal_person_if_book_indexed"):
        errors.append(f"unsupported merge mode: {model.policies.merge_existing.mode}")
    if model.metadata.date_format not in ("dd/mm", "mm/dd", "iso"):
        errors.append(f"unsupported date format: {model.metadata.date_format}")

    allowed = allowed_targets(model.metadata.record_type)
    for column in model.columns:
        errors.extend(validate_column(column, allowed))
    return errors


def load_template(document: str | bytes | dict[str, Any]) -> ImportTemplateModel:
    """Parse and validate a template document.

    Raises:
        TemplateParseError: If the document is not a JSON object
        TemplateValidationError: If any authoring rule is broken
    """
    model = parse_template(document)
    errors = validate_template(model)
    if errors:
        logger.info(f"Template rejected with {len(errors)} error(s): {errors[0]}")
        raise TemplateValidationError(errors)
    return model
