"""The transform pipeline applied to each cell before it reaches its target.

Transforms run left to right on a string value. Side information (the date
quality, an explicit field quality) travels in ``extras``. A
``parse_person_from_*`` step ends the pipeline: the engine builds the person
from the value using that parser.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger

from cercagen.models.template import TransformName, TransformStep
from cercagen.parsers.dates import parse_ddmmyyyy_to_iso, parse_flexible_date
from cercagen.parsers.marriage_order import parse_marriage_order, strip_marriage_order_text
from cercagen.parsers.text import (
    extract_parenthetical_all,
    extract_parenthetical_last,
    split_couple,
    strip_parentheticals,
)
from cercagen.utils.normalize import normalize_cronologia, strip_diacritics

DATE_ESTAT = "date_estat"
QUALITY = "quality"


@dataclass
class TransformResult:
    value: str
    extras: dict[str, str] = field(default_factory=dict)
    person_transform: str = ""


@dataclass
class TransformContext:
    date_format: str = "dd/mm"


_Handler = Callable[[str, TransformStep, dict[str, str], TransformContext], str]


def _trim(value, step, extras, ctx):
    return value.strip()


def _lower(value, step, extras, ctx):
    return value.lower()


def _strip_diacritics(value, step, extras, ctx):
    return strip_diacritics(value)


def _normalize_cronologia(value, step, extras, ctx):
    return normalize_cronologia(value)


def _parse_ddmmyyyy(value, step, extras, ctx):
    iso = parse_ddmmyyyy_to_iso(value)
    extras[DATE_ESTAT] = "clear" if iso else parse_flexible_date(value, ctx.date_format).quality
    return iso


def _parse_date_flexible(value, step, extras, ctx):
    parsed = parse_flexible_date(value, ctx.date_format)
    extras[DATE_ESTAT] = parsed.quality
    return parsed.iso or parsed.text


def _parse_int_nullable(value, step, extras, ctx):
    text = value.strip()
    try:
        return str(int(text))
    except ValueError:
        return ""


def _parse_marriage_order(value, step, extras, ctx):
    order = parse_marriage_order(value)
    return "" if order is None else str(order)


def _strip_marriage_order(value, step, extras, ctx):
    return strip_marriage_order_text(value)


def _split_couple(value, step, extras, ctx):
    select = step.arg("select").strip() or step.value.strip() or "left"
    return split_couple(value, select)


def _set_default(value, step, extras, ctx):
    if value.strip():
        return value
    return step.value or step.arg("value")


def _map_values(value, step, extras, ctx):
    table = step.args or {}
    if value in table:
        return str(table[value])
    lowered = value.strip().lower()
    for key, mapped in table.items():
        if str(key).strip().lower() == lowered:
            return str(mapped)
    return value


def _regex_extract(value, step, extras, ctx):
    pattern = step.arg("pattern")
    try:
        group = int(step.arg("group", "1") or 1)
    except ValueError:
        group = 1
    try:
        match = re.search(pattern, value)
    except re.error as e:
        logger.warning(f"Invalid regex_extract pattern {pattern!r}: {e}")
        return ""
    if not match:
        return ""
    try:
        return (match.group(group) or "").strip()
    except IndexError:
        return ""


def _extract_parenthetical_last(value, step, extras, ctx):
    return extract_parenthetical_last(value)


def _extract_parenthetical_all(value, step, extras, ctx):
    return extract_parenthetical_all(value)


def _strip_parentheticals(value, step, extras, ctx):
    return strip_parentheticals(value)


def _default_quality_if_present(value, step, extras, ctx):
    if value.strip():
        extras[QUALITY] = "clear"
    return value


_HANDLERS: dict[str, _Handler] = {
    TransformName.TRIM.value: _trim,
    TransformName.LOWER.value: _lower,
    TransformName.STRIP_DIACRITICS.value: _strip_diacritics,
    TransformName.NORMALIZE_CRONOLOGIA.value: _normalize_cronologia,
    TransformName.PARSE_DDMMYYYY_TO_ISO.value: _parse_ddmmyyyy,
    TransformName.PARSE_DATE_FLEXIBLE_TO_BASE_DATA_ACTE.value: _parse_date_flexible,
    TransformName.PARSE_DATE_FLEXIBLE_TO_DATE_OR_TEXT_WITH_QUALITY.value: _parse_date_flexible,
    TransformName.PARSE_INT_NULLABLE.value: _parse_int_nullable,
    TransformName.PARSE_MARRIAGE_ORDER_INT_NULLABLE.value: _parse_marriage_order,
    TransformName.STRIP_MARRIAGE_ORDER_TEXT.value: _strip_marriage_order,
    TransformName.SPLIT_COUPLE_I.value: _split_couple,
    TransformName.SET_DEFAULT.value: _set_default,
    TransformName.MAP_VALUES.value: _map_values,
    TransformName.REGEX_EXTRACT.value: _regex_extract,
    TransformName.EXTRACT_PARENTHETICAL_LAST.value: _extract_parenthetical_last,
    TransformName.EXTRACT_PARENTHETICAL_ALL.value: _extract_parenthetical_all,
    TransformName.STRIP_PARENTHETICALS.value: _strip_parentheticals,
    TransformName.DEFAULT_QUALITY_IF_PRESENT.value: _default_quality_if_present,
}


def apply_transforms(
    value: str,
    steps: list[TransformStep],
    context: TransformContext | None = None,
    extras: dict[str, str] | None = None,
) -> TransformResult:
    """Run ``steps`` over ``value``; stops at the first person parser."""
    context = context or TransformContext()
    result = TransformResult(value=value, extras=extras if extras is not None else {})
    for step in steps:
        if step.is_person_parser:
            result.person_transform = step.name
            return result
        handler = _HANDLERS.get(step.name)
        if handler is None:
            # Validated templates never get here
            logger.warning(f"Skipping unknown transform '{step.name}'")
            continue
        result.value = handler(result.value, step, result.extras, context)
    return result
