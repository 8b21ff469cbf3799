"""Flexible parsing of transcribed act dates.

Historical dates arrive as ``12/03/1803``, ``15.03.1803``, ``3-4-03``,
``??/??/1804`` or just ``¿``. The parser returns either an ISO date or the
original text, together with a quality estimate.
"""

import re
from datetime import date
from typing import NamedTuple

_STRICT_DDMMYYYY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DATE_FORMATS = ("dd/mm", "mm/dd", "iso")


class FlexibleDate(NamedTuple):
    """Outcome of ``parse_flexible_date``.

    Exactly one of ``iso`` and ``text`` is non-empty unless the input was
    empty.
    """

    iso: str
    text: str
    quality: str


def is_iso_date(value: str) -> bool:
    if not _ISO_DATE.match(value or ""):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _to_iso(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_flexible_date(raw: str, date_format: str = "dd/mm") -> FlexibleDate:
    """Parse a transcribed date.

    Precedence: ``¿`` means no record; ``?`` or impossible day/month/year
    means doubtful; a shape that is not three numeric parts means incomplete;
    an empty value has no record.
    """
    value = (raw or "").strip()
    if not value:
        return FlexibleDate("", "", "no_record")
    if "¿" in value:
        return FlexibleDate("", value, "no_record")

    doubtful = "?" in value
    cleaned = value.replace("?", "").replace(".", "/").replace("-", "/").replace(" ", "")
    parts = [p for p in cleaned.split("/")]

    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return FlexibleDate("", value, "doubtful" if doubtful else "incomplete")

    if len(parts[0]) == 4 or date_format == "iso":
        year_s, month_s, day_s = parts
    elif date_format == "mm/dd":
        month_s, day_s, year_s = parts
    else:
        day_s, month_s, year_s = parts

    if len(year_s) == 2:
        year = 1900 + int(year_s)
    elif len(year_s) == 4:
        year = int(year_s)
    else:
        return FlexibleDate("", value, "doubtful")

    iso = _to_iso(year, int(month_s), int(day_s))
    if iso is None:
        return FlexibleDate("", value, "doubtful")
    return FlexibleDate(iso, "", "doubtful" if doubtful else "clear")


def parse_ddmmyyyy_to_iso(raw: str) -> str:
    """Strict ``dd/mm/yyyy`` to ISO; ``""`` when the value does not fit."""
    match = _STRICT_DDMMYYYY.match((raw or "").strip())
    if not match:
        return ""
    day, month, year = (int(g) for g in match.groups())
    return _to_iso(year, month, day) or ""
