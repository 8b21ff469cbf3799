"""Marriage-order annotations such as ``(2)``, ``2n``, ``matrimoni 3``."""

import re

from cercagen.utils.normalize import collapse_whitespace

# Checked in this order; the longer forms first so their literal is removed whole
_ORDER_PATTERNS = [
    re.compile(r"\(\s*(\d+)\s*[rnt]?\s*\)", re.IGNORECASE),
    re.compile(r"\b(\d+)\s*(?:r|n|t)?\s*matrimoni\b", re.IGNORECASE),
    re.compile(r"matrimoni\s*(\d+)", re.IGNORECASE),
    re.compile(r"\b(\d+)\s*(?:r|n|t)\b", re.IGNORECASE),
]

_EMPTY_PARENS = re.compile(r"\(\s*\)")


def parse_marriage_order(text: str) -> int | None:
    """Marriage order number found in ``text``, or ``None``."""
    value = text or ""
    for pattern in _ORDER_PATTERNS:
        match = pattern.search(value)
        if match:
            return int(match.group(1))
    return None


def strip_marriage_order_text(text: str) -> str:
    """Remove marriage-order literals and tidy the leftover punctuation."""
    value = text or ""
    for pattern in _ORDER_PATTERNS:
        value = pattern.sub(" ", value)
    value = _EMPTY_PARENS.sub(" ", value)
    value = value.replace(":", " ").replace("-", " ")
    return collapse_whitespace(value).strip(" ,;")
