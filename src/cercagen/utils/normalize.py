"""Text normalization: diacritic folding, canonical keys, tokens and phonetic codes.

Every function here is total: invalid input yields an empty string (or an
empty list) instead of raising.
"""

import re

_DIACRITICS = {
    "a": "àáâäãå",
    "e": "èéêë",
    "i": "ìíîï",
    "o": "òóôöõ",
    "u": "ùúûü",
    "c": "ç",
    "n": "ñ",
}

_DIACRITIC_TABLE: dict[int, str] = {}
for _base, _accented in _DIACRITICS.items():
    for _ch in _accented:
        _DIACRITIC_TABLE[ord(_ch)] = _base
        _DIACRITIC_TABLE[ord(_ch.upper())] = _base.upper()
_DIACRITIC_TABLE[ord("·")] = ""

_APOSTROPHES = str.maketrans({"’": "", "'": "", "‘": "", "`": ""})
_FOLD_SEPARATORS = str.maketrans({"-": " ", ".": " ", ",": " "})
_SEARCH_SEPARATORS = str.maketrans({c: " " for c in ";:()[]{}/\\"})
_WHITESPACE = re.compile(r"\s+")

_SOUNDEX_CODES = {
    **dict.fromkeys("BFPV", "1"),
    **dict.fromkeys("CGJKQSXZ", "2"),
    **dict.fromkeys("DT", "3"),
    "L": "4",
    **dict.fromkeys("MN", "5"),
    "R": "6",
}

_NAME_LITERAL_PUNCT = " -'’·."
_QUOTE_CHARS = "\"'“”«»"


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def strip_diacritics(text: str) -> str:
    """Replace accented letters with their base letter; drops the middle dot."""
    return (text or "").translate(_DIACRITIC_TABLE)


def fold(text: str) -> str:
    """Lowercase, strip diacritics and apostrophes, turn ``- . ,`` into spaces."""
    if not text:
        return ""
    folded = strip_diacritics(text.lower())
    folded = folded.translate(_APOSTROPHES).translate(_FOLD_SEPARATORS)
    return collapse_whitespace(folded)


def normalize_search_text(text: str) -> str:
    """``fold`` plus punctuation used in free-text queries."""
    if not text:
        return ""
    return fold(text.translate(_SEARCH_SEPARATORS).replace("·", " "))


def canonical_surname_key(text: str) -> str:
    """Equality key for surnames: folded, no interior spaces, uppercase."""
    return fold(text).replace(" ", "").upper()


def canonical_given_name_key(text: str) -> str:
    """Equality key for given names; same folding as surnames."""
    return fold(text).replace(" ", "").upper()


def person_name_key(*parts: str) -> str:
    """Identity key for a whole person name, used when merging rows.

    Each non-empty part is lowercased, folded and whitespace-collapsed; parts
    are joined with ``|``.
    """
    keyed = [collapse_whitespace(strip_diacritics((p or "").lower())) for p in parts]
    keyed = [p for p in keyed if p]
    return "|".join(keyed)


def tokenize(*parts: str) -> list[str]:
    """Folded tokens of all parts, de-duplicated in first-seen order."""
    seen: set[str] = set()
    tokens: list[str] = []
    for part in parts:
        for token in normalize_search_text(part).split():
            if token not in seen:
                seen.add(token)
                tokens.append(token)
    return tokens


def phonetic_code(token: str) -> str:
    """Four-character Soundex variant.

    The first letter is kept; following letters map to digits, consecutive
    equal digits collapse, and letters without a code break a run.
    """
    letters = [c for c in fold(token).upper() if "A" <= c <= "Z"]
    if not letters:
        return ""
    code = [letters[0]]
    last = _SOUNDEX_CODES.get(letters[0], "")
    for ch in letters[1:]:
        digit = _SOUNDEX_CODES.get(ch, "")
        if not digit:
            last = ""
            continue
        if digit == last:
            continue
        code.append(digit)
        last = digit
        if len(code) == 4:
            break
    return "".join(code).ljust(4, "0")


def phonetic_string(tokens: list[str]) -> str:
    """Space-joined, de-duplicated phonetic codes of the tokens."""
    codes: list[str] = []
    for token in tokens:
        code = phonetic_code(token)
        if code and code not in codes:
            codes.append(code)
    return " ".join(codes)


def _sanitize_literal(text: str) -> str:
    value = (text or "").strip().strip(_QUOTE_CHARS).strip()
    if not value:
        return ""
    if any(ch.isdigit() for ch in value) or any(ch in "()[]{}" for ch in value):
        return ""
    value = collapse_whitespace(value)
    if not all(ch.isalpha() or ch in _NAME_LITERAL_PUNCT for ch in value):
        return ""
    if sum(1 for ch in value if ch.isalpha()) < 2:
        return ""
    return value


def sanitize_name_literal(text: str) -> str:
    """Cleaned given-name literal, or ``""`` when it cannot be a name."""
    return _sanitize_literal(text)


def sanitize_surname_literal(text: str) -> str:
    """Cleaned surname literal, or ``""`` when it cannot be a surname."""
    return _sanitize_literal(text)


def normalize_csv_header(header: str) -> str:
    """Header comparison key: no BOM, lowercase, no diacritics or separators."""
    value = (header or "").replace("﻿", "").strip().lower()
    value = strip_diacritics(value)
    for ch in (" ", "_", "-", ".", ":"):
        value = value.replace(ch, "")
    return value


def normalize_cronologia(text: str) -> str:
    """Chronology label key: dots become slashes, spaces removed."""
    return (text or "").replace(".", "/").replace(" ", "").strip()
