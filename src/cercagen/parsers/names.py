"""Person-name parsers for transcribed name cells.

Two orders are supported: surname-first (``"Puig i Ferrer Joan"``) and
given-name-first (``"Joan Puig i Ferrer"``). Parenthetical groups after the
name become notes and, for the last one, the municipality. Surnames absorb
joiners and articles (``de``, ``del``, ``i``, ``la`` ...) so that compound
surnames stay whole.

The ``_v2`` transform names are aliases of the unsuffixed ones and parse
identically; both spellings are accepted so that existing templates keep
working.
"""

from dataclasses import dataclass

from cercagen.config.constants import SURNAME_ARTICLES, SURNAME_JOINERS
from cercagen.parsers.quality import (
    QualityConfig,
    default_quality,
    merge_quality_status,
    strip_quality_label,
    strip_quality_markers,
)
from cercagen.parsers.text import split_parentheticals
from cercagen.utils.normalize import collapse_whitespace

SURNAME_FIRST = "surname_first"
GIVEN_NAME_FIRST = "given_name_first"

# transform name -> (name order, maternal surname first)
PERSON_PARSE_TRANSFORMS: dict[str, tuple[str, bool]] = {
    "parse_person_from_cognoms": (SURNAME_FIRST, False),
    "parse_person_from_cognoms_v2": (SURNAME_FIRST, False),
    "parse_person_from_cognoms_v2_maternal_first": (SURNAME_FIRST, True),
    "parse_person_from_nom": (GIVEN_NAME_FIRST, False),
    "parse_person_from_nom_v2": (GIVEN_NAME_FIRST, False),
    "parse_person_from_nom_v2_maternal_first": (GIVEN_NAME_FIRST, True),
}

_Token = tuple[str, str]


@dataclass
class ParsedPerson:
    """Result of a name parse; qualities are ``""`` for empty fields."""

    given_name: str = ""
    given_name_quality: str = ""
    surname1: str = ""
    surname1_quality: str = ""
    surname2: str = ""
    surname2_quality: str = ""
    municipality: str = ""
    municipality_quality: str = ""
    notes: str = ""

    def is_empty(self) -> bool:
        return not (self.given_name or self.surname1 or self.surname2 or self.notes)


def _is_joiner(token: str) -> bool:
    lowered = token.lower()
    return lowered in SURNAME_JOINERS or lowered.endswith("'") or lowered.endswith("’")


def _is_article(token: str) -> bool:
    return token.lower() in SURNAME_ARTICLES


def clean_token(token: str, config: QualityConfig | None = None) -> _Token:
    """Strip quality markers and stray punctuation from one name token."""
    markers = config.markers if config else None
    value, quality = strip_quality_markers(token, markers)
    return value.strip(" ,.;:"), quality


def consume_surname_from_start(tokens: list[_Token]) -> tuple[list[_Token], list[_Token]]:
    """Take one (possibly compound) surname off the front of ``tokens``."""
    if not tokens:
        return [], []
    taken = [tokens[0]]
    i = 1
    first = tokens[0][0]
    if (_is_joiner(first) or _is_article(first)) and i < len(tokens):
        if first.lower() == "de" and _is_article(tokens[i][0]) and i + 1 < len(tokens):
            taken.append(tokens[i])
            i += 1
        taken.append(tokens[i])
        i += 1
    while i < len(tokens) and _is_joiner(tokens[i][0]):
        joiner = tokens[i][0].lower()
        taken.append(tokens[i])
        i += 1
        if joiner == "de" and i < len(tokens) and _is_article(tokens[i][0]):
            taken.append(tokens[i])
            i += 1
        if i < len(tokens):
            taken.append(tokens[i])
            i += 1
    return taken, tokens[i:]


def consume_surname_from_end(tokens: list[_Token]) -> tuple[list[_Token], list[_Token]]:
    """Take one (possibly compound) surname off the back of ``tokens``."""
    if not tokens:
        return [], []
    start = len(tokens) - 1
    while start > 0:
        previous = tokens[start - 1][0]
        if _is_article(previous):
            start -= 1
            if start > 0 and tokens[start - 1][0].lower() == "de":
                start -= 1
            break
        if _is_joiner(previous):
            start -= 1
            # "i" links two surnames; other joiners are prefixes
            if previous.lower() == "i" and start > 0:
                start -= 1
                continue
            break
        break
    return tokens[start:], tokens[:start]


def _join(tokens: list[_Token]) -> tuple[str, str]:
    text = " ".join(t for t, _ in tokens if t)
    quality = merge_quality_status(*(q for _, q in tokens))
    return text, default_quality(text, quality)


def _tokenize_core(core: str, config: QualityConfig | None) -> list[_Token]:
    tokens = [clean_token(raw, config) for raw in core.split()]
    return [(t, q) for t, q in tokens if t]


def _apply_extras(person: ParsedPerson, extras: list[str], config: QualityConfig | None) -> None:
    if not extras:
        return
    markers = config.markers if config else None
    municipality, quality = strip_quality_markers(extras[-1], markers)
    person.municipality = municipality
    person.municipality_quality = default_quality(municipality, quality)
    person.notes = "; ".join(extras[:-1])


def _apply_global_quality(person: ParsedPerson, quality: str) -> None:
    if not quality:
        return
    for name in ("given_name", "surname1", "surname2", "municipality"):
        if getattr(person, name):
            current = getattr(person, f"{name}_quality")
            setattr(person, f"{name}_quality", merge_quality_status(current, quality))


def parse_person(text: str, order: str = SURNAME_FIRST, config: QualityConfig | None = None) -> ParsedPerson:
    """Parse a free-text person cell into name parts, notes and municipality."""
    person = ParsedPerson()
    value = collapse_whitespace(text)
    if not value:
        return person

    label_quality = ""
    if config and config.labels:
        value, label_quality = strip_quality_label(value)

    core, extras = split_parentheticals(value)
    tokens = _tokenize_core(core, config)

    if order == GIVEN_NAME_FIRST:
        last, rest = consume_surname_from_end(tokens)
        if len(rest) <= 1:
            person.given_name, person.given_name_quality = _join(rest)
            person.surname1, person.surname1_quality = _join(last)
        else:
            person.surname2, person.surname2_quality = _join(last)
            first, rest = consume_surname_from_end(rest)
            person.surname1, person.surname1_quality = _join(first)
            person.given_name, person.given_name_quality = _join(rest)
    else:
        first, rest = consume_surname_from_start(tokens)
        person.surname1, person.surname1_quality = _join(first)
        if len(rest) == 1:
            person.given_name, person.given_name_quality = _join(rest)
        elif len(rest) > 1:
            second, rest = consume_surname_from_start(rest)
            person.surname2, person.surname2_quality = _join(second)
            person.given_name, person.given_name_quality = _join(rest)

    _apply_extras(person, extras, config)
    _apply_global_quality(person, label_quality)
    return person


def swap_surnames(person: ParsedPerson) -> ParsedPerson:
    """Put the maternal surname first; only when both surnames are present."""
    if person.surname1 and person.surname2:
        person.surname1, person.surname2 = person.surname2, person.surname1
        person.surname1_quality, person.surname2_quality = person.surname2_quality, person.surname1_quality
    return person


def parse_person_for_transform(
    transform: str, text: str, config: QualityConfig | None = None
) -> ParsedPerson:
    """Run the parser selected by a ``parse_person_from_*`` transform name."""
    order, maternal_first = PERSON_PARSE_TRANSFORMS[transform]
    person = parse_person(text, order, config)
    if maternal_first:
        swap_surnames(person)
    return person
