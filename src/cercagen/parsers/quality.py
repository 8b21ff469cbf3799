"""Quality (estat) handling: normalization, ranking, and extraction from text.

Transcribers flag uncertain values either with markers inside the value
(``?`` doubtful, ``¿`` no record) or with a trailing label such as
``(dubtós)`` or ``[illegible]``.
"""

from dataclasses import dataclass, field

from cercagen.config.constants import DEFAULT_QUALITY_MARKERS, QUALITY_ALIASES, QUALITY_RANKS
from cercagen.utils.normalize import collapse_whitespace, strip_diacritics

# Order in which markers are looked for; the first is the strongest
MARKER_ORDER = ["no_record", "illegible", "incomplete", "doubtful"]


@dataclass
class QualityConfig:
    """How a template signals quality inside cell values."""

    labels: bool = False
    markers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_QUALITY_MARKERS))

    @classmethod
    def from_dict(cls, data: dict | None) -> "QualityConfig":
        data = data or {}
        markers = dict(DEFAULT_QUALITY_MARKERS)
        for key, marker in (data.get("markers") or {}).items():
            quality = normalize_quality(key)
            if quality and isinstance(marker, str):
                markers[quality] = marker
        return cls(labels=bool(data.get("labels", False)), markers=markers)


def normalize_quality_token(value: str) -> str:
    """Comparison form of a quality label: ``"No consta"`` -> ``"noconsta"``."""
    token = (value or "").strip().lower()
    token = token.strip("[](){}.,;:!?\"'")
    for ch in ("·", "_", "-"):
        token = token.replace(ch, "")
    token = strip_diacritics(token)
    return token.replace(" ", "")


def normalize_quality(value: str | None) -> str:
    """Stored quality value for an English or Catalan label, or ``""``."""
    if not value:
        return ""
    return QUALITY_ALIASES.get(normalize_quality_token(value), "")


def quality_rank(value: str | None) -> int:
    return QUALITY_RANKS.get(normalize_quality(value), 0)


def merge_quality_status(*values: str | None) -> str:
    """Least reliable of the given qualities; ``""`` when none is set."""
    best = ""
    for value in values:
        quality = normalize_quality(value)
        if QUALITY_RANKS.get(quality, 0) > QUALITY_RANKS.get(best, 0):
            best = quality
    return best


def default_quality(value: str, quality: str = "") -> str:
    """Quality to store next to ``value``: empty values carry none."""
    if not (value or "").strip():
        return ""
    return normalize_quality(quality) or "clear"


def strip_quality_markers(text: str, markers: dict[str, str] | None = None) -> tuple[str, str]:
    """Remove quality markers from ``text``.

    Returns:
        Tuple of (cleaned text, worst quality found or ``""``)
    """
    markers = markers if markers is not None else DEFAULT_QUALITY_MARKERS
    found = ""
    for quality in MARKER_ORDER:
        marker = markers.get(quality)
        if marker and marker in text:
            text = text.replace(marker, "")
            found = merge_quality_status(found, quality)
    return collapse_whitespace(text), found


def strip_quality_label(text: str) -> tuple[str, str]:
    """Remove a trailing quality label such as ``(dubtós)`` or ``no consta``."""
    value = (text or "").strip()
    if not value:
        return "", ""

    for opener, closer in (("(", ")"), ("[", "]")):
        if value.endswith(closer) and opener in value:
            start = value.rfind(opener)
            quality = normalize_quality(value[start + 1 : -1])
            if quality:
                return value[:start].strip(), quality

    folded = strip_diacritics(value.lower())
    if folded.endswith("no consta"):
        return value[: -len("no consta")].strip(), "no_record"

    head, _, last = value.rpartition(" ")
    quality = normalize_quality(last)
    # A bare trailing word is ambiguous with names like "Clara"
    if quality and quality != "clear":
        return head.strip(), quality
    return value, ""


def extract_quality(text: str, config: QualityConfig | None = None) -> tuple[str, str]:
    """Strip labels (when enabled) and markers; qualities merge by rank."""
    config = config or QualityConfig()
    value = text or ""
    label_quality = ""
    if config.labels:
        value, label_quality = strip_quality_label(value)
    value, marker_quality = strip_quality_markers(value, config.markers)
    return value, merge_quality_status(label_quality, marker_quality)
