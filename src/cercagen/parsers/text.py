"""Helpers for parenthetical groups in free-text cells."""

from cercagen.utils.normalize import collapse_whitespace


def split_parentheticals(text: str) -> tuple[str, list[str]]:
    """Split ``"Puig Joan (pagès) (Valls)"`` into the core and its groups.

    Returns:
        Tuple of (text without groups, list of non-empty group contents)
    """
    rest = text or ""
    core_parts: list[str] = []
    extras: list[str] = []
    while True:
        start = rest.find("(")
        if start < 0:
            break
        end = rest.find(")", start)
        if end < 0:
            break
        core_parts.append(rest[:start])
        inner = rest[start + 1 : end].strip()
        if inner:
            extras.append(inner)
        rest = rest[end + 1 :]
    core_parts.append(rest)
    return collapse_whitespace(" ".join(core_parts)), extras


def extract_parenthetical_all(text: str) -> str:
    """All group contents joined with ``"; "``."""
    return "; ".join(split_parentheticals(text)[1])


def extract_parenthetical_last(text: str) -> str:
    extras = split_parentheticals(text)[1]
    return extras[-1] if extras else ""


def strip_parentheticals(text: str) -> str:
    return split_parentheticals(text)[0]


def split_couple(text: str, select: str = "left") -> str:
    """Pick one side of ``"Joan X i Maria Y"``; the split is on the first `` i ``.

    Without a standalone ``i`` the whole value is the left side.
    """
    value = (text or "").strip()
    lowered = value.lower()
    idx = lowered.find(" i ")
    if idx < 0:
        return value if select != "right" else ""
    if select == "right":
        return value[idx + 3 :].strip()
    return value[:idx].strip()
