"""Surname and given-name dictionary entities."""

from dataclasses import dataclass


@dataclass
class CognomCanonical:
    """Preferred spelling of a surname.

    A canonical merged into another keeps a ``redirect_to_id`` pointing at
    the survivor.
    """

    id: int | None = None
    form: str = ""
    key: str = ""
    redirect_to_id: int | None = None


@dataclass
class CognomVariant:
    """A spelling grouped under a canonical surname."""

    id: int | None = None
    canonical_id: int | None = None
    form: str = ""
    key: str = ""
    published: bool = True


@dataclass
class Nom:
    """Given name entry used by the name-frequency tables."""

    id: int | None = None
    form: str = ""
    key: str = ""
