"""Territory entities (countries, administrative levels, municipalities).

The core only reads the administrative closure; the export/import payload
models live here too.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

LEVEL_SLOTS = 7


@dataclass
class Country:
    id: int | None = None
    iso2: str = ""
    iso3: str = ""
    num: str = ""


@dataclass
class AdminLevel:
    """A node of a country's administrative hierarchy (province, comarca ...)."""

    id: int | None = None
    country_id: int | None = None
    level: int = 1
    name: str = ""
    kind: str = ""
    code: str = ""
    extra: str = ""
    parent_id: int | None = None
    start_year: int | None = None
    end_year: int | None = None
    status: str = "actiu"


@dataclass
class Municipality:
    id: int | None = None
    country_id: int | None = None
    name: str = ""
    kind: str = ""
    parent_id: int | None = None
    level_ids: list[int | None] = field(default_factory=lambda: [None] * LEVEL_SLOTS)
    postal_code: str = ""
    latitude: float | None = None
    longitude: float | None = None
    what3words: str = ""
    web: str = ""
    wikipedia: str = ""
    extra: str = ""
    status: str = "actiu"


class CountryPayload(BaseModel):
    iso2: str
    iso3: str = ""
    num: str = ""


class LevelPayload(BaseModel):
    id: int
    pais_iso2: str = ""
    nivel: int = 1
    nom: str = ""
    tipus: str = ""
    codi: str = ""
    altres: str = ""
    parent_id: int | None = None
    any_inici: int | None = None
    any_fi: int | None = None
    estat: str = "actiu"


class MunicipalityPayload(BaseModel):
    id: int
    pais_iso2: str = ""
    nom: str = ""
    tipus: str = ""
    parent_id: int | None = None
    nivells: list[int | None] = Field(default_factory=lambda: [None] * LEVEL_SLOTS)
    codi_postal: str = ""
    latitud: float | None = None
    longitud: float | None = None
    what3words: str = ""
    web: str = ""
    wikipedia: str = ""
    altres: str = ""
    estat: str = "actiu"


class TerritoryPayload(BaseModel):
    """Bulk territory document."""

    version: int = 1
    exported_at: str = ""
    countries: list[CountryPayload] = Field(default_factory=list)
    levels: list[LevelPayload] = Field(default_factory=list)
    municipalities: list[MunicipalityPayload] = Field(default_factory=list)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
