"""Territory bulk export/import and the administrative closure.

The export renumbers levels and municipalities with local ids (levels in
``(level, id)`` order, municipalities in id order) so that exporting,
importing into an empty store and exporting again gives the same document.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger
from pydantic import ValidationError

from cercagen.database.dac import DataAccess
from cercagen.errors import CercagenError, TerritoryImportError
from cercagen.models.territory import (
    LEVEL_SLOTS,
    AdminLevel,
    Country,
    CountryPayload,
    LevelPayload,
    Municipality,
    MunicipalityPayload,
    TerritoryPayload,
)

TERRITORY_FORMAT_VERSION = 1


@dataclass
class TerritoryImportResult:
    countries_created: int = 0
    levels_total: int = 0
    levels_created: int = 0
    levels_skipped: int = 0
    levels_errors: int = 0
    municipalities_total: int = 0
    municipalities_created: int = 0
    municipalities_skipped: int = 0
    municipalities_errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


# -----------------------------------------------------------------------------
# Export
# -----------------------------------------------------------------------------


def export_territory(store: DataAccess) -> TerritoryPayload:
    """Build the bulk territory document of the whole store."""
    countries = store.list_countries()
    iso_by_country = {c.id: c.iso2.upper() for c in countries}
    levels = store.list_levels()
    level_local = {level.id: n for n, level in enumerate(levels, start=1)}
    municipalities = store.list_municipalities()
    mun_local = {mun.id: n for n, mun in enumerate(municipalities, start=1)}

    payload = TerritoryPayload(
        version=TERRITORY_FORMAT_VERSION,
        exported_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
    )
    for country in countries:
        payload.countries.append(
            CountryPayload(iso2=country.iso2.upper(), iso3=country.iso3.upper(), num=country.num.strip())
        )
    for level in levels:
        payload.levels.append(
            LevelPayload(
                id=level_local[level.id],
                pais_iso2=iso_by_country.get(level.country_id, ""),
                nivel=level.level,
                nom=level.name,
                tipus=level.kind,
                codi=level.code,
                altres=level.extra,
                parent_id=level_local.get(level.parent_id) if level.parent_id else None,
                any_inici=level.start_year,
                any_fi=level.end_year,
                estat=level.status,
            )
        )
    for mun in municipalities:
        payload.municipalities.append(
            MunicipalityPayload(
                id=mun_local[mun.id],
                pais_iso2=iso_by_country.get(mun.country_id, ""),
                nom=mun.name,
                tipus=mun.kind,
                parent_id=mun_local.get(mun.parent_id) if mun.parent_id else None,
                nivells=[level_local.get(lid) if lid else None for lid in mun.level_ids],
                codi_postal=mun.postal_code,
                latitud=mun.latitude,
                longitud=mun.longitude,
                what3words=mun.what3words,
                web=mun.web,
                wikipedia=mun.wikipedia,
                altres=mun.extra,
                estat=mun.status,
            )
        )
    logger.info(
        f"Territory export: {len(payload.countries)} countries, {len(payload.levels)} levels, "
        f"{len(payload.municipalities)} municipalities"
    )
    return payload


# -----------------------------------------------------------------------------
# Import
# -----------------------------------------------------------------------------


def parse_territory_payload(document: str | bytes | dict) -> TerritoryPayload:
    """Validate a territory document.

    Raises:
        TerritoryImportError: If the document is not a valid payload
    """
    try:
        if isinstance(document, dict):
            return TerritoryPayload.model_validate(document)
        return TerritoryPayload.model_validate_json(document)
    except ValidationError as e:
        raise TerritoryImportError(f"invalid territory document: {e}") from e


def _import_countries(store: DataAccess, payload: TerritoryPayload, result: TerritoryImportResult) -> dict[str, int]:
    by_iso2 = {c.iso2.upper(): c.id for c in store.list_countries()}
    for entry in payload.countries:
        iso2 = entry.iso2.strip().upper()
        if not iso2 or iso2 in by_iso2:
            continue
        country = Country(iso2=iso2, iso3=entry.iso3.strip().upper(), num=entry.num.strip())
        try:
            by_iso2[iso2] = store.create_country(country)
        except CercagenError as e:
            logger.warning(f"Territory import: country {iso2} not created: {e}")
            continue
        result.countries_created += 1
    return by_iso2


def _import_levels(
    store: DataAccess,
    payload: TerritoryPayload,
    countries: dict[str, int],
    result: TerritoryImportResult,
) -> dict[int, int]:
    """Create levels, retrying those whose parent is not created yet."""
    id_map: dict[int, int] = {}
    result.levels_total = len(payload.levels)
    pending = sorted(payload.levels, key=lambda lv: (lv.nivel, lv.id))
    while pending:
        progressed = False
        deferred: list[LevelPayload] = []
        for entry in pending:
            iso2 = entry.pais_iso2.strip().upper()
            if not iso2 or iso2 not in countries:
                result.levels_skipped += 1
                continue
            parent_id = None
            if entry.parent_id and entry.parent_id > 0:
                parent_id = id_map.get(entry.parent_id)
                if parent_id is None:
                    deferred.append(entry)
                    continue
            level = AdminLevel(
                country_id=countries[iso2],
                level=entry.nivel,
                name=entry.nom.strip(),
                kind=entry.tipus.strip(),
                code=entry.codi.strip(),
                extra=entry.altres,
                parent_id=parent_id,
                start_year=entry.any_inici,
                end_year=entry.any_fi,
                status=entry.estat.strip() or "actiu",
            )
            try:
                id_map[entry.id] = store.create_level(level)
            except CercagenError as e:
                logger.warning(f"Territory import: level {entry.id} not created: {e}")
                result.levels_errors += 1
                continue
            result.levels_created += 1
            progressed = True
        if not progressed:
            result.levels_skipped += len(deferred)
            break
        pending = deferred
    return id_map


def _import_municipalities(
    store: DataAccess,
    payload: TerritoryPayload,
    countries: dict[str, int],
    level_map: dict[int, int],
    result: TerritoryImportResult,
) -> list[int]:
    result.municipalities_total = len(payload.municipalities)
    id_map: dict[int, int] = {}
    parents: list[tuple[int, int]] = []
    for entry in payload.municipalities:
        if not entry.nom.strip():
            result.municipalities_skipped += 1
            continue
        slots = (list(entry.nivells) + [None] * LEVEL_SLOTS)[:LEVEL_SLOTS]
        mun = Municipality(
            country_id=countries.get(entry.pais_iso2.strip().upper()),
            name=entry.nom.strip(),
            kind=entry.tipus.strip(),
            level_ids=[level_map.get(lid) if lid else None for lid in slots],
            postal_code=entry.codi_postal.strip(),
            latitude=entry.latitud,
            longitude=entry.longitud,
            what3words=entry.what3words.strip(),
            web=entry.web.strip(),
            wikipedia=entry.wikipedia.strip(),
            extra=entry.altres,
            status=entry.estat.strip() or "actiu",
        )
        try:
            new_id = store.create_municipality(mun)
        except CercagenError as e:
            logger.warning(f"Territory import: municipality {entry.nom!r} not created: {e}")
            result.municipalities_errors += 1
            continue
        result.municipalities_created += 1
        id_map[entry.id] = new_id
        if entry.parent_id and entry.parent_id > 0:
            parents.append((new_id, entry.parent_id))

    for new_id, old_parent in parents:
        if old_parent in id_map:
            store.set_municipality_parent(new_id, id_map[old_parent])
    return list(id_map.values())


def import_territory(store: DataAccess, document: str | bytes | dict | TerritoryPayload) -> TerritoryImportResult:
    """Import a bulk territory document into the store.

    Countries are matched by ISO alpha-2 and created when missing. Levels and
    municipalities are always created; their local ids are remapped. The
    administrative closure of each new municipality is rebuilt.

    Raises:
        TerritoryImportError: If the document is not a valid payload
    """
    payload = document if isinstance(document, TerritoryPayload) else parse_territory_payload(document)
    result = TerritoryImportResult()
    countries = _import_countries(store, payload, result)
    level_map = _import_levels(store, payload, countries, result)
    for municipality_id in _import_municipalities(store, payload, countries, level_map, result):
        rebuild_admin_closure(store, municipality_id)
    logger.info(f"Territory import finished: {result.to_dict()}")
    return result


# -----------------------------------------------------------------------------
# Administrative closure
# -----------------------------------------------------------------------------


def admin_closure_entries(store: DataAccess, mun: Municipality) -> list[tuple[str, int]]:
    """``(type, id)`` ancestors of a municipality: itself, its levels and their parents, its country."""
    entries: list[tuple[str, int]] = []

    def add(kind: str, ancestor_id: int | None) -> None:
        if ancestor_id and ancestor_id > 0 and (kind, ancestor_id) not in entries:
            entries.append((kind, ancestor_id))

    add("municipi", mun.id)
    country_id = mun.country_id
    for level_id in mun.level_ids:
        seen: set[int] = set()
        current = store.get_level(level_id) if level_id else None
        while current is not None and current.id not in seen:
            seen.add(current.id)
            add("nivell", current.id)
            if not country_id and current.country_id:
                country_id = current.country_id
            current = store.get_level(current.parent_id) if current.parent_id else None
    add("pais", country_id)
    return entries


def rebuild_admin_closure(store: DataAccess, municipality_id: int) -> list[tuple[str, int]]:
    mun = store.get_municipality(municipality_id)
    if mun is None:
        return []
    entries = admin_closure_entries(store, mun)
    store.replace_admin_closure(municipality_id, entries)
    return entries


def rebuild_all_admin_closures(store: DataAccess) -> int:
    count = 0
    for mun in store.list_municipalities():
        rebuild_admin_closure(store, mun.id)
        count += 1
    return count
