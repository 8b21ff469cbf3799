"""Targets admissible per template record type.

Templates declared as ``generic`` (or an unrecognised type) may use any
target; the other types are restricted to the common header targets plus
their own people and attributes.
"""

from cercagen.models.records import RecordType

COMMON_TARGETS = [
    "base.tipus_acte",
    "base.num_pagina_text",
    "attr.pagina_digital.text",
    "base.any_doc",
    "base.data_acte_text",
    "base.data_acte_iso",
    "base.data_acte_estat",
    "base.data_acte_iso_text_estat",
    "base.transcripcio_literal",
    "base.notes_marginals",
    "base.observacions_paleografiques",
    # Book resolution and placement are always admissible
    "base.llibre_id",
    "base.pagina_id",
    "base.posicio_pagina",
    "base.moderation_status",
]


def _dated(*keys: str) -> list[str]:
    targets = []
    for key in keys:
        targets.append(f"attr.{key}.date")
        targets.append(f"attr.{key}.date_or_text_with_quality")
    return targets


BAPTISM_TARGETS = [
    "person.batejat",
    "person.pare",
    "person.mare",
    "person.mare.cognom_soltera",
    "person.pare.ofici",
    "person.avi_patern",
    "person.avia_paterna",
    "person.avia_paterna.cognom_soltera",
    "person.avi_matern",
    "person.avia_materna",
    "person.avia_materna.cognom_soltera",
    "person.padri",
    "person.padrina",
    *_dated("data_bateig", "data_naixement", "data_defuncio"),
]

DEATH_TARGETS = [
    "person.difunt",
    "person.pare",
    "person.mare",
    "person.mare.cognom_soltera",
    "person.parella",
    "person.difunt.estat_civil",
    *_dated("data_defuncio", "data_enterrament"),
    "attr.edat.int",
    "attr.edat.int_nullable",
    "attr.causa.text",
    "attr.classe_enterrament.text",
]

MARRIAGE_TARGETS = [
    "person.nuvi",
    "person.nuvi.ofici",
    "person.nuvi.edat",
    "person.pare_nuvi",
    "person.mare_nuvi",
    "person.mare_nuvi.cognom_soltera",
    "person.novia",
    "person.novia.edat",
    "person.novia.ofici",
    "person.pare_novia",
    "person.mare_novia",
    "person.mare_novia.cognom_soltera",
    "person.testimoni1",
    "person.testimoni2",
    *_dated("data_matrimoni"),
]

CENSUS_TARGETS = [
    "person.cap_familia",
    "person.cap_familia.sexe",
    "person.cap_familia.edat",
    "person.cap_familia.estat_civil",
    "person.cap_familia.ofici",
    "person.cap_familia.casa",
    *_dated("data_naixement"),
    "attr.carrer.text",
    "attr.numero_casa.text",
    "attr.adreca.text",
    "attr.localitat.text",
    "attr.procedencia.text",
    "attr.condicio_padro.text",
    "attr.alfabetitzat.bool",
    "attr.sap_llegir.bool",
    "attr.sap_escriure.bool",
]

_CATALOGS: dict[RecordType, list[str]] = {
    RecordType.BAPTISM: BAPTISM_TARGETS,
    RecordType.DEATH: DEATH_TARGETS,
    RecordType.MARRIAGE: MARRIAGE_TARGETS,
    RecordType.CENSUS: CENSUS_TARGETS,
}


def allowed_targets(record_type: str) -> frozenset[str] | None:
    """Admissible targets for a template record type; ``None`` means unrestricted."""
    if (record_type or "").strip().lower() == "generic":
        return None
    parsed = RecordType.parse(record_type)
    if parsed is None or parsed not in _CATALOGS:
        return None
    return frozenset(COMMON_TARGETS) | frozenset(_CATALOGS[parsed])


def catalog_for(record_type: str) -> list[str]:
    """Ordered target list for authoring tools; empty when unrestricted."""
    parsed = RecordType.parse(record_type)
    if parsed is None or parsed not in _CATALOGS:
        return []
    return COMMON_TARGETS + _CATALOGS[parsed]
