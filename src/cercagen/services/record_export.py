"""CSV export of transcription records.

One row per record with the header fields and the main people of the act
flattened into name columns.
"""

import csv
import io
from typing import TextIO

from cercagen.database.dac import DataAccess
from cercagen.models.records import RecordType, TranscriptionPerson, TranscriptionRecord

EXPORT_HEADER = [
    "llibre_id",
    "pagina_id",
    "num_pagina_text",
    "posicio_pagina",
    "tipus_acte",
    "any_doc",
    "data_acte_text",
    "data_acte_iso",
    "data_acte_estat",
    "subject",
    "father",
    "mother",
    "partner",
    "husband",
    "wife",
    "witnesses",
]

LITERAL_HEADER = ["transcripcio_literal", "notes_marginals", "observacions_paleografiques"]

# Record type -> roles naming the subject, in preference order
SUBJECT_ROLES: dict[str, list[str]] = {
    "baptism": ["batejat", "baptizat", "infant"],
    "death": ["difunt", "defunt", "mort"],
    "marriage": ["marit", "espos", "esposo", "esposa", "nuvi", "novia"],
    "confirmation": ["confirmat", "confirmand", "confirmanda"],
    "census": ["capfamilia", "capdefamilia", "cap"],
    "recruitment": ["recluta", "soldat"],
}

FATHER_ROLES = ["pare", "paire", "parent"]
MOTHER_ROLES = ["mare", "maire"]
PARTNER_ROLES = ["parella", "espos", "esposa", "marit", "muller"]
HUSBAND_ROLES = ["marit", "espos", "esposo", "nuvi"]
WIFE_ROLES = ["esposa", "novia", "muller"]
WITNESS_ROLES = ["testimoni", "testimonis", "testigo", "testigos"]


def _role(value: str) -> str:
    return (value or "").strip().lower()


def _display_name(person: TranscriptionPerson) -> str:
    return " ".join(p.strip() for p in (person.given_name, person.surname1, person.surname2) if p.strip())


def names_by_role(persons: list[TranscriptionPerson]) -> dict[str, list[str]]:
    out: dict[str, list[str]] = {}
    for person in persons:
        name = _display_name(person)
        role = _role(person.role)
        if name and role:
            out.setdefault(role, []).append(name)
    return out


def first_name_by_roles(role_map: dict[str, list[str]], roles: list[str]) -> str:
    for role in roles:
        names = role_map.get(role)
        if names:
            return names[0]
    return ""


def names_by_roles(role_map: dict[str, list[str]], roles: list[str]) -> list[str]:
    out: list[str] = []
    for role in roles:
        for name in role_map.get(role, []):
            if name not in out:
                out.append(name)
    return out


def subject_name(record_type: str, persons: list[TranscriptionPerson]) -> str:
    """Name of the act's subject, else the first named person."""
    kind = RecordType.parse(record_type, RecordType.OTHER).value
    for role in SUBJECT_ROLES.get(kind, []):
        for person in persons:
            if _role(person.role) == role and _display_name(person):
                return _display_name(person)
    for person in persons:
        if _display_name(person):
            return _display_name(person)
    return ""


def _text(value) -> str:
    return "" if value is None else str(value)


def record_row(record: TranscriptionRecord, persons: list[TranscriptionPerson], include_literal: bool) -> list[str]:
    role_map = names_by_role(persons)
    row = [
        _text(record.book_id),
        _text(record.page_id),
        record.page_label,
        _text(record.page_position),
        record.record_type,
        _text(record.document_year),
        record.act_date_text,
        _text(record.act_date_iso),
        record.act_date_quality,
        subject_name(record.record_type, persons),
        first_name_by_roles(role_map, FATHER_ROLES),
        first_name_by_roles(role_map, MOTHER_ROLES),
        first_name_by_roles(role_map, PARTNER_ROLES),
        first_name_by_roles(role_map, HUSBAND_ROLES),
        first_name_by_roles(role_map, WIFE_ROLES),
        "; ".join(names_by_roles(role_map, WITNESS_ROLES)),
    ]
    if include_literal:
        row += [record.literal_text, record.marginal_notes, record.paleographic_notes]
    return row


def write_records_csv(
    store: DataAccess,
    records: list[TranscriptionRecord],
    out: TextIO,
    include_literal: bool = True,
    separator: str = ",",
) -> int:
    """Write the export to a text stream; returns the number of records written."""
    writer = csv.writer(out, delimiter=separator, lineterminator="\n")
    writer.writerow(EXPORT_HEADER + (LITERAL_HEADER if include_literal else []))
    for record in records:
        writer.writerow(record_row(record, store.list_persons(record.id), include_literal))
    return len(records)


def export_records_csv(
    store: DataAccess,
    records: list[TranscriptionRecord],
    include_literal: bool = True,
    separator: str = ",",
) -> str:
    buffer = io.StringIO()
    write_records_csv(store, records, buffer, include_literal=include_literal, separator=separator)
    return buffer.getvalue()
