"""Data models for per-record-type indexing schemas and book indexing stats.

Schemas are loaded from YAML files (see ``services.indexing_schema_registry``)
and describe the fields a complete transcription of a book type would fill.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class IndexingField:
    """One field of an indexing schema.

    Attributes:
        key: Field key as used by the interactive indexer (e.g. "pare_nom")
        target: Where the value lives: "raw", "attr" or "person"
        raw_field: Header field for raw targets (e.g. "num_pagina_text")
        attr_key: Attribute key for attr targets
        attr_type: Attribute type for attr targets ("text", "date", ...)
        person_key: Person slot (e.g. "testimoni2") for person targets
        role: Stored role for person targets (e.g. "testimoni")
        person_field: Person field for person targets (e.g. "cognom1")
        input: Widget hint for the indexer UI
    """

    key: str
    target: str
    raw_field: str = ""
    attr_key: str = ""
    attr_type: str = ""
    person_key: str = ""
    role: str = ""
    person_field: str = ""
    input: str = "text"

    @property
    def is_quality_field(self) -> bool:
        """Quality companions are not content and do not count toward progress."""
        if self.key == "qualitat_general" or self.raw_field == "data_acte_estat":
            return True
        if self.target == "person" and self.person_field.endswith("_estat"):
            return True
        if self.target == "raw" and self.raw_field.endswith("_estat"):
            return True
        if self.target == "attr" and (self.attr_type == "estat" or self.attr_key.endswith("_estat")):
            return True
        return False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexingField":
        """Create IndexingField from YAML dictionary."""
        return cls(
            key=data["key"],
            target=data["target"],
            raw_field=data.get("raw_field", ""),
            attr_key=data.get("attr_key", ""),
            attr_type=data.get("attr_type", ""),
            person_key=data.get("person_key", ""),
            role=data.get("role", data.get("person_key", "")),
            person_field=data.get("person_field", ""),
            input=data.get("input", "text"),
        )


@dataclass
class IndexingSchema:
    """Indexing schema of one record type."""

    record_type: str
    fields: list[IndexingField] = field(default_factory=list)

    def content_fields(self) -> list[IndexingField]:
        return [f for f in self.fields if f.key and f.target and not f.is_quality_field]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexingSchema":
        """Expand the compact YAML form into a flat field list.

        ``person`` entries list a person slot and its fields; every field
        except ``notes`` gets an ``<field>_estat`` quality companion.
        """
        fields_out: list[IndexingField] = []
        for item in data.get("fields", []):
            if "person" in item:
                person_key = item["person"]
                role = item.get("role", person_key)
                for spec in item.get("fields", []):
                    name = spec
                    fields_out.append(
                        IndexingField(
                            key=f"{person_key}_{name}",
                            target="person",
                            person_key=person_key,
                            role=role,
                            person_field=name,
                            input="select" if name == "sexe" else "text",
                        )
                    )
                    if name != "notes":
                        fields_out.append(
                            IndexingField(
                                key=f"{person_key}_{name}_estat",
                                target="person",
                                person_key=person_key,
                                role=role,
                                person_field=f"{name}_estat",
                                input="select",
                            )
                        )
            else:
                fields_out.append(IndexingField.from_dict(item))
        return cls(record_type=data["record_type"], fields=fields_out)


@dataclass
class BookIndexingStats:
    """Completeness of a book's published transcriptions."""

    book_id: int
    total_records: int = 0
    total_fields: int = 0
    filled_fields: int = 0
    percentage: int = 0
    color: str = "pink"
