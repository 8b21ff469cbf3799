"""Data models for CSV import templates.

A template document is loose JSON authored by users. ``import_templates.loader``
turns it into the tree below once, at load time; the ingestion engine only
ever walks this tree.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from cercagen.parsers.quality import QualityConfig


class TransformName(str, Enum):
    """Allowlisted transform names."""

    TRIM = "trim"
    LOWER = "lower"
    STRIP_DIACRITICS = "strip_diacritics"
    NORMALIZE_CRONOLOGIA = "normalize_cronologia"
    PARSE_DDMMYYYY_TO_ISO = "parse_ddmmyyyy_to_iso"
    PARSE_DATE_FLEXIBLE_TO_BASE_DATA_ACTE = "parse_date_flexible_to_base_data_acte"
    PARSE_DATE_FLEXIBLE_TO_DATE_OR_TEXT_WITH_QUALITY = "parse_date_flexible_to_date_or_text_with_quality"
    PARSE_INT_NULLABLE = "parse_int_nullable"
    PARSE_MARRIAGE_ORDER_INT_NULLABLE = "parse_marriage_order_int_nullable"
    STRIP_MARRIAGE_ORDER_TEXT = "strip_marriage_order_text"
    PARSE_PERSON_FROM_COGNOMS = "parse_person_from_cognoms"
    PARSE_PERSON_FROM_COGNOMS_V2 = "parse_person_from_cognoms_v2"
    PARSE_PERSON_FROM_COGNOMS_V2_MATERNAL_FIRST = "parse_person_from_cognoms_v2_maternal_first"
    PARSE_PERSON_FROM_NOM = "parse_person_from_nom"
    PARSE_PERSON_FROM_NOM_V2 = "parse_person_from_nom_v2"
    PARSE_PERSON_FROM_NOM_V2_MATERNAL_FIRST = "parse_person_from_nom_v2_maternal_first"
    SPLIT_COUPLE_I = "split_couple_i"
    SET_DEFAULT = "set_default"
    MAP_VALUES = "map_values"
    REGEX_EXTRACT = "regex_extract"
    EXTRACT_PARENTHETICAL_LAST = "extract_parenthetical_last"
    EXTRACT_PARENTHETICAL_ALL = "extract_parenthetical_all"
    STRIP_PARENTHETICALS = "strip_parentheticals"
    DEFAULT_QUALITY_IF_PRESENT = "default_quality_if_present"


class TransformStep(BaseModel):
    """One step of a transform pipeline."""

    name: str
    value: str = ""
    args: dict[str, Any] = Field(default_factory=dict)

    def arg(self, key: str, default: str = "") -> str:
        raw = self.args.get(key)
        if raw is None:
            return default
        return str(raw)

    @property
    def is_person_parser(self) -> bool:
        return self.name.startswith("parse_person_from_")


class TargetRef(BaseModel):
    """Parsed form of a dotted target path.

    ``family`` is ``base``, ``person`` or ``attr``; anything else is kept as
    ``unknown`` so validation can report it.
    """

    raw: str
    family: str = "unknown"
    name: str = ""
    field: str = ""

    @classmethod
    def parse(cls, target: str) -> "TargetRef":
        raw = (target or "").strip()
        family, _, rest = raw.partition(".")
        if family not in ("base", "person", "attr") or not rest:
            return cls(raw=raw)
        name, _, sub = rest.partition(".")
        return cls(raw=raw, family=family, name=name.strip(), field=sub.strip())

    @property
    def attr_type(self) -> str:
        return self.field or "text"


class InlineCondition(BaseModel):
    """Condition attached to a single ``map_to`` entry."""

    op: str
    column: str = ""
    value: str = ""


class ColumnCondition(BaseModel):
    """Column-level condition choosing the ``then`` or ``else`` branch.

    ``expr`` forms: ``""`` or ``not_empty`` (the column has a value),
    ``value == 'x'``, ``column:<header> != 'x'``.
    """

    expr: str = ""
    op: str = "not_empty"
    column: str = ""
    value: str = ""
    valid: bool = True

    @classmethod
    def from_expr(cls, expr: str) -> "ColumnCondition":
        text = (expr or "").strip()
        if not text or text.lower() == "not_empty":
            return cls(expr=text)
        if "==" in text or "!=" in text:
            op = "!=" if "!=" in text else "=="
            parts = text.split(op)
            if len(parts) != 2 or not parts[1].strip():
                return cls(expr=text, valid=False)
            left = parts[0].strip()
            column = left[7:].strip() if left.lower().startswith("column:") else ""
            return cls(
                expr=text,
                op="equals" if op == "==" else "not_equals",
                column=column,
                value=parts[1].strip().strip("'\""),
            )
        return cls(expr=text, valid=False)


class MapEntry(BaseModel):
    target: TargetRef
    transforms: list[TransformStep] = Field(default_factory=list)
    condition: InlineCondition | None = None


class Branch(BaseModel):
    """Entries applied when a column (or one side of its condition) is taken."""

    transforms: list[TransformStep] = Field(default_factory=list)
    entries: list[MapEntry] = Field(default_factory=list)


class Column(BaseModel):
    header: str
    key: str = ""
    aliases: list[str] = Field(default_factory=list)
    required: bool = False
    condition: ColumnCondition | None = None
    then: Branch = Field(default_factory=Branch)
    otherwise: Branch | None = None

    def branches(self) -> list[Branch]:
        return [self.then] + ([self.otherwise] if self.otherwise else [])

    def all_transforms(self) -> list[TransformStep]:
        steps: list[TransformStep] = []
        for branch in self.branches():
            steps.extend(branch.transforms)
            for entry in branch.entries:
                steps.extend(entry.transforms)
        return steps

    def has_default(self) -> bool:
        """Whether some branch supplies a value for empty cells."""
        return any(step.name == TransformName.SET_DEFAULT.value for step in self.all_transforms())


class BookResolution(BaseModel):
    mode: str = "by_id"
    column: str = "llibre_id"
    normalize_chronology: bool = False
    ambiguity_policy: str = "fail"
    scope_filters: bool = True


class DedupPolicy(BaseModel):
    enabled: bool = False
    key_fields: list[str] = Field(default_factory=list)


class MergePolicy(BaseModel):
    mode: str = "none"
    principal_roles: list[str] = Field(default_factory=lambda: ["batejat", "persona_principal"])
    update_missing_only: bool = True
    add_missing_people: bool = True
    add_missing_attrs: bool = True
    avoid_duplicate_rows_by_principal_name_per_book: bool = False


class Policies(BaseModel):
    moderation_status: str = "pending"
    dedup: DedupPolicy = Field(default_factory=DedupPolicy)
    merge_existing: MergePolicy = Field(default_factory=MergePolicy)


class TemplateMetadata(BaseModel):
    version: int = 1
    kind: str = "transcripcions_raw"
    record_type: str = "generic"
    preset_code: str = ""
    name_order: str = ""
    date_format: str = "dd/mm"


class ImportTemplateModel(BaseModel):
    """A loaded, structurally parsed import template."""

    metadata: TemplateMetadata = Field(default_factory=TemplateMetadata)
    book_resolution: BookResolution = Field(default_factory=BookResolution)
    base_defaults: dict[str, str] = Field(default_factory=dict)
    columns: list[Column] = Field(default_factory=list)
    policies: Policies = Field(default_factory=Policies)
    quality_labels: bool = False
    quality_markers: dict[str, str] = Field(default_factory=dict)

    def quality_config(self) -> QualityConfig:
        return QualityConfig.from_dict({"labels": self.quality_labels, "markers": self.quality_markers})

    def has_conditions(self) -> bool:
        return any(col.condition is not None for col in self.columns)


@dataclass
class ImportTemplate:
    """A stored template as owned by a user."""

    id: int | None = None
    name: str = ""
    description: str = ""
    owner_id: int | None = None
    visibility: str = "private"
    separator: str = ","
    model_json: str = "{}"
    signature: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_public(self) -> bool:
        return self.visibility == "public"
