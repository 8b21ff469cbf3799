"""Rank stored templates by how closely they resemble a newly authored one.

A template is reduced to feature sets (targets, person roles, attribute keys,
transform names) plus its book-resolution mode. The score averages the
book-mode match with the Jaccard coefficient of each set.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from cercagen.config import get_config
from cercagen.errors import TemplateParseError
from cercagen.import_templates.loader import parse_template, template_signature
from cercagen.models.template import ImportTemplate, MapEntry

MAX_SIMILAR_LIMIT = 20


@dataclass
class TemplateFeatures:
    book_mode: str = ""
    targets: set[str] = field(default_factory=set)
    roles: set[str] = field(default_factory=set)
    attr_keys: set[str] = field(default_factory=set)
    transforms: set[str] = field(default_factory=set)


@dataclass
class SimilarTemplate:
    id: int
    name: str
    score: float
    can_edit: bool
    can_clone: bool
    visibility: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "score": self.score,
            "can_edit": self.can_edit,
            "can_clone": self.can_clone,
            "visibility": self.visibility,
        }


def _add_entries(entries: list[MapEntry], features: TemplateFeatures) -> None:
    for entry in entries:
        target = entry.target
        if target.raw:
            features.targets.add(target.raw)
        if target.family == "person" and target.name:
            features.roles.add(target.name)
        elif target.family == "attr" and target.name:
            features.attr_keys.add(target.name)
        features.transforms.update(step.name for step in entry.transforms if step.name)


def extract_features(document: str | bytes | dict[str, Any]) -> TemplateFeatures:
    """Feature sets of a template document; empty for an unreadable one."""
    features = TemplateFeatures()
    try:
        root = json.loads(document) if isinstance(document, (str, bytes)) else document
        model = parse_template(root)
    except (json.JSONDecodeError, TemplateParseError):
        return features

    book_raw = root.get("book_resolution")
    if isinstance(book_raw, dict) and isinstance(book_raw.get("mode"), str):
        features.book_mode = book_raw["mode"].strip()
    for column in model.columns:
        for branch in column.branches():
            features.transforms.update(step.name for step in branch.transforms if step.name)
            _add_entries(branch.entries, features)
    return features


def jaccard(a: set[str], b: set[str]) -> float:
    """|a ∩ b| / |a ∪ b|; two empty sets are identical."""
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


def similarity_score(a: TemplateFeatures, b: TemplateFeatures) -> float:
    score = 0.0
    parts = 4
    if a.book_mode or b.book_mode:
        parts += 1
        if a.book_mode == b.book_mode:
            score += 1
    score += jaccard(a.targets, b.targets)
    score += jaccard(a.roles, b.roles)
    score += jaccard(a.attr_keys, b.attr_keys)
    score += jaccard(a.transforms, b.transforms)
    return score / parts


def find_similar_templates(
    document: str | bytes | dict[str, Any],
    templates: list[ImportTemplate],
    viewer_id: int | None = None,
    is_admin: bool = False,
    limit: int | None = None,
    exclude_id: int | None = None,
) -> list[SimilarTemplate]:
    """Rank candidate templates against a template document.

    Args:
        document: The template being authored
        templates: Stored candidates visible to the viewer
        viewer_id: User asking; decides the edit/clone flags
        is_admin: Admins may edit every template
        limit: Maximum results (1..20); the configured default otherwise
        exclude_id: Id of the template being edited, never suggested

    Returns:
        Candidates with a positive score, best first, ties by name
    """
    if limit is None or limit <= 0 or limit > MAX_SIMILAR_LIMIT:
        limit = get_config().similar_templates_limit

    source = extract_features(document)
    try:
        source_signature = template_signature(document)
    except json.JSONDecodeError:
        source_signature = ""

    similar: list[SimilarTemplate] = []
    for template in templates:
        if not template.id or template.id == exclude_id:
            continue
        score = similarity_score(source, extract_features(template.model_json))
        if source_signature and template.signature == source_signature:
            score = 1.0
        if score <= 0:
            continue
        is_owner = viewer_id is not None and template.owner_id == viewer_id
        similar.append(
            SimilarTemplate(
                id=template.id,
                name=template.name,
                score=score,
                can_edit=is_admin or is_owner,
                can_clone=template.visibility.strip().lower() == "public" and not is_owner,
                visibility=template.visibility,
            )
        )

    similar.sort(key=lambda s: (-s.score, s.name))
    logger.debug(f"Similar templates: {len(similar)} candidates scored, returning {min(limit, len(similar))}")
    return similar[:limit]
