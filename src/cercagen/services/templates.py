"""Saving user templates and suggesting similar stored ones."""

from typing import Any

from loguru import logger

from cercagen.config.settings import ALLOWED_SEPARATORS
from cercagen.database.dac import DataAccess
from cercagen.import_templates.loader import canonical_json, template_signature
from cercagen.import_templates.similarity import SimilarTemplate, find_similar_templates
from cercagen.import_templates.validation import load_template
from cercagen.models.template import ImportTemplate

VISIBILITIES = ("private", "public")


def save_template(store: DataAccess, template: ImportTemplate) -> int:
    """Validate and persist a template, creating it when it has no id.

    The model JSON is stored in canonical form together with its signature.

    Returns:
        The template id

    Raises:
        TemplateParseError: If the model JSON is not a JSON object
        TemplateValidationError: If the model breaks an authoring rule
        ValueError: If the name, visibility or separator is invalid
    """
    if not template.name.strip():
        raise ValueError("Template name is required")
    visibility = template.visibility.strip().lower()
    if visibility not in VISIBILITIES:
        raise ValueError(f"Invalid visibility: {template.visibility}")
    separator = "\t" if template.separator == "\\t" else template.separator
    if separator not in ALLOWED_SEPARATORS:
        raise ValueError(f"Unsupported CSV separator: {template.separator!r}")

    load_template(template.model_json)
    template.name = template.name.strip()
    template.visibility = visibility
    template.separator = separator
    template.model_json = canonical_json(template.model_json)
    template.signature = template_signature(template.model_json)

    if template.id and store.get_template(template.id) is None:
        raise ValueError(f"Template {template.id} not found")

    if template.id:
        store.update_template(template)
        logger.info(f"Updated template {template.id} '{template.name}'")
    else:
        store.create_template(template)
        logger.info(f"Created template {template.id} '{template.name}' for owner {template.owner_id}")
    return template.id


def similar_templates(
    store: DataAccess,
    document: str | bytes | dict[str, Any],
    viewer_id: int | None = None,
    is_admin: bool = False,
    limit: int | None = None,
    exclude_id: int | None = None,
) -> list[SimilarTemplate]:
    """Stored templates resembling ``document`` that the viewer can see.

    Admins see every template; other users see their own and the public ones.
    """
    candidates = store.list_templates(None if is_admin else viewer_id)
    if viewer_id is None and not is_admin:
        candidates = [t for t in candidates if t.is_public]
    return find_similar_templates(document, candidates, viewer_id, is_admin, limit, exclude_id)
