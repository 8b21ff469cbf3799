"""CSV import templates: loading, validation, transforms, similarity and samples."""

from cercagen.import_templates.loader import parse_template, template_signature
from cercagen.import_templates.validation import load_template, validate_template

__all__ = [
    "load_template",
    "parse_template",
    "template_signature",
    "validate_template",
]
