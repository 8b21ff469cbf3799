"""Indexing schema registry for loading and caching YAML schemas.

This module provides centralized access to the per-record-type indexing
schemas, loading them from YAML files on demand and caching them.
"""

from pathlib import Path
from typing import ClassVar

import yaml
from loguru import logger

from cercagen.models.indexing import IndexingSchema
from cercagen.models.records import RecordType


class IndexingSchemaRegistry:
    """Registry for loading and caching indexing schemas from YAML files.

    Schemas are loaded lazily on first access and cached for subsequent
    requests. Unknown record types fall back to the ``other`` schema.

    Example:
        schema = IndexingSchemaRegistry.get_schema("baptisme")
        fields = schema.content_fields()
    """

    # Schema cache
    _schemas: ClassVar[dict[str, IndexingSchema]] = {}

    # Path to schema YAML files
    _schema_dir: ClassVar[Path | None] = None

    @classmethod
    def _get_schema_dir(cls) -> Path:
        """Get the directory containing schema YAML files."""
        if cls._schema_dir is None:
            # Default to schemas/indexing/ inside the package
            cls._schema_dir = Path(__file__).parent.parent / "schemas" / "indexing"
        return cls._schema_dir

    @classmethod
    def set_schema_dir(cls, path: Path | str) -> None:
        """Set custom schema directory (mainly for testing).

        Args:
            path: Path to directory containing indexing YAML files
        """
        cls._schema_dir = Path(path)
        cls._schemas.clear()

    @classmethod
    def get_schema(cls, record_type: str | None) -> IndexingSchema:
        """Get the schema for a record type, loading it from YAML if needed.

        Args:
            record_type: English or Catalan record-type label

        Returns:
            IndexingSchema for the record type

        Raises:
            FileNotFoundError: If neither the type's file nor ``other.yaml`` exists
        """
        kind = RecordType.parse(record_type, RecordType.OTHER).value
        if kind not in cls._schemas:
            try:
                cls._schemas[kind] = cls._load_schema(kind)
            except FileNotFoundError:
                if kind == RecordType.OTHER.value:
                    raise
                logger.warning(f"No indexing schema for {kind}, using the generic one")
                cls._schemas[kind] = cls.get_schema(RecordType.OTHER.value)
        return cls._schemas[kind]

    @classmethod
    def _load_schema(cls, record_type: str) -> IndexingSchema:
        schema_file = cls._get_schema_dir() / f"{record_type}.yaml"

        if not schema_file.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_file}")

        logger.debug(f"Loading indexing schema from {schema_file}")

        with open(schema_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        return IndexingSchema.from_dict(data)

    @classmethod
    def list_record_types(cls) -> list[str]:
        """Record types that have a schema file."""
        return sorted(p.stem for p in cls._get_schema_dir().glob("*.yaml"))

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the schema cache (mainly for testing)."""
        cls._schemas.clear()
