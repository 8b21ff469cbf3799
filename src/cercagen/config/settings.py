"""Application settings and configuration management."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ALLOWED_SEPARATORS = (",", ";", "|", "\t")


class Config(BaseSettings):
    """Application configuration with validation."""

    model_config = SettingsConfigDict(
        env_prefix="CERCAGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    database_path: str = Field(
        default="~/.cercagen/cercagen.db",
        description="SQLite file used by the bundled data-access layer",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/cercagen.log", description="Main log file")

    # Ingestion
    default_separator: str = Field(default=",", description="CSV separator when none is given")
    max_upload_bytes: int = Field(
        default=2 * 1024 * 1024,
        ge=1024,
        description="Largest CSV body accepted for ingestion",
    )
    import_error_ttl_seconds: int = Field(
        default=3600,
        ge=1,
        le=86400,
        description="Lifetime of an import-error download token",
    )

    # Query defaults
    similar_templates_limit: int = Field(default=10, ge=1, le=20)
    search_result_limit: int = Field(default=50, ge=1, le=500)

    @field_validator("default_separator")
    @classmethod
    def validate_separator(cls, v: str) -> str:
        """Only the separators the CSV endpoints accept are allowed."""
        if v == "\\t":
            v = "\t"
        if v not in ALLOWED_SEPARATORS:
            raise ValueError(f"Unsupported CSV separator: {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get or create global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None
