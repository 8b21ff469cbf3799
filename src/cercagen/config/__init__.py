"""Configuration module for cercagen."""

from cercagen.config.log_setup import setup_logging
from cercagen.config.settings import ALLOWED_SEPARATORS, Config, get_config, reset_config

__all__ = [
    "ALLOWED_SEPARATORS",
    "Config",
    "get_config",
    "reset_config",
    "setup_logging",
]
