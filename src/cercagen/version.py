"""Version information for cercagen."""

import importlib.metadata

__all__ = ["VERSION", "get_version_info", "format_version_string"]

# Version from pyproject.toml
try:
    VERSION = importlib.metadata.version("cercagen")
except importlib.metadata.PackageNotFoundError:
    VERSION = "0.1.0-dev"


def get_version_info() -> dict[str, str]:
    return {
        "version": VERSION,
        "status": "development" if "dev" in VERSION else "release",
    }


def format_version_string() -> str:
    """Human-readable version line."""
    info = get_version_info()
    version_str = f"cercagen v{info['version']}"
    if info["status"] == "development":
        version_str += " (development)"
    return version_str
