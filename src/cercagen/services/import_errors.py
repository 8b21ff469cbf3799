"""Short-lived store of ingestion errors, drained by an error download.

An ingestion run parks its row errors under a random token; the client
fetches them once as CSV. Entries expire after the configured TTL and are
evicted whenever the store is touched.
"""

import csv
import io
import secrets
import time
from threading import Lock

from loguru import logger

from cercagen.config import get_config
from cercagen.services.ingestion import RowError

TOKEN_BYTES = 18


class ImportErrorStore:
    """Thread-safe token -> (errors, expiry) map."""

    def __init__(self, ttl_seconds: int | None = None):
        self._ttl = ttl_seconds if ttl_seconds is not None else get_config().import_error_ttl_seconds
        self._lock = Lock()
        self._entries: dict[str, tuple[list[RowError], float]] = {}

    def _evict_expired(self, now: float) -> None:
        expired = [token for token, (_, expires) in self._entries.items() if expires <= now]
        for token in expired:
            del self._entries[token]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired import-error entries")

    def put(self, errors: list[RowError]) -> str:
        """Park errors and return their token; no token for an empty list."""
        if not errors:
            return ""
        token = secrets.token_urlsafe(TOKEN_BYTES)
        now = time.time()
        with self._lock:
            self._evict_expired(now)
            self._entries[token] = (list(errors), now + self._ttl)
        return token

    def pop(self, token: str) -> list[RowError] | None:
        """Remove and return the errors of a token; None when unknown or expired."""
        if not token:
            return None
        with self._lock:
            self._evict_expired(time.time())
            entry = self._entries.pop(token, None)
        return entry[0] if entry else None

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired(time.time())
            return len(self._entries)


def errors_to_csv(errors: list[RowError]) -> str:
    """Error report: ``row``, ``error``, then one column per field key seen."""
    field_keys = sorted({key for err in errors for key in err.fields})
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["row", "error", *field_keys])
    for err in errors:
        writer.writerow([err.row, err.message or err.reason, *(err.fields.get(k, "") for k in field_keys)])
    return buffer.getvalue()


# Global store instance
_store: ImportErrorStore | None = None


def get_import_error_store() -> ImportErrorStore:
    global _store
    if _store is None:
        _store = ImportErrorStore()
    return _store
