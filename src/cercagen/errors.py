"""Exception hierarchy for cercagen.

Row-level ingestion problems are reported in ``IngestResult`` and never raised;
these exceptions cover whole-operation failures.
"""


class CercagenError(Exception):
    """Base class for all cercagen errors."""


class TemplateParseError(CercagenError):
    """The template document is not valid JSON or has the wrong shape."""


class TemplateValidationError(CercagenError):
    """The template parsed but breaks one or more authoring rules."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) if self.errors else "invalid template")


class StorageError(CercagenError):
    """A data-access operation failed."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation}: {message}")


class PageLimitExceededError(CercagenError):
    """A batch would push a page beyond its established record count."""

    def __init__(self, page: str, existing: int, new: int, limit: int):
        self.page = page
        self.existing = existing
        self.new = new
        self.limit = limit
        super().__init__(f"page limit exceeded for page {page}: {existing} + {new} > {limit}")


class UploadTooLargeError(CercagenError):
    """An uploaded body is larger than the configured maximum."""


class TerritoryImportError(CercagenError):
    """The territory payload cannot be imported."""


class AchievementRuleError(CercagenError):
    """An achievement rule document is invalid."""
