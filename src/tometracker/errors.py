"""Typed failures shared across the catalog engine.

Each error carries a stable ``code`` and a ``retryable`` flag so callers
(CLI, services) can decide whether to retry, report, or redirect the user.
"""

from dataclasses import dataclass
from typing import Any, Optional


class TomeTrackerError(Exception):
    """Base class for all catalog engine errors."""

    code = "INTERNAL_ERROR"
    retryable = False


class ValidationError(TomeTrackerError):
    """Malformed input, rejected before any processing starts."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass
class RowError(TomeTrackerError):
    """A single import row that failed extraction or persistence.

    Usually collected into an ImportResult; raise it to stop at a bad row.
    """

    code = "VALIDATION_ERROR"

    row: int  # 1-based
    error: str

    def __post_init__(self):
        super().__init__(f"Row {self.row}: {self.error}")

    def to_dict(self) -> dict:
        return {"row": self.row, "error": self.error}


class DuplicateIdentifierError(TomeTrackerError):
    """A book with the same ISBN-13 already exists for this user."""

    code = "DUPLICATE_ISBN"

    def __init__(self, isbn13: str, existing_book_id: Optional[str] = None):
        super().__init__(f"A book with ISBN {isbn13} already exists")
        self.isbn13 = isbn13
        self.existing_book_id = existing_book_id


class NotFoundError(TomeTrackerError):
    """Referenced entity is absent or not owned by the caller."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class RateLimitedError(TomeTrackerError):
    """Action throttled; back off and retry after ``retry_after`` seconds."""

    code = "RATE_LIMITED"
    retryable = True

    def __init__(self, action: str, retry_after: float):
        super().__init__(
            f"Too many {action} requests, retry in {max(retry_after, 0):.0f}s"
        )
        self.action = action
        self.retry_after = retry_after


class ProviderUnavailableError(TomeTrackerError):
    """External metadata lookup failed.

    Treated as "no metadata" by the provider chain, never surfaced
    to ingestion callers.
    """

    code = "PROVIDER_UNAVAILABLE"
    retryable = True

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class OfflineUnavailableError(TomeTrackerError):
    """No network and no usable cached library."""

    code = "OFFLINE_UNAVAILABLE"
    retryable = True

    def __init__(self, message: str = "No cached library data available offline"):
        super().__init__(message)
