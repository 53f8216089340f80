"""Catalog service facade.

One entry point per user-facing operation: import preview and execution,
duplicate checks, identifier lookup, metadata search, sync, enrichment
and book/author edits. Requests are validated with pydantic before any
work starts; rate-limited actions are checked per user.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .api.base import BookMetadata, SearchResult
from .api.lookup import MetadataLookup, create_default_lookup
from .books.isbn import extract_isbn_from_barcode, is_valid_isbn13, normalize_to_isbn13
from .books.service import BookService, DuplicateCandidate, OwnershipCheck
from .config import Config, get_config
from .db.models import Author, Book
from .db.schemas import (
    AuthorUpdate,
    BookCreate,
    BookUpdate,
    LibrarySnapshot,
    LibraryStats,
)
from .db.sqlite import Database, get_db
from .enrichment.service import EnrichmentResult, EnrichmentService
from .errors import NotFoundError, ValidationError
from .imports.base import ImportFormat, ImportMapping, ImportPreview, ImportResult
from .imports.csv_import import create_preview_from_text
from .imports.executor import ImportExecutor
from .library.sync import LibrarySync
from .offline.mirror import OfflineMirror
from .ratelimit import RateLimiter, create_rate_limiter

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2


# ============================================================================
# Request Schemas
# ============================================================================


class ImportMappingRequest(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    series_name: Optional[str] = None
    series_number: Optional[str] = None
    publisher: Optional[str] = None
    publication_year: Optional[str] = None


class ImportExecuteRequest(BaseModel):
    """Rows, mapping and format for a bulk import."""

    rows: list[dict[str, Optional[str]]]
    mapping: ImportMappingRequest
    format: ImportFormat = ImportFormat.CSV


class DuplicateCheckRequest(BaseModel):
    title: str = Field(..., min_length=1)
    author_name: str = Field(..., min_length=1)


class SearchRequest(BaseModel):
    query: str

    @field_validator("query")
    @classmethod
    def check_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < MIN_SEARCH_LENGTH:
            raise ValueError(f"Search query must be at least {MIN_SEARCH_LENGTH} characters")
        return v


def _validate(model: type[BaseModel], data: Any) -> Any:
    """Validate request data, raising the catalog's ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid input")
        raise ValidationError(f"{field}: {message}" if field else message, details=e.errors())


# ============================================================================
# Responses
# ============================================================================


@dataclass
class IdentifierLookup:
    """Result of resolving a scanned or typed code."""

    is_isbn: bool = False
    normalized_isbn: Optional[str] = None
    owned: bool = False
    metadata: Optional[BookMetadata] = None

    def to_dict(self) -> dict:
        return {
            "is_isbn": self.is_isbn,
            "normalized_isbn": self.normalized_isbn,
            "owned": self.owned,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }


@dataclass
class SyncResponse:
    snapshot: LibrarySnapshot
    stats: LibraryStats

    def to_dict(self) -> dict:
        return {**self.snapshot.model_dump(), "stats": self.stats.model_dump()}


# ============================================================================
# Service
# ============================================================================


class CatalogService:
    """All catalog operations for one user."""

    def __init__(
        self,
        db: Optional[Database] = None,
        user_id: Optional[str] = None,
        rate_limiter: Optional[RateLimiter] = None,
        metadata: Optional[MetadataLookup] = None,
        config: Optional[Config] = None,
        mirror: Optional[OfflineMirror] = None,
    ):
        """Initialize the service.

        Args:
            db: Catalog store; the global database when omitted
            user_id: Catalog owner; the configured user when omitted
            rate_limiter: Limiter for lookup/search/import/enrich
            metadata: Provider chain for lookups, search and enrichment
            config: Settings; the global config when omitted
            mirror: Offline mirror to clear on account deletion
        """
        self.config = config or get_config()
        self.db = db or get_db()
        self.user_id = user_id or self.config.user_id
        self.rate_limiter = rate_limiter or create_rate_limiter(
            self.config.rate_limit_store, self.db
        )
        self.metadata = metadata or create_default_lookup(
            timeout=self.config.http_timeout, google_api_key=self.config.google_books_api_key
        )
        self.mirror = mirror

        self.books = BookService(self.db, duplicate_threshold=self.config.duplicate_threshold)
        self.library = LibrarySync(self.db)
        self.importer = ImportExecutor(self.db)
        self.enrichment = EnrichmentService(self.metadata, self.db)

    # ========================================================================
    # Import
    # ========================================================================

    def preview_import(self, text: str) -> ImportPreview:
        """Detect the format and suggest a mapping for CSV text."""
        return create_preview_from_text(text)

    def execute_import(
        self,
        rows: list[dict[str, Optional[str]]],
        mapping: Union[ImportMapping, dict],
        import_format: Union[ImportFormat, str] = ImportFormat.CSV,
    ) -> ImportResult:
        """Import rows with a confirmed mapping.

        Raises:
            ValidationError: Request shape is wrong
            RateLimitedError: Too many imports this hour
        """
        if isinstance(mapping, ImportMapping):
            mapping = mapping.to_dict()
        request = _validate(
            ImportExecuteRequest, {"rows": rows, "mapping": mapping, "format": import_format}
        )

        self.rate_limiter.enforce("import", self.user_id)

        return self.importer.execute(
            self.user_id,
            request.rows,
            ImportMapping.from_dict(request.mapping.model_dump()),
            request.format,
        )

    # ========================================================================
    # Lookup & Search
    # ========================================================================

    def check_duplicate(self, title: str, author_name: str) -> list[DuplicateCandidate]:
        """Books that look like this title/author, best first."""
        request = _validate(DuplicateCheckRequest, {"title": title, "author_name": author_name})
        return self.books.find_duplicates(self.user_id, request.title, request.author_name)

    def lookup_identifier(self, code: str) -> IdentifierLookup:
        """Resolve a scanned or typed code to an owned flag and metadata."""
        self.rate_limiter.enforce("lookup", self.user_id)

        isbn = extract_isbn_from_barcode(code) or normalize_to_isbn13(code)
        if not isbn or not is_valid_isbn13(isbn):
            return IdentifierLookup()

        return IdentifierLookup(
            is_isbn=True,
            normalized_isbn=isbn,
            owned=self.books.is_owned(self.user_id, isbn),
            metadata=self.metadata.lookup_by_isbn(isbn),
        )

    def search_metadata(self, query: str) -> list[SearchResult]:
        """Free-text search against the metadata providers."""
        request = _validate(SearchRequest, {"query": query})
        self.rate_limiter.enforce("search", self.user_id)
        return self.metadata.search(request.query)

    def check_ownership(self, isbn: str) -> OwnershipCheck:
        if not isbn or not isbn.strip():
            raise ValidationError("ISBN is required")
        return self.books.check_ownership(self.user_id, isbn)

    # ========================================================================
    # Library
    # ========================================================================

    def sync(self) -> SyncResponse:
        """Full snapshot plus stats."""
        return SyncResponse(
            snapshot=self.library.get_library_snapshot(self.user_id),
            stats=self.library.get_library_stats(self.user_id),
        )

    def snapshot(self) -> LibrarySnapshot:
        return self.library.get_library_snapshot(self.user_id)

    def enrich(self) -> EnrichmentResult:
        """Fill missing metadata for a batch of books."""
        self.rate_limiter.enforce("enrich", self.user_id)
        return self.enrichment.enrich_user_books(self.user_id)

    # ========================================================================
    # Books & Authors
    # ========================================================================

    def add_book(self, data: Union[BookCreate, dict]) -> Book:
        """Create a book.

        Raises:
            ValidationError: Bad input
            DuplicateIdentifierError: The user already owns the ISBN
        """
        book = data if isinstance(data, BookCreate) else _validate(BookCreate, data)
        created = self.db.create_book(self.user_id, book)
        logger.info("Added %r (%s)", created.title, created.id)
        return created

    def get_book(self, book_id: str) -> Book:
        book = self.db.get_book(self.user_id, book_id)
        if not book:
            raise NotFoundError("Book", book_id)
        return book

    def update_book(self, book_id: str, data: Union[BookUpdate, dict]) -> Book:
        update = data if isinstance(data, BookUpdate) else _validate(BookUpdate, data)
        return self.db.update_book(self.user_id, book_id, update)

    def delete_book(self, book_id: str) -> None:
        if not self.db.delete_book(self.user_id, book_id):
            raise NotFoundError("Book", book_id)

    def update_author(
        self, author_id: str, bio: Optional[str] = None, photo_url: Optional[str] = None
    ) -> Author:
        fields = {"bio": bio, "photo_url": photo_url}
        update = _validate(AuthorUpdate, {k: v for k, v in fields.items() if v is not None})
        return self.db.update_author(self.user_id, author_id, update)

    def delete_account(self) -> dict[str, int]:
        """Remove all of the user's books and authors, and the offline cache."""
        counts = self.db.delete_user_data(self.user_id)
        if self.mirror is not None:
            self.mirror.clear_cache()
        return counts
