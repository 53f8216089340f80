"""Pydantic schemas for data validation.

These schemas define the input shape for catalog writes (manual entry,
scans, imports) and the author/book projections handed to readers.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..books.isbn import clean_isbn, normalize_to_isbn13


class BookSource(str, Enum):
    """How a book entered the catalog."""

    SCAN = "SCAN"
    MANUAL = "MANUAL"
    IMPORT = "IMPORT"


# ============================================================================
# Book Schemas
# ============================================================================


class BookBase(BaseModel):
    """Book fields common to create/update operations."""

    # Identifiers
    isbn13: Optional[str] = Field(None, description="Any ISBN form, stored as ISBN-13")
    isbn10: Optional[str] = Field(None, min_length=10, max_length=10)

    # Metadata
    publisher: Optional[str] = Field(None, max_length=200)
    publication_year: Optional[int] = Field(None, ge=0, le=2100)
    cover_url: Optional[str] = None

    # Series
    series_name: Optional[str] = Field(None, max_length=200)
    series_number: Optional[float] = Field(None, ge=0)

    @field_validator("isbn13", mode="before")
    @classmethod
    def normalize_isbn13(cls, v: Optional[str]) -> Optional[str]:
        """Accept ISBN-10 or ISBN-13 input (Goodreads ="" wrapper too)."""
        if v is None:
            return None
        v = str(v).strip()
        if v.startswith('="') and v.endswith('"'):
            v = v[2:-1]
        v = v.strip('"').strip("'")
        if not v:
            return None
        normalized = normalize_to_isbn13(v)
        if normalized is None:
            raise ValueError(f"Not a valid ISBN: {v}")
        return normalized

    @field_validator("isbn10", mode="before")
    @classmethod
    def clean_isbn10(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = clean_isbn(str(v)).upper()
        return v or None

    @field_validator("cover_url")
    @classmethod
    def check_cover_url(cls, v: Optional[str]) -> Optional[str]:
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("Cover URL must be an http(s) URL")
        return v or None


class BookCreate(BookBase):
    """Schema for creating a new book."""

    title: str = Field(..., min_length=1, max_length=500)
    author_name: str = Field(..., min_length=1, max_length=200)
    tags: list[str] = Field(default_factory=list, max_length=20)
    genres: list[str] = Field(default_factory=list, max_length=20)
    source: BookSource = BookSource.MANUAL

    @field_validator("title", "author_name", mode="before")
    @classmethod
    def strip_required(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v


class BookUpdate(BookBase):
    """Schema for updating an existing book. All fields optional."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author_name: Optional[str] = Field(None, min_length=1, max_length=200)
    tags: Optional[list[str]] = Field(None, max_length=20)
    genres: Optional[list[str]] = Field(None, max_length=20)


class AuthorUpdate(BaseModel):
    """Editable author fields."""

    bio: Optional[str] = None
    photo_url: Optional[str] = None


# ============================================================================
# Read Projections
# ============================================================================


class BookSummary(BaseModel):
    """A book as it appears inside a library snapshot."""

    id: str
    title: str
    isbn13: Optional[str] = None
    isbn10: Optional[str] = None
    publisher: Optional[str] = None
    publication_year: Optional[int] = None
    cover_url: Optional[str] = None
    series_name: Optional[str] = None
    series_number: Optional[float] = None
    tags: list[str] = Field(default_factory=list)
    genres: list[str] = Field(default_factory=list)
    source: BookSource
    created_at: str
    updated_at: str


class AuthorWithBooks(BaseModel):
    """An author and the books they own, in display order."""

    id: str
    name: str
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    books: list[BookSummary] = Field(default_factory=list)


class LibrarySnapshot(BaseModel):
    """Complete timestamped read of one user's catalog."""

    synced_at: str
    authors: list[AuthorWithBooks] = Field(default_factory=list)


class LibraryStats(BaseModel):
    """Aggregate counts for a user's catalog."""

    book_count: int
    author_count: int
