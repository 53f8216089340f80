"""Database module for the SQLite catalog store."""

from .models import Author, Book, RateLimitWindow
from .schemas import (
    AuthorUpdate,
    AuthorWithBooks,
    BookCreate,
    BookSource,
    BookSummary,
    BookUpdate,
    LibrarySnapshot,
    LibraryStats,
)
from .sqlite import Database, get_db

__all__ = [
    "Author",
    "Book",
    "RateLimitWindow",
    "AuthorUpdate",
    "AuthorWithBooks",
    "BookCreate",
    "BookSource",
    "BookSummary",
    "BookUpdate",
    "LibrarySnapshot",
    "LibraryStats",
    "Database",
    "get_db",
]
