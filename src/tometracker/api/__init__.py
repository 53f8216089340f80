"""API module for external book metadata services.

Provides clients for book metadata lookup from various sources and the
fallback chain that combines them.
"""

from .base import BookMetadata, MetadataProvider, SearchResult
from .googlebooks import GoogleBooksClient, GoogleBooksError, GoogleBooksRateLimitError
from .lookup import MetadataLookup, create_default_lookup
from .openlibrary import OpenLibraryClient, OpenLibraryError, OpenLibraryRateLimitError

__all__ = [
    "BookMetadata",
    "MetadataProvider",
    "SearchResult",
    "GoogleBooksClient",
    "GoogleBooksError",
    "GoogleBooksRateLimitError",
    "MetadataLookup",
    "create_default_lookup",
    "OpenLibraryClient",
    "OpenLibraryError",
    "OpenLibraryRateLimitError",
]
