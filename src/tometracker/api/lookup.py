"""Provider fallback chain.

Providers are tried in priority order. An empty answer or a failing
provider moves on to the next one; when every provider comes up empty the
caller simply gets no metadata.
"""

import logging
from typing import Optional, Sequence

from ..errors import ProviderUnavailableError
from .base import BookMetadata, MetadataProvider, SearchResult
from .googlebooks import GoogleBooksClient
from .openlibrary import OpenLibraryClient

logger = logging.getLogger(__name__)


class MetadataLookup:
    """Metadata lookups across several providers with fallback."""

    def __init__(self, providers: Sequence[MetadataProvider]):
        self.providers = list(providers)

    def lookup_by_isbn(self, isbn: str) -> Optional[BookMetadata]:
        """First provider that knows the ISBN wins."""
        for provider in self.providers:
            try:
                metadata = provider.lookup_by_isbn(isbn)
            except ProviderUnavailableError as e:
                logger.warning("ISBN lookup via %s failed: %s", provider.name, e)
                continue
            if metadata:
                logger.debug("ISBN %s resolved by %s", isbn, provider.name)
                return metadata
        return None

    def search(self, query: str) -> list[SearchResult]:
        """First provider with a non-empty result list wins."""
        for provider in self.providers:
            try:
                results = provider.search(query)
            except ProviderUnavailableError as e:
                logger.warning("Search via %s failed: %s", provider.name, e)
                continue
            if results:
                return results
        return []


def create_default_lookup(timeout: int = 10, google_api_key: Optional[str] = None) -> MetadataLookup:
    """Open Library first, Google Books as fallback."""
    return MetadataLookup(
        [
            OpenLibraryClient(timeout=timeout),
            GoogleBooksClient(timeout=timeout, api_key=google_api_key),
        ]
    )
