"""Open Library API client for book metadata lookup.

Open Library (openlibrary.org) provides free book metadata including:
- ISBN lookup (edition records)
- Search by free text
- Cover images
- Author names

No API key required.
"""

import logging
from typing import Optional

from .base import (
    BookMetadata,
    HttpProviderClient,
    ProviderRequestError,
    SearchResult,
    parse_year,
)

logger = logging.getLogger(__name__)


class OpenLibraryError(ProviderRequestError):
    """Base exception for Open Library API errors."""

    provider_name = "openlibrary"


class OpenLibraryRateLimitError(OpenLibraryError):
    """Raised when rate limited by Open Library."""

    pass


class OpenLibraryClient(HttpProviderClient):
    """Client for Open Library API."""

    name = "openlibrary"
    error_class = OpenLibraryError
    rate_limit_error_class = OpenLibraryRateLimitError

    BASE_URL = "https://openlibrary.org"
    COVERS_URL = "https://covers.openlibrary.org"
    SEARCH_FIELDS = "title,author_name,isbn,cover_i,first_publish_year"
    MAX_AUTHORS = 5

    # ========================================================================
    # ISBN Lookup
    # ========================================================================

    def lookup_by_isbn(self, isbn: str) -> Optional[BookMetadata]:
        """Look up an edition by ISBN.

        Args:
            isbn: ISBN-10 or ISBN-13

        Returns:
            BookMetadata if found, None otherwise
        """
        isbn = isbn.replace("-", "").replace(" ", "")
        data = self._get(f"{self.BASE_URL}/isbn/{isbn}.json")
        if not data or not data.get("title"):
            return None
        return self._edition_to_metadata(data, isbn)

    def _edition_to_metadata(self, data: dict, isbn: str) -> BookMetadata:
        """Convert edition data to BookMetadata."""
        covers = [c for c in data.get("covers", []) if c and c > 0]
        cover_url = f"{self.COVERS_URL}/b/id/{covers[0]}-L.jpg" if covers else None

        description = data.get("description")
        if isinstance(description, dict):
            description = description.get("value")

        publishers = data.get("publishers", [])
        series = data.get("series", [])

        return BookMetadata(
            title=data["title"],
            authors=self._fetch_author_names(data.get("authors", [])),
            isbn13=isbn if len(isbn) == 13 else None,
            isbn10=isbn if len(isbn) == 10 else None,
            publisher=publishers[0] if publishers else None,
            published_year=parse_year(data.get("publish_date")),
            cover_url=cover_url,
            description=description,
            subjects=data.get("subjects", [])[:10],
            series_name=series[0] if series else None,
            page_count=data.get("number_of_pages"),
        )

    def _fetch_author_names(self, author_refs: list[dict]) -> list[str]:
        """Resolve author keys (e.g. "/authors/OL123A") to names.

        Authors that fail to resolve are left out.
        """
        names = []
        for ref in author_refs[: self.MAX_AUTHORS]:
            key = ref.get("key") if isinstance(ref, dict) else None
            if not key:
                continue
            try:
                data = self._get(f"{self.BASE_URL}{key}.json")
            except OpenLibraryError as e:
                logger.debug("Could not resolve author %s: %s", key, e)
                continue
            if data and data.get("name"):
                names.append(data["name"])
        return names

    # ========================================================================
    # Search Operations
    # ========================================================================

    def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """Search for books by free text.

        Args:
            query: Title, author or general search
            limit: Maximum results to return

        Returns:
            List of SearchResult objects
        """
        params = {"q": query, "limit": limit, "fields": self.SEARCH_FIELDS}
        data = self._get(f"{self.BASE_URL}/search.json", params) or {}

        results = []
        for doc in data.get("docs", []):
            result = self._doc_to_result(doc)
            if result:
                results.append(result)
        return results

    def _doc_to_result(self, doc: dict) -> Optional[SearchResult]:
        """Convert search document to SearchResult."""
        title = doc.get("title")
        if not title:
            return None

        isbn13 = next((i for i in doc.get("isbn", []) if len(i) == 13), None)
        cover_id = doc.get("cover_i")

        return SearchResult(
            title=title,
            authors=doc.get("author_name", []),
            isbn13=isbn13,
            cover_url=f"{self.COVERS_URL}/b/id/{cover_id}-M.jpg" if cover_id else None,
            published_year=doc.get("first_publish_year"),
        )
