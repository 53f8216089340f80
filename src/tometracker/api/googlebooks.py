"""Google Books API client.

Used as the fallback metadata source. Works without a key at low volume;
GOOGLE_BOOKS_API_KEY raises the quota.
"""

from typing import Optional

from .base import (
    BookMetadata,
    HttpProviderClient,
    ProviderRequestError,
    SearchResult,
    parse_year,
)


class GoogleBooksError(ProviderRequestError):
    """Base exception for Google Books API errors."""

    provider_name = "googlebooks"


class GoogleBooksRateLimitError(GoogleBooksError):
    """Raised when the daily quota or per-minute limit is exhausted."""

    pass


def upgrade_cover_url(url: Optional[str]) -> Optional[str]:
    """Serve thumbnails over https and at the larger zoom level."""
    if not url:
        return None
    return url.replace("http://", "https://").replace("zoom=1", "zoom=2")


def _identifier(info: dict, kind: str) -> Optional[str]:
    for identifier in info.get("industryIdentifiers", []):
        if identifier.get("type") == kind:
            return identifier.get("identifier")
    return None


class GoogleBooksClient(HttpProviderClient):
    """Client for the Google Books volumes API."""

    name = "googlebooks"
    error_class = GoogleBooksError
    rate_limit_error_class = GoogleBooksRateLimitError

    BASE_URL = "https://www.googleapis.com/books/v1"

    def __init__(
        self,
        timeout: int = 10,
        api_key: Optional[str] = None,
        min_request_interval: float = 0.5,
    ):
        super().__init__(timeout=timeout, min_request_interval=min_request_interval)
        self.api_key = api_key

    def _volumes(self, params: dict) -> list[dict]:
        if self.api_key:
            params = {**params, "key": self.api_key}
        data = self._get(f"{self.BASE_URL}/volumes", params) or {}
        return data.get("items") or []

    def lookup_by_isbn(self, isbn: str) -> Optional[BookMetadata]:
        """Look up a volume by ISBN; first match wins."""
        items = self._volumes({"q": f"isbn:{isbn}"})
        if not items:
            return None

        info = items[0].get("volumeInfo", {})
        if not info.get("title"):
            return None

        return BookMetadata(
            title=info["title"],
            authors=info.get("authors", []),
            isbn13=_identifier(info, "ISBN_13"),
            isbn10=_identifier(info, "ISBN_10"),
            publisher=info.get("publisher"),
            published_year=parse_year(info.get("publishedDate")),
            cover_url=upgrade_cover_url(info.get("imageLinks", {}).get("thumbnail")),
            description=info.get("description"),
            subjects=info.get("categories", [])[:10],
            page_count=info.get("pageCount"),
        )

    def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """Free-text volume search."""
        results = []
        for item in self._volumes({"q": query, "maxResults": limit}):
            info = item.get("volumeInfo", {})
            if not info.get("title"):
                continue
            results.append(
                SearchResult(
                    title=info["title"],
                    authors=info.get("authors", []),
                    isbn13=_identifier(info, "ISBN_13"),
                    cover_url=upgrade_cover_url(info.get("imageLinks", {}).get("thumbnail")),
                    published_year=parse_year(info.get("publishedDate")),
                )
            )
        return results
