"""Shared metadata types and the HTTP plumbing every provider client uses."""

import logging
import re
import time
from dataclasses import asdict, dataclass, field
from typing import Optional, Protocol, runtime_checkable

import requests

from ..errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

USER_AGENT = "TomeTracker/0.1 (https://github.com/tometracker/tometracker)"


@dataclass
class BookMetadata:
    """Everything a provider knows about one edition."""

    title: str
    authors: list[str] = field(default_factory=list)
    isbn13: Optional[str] = None
    isbn10: Optional[str] = None
    publisher: Optional[str] = None
    published_year: Optional[int] = None
    cover_url: Optional[str] = None
    description: Optional[str] = None
    subjects: list[str] = field(default_factory=list)
    series_name: Optional[str] = None
    series_number: Optional[float] = None
    page_count: Optional[int] = None

    @property
    def author(self) -> Optional[str]:
        """Primary author, if any."""
        return self.authors[0] if self.authors else None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SearchResult:
    """A free-text search hit."""

    title: str
    authors: list[str] = field(default_factory=list)
    isbn13: Optional[str] = None
    cover_url: Optional[str] = None
    published_year: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@runtime_checkable
class MetadataProvider(Protocol):
    """Contract for an external metadata source.

    ``lookup_by_isbn`` returns None when the source has no record;
    both methods raise ProviderUnavailableError when the source fails.
    """

    name: str

    def lookup_by_isbn(self, isbn: str) -> Optional[BookMetadata]: ...

    def search(self, query: str) -> list[SearchResult]: ...


class ProviderRequestError(ProviderUnavailableError):
    """A provider request failed. Subclasses name the provider."""

    provider_name = "http"

    def __init__(self, message: str):
        super().__init__(self.provider_name, message)


class HttpProviderClient:
    """requests-based client with polite pacing and typed failures."""

    name = "http"
    error_class: type[ProviderRequestError] = ProviderRequestError
    rate_limit_error_class: type[ProviderRequestError] = ProviderRequestError

    def __init__(self, timeout: int = 10, min_request_interval: float = 0.5):
        """Initialize client.

        Args:
            timeout: Request timeout in seconds
            min_request_interval: Minimum seconds between requests
        """
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})
        self._last_request_time = 0.0
        self._min_request_interval = min_request_interval

    def _rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    def _get(self, url: str, params: Optional[dict] = None) -> Optional[dict]:
        """Make GET request with error handling.

        Returns:
            Parsed JSON body, or None when the resource does not exist (404)
        """
        self._rate_limit()
        logger.debug("GET %s %s", url, params or "")
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout:
            raise self.error_class("Request timed out")
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 429:
                raise self.rate_limit_error_class(f"Rate limited by {self.name}")
            status = e.response.status_code if e.response is not None else "unknown"
            raise self.error_class(f"HTTP error: {status}")
        except requests.exceptions.RequestException as e:
            raise self.error_class(f"Request failed: {e}")
        except ValueError:
            raise self.error_class("Response was not valid JSON")


def parse_year(value: Optional[str]) -> Optional[int]:
    """First four-digit run in a free-form date ("May 2006", "2006-05-01")."""
    if not value:
        return None
    match = re.search(r"\d{4}", str(value))
    return int(match.group()) if match else None
