"""Pytest configuration and shared fixtures.

This module provides fixtures for testing tometracker, including
temporary catalog and mirror databases, sample books, and fake
metadata providers.
"""

from pathlib import Path
from typing import Generator, Optional

import pytest
from sqlalchemy.orm import Session

from tometracker.api.base import BookMetadata, SearchResult
from tometracker.api.lookup import MetadataLookup
from tometracker.catalog import CatalogService
from tometracker.config import Config, reset_config
from tometracker.db.models import Book
from tometracker.db.schemas import BookCreate
from tometracker.db.sqlite import Database, reset_db
from tometracker.errors import ProviderUnavailableError
from tometracker.offline.mirror import OfflineMirror
from tometracker.ratelimit import InMemoryCounterStore, RateLimiter

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

WAY_OF_KINGS_ISBN = "9780765326355"
MISTBORN_ISBN = "9780765311788"
CATCHER_ISBN = "9780316769488"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path(tmp_path: Path) -> Path:
    """Path for a temporary catalog database."""
    return tmp_path / "catalog.db"


@pytest.fixture(scope="function")
def db(temp_db_path: Path, tmp_path: Path, monkeypatch) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    monkeypatch.setenv("TOMETRACKER_DB_PATH", str(temp_db_path))
    monkeypatch.setenv("TOMETRACKER_MIRROR_PATH", str(tmp_path / "offline.db"))

    database = Database(str(temp_db_path))
    database.create_tables()
    yield database

    # Cleanup
    reset_db()
    reset_config()


@pytest.fixture(scope="function")
def session(db: Database) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    with db.get_session() as sess:
        yield sess


@pytest.fixture
def mirror(tmp_path: Path) -> OfflineMirror:
    """Offline mirror in a temporary file."""
    return OfflineMirror(str(tmp_path / "mirror.db"))


@pytest.fixture
def user_id() -> str:
    return USER_ID


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_book_data() -> BookCreate:
    """Create sample book data for testing."""
    return BookCreate(
        title="The Way of Kings",
        author_name="Brandon Sanderson",
        isbn13=WAY_OF_KINGS_ISBN,
        publisher="Tor Books",
        publication_year=2010,
        series_name="The Stormlight Archive",
        series_number=1,
        tags=["fantasy", "epic"],
    )


@pytest.fixture
def sample_books(db: Database) -> list[Book]:
    """Three books by two authors for USER_ID."""
    books = [
        BookCreate(
            title="The Way of Kings",
            author_name="Brandon Sanderson",
            isbn13=WAY_OF_KINGS_ISBN,
            series_name="The Stormlight Archive",
            series_number=1,
        ),
        BookCreate(
            title="Mistborn: The Final Empire",
            author_name="Brandon Sanderson",
            isbn13=MISTBORN_ISBN,
            series_name="Mistborn",
            series_number=1,
        ),
        BookCreate(
            title="The Catcher in the Rye",
            author_name="J.D. Salinger",
            isbn13=CATCHER_ISBN,
        ),
    ]
    return [db.create_book(USER_ID, book) for book in books]


@pytest.fixture
def sample_csv_text() -> str:
    """A generic CSV export with one incomplete row."""
    return (
        "Book Title,Author Name,ISBN-13,Year Published\n"
        "The Way of Kings,Brandon Sanderson,9780765326355,2010\n"
        "Mistborn,Brandon Sanderson,0-7653-1178-X,2006\n"
        "Untitled,,,\n"
    )


@pytest.fixture
def goodreads_csv_text() -> str:
    """A minimal Goodreads library export."""
    return (
        "Book Id,Title,Author,ISBN,ISBN13,Publisher,Original Publication Year,Bookshelves\n"
        '7235533,"The Way of Kings (The Stormlight Archive, #1)",Brandon Sanderson,'
        '"=""0765326353""","=""9780765326355""",Tor Books,2010,owned\n'
        '68428,"Mistborn: The Final Empire (Mistborn, #1)",Brandon Sanderson,'
        '"=""076531178X""","=""9780765311788""",Tor Fantasy,2006,owned\n'
    )


# ============================================================================
# Metadata Provider Fakes
# ============================================================================


class FakeProvider:
    """In-memory metadata provider with optional failure."""

    def __init__(
        self,
        name: str = "fake",
        books: Optional[dict[str, BookMetadata]] = None,
        results: Optional[list[SearchResult]] = None,
        fail: bool = False,
    ):
        self.name = name
        self.books = books or {}
        self.results = results or []
        self.fail = fail
        self.lookups: list[str] = []
        self.searches: list[str] = []

    def lookup_by_isbn(self, isbn: str) -> Optional[BookMetadata]:
        self.lookups.append(isbn)
        if self.fail:
            raise ProviderUnavailableError(self.name, "service down")
        return self.books.get(isbn)

    def search(self, query: str) -> list[SearchResult]:
        self.searches.append(query)
        if self.fail:
            raise ProviderUnavailableError(self.name, "service down")
        return list(self.results)


@pytest.fixture
def make_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture
def mistborn_metadata() -> BookMetadata:
    return BookMetadata(
        title="Mistborn: The Final Empire",
        authors=["Brandon Sanderson"],
        isbn13=MISTBORN_ISBN,
        publisher="Tor Fantasy",
        published_year=2006,
        cover_url="https://covers.openlibrary.org/b/id/123-L.jpg",
        subjects=["Fantasy", "Magic", "Fiction"],
    )


@pytest.fixture
def fake_provider(mistborn_metadata: BookMetadata) -> FakeProvider:
    return FakeProvider(
        books={MISTBORN_ISBN: mistborn_metadata},
        results=[
            SearchResult(
                title="Mistborn: The Final Empire",
                authors=["Brandon Sanderson"],
                isbn13=MISTBORN_ISBN,
                published_year=2006,
            )
        ],
    )


@pytest.fixture
def metadata(fake_provider: FakeProvider) -> MetadataLookup:
    return MetadataLookup([fake_provider])


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        db_path=tmp_path / "catalog.db",
        mirror_path=tmp_path / "mirror.db",
        user_id=USER_ID,
        http_timeout=5,
        google_books_api_key=None,
        duplicate_threshold=0.82,
        rate_limit_store="memory",
        log_level="WARNING",
    )


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(InMemoryCounterStore())


@pytest.fixture
def service(
    db: Database,
    config: Config,
    rate_limiter: RateLimiter,
    metadata: MetadataLookup,
    mirror: OfflineMirror,
) -> CatalogService:
    """Catalog service wired to temporary stores and the fake provider."""
    return CatalogService(
        db=db,
        user_id=USER_ID,
        rate_limiter=rate_limiter,
        metadata=metadata,
        config=config,
        mirror=mirror,
    )


# ============================================================================
# CLI Fixtures
# ============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
