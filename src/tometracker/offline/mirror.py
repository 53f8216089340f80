"""Offline mirror of the last successful library sync.

A separate local SQLite file holding a flattened author/book projection
and the time of the last sync. Every successful sync replaces the whole
mirror in one transaction, so readers never see a half-written copy.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Generator, Optional

from sqlalchemy import Float, String, Text, delete, func, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..db.schemas import LibrarySnapshot
from ..db.sqlite import create_sqlite_engine
from ..library.sync import book_sort_key

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "lastSync"


# ============================================================================
# Mirror Tables
# ============================================================================


class MirrorBase(DeclarativeBase):
    """Base class for the mirror's own tables."""

    pass


class MirrorAuthor(MirrorBase):
    __tablename__ = "authors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    bio: Mapped[Optional[str]] = mapped_column(Text)
    photo_url: Mapped[Optional[str]] = mapped_column(Text)


class MirrorBook(MirrorBase):
    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    author_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    isbn13: Mapped[Optional[str]] = mapped_column(String(13), index=True)
    cover_url: Mapped[Optional[str]] = mapped_column(Text)
    series_name: Mapped[Optional[str]] = mapped_column(String(200))
    series_number: Mapped[Optional[float]] = mapped_column(Float)


class MirrorMetadata(MirrorBase):
    __tablename__ = "metadata"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(String(32), nullable=False)


# ============================================================================
# Cached Projections
# ============================================================================


@dataclass
class CachedAuthor:
    id: str
    name: str
    bio: Optional[str] = None
    photo_url: Optional[str] = None


@dataclass
class CachedBook:
    id: str
    author_id: str
    title: str
    isbn13: Optional[str] = None
    cover_url: Optional[str] = None
    series_name: Optional[str] = None
    series_number: Optional[float] = None


@dataclass
class CachedAuthorBooks:
    """An author rebuilt from the mirror, with their books."""

    id: str
    name: str
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    books: list[CachedBook] = field(default_factory=list)


@dataclass
class CachedLibrary:
    """Raw mirror contents."""

    authors: list[CachedAuthor]
    books: list[CachedBook]
    last_sync: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.last_sync is None

    def to_tree(self) -> list[CachedAuthorBooks]:
        """Group books under their authors.

        Authors left with no books are dropped. Ordering matches a library
        snapshot: authors by name, books by series then title.
        """
        books_by_author: dict[str, list[CachedBook]] = {}
        for book in self.books:
            books_by_author.setdefault(book.author_id, []).append(book)

        tree = []
        for author in sorted(self.authors, key=lambda a: a.name):
            books = books_by_author.get(author.id)
            if not books:
                continue
            tree.append(
                CachedAuthorBooks(
                    id=author.id,
                    name=author.name,
                    bio=author.bio,
                    photo_url=author.photo_url,
                    books=sorted(books, key=book_sort_key),
                )
            )
        return tree


@dataclass
class CacheStats:
    author_count: int
    book_count: int
    last_sync: Optional[str] = None


def flatten_snapshot(snapshot: LibrarySnapshot) -> tuple[list[CachedAuthor], list[CachedBook]]:
    """Split a snapshot tree into the mirror's author and book rows."""
    authors = []
    books = []
    for author in snapshot.authors:
        authors.append(
            CachedAuthor(
                id=author.id, name=author.name, bio=author.bio, photo_url=author.photo_url
            )
        )
        for book in author.books:
            books.append(
                CachedBook(
                    id=book.id,
                    author_id=author.id,
                    title=book.title,
                    isbn13=book.isbn13,
                    cover_url=book.cover_url,
                    series_name=book.series_name,
                    series_number=book.series_number,
                )
            )
    return authors, books


# ============================================================================
# Mirror Store
# ============================================================================


class OfflineMirror:
    """Local full-replace cache of the user's library."""

    def __init__(self, path: Optional[str] = None):
        """Open (and create if needed) the mirror database.

        Args:
            path: SQLite file path or ":memory:". If None, uses the
                  configured mirror path.
        """
        if path is None:
            from ..config import get_config

            path = str(get_config().mirror_path)

        self.path = str(path)
        self.engine = create_sqlite_engine(self.path)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        MirrorBase.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a mirror session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def cache_library(self, authors: list[CachedAuthor], books: list[CachedBook]) -> str:
        """Replace the mirror's contents and stamp the sync time.

        Clearing, inserting and stamping share one transaction; on any
        failure the previous mirror is left untouched.

        Returns:
            The recorded lastSync timestamp
        """
        now = datetime.now(timezone.utc).isoformat()

        with self.get_session() as session:
            session.execute(delete(MirrorBook))
            session.execute(delete(MirrorAuthor))

            session.add_all(
                MirrorAuthor(id=a.id, name=a.name, bio=a.bio, photo_url=a.photo_url)
                for a in authors
            )
            session.add_all(
                MirrorBook(
                    id=b.id,
                    author_id=b.author_id,
                    title=b.title,
                    isbn13=b.isbn13,
                    cover_url=b.cover_url,
                    series_name=b.series_name,
                    series_number=b.series_number,
                )
                for b in books
            )
            session.merge(MirrorMetadata(key=LAST_SYNC_KEY, value=now, updated_at=now))

        logger.info("Cached %d authors and %d books offline", len(authors), len(books))
        return now

    def cache_snapshot(self, snapshot: LibrarySnapshot) -> str:
        """Flatten a snapshot and replace the mirror with it."""
        authors, books = flatten_snapshot(snapshot)
        return self.cache_library(authors, books)

    def get_last_sync(self, session: Optional[Session] = None) -> Optional[str]:
        def _get(s: Session) -> Optional[str]:
            meta = s.get(MirrorMetadata, LAST_SYNC_KEY)
            return meta.value if meta else None

        if session:
            return _get(session)
        with self.get_session() as s:
            return _get(s)

    def get_cached_library(self) -> CachedLibrary:
        """Read everything in the mirror."""
        with self.get_session() as session:
            authors = [
                CachedAuthor(id=a.id, name=a.name, bio=a.bio, photo_url=a.photo_url)
                for a in session.execute(select(MirrorAuthor)).scalars()
            ]
            books = [
                self._to_cached_book(b) for b in session.execute(select(MirrorBook)).scalars()
            ]
            last_sync = self.get_last_sync(session)

        return CachedLibrary(authors=authors, books=books, last_sync=last_sync)

    @staticmethod
    def _to_cached_book(book: MirrorBook) -> CachedBook:
        return CachedBook(
            id=book.id,
            author_id=book.author_id,
            title=book.title,
            isbn13=book.isbn13,
            cover_url=book.cover_url,
            series_name=book.series_name,
            series_number=book.series_number,
        )

    def check_ownership_offline(self, isbn13: str) -> bool:
        """Whether the mirrored library holds this ISBN-13."""
        with self.get_session() as session:
            stmt = select(MirrorBook.id).where(MirrorBook.isbn13 == isbn13).limit(1)
            return session.execute(stmt).first() is not None

    def search_books_offline(self, query: str) -> list[CachedBook]:
        """Case-insensitive substring match on title or author name."""
        pattern = f"%{query.lower()}%"
        with self.get_session() as session:
            stmt = (
                select(MirrorBook)
                .outerjoin(MirrorAuthor, MirrorAuthor.id == MirrorBook.author_id)
                .where(
                    func.lower(MirrorBook.title).like(pattern)
                    | func.lower(MirrorAuthor.name).like(pattern)
                )
                .order_by(MirrorBook.title)
            )
            return [self._to_cached_book(b) for b in session.execute(stmt).scalars()]

    def get_cache_stats(self) -> CacheStats:
        with self.get_session() as session:
            author_count = session.execute(
                select(func.count()).select_from(MirrorAuthor)
            ).scalar_one()
            book_count = session.execute(select(func.count()).select_from(MirrorBook)).scalar_one()
            return CacheStats(
                author_count=author_count,
                book_count=book_count,
                last_sync=self.get_last_sync(session),
            )

    def clear_cache(self) -> None:
        """Drop all mirrored data, including the sync stamp (logout, account deletion)."""
        with self.get_session() as session:
            session.execute(delete(MirrorBook))
            session.execute(delete(MirrorAuthor))
            session.execute(delete(MirrorMetadata))
        logger.info("Offline cache cleared")
