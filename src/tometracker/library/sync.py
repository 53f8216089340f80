"""Catalog snapshots and stats.

A snapshot is the full author -> books tree for one user: authors ascending
by name, books ascending by series name, series number, then title. Books
without a series (or without a number inside their series) sort after
those that have one.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..db.models import Author, Book
from ..db.schemas import AuthorWithBooks, BookSource, BookSummary, LibrarySnapshot, LibraryStats
from ..db.sqlite import Database, get_db

logger = logging.getLogger(__name__)


def book_sort_key(book) -> tuple:
    """Series name, series number, title; missing series values last."""
    return (
        book.series_name is None,
        book.series_name or "",
        book.series_number is None,
        book.series_number if book.series_number is not None else 0.0,
        book.title,
    )


def book_to_summary(book: Book) -> BookSummary:
    """Project a stored book onto its snapshot shape."""
    return BookSummary(
        id=book.id,
        title=book.title,
        isbn13=book.isbn13,
        isbn10=book.isbn10,
        publisher=book.publisher,
        publication_year=book.publication_year,
        cover_url=book.cover_url,
        series_name=book.series_name,
        series_number=book.series_number,
        tags=book.get_tags(),
        genres=book.get_genres(),
        source=BookSource(book.source),
        created_at=book.created_at,
        updated_at=book.updated_at,
    )


def author_to_tree(author: Author) -> AuthorWithBooks:
    """Project an author and its books, books in display order."""
    return AuthorWithBooks(
        id=author.id,
        name=author.name,
        bio=author.bio,
        photo_url=author.photo_url,
        books=[book_to_summary(book) for book in sorted(author.books, key=book_sort_key)],
    )


class LibrarySync:
    """Builds snapshots and stats from the catalog store."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_db()

    def get_library_snapshot(self, user_id: str) -> LibrarySnapshot:
        """Full ordered tree of authors that own at least one book."""
        with self.db.get_session() as session:
            authors = self.db.get_authors_with_books(user_id, session)
            tree = [author_to_tree(author) for author in authors]

        logger.debug("Snapshot for %s: %d authors", user_id, len(tree))
        return LibrarySnapshot(
            synced_at=datetime.now(timezone.utc).isoformat(),
            authors=tree,
        )

    def get_library_stats(self, user_id: str) -> LibraryStats:
        """Book count and count of authors with at least one book."""
        return LibraryStats(
            book_count=self.db.count_books(user_id),
            author_count=self.db.count_authors_with_books(user_id),
        )
