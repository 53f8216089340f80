"""SQLite catalog store.

Handles database connection, session management, and the CRUD contract
the ingestion engine consumes: get-or-create authors by name, ISBN-unique
book creation, orphan cleanup and the per-user cascade delete.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine, delete, event, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import DuplicateIdentifierError, NotFoundError
from .models import Author, Base, Book, utcnow_iso
from .schemas import AuthorUpdate, BookCreate, BookUpdate

logger = logging.getLogger(__name__)

# Fields copied verbatim from BookCreate/BookUpdate onto Book
_PLAIN_BOOK_FIELDS = (
    "title",
    "isbn13",
    "isbn10",
    "publisher",
    "publication_year",
    "cover_url",
    "series_name",
    "series_number",
)


# Seconds a connection waits for another writer before "database is locked"
BUSY_TIMEOUT_SECONDS = 30


def _enable_transactions(engine: Engine) -> Engine:
    """Let SQLAlchemy emit BEGIN itself so savepoints nest inside it.

    Transactions start with BEGIN IMMEDIATE: the write lock is taken up
    front, so concurrent writers queue on the busy timeout instead of
    failing on a read-to-write lock upgrade.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_sqlite_engine(db_path: str) -> Engine:
    """Create an engine for a SQLite file, or a shared in-memory database."""
    # For in-memory databases, use StaticPool to reuse the same connection
    # This ensures all sessions share the same in-memory database
    if db_path == ":memory:":
        return _enable_transactions(
            create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": BUSY_TIMEOUT_SECONDS},
                poolclass=StaticPool,
            )
        )

    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return _enable_transactions(
        create_engine(
            f"sqlite:///{path}",
            echo=False,
            connect_args={"check_same_thread": False, "timeout": BUSY_TIMEOUT_SECONDS},
        )
    )


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     TOMETRACKER_DB_PATH env var or default location.
        """
        if db_path is None:
            from ..config import get_config

            db_path = os.environ.get("TOMETRACKER_DB_PATH", str(get_config().db_path))

        self.db_path = str(db_path)
        self.engine = create_sqlite_engine(self.db_path)
        # Detached results stay readable after the session closes
        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Author Operations
    # ========================================================================

    def get_or_create_author(
        self, user_id: str, name: str, session: Optional[Session] = None
    ) -> Author:
        """Return the user's author with this exact name, creating it if absent.

        The (user_id, name) unique constraint arbitrates concurrent creators:
        the loser's insert fails inside a savepoint and it re-reads the row.
        """

        def _get_or_create(s: Session) -> Author:
            stmt = select(Author).where(Author.user_id == user_id, Author.name == name)
            author = s.execute(stmt).scalar_one_or_none()
            if author:
                return author

            try:
                with s.begin_nested():
                    author = Author(user_id=user_id, name=name)
                    s.add(author)
            except IntegrityError:
                logger.debug("Author %r created concurrently, re-reading", name)
                author = s.execute(stmt).scalar_one()
            return author

        if session:
            return _get_or_create(session)
        with self.get_session() as s:
            return _get_or_create(s)

    def get_author(
        self, user_id: str, author_id: str, session: Optional[Session] = None
    ) -> Optional[Author]:
        """Get an author by ID, scoped to its owner."""

        def _get(s: Session) -> Optional[Author]:
            stmt = select(Author).where(Author.id == author_id, Author.user_id == user_id)
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        with self.get_session() as s:
            return _get(s)

    def update_author(
        self, user_id: str, author_id: str, update: AuthorUpdate, session: Optional[Session] = None
    ) -> Author:
        """Update an author's bio/photo."""

        def _update(s: Session) -> Author:
            author = self.get_author(user_id, author_id, s)
            if not author:
                raise NotFoundError("Author", author_id)
            for field, value in update.model_dump(exclude_unset=True).items():
                setattr(author, field, value)
            s.flush()
            return author

        if session:
            return _update(session)
        with self.get_session() as s:
            return _update(s)

    def get_authors_with_books(
        self, user_id: str, session: Optional[Session] = None
    ) -> list[Author]:
        """Authors owning at least one book, ascending by name, books loaded."""

        def _get(s: Session) -> list[Author]:
            stmt = (
                select(Author)
                .where(Author.user_id == user_id, Author.books.any())
                .options(selectinload(Author.books))
                .order_by(Author.name)
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        with self.get_session() as s:
            return _get(s)

    def delete_orphaned_authors(self, user_id: str, session: Optional[Session] = None) -> int:
        """Delete the user's authors that no longer own any book."""

        def _delete(s: Session) -> int:
            has_books = select(Book.id).where(Book.author_id == Author.id).exists()
            stmt = delete(Author).where(Author.user_id == user_id, ~has_books)
            result = s.execute(stmt, execution_options={"synchronize_session": False})
            return result.rowcount or 0

        if session:
            return _delete(session)
        with self.get_session() as s:
            return _delete(s)

    # ========================================================================
    # Book Operations
    # ========================================================================

    def create_book(
        self, user_id: str, book: BookCreate, session: Optional[Session] = None
    ) -> Book:
        """Create a new book, upserting its author by name.

        Raises:
            DuplicateIdentifierError: The user already owns this ISBN-13
        """

        def _create(s: Session) -> Book:
            if book.isbn13:
                existing = self.get_book_by_isbn13(user_id, book.isbn13, s)
                if existing:
                    raise DuplicateIdentifierError(book.isbn13, existing.id)

            author = self.get_or_create_author(user_id, book.author_name, s)

            db_book = Book(
                user_id=user_id,
                source=book.source.value,
                **{field: getattr(book, field) for field in _PLAIN_BOOK_FIELDS},
            )
            # Set JSON fields
            db_book.set_tags(book.tags)
            db_book.set_genres(book.genres)

            try:
                with s.begin_nested():
                    s.add(db_book)
                    db_book.author = author
            except IntegrityError:
                existing = self.get_book_by_isbn13(user_id, book.isbn13, s) if book.isbn13 else None
                raise DuplicateIdentifierError(
                    book.isbn13 or "", existing.id if existing else None
                )

            return db_book

        if session:
            return _create(session)
        with self.get_session() as s:
            return _create(s)

    def get_book(self, user_id: str, book_id: str, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID (with its author), scoped to its owner."""

        def _get(s: Session) -> Optional[Book]:
            stmt = (
                select(Book)
                .where(Book.id == book_id, Book.user_id == user_id)
                .options(selectinload(Book.author))
            )
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        with self.get_session() as s:
            return _get(s)

    def get_book_by_isbn13(
        self, user_id: str, isbn13: str, session: Optional[Session] = None
    ) -> Optional[Book]:
        """Get a user's book by ISBN-13."""

        def _get(s: Session) -> Optional[Book]:
            stmt = select(Book).where(Book.user_id == user_id, Book.isbn13 == isbn13)
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        with self.get_session() as s:
            return _get(s)

    def get_isbn13_set(self, user_id: str, session: Optional[Session] = None) -> set[str]:
        """All non-null ISBN-13 values in the user's catalog."""

        def _get(s: Session) -> set[str]:
            stmt = select(Book.isbn13).where(Book.user_id == user_id, Book.isbn13.is_not(None))
            return set(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        with self.get_session() as s:
            return _get(s)

    def get_recent_books(
        self, user_id: str, limit: int = 500, session: Optional[Session] = None
    ) -> list[Book]:
        """Most recently added books, newest first, authors loaded."""

        def _get(s: Session) -> list[Book]:
            stmt = (
                select(Book)
                .where(Book.user_id == user_id)
                .options(selectinload(Book.author))
                .order_by(Book.created_at.desc())
                .limit(limit)
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        with self.get_session() as s:
            return _get(s)

    def get_books_missing_metadata(
        self, user_id: str, limit: int = 20, session: Optional[Session] = None
    ) -> list[Book]:
        """Books with an ISBN-13 but no cover or no publisher."""

        def _get(s: Session) -> list[Book]:
            stmt = (
                select(Book)
                .where(
                    Book.user_id == user_id,
                    Book.isbn13.is_not(None),
                    or_(Book.cover_url.is_(None), Book.publisher.is_(None)),
                )
                .order_by(Book.created_at)
                .limit(limit)
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        with self.get_session() as s:
            return _get(s)

    def count_books(self, user_id: str, session: Optional[Session] = None) -> int:
        """Count a user's books."""

        def _count(s: Session) -> int:
            stmt = select(func.count(Book.id)).where(Book.user_id == user_id)
            return s.execute(stmt).scalar_one()

        if session:
            return _count(session)
        with self.get_session() as s:
            return _count(s)

    def count_authors_with_books(self, user_id: str, session: Optional[Session] = None) -> int:
        """Count a user's authors that own at least one book."""

        def _count(s: Session) -> int:
            stmt = select(func.count(Author.id)).where(
                Author.user_id == user_id, Author.books.any()
            )
            return s.execute(stmt).scalar_one()

        if session:
            return _count(session)
        with self.get_session() as s:
            return _count(s)

    def update_book(
        self, user_id: str, book_id: str, update: BookUpdate, session: Optional[Session] = None
    ) -> Book:
        """Update a book record.

        Raises:
            NotFoundError: No such book for this user
            DuplicateIdentifierError: New ISBN-13 belongs to another book
        """

        def _update(s: Session) -> Book:
            book = self.get_book(user_id, book_id, s)
            if not book:
                raise NotFoundError("Book", book_id)

            update_data = update.model_dump(exclude_unset=True)

            new_isbn13 = update_data.get("isbn13")
            if new_isbn13 and new_isbn13 != book.isbn13:
                duplicate = self.get_book_by_isbn13(user_id, new_isbn13, s)
                if duplicate and duplicate.id != book.id:
                    raise DuplicateIdentifierError(new_isbn13, duplicate.id)

            old_author_id = book.author_id
            author_name = update_data.pop("author_name", None)
            if author_name:
                author = self.get_or_create_author(user_id, author_name, s)
                book.author = author

            for field, value in update_data.items():
                if field in ("tags", "genres"):
                    getattr(book, f"set_{field}")(value or [])
                else:
                    setattr(book, field, value)

            book.updated_at = utcnow_iso()
            s.flush()

            if book.author_id != old_author_id:
                self.delete_orphaned_authors(user_id, s)

            return book

        if session:
            return _update(session)
        with self.get_session() as s:
            return _update(s)

    def delete_book(self, user_id: str, book_id: str, session: Optional[Session] = None) -> bool:
        """Delete a book record and any author it leaves without books."""

        def _delete(s: Session) -> bool:
            book = s.execute(
                select(Book).where(Book.id == book_id, Book.user_id == user_id)
            ).scalar_one_or_none()
            if not book:
                return False

            s.delete(book)
            s.flush()
            self.delete_orphaned_authors(user_id, s)
            return True

        if session:
            return _delete(session)
        with self.get_session() as s:
            return _delete(s)

    # ========================================================================
    # Account Operations
    # ========================================================================

    def delete_user_data(self, user_id: str, session: Optional[Session] = None) -> dict[str, int]:
        """Remove every book and author a user owns.

        Books go first so no author row is ever left referencing a
        deleted parent; both deletes share one transaction.
        """

        def _delete(s: Session) -> dict[str, int]:
            books = s.execute(
                delete(Book).where(Book.user_id == user_id),
                execution_options={"synchronize_session": False},
            ).rowcount
            authors = s.execute(
                delete(Author).where(Author.user_id == user_id),
                execution_options={"synchronize_session": False},
            ).rowcount
            logger.info("Deleted %d books and %d authors for user %s", books, authors, user_id)
            return {"books": books or 0, "authors": authors or 0}

        if session:
            return _delete(session)
        with self.get_session() as s:
            return _delete(s)


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
