"""SQLAlchemy ORM models for the catalog store.

Tables:
- authors: Per-user authors, unique by exact name
- books: Catalog entries, unique per user by ISBN-13 when present
- rate_limit_windows: Shared fixed-window counters
"""

import json
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import BookSource


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Author(Base):
    """Author model - created implicitly by the first book naming them."""

    __tablename__ = "authors"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_authors_user_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    bio: Mapped[Optional[str]] = mapped_column(Text)
    photo_url: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso, onupdate=utcnow_iso)

    # Relationships
    books: Mapped[list["Book"]] = relationship(
        "Book", back_populates="author", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Author(id={self.id}, name='{self.name}')>"


class Book(Base):
    """Book model - one physical book in a user's catalog."""

    __tablename__ = "books"
    __table_args__ = (UniqueConstraint("user_id", "isbn13", name="uq_books_user_isbn13"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("authors.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Core fields
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)

    # Identifiers
    isbn13: Mapped[Optional[str]] = mapped_column(String(13), index=True)
    isbn10: Mapped[Optional[str]] = mapped_column(String(10))

    # Metadata
    publisher: Mapped[Optional[str]] = mapped_column(String(200))
    publication_year: Mapped[Optional[int]] = mapped_column(Integer)
    cover_url: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[Optional[str]] = mapped_column(Text)  # JSON array
    genres: Mapped[Optional[str]] = mapped_column(Text)  # JSON array

    # Series
    series_name: Mapped[Optional[str]] = mapped_column(String(200), index=True)
    series_number: Mapped[Optional[float]] = mapped_column(Float)

    source: Mapped[str] = mapped_column(String(10), default=BookSource.MANUAL.value)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso, index=True)
    updated_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso, onupdate=utcnow_iso)

    # Relationships
    author: Mapped["Author"] = relationship("Author", back_populates="books")

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', isbn13={self.isbn13})>"

    # Helper methods for JSON fields
    def get_tags(self) -> list[str]:
        """Get tags as list."""
        if self.tags:
            return json.loads(self.tags)
        return []

    def set_tags(self, tags: list[str]) -> None:
        """Set tags from list."""
        self.tags = json.dumps(tags) if tags else None

    def get_genres(self) -> list[str]:
        """Get genres as list."""
        if self.genres:
            return json.loads(self.genres)
        return []

    def set_genres(self, genres: list[str]) -> None:
        """Set genres from list."""
        self.genres = json.dumps(genres) if genres else None


class RateLimitWindow(Base):
    """A fixed-window counter shared by every process on this database."""

    __tablename__ = "rate_limit_windows"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, default=0)
    reset_at: Mapped[float] = mapped_column(Float, nullable=False)

    def __repr__(self) -> str:
        return f"<RateLimitWindow(key={self.key}, count={self.count})>"
