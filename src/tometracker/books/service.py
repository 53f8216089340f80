"""Book-level catalog operations: duplicate candidates and ownership."""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from ..db.sqlite import Database, get_db
from .isbn import normalize_to_isbn13
from .similarity import DEFAULT_DUPLICATE_THRESHOLD, similarity

logger = logging.getLogger(__name__)

DUPLICATE_CANDIDATE_POOL = 500
MAX_DUPLICATE_MATCHES = 5


@dataclass
class DuplicateCandidate:
    """An existing book that looks like the one being added."""

    id: str
    title: str
    author: str
    score: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OwnershipCheck:
    owned: bool
    valid_isbn: bool
    book_id: Optional[str] = None
    normalized_isbn: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class BookService:
    """Advisory duplicate detection and ISBN ownership lookups."""

    def __init__(
        self,
        db: Optional[Database] = None,
        duplicate_threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
    ):
        self.db = db or get_db()
        self.duplicate_threshold = duplicate_threshold

    def find_duplicates(self, user_id: str, title: str, author_name: str) -> list[DuplicateCandidate]:
        """Score the most recent books against a title/author pair.

        Args:
            user_id: Catalog owner
            title: Title being added
            author_name: Author being added

        Returns:
            Up to five candidates scoring at or above the threshold, best first
        """
        books = self.db.get_recent_books(user_id, limit=DUPLICATE_CANDIDATE_POOL)

        matches = []
        for book in books:
            title_score = similarity(title, book.title)
            author_score = similarity(author_name, book.author.name)
            score = (title_score + author_score) / 2
            if score >= self.duplicate_threshold:
                matches.append(
                    DuplicateCandidate(
                        id=book.id, title=book.title, author=book.author.name, score=score
                    )
                )

        matches.sort(key=lambda m: m.score, reverse=True)
        logger.debug(
            "Duplicate check %r by %r: %d of %d books matched",
            title,
            author_name,
            len(matches),
            len(books),
        )
        return matches[:MAX_DUPLICATE_MATCHES]

    def check_ownership(self, user_id: str, isbn: str) -> OwnershipCheck:
        """Whether the user already owns this ISBN (any form)."""
        normalized = normalize_to_isbn13(isbn)
        if not normalized:
            return OwnershipCheck(owned=False, valid_isbn=False)

        book = self.db.get_book_by_isbn13(user_id, normalized)
        return OwnershipCheck(
            owned=book is not None,
            valid_isbn=True,
            book_id=book.id if book else None,
            normalized_isbn=normalized,
        )

    def is_owned(self, user_id: str, isbn13: str) -> bool:
        return self.db.get_book_by_isbn13(user_id, isbn13) is not None
