"""Background metadata enrichment.

Fills in covers, publishers, years and genres for books that were
imported or typed in without them.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from ..api.lookup import MetadataLookup
from ..db.models import Book
from ..db.schemas import BookUpdate
from ..db.sqlite import Database, get_db

logger = logging.getLogger(__name__)

BATCH_SIZE = 20
MAX_GENRES = 10


@dataclass
class EnrichmentResult:
    """Counts for one enrichment pass."""

    processed: int = 0
    enriched: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class EnrichmentService:
    """Looks up missing metadata for a user's books."""

    def __init__(self, metadata: MetadataLookup, db: Optional[Database] = None):
        self.metadata = metadata
        self.db = db or get_db()

    def _missing_fields(self, book: Book) -> dict:
        """Metadata values this book lacks and the lookup can supply."""
        metadata = self.metadata.lookup_by_isbn(book.isbn13)
        if not metadata:
            return {}

        updates = {}
        if not book.cover_url and metadata.cover_url:
            updates["cover_url"] = metadata.cover_url
        if not book.publisher and metadata.publisher:
            updates["publisher"] = metadata.publisher
        if not book.publication_year and metadata.published_year:
            updates["publication_year"] = metadata.published_year
        if not book.get_genres() and metadata.subjects:
            updates["genres"] = metadata.subjects[:MAX_GENRES]
        return updates

    def enrich_user_books(self, user_id: str) -> EnrichmentResult:
        """Enrich up to BATCH_SIZE books that have an ISBN but lack a cover or publisher.

        A failure on one book is counted and the pass moves on.
        """
        result = EnrichmentResult()

        for book in self.db.get_books_missing_metadata(user_id, limit=BATCH_SIZE):
            result.processed += 1
            try:
                updates = self._missing_fields(book)
                if updates:
                    self.db.update_book(user_id, book.id, BookUpdate(**updates))
                    result.enriched += 1
            except Exception as e:
                logger.warning("Enrichment failed for book %s: %s", book.id, e)
                result.errors += 1

        logger.info(
            "Enrichment for %s: %d processed, %d enriched, %d errors",
            user_id,
            result.processed,
            result.enriched,
            result.errors,
        )
        return result
