"""Bulk import execution.

Rows are processed one at a time, in order, each in its own transaction.
A failing row is recorded and skipped; the batch always runs to the end.
"""

import logging
from dataclasses import replace
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from ..books.isbn import normalize_to_isbn13
from ..db.schemas import BookCreate, BookSource
from ..db.sqlite import Database, get_db
from ..errors import DuplicateIdentifierError, RowError
from .base import ImportFormat, ImportMapping, ImportResult, ImportRow
from .csv_import import apply_mapping
from .goodreads import clean_goodreads_isbn, extract_series_from_title

logger = logging.getLogger(__name__)

MISSING_REQUIRED_FIELDS = "Missing required fields (title or author)"


def _describe_validation_error(error: PydanticValidationError) -> str:
    """Flatten a pydantic error into one line per failing field."""
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ()))
        message = detail.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def _describe_database_error(error: SQLAlchemyError) -> str:
    """Driver message only; the SQL text and bound parameters stay in the log."""
    cause = getattr(error, "orig", None)
    return f"Database error: {cause}" if cause else "Database error"


class ImportExecutor:
    """Turns mapped spreadsheet rows into catalog books for one user."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize executor.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    def execute(
        self,
        user_id: str,
        rows: list[dict[str, str]],
        mapping: ImportMapping,
        import_format: ImportFormat = ImportFormat.CSV,
    ) -> ImportResult:
        """Import a batch of raw rows.

        Args:
            user_id: Catalog owner
            rows: Column-keyed records, in file order
            mapping: Field to column mapping
            import_format: Detected or chosen export format

        Returns:
            ImportResult with imported/duplicate counts and per-row errors
        """
        result = ImportResult()

        # Grows as rows are stored so later rows in the batch see earlier ones
        seen_isbns = self.db.get_isbn13_set(user_id)

        for row_number, raw in enumerate(rows, start=1):
            try:
                import_row = apply_mapping(raw, mapping)
                if import_row is None:
                    result.errors.append(RowError(row=row_number, error=MISSING_REQUIRED_FIELDS))
                    continue

                if import_format == ImportFormat.GOODREADS:
                    import_row = self._clean_goodreads_row(import_row)

                isbn13 = normalize_to_isbn13(import_row.isbn) if import_row.isbn else None

                if isbn13 and isbn13 in seen_isbns:
                    result.duplicates += 1
                    continue

                try:
                    self._store_row(user_id, import_row, isbn13)
                except DuplicateIdentifierError:
                    # Another batch stored this ISBN after the set was loaded
                    logger.debug("Row %d: ISBN %s stored concurrently", row_number, isbn13)
                    result.duplicates += 1
                    if isbn13:
                        seen_isbns.add(isbn13)
                    continue

                if isbn13:
                    seen_isbns.add(isbn13)
                result.imported += 1

            except PydanticValidationError as e:
                message = _describe_validation_error(e)
                logger.info("Row %d rejected: %s", row_number, message)
                result.errors.append(RowError(row=row_number, error=message))
            except SQLAlchemyError as e:
                logger.warning("Row %d could not be stored: %s", row_number, e)
                result.errors.append(RowError(row=row_number, error=_describe_database_error(e)))
            except Exception as e:
                logger.warning("Row %d failed: %s", row_number, e)
                result.errors.append(RowError(row=row_number, error=str(e) or "Unknown error"))

        logger.info("Import for %s finished. %s", user_id, result.summary)
        return result

    def _clean_goodreads_row(self, row: ImportRow) -> ImportRow:
        """Split the series out of a Goodreads title and unwrap its ISBN."""
        series = extract_series_from_title(row.title)
        return replace(
            row,
            title=series.clean_title,
            series_name=row.series_name or series.series_name,
            series_number=row.series_number or series.series_number,
            isbn=clean_goodreads_isbn(row.isbn),
        )

    def _store_row(self, user_id: str, row: ImportRow, isbn13: Optional[str]) -> None:
        """Persist one row with its author, in a transaction of its own."""
        book = BookCreate(
            title=row.title,
            author_name=row.author,
            isbn13=isbn13,
            publisher=row.publisher,
            publication_year=row.publication_year,
            series_name=row.series_name,
            series_number=row.series_number,
            source=BookSource.IMPORT,
        )
        with self.db.get_session() as session:
            self.db.create_book(user_id, book, session)


def execute_import(
    user_id: str,
    rows: list[dict[str, str]],
    mapping: ImportMapping,
    import_format: ImportFormat = ImportFormat.CSV,
    db: Optional[Database] = None,
) -> ImportResult:
    """Convenience wrapper around ImportExecutor.execute."""
    return ImportExecutor(db).execute(user_id, rows, mapping, import_format)
