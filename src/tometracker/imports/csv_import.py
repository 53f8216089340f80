"""Generic CSV parsing, format detection and column mapping.

Handles any spreadsheet export: the header row decides the format and a
suggested mapping, which the user may override before execution.
"""

import csv
import io
import re
from pathlib import Path
from typing import Optional

from ..errors import ValidationError
from .base import ImportFormat, ImportMapping, ImportPreview, ImportRow
from .goodreads import GOODREADS_MAPPING

# Column name aliases per canonical field. Both the field order and the
# alias order break ties: the first alias matching any header wins.
COLUMN_ALIASES: dict[str, list[str]] = {
    "title": ["title", "book title", "name", "book name"],
    "author": ["author", "author name", "authors", "author(s)", "writer"],
    "isbn": ["isbn", "isbn13", "isbn-13", "isbn10", "isbn-10", "asin"],
    "series_name": ["series", "series name", "series title"],
    "series_number": ["series number", "book number", "number in series", "#"],
    "publisher": ["publisher", "publishing company"],
    "publication_year": [
        "year",
        "publication year",
        "year published",
        "original publication year",
    ],
}

SAMPLE_ROW_COUNT = 5

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+))")


# ============================================================================
# Format Detection & Mapping
# ============================================================================


def detect_format(headers: list[str]) -> ImportFormat:
    """Classify an export by its header row."""
    header_set = {header.lower() for header in headers}

    if "book id" in header_set and "bookshelves" in header_set:
        return ImportFormat.GOODREADS

    if "read status" in header_set and "star rating" in header_set:
        return ImportFormat.STORYGRAPH

    return ImportFormat.CSV


def suggest_mapping(headers: list[str]) -> ImportMapping:
    """Propose a field -> column mapping from header names.

    A header matches an alias when its lowercased, trimmed form equals or
    contains the alias. The original header string is kept.
    """
    mapping = ImportMapping()
    lower_headers = [header.lower().strip() for header in headers]

    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            index = next(
                (
                    i
                    for i, header in enumerate(lower_headers)
                    if header == alias or alias in header
                ),
                None,
            )
            if index is not None:
                setattr(mapping, field_name, headers[index])
                break

    return mapping


# ============================================================================
# Row Extraction
# ============================================================================


def _get_field(row: dict, column: Optional[str]) -> Optional[str]:
    """Trimmed cell value, None when unmapped, missing or blank."""
    if not column:
        return None
    value = row.get(column)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_int(value: Optional[str]) -> Optional[int]:
    """Parse a leading integer ("2006", "2006-05"); zero counts as absent."""
    if not value:
        return None
    match = _LEADING_INT.match(value)
    if not match:
        return None
    number = int(match.group(1))
    return number or None


def parse_float(value: Optional[str]) -> Optional[float]:
    """Parse a leading decimal ("2", "2.5", "3 of 5"); zero counts as absent."""
    if not value:
        return None
    match = _LEADING_FLOAT.match(value)
    if not match:
        return None
    number = float(match.group(1))
    return number or None


def apply_mapping(row: dict, mapping: ImportMapping) -> Optional[ImportRow]:
    """Project one raw row onto canonical fields.

    Returns:
        ImportRow, or None when title or author is unmapped or empty
    """
    title = _get_field(row, mapping.title)
    author = _get_field(row, mapping.author)

    if not title or not author:
        return None

    return ImportRow(
        title=title,
        author=author,
        isbn=_get_field(row, mapping.isbn),
        series_name=_get_field(row, mapping.series_name),
        series_number=parse_float(_get_field(row, mapping.series_number)),
        publisher=_get_field(row, mapping.publisher),
        publication_year=parse_int(_get_field(row, mapping.publication_year)),
    )


# ============================================================================
# Parsing & Preview
# ============================================================================


def parse_csv_text(text: str) -> tuple[list[str], list[dict[str, str]]]:
    """Parse CSV text with a header row.

    Blank lines are skipped. A leading byte-order mark is dropped.

    Raises:
        ValidationError: The text is empty, has no header or is not CSV
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    if not text.strip():
        raise ValidationError("CSV file is empty")

    try:
        reader = csv.DictReader(io.StringIO(text))
        headers = [header.strip() if header else "" for header in reader.fieldnames or []]
        if not any(headers):
            raise ValidationError("CSV file has no header row")
        reader.fieldnames = headers

        rows = []
        for raw in reader:
            # Skip blank lines and rows made only of separators
            values = [v for k, v in raw.items() if k is not None]
            if not any((v or "").strip() for v in values):
                continue
            rows.append({k: (v if v is not None else "") for k, v in raw.items() if k is not None})
    except csv.Error as e:
        raise ValidationError(f"CSV parsing error: {e}")

    return headers, rows


def parse_csv_file(file_path: Path) -> tuple[list[str], list[dict[str, str]]]:
    """Parse a CSV file from disk."""
    if not file_path.exists():
        raise ValidationError(f"File not found: {file_path}")

    if file_path.suffix.lower() != ".csv":
        raise ValidationError("Only CSV files are supported")

    return parse_csv_text(file_path.read_text(encoding="utf-8-sig"))


def build_preview(headers: list[str], rows: list[dict[str, str]]) -> ImportPreview:
    """Summarize parsed rows for the user to confirm a mapping."""
    import_format = detect_format(headers)
    suggested = suggest_mapping(headers)
    if import_format == ImportFormat.GOODREADS:
        suggested = ImportMapping.from_dict(GOODREADS_MAPPING.to_dict())

    return ImportPreview(
        format=import_format,
        total_rows=len(rows),
        columns=headers,
        suggested_mapping=suggested,
        sample_rows=rows[:SAMPLE_ROW_COUNT],
    )


def create_preview_from_text(text: str) -> ImportPreview:
    """Parse CSV text and build its preview."""
    headers, rows = parse_csv_text(text)
    return build_preview(headers, rows)
