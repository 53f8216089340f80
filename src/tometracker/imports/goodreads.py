"""Goodreads export handling.

Goodreads exports embed the series in the title ("Title (Series, #N)")
and wrap identifiers as spreadsheet formulas (="0765311785").
"""

import re
from dataclasses import dataclass
from typing import Optional

from .base import ImportMapping

GOODREADS_MAPPING = ImportMapping(
    title="Title",
    author="Author",
    isbn="ISBN13",
    series_name=None,
    series_number=None,
    publisher="Publisher",
    publication_year="Original Publication Year",
)

SERIES_PATTERN = re.compile(r"^(.+?)\s*\(([^,]+?)(?:,?\s*#?(\d+(?:\.\d+)?))?\)$")


@dataclass
class SeriesTitle:
    """A title with its embedded series split out."""

    clean_title: str
    series_name: Optional[str] = None
    series_number: Optional[float] = None


def extract_series_from_title(title: str) -> SeriesTitle:
    """Split a trailing "(Series, #N)" parenthetical off a title.

    Args:
        title: Title as exported, e.g. "The Way of Kings (The Stormlight Archive, #1)"

    Returns:
        SeriesTitle; titles without a trailing parenthetical come back unchanged
    """
    match = SERIES_PATTERN.match(title)
    if not match:
        return SeriesTitle(clean_title=title)

    number = match.group(3)
    return SeriesTitle(
        clean_title=match.group(1).strip(),
        series_name=match.group(2).strip(),
        series_number=float(number) if number else None,
    )


def clean_goodreads_isbn(value: Optional[str]) -> Optional[str]:
    """Remove the ="..." formula wrapper Goodreads puts around ISBNs."""
    if not value:
        return None

    value = value.strip()
    if value.startswith("="):
        value = value[1:]
    value = value.strip().strip('"').strip("'").strip()

    return value or None
