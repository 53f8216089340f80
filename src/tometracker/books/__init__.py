"""Book identifier and matching helpers."""

from .isbn import (
    extract_isbn_from_barcode,
    is_valid_isbn10,
    is_valid_isbn13,
    isbn10_to_isbn13,
    isbn13_to_isbn10,
    normalize_to_isbn13,
)
from .similarity import combined_score, is_possible_duplicate, similarity

__all__ = [
    "extract_isbn_from_barcode",
    "is_valid_isbn10",
    "is_valid_isbn13",
    "isbn10_to_isbn13",
    "isbn13_to_isbn10",
    "normalize_to_isbn13",
    "combined_score",
    "is_possible_duplicate",
    "similarity",
]
