"""Book import from spreadsheet exports (Goodreads, StoryGraph, generic CSV)."""

from .base import ImportFormat, ImportMapping, ImportPreview, ImportResult, ImportRow
from .csv_import import (
    apply_mapping,
    build_preview,
    create_preview_from_text,
    detect_format,
    parse_csv_file,
    parse_csv_text,
    suggest_mapping,
)
from .executor import ImportExecutor, execute_import
from .goodreads import GOODREADS_MAPPING, extract_series_from_title

__all__ = [
    "ImportFormat",
    "ImportMapping",
    "ImportPreview",
    "ImportResult",
    "ImportRow",
    "apply_mapping",
    "build_preview",
    "create_preview_from_text",
    "detect_format",
    "parse_csv_file",
    "parse_csv_text",
    "suggest_mapping",
    "ImportExecutor",
    "execute_import",
    "GOODREADS_MAPPING",
    "extract_series_from_title",
]
