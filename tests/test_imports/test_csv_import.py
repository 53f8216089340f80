"""Tests for CSV parsing, format detection and column mapping."""

from pathlib import Path

import pytest

from tometracker.errors import ValidationError
from tometracker.imports.base import ImportFormat, ImportMapping
from tometracker.imports.csv_import import (
    SAMPLE_ROW_COUNT,
    apply_mapping,
    build_preview,
    create_preview_from_text,
    detect_format,
    parse_csv_file,
    parse_csv_text,
    parse_float,
    parse_int,
    suggest_mapping,
)
from tometracker.imports.goodreads import GOODREADS_MAPPING


class TestDetectFormat:
    """Tests for header-based format detection."""

    def test_goodreads(self):
        headers = ["Book Id", "Title", "Author", "ISBN13", "Bookshelves"]
        assert detect_format(headers) == ImportFormat.GOODREADS

    def test_storygraph(self):
        headers = ["Title", "Authors", "ISBN/UID", "Read Status", "Star Rating"]
        assert detect_format(headers) == ImportFormat.STORYGRAPH

    def test_case_insensitive(self):
        assert detect_format(["BOOK ID", "bookshelves"]) == ImportFormat.GOODREADS

    def test_needs_both_marker_columns(self):
        assert detect_format(["Book Id", "Title"]) == ImportFormat.CSV
        assert detect_format(["Read Status", "Title"]) == ImportFormat.CSV

    def test_generic(self):
        assert detect_format(["Title", "Author"]) == ImportFormat.CSV


class TestSuggestMapping:
    """Tests for alias-based mapping suggestions."""

    def test_exact_headers(self):
        mapping = suggest_mapping(["Title", "Author", "ISBN", "Series", "Publisher", "Year"])
        assert mapping.title == "Title"
        assert mapping.author == "Author"
        assert mapping.isbn == "ISBN"
        assert mapping.series_name == "Series"
        assert mapping.publisher == "Publisher"
        assert mapping.publication_year == "Year"

    def test_substring_match_keeps_original_header(self):
        mapping = suggest_mapping(["Book Title", "Author Name", "ISBN-13", "Year Published"])
        assert mapping.title == "Book Title"
        assert mapping.author == "Author Name"
        assert mapping.isbn == "ISBN-13"
        assert mapping.publication_year == "Year Published"
        assert mapping.series_name is None
        assert mapping.publisher is None

    def test_surrounding_whitespace(self):
        mapping = suggest_mapping(["  Title  ", "Writer"])
        assert mapping.title == "  Title  "
        assert mapping.author == "Writer"

    def test_alias_order_breaks_ties(self):
        """"title" is tried before "name", so the Title column wins."""
        mapping = suggest_mapping(["Name", "Title"])
        assert mapping.title == "Title"

    def test_first_matching_header_wins(self):
        mapping = suggest_mapping(["ISBN", "ISBN13"])
        assert mapping.isbn == "ISBN"

    def test_series_number_column(self):
        mapping = suggest_mapping(["Title", "Author", "#"])
        assert mapping.series_number == "#"

    def test_no_match(self):
        assert suggest_mapping(["foo", "bar"]) == ImportMapping()


class TestParseNumbers:
    """Tests for lenient number parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [("2006", 2006), (" 2006-05-01", 2006), ("0", None), ("", None), (None, None), ("n/a", None)],
    )
    def test_parse_int(self, value, expected):
        assert parse_int(value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [("2", 2.0), ("2.5", 2.5), ("3 of 5", 3.0), ("0", None), ("abc", None), (None, None)],
    )
    def test_parse_float(self, value, expected):
        assert parse_float(value) == expected


class TestApplyMapping:
    """Tests for projecting raw rows onto canonical fields."""

    def test_full_row(self):
        mapping = ImportMapping(
            title="Title",
            author="Author",
            isbn="ISBN",
            series_name="Series",
            series_number="#",
            publisher="Publisher",
            publication_year="Year",
        )
        row = {
            "Title": " The Way of Kings ",
            "Author": "Brandon Sanderson",
            "ISBN": "9780765326355",
            "Series": "The Stormlight Archive",
            "#": "1",
            "Publisher": "Tor",
            "Year": "2010",
        }

        result = apply_mapping(row, mapping)

        assert result is not None
        assert result.title == "The Way of Kings"
        assert result.author == "Brandon Sanderson"
        assert result.isbn == "9780765326355"
        assert result.series_name == "The Stormlight Archive"
        assert result.series_number == 1.0
        assert result.publisher == "Tor"
        assert result.publication_year == 2010

    def test_missing_author_column(self):
        mapping = ImportMapping(title="Title")
        assert apply_mapping({"Title": "Mistborn"}, mapping) is None

    def test_blank_title(self):
        mapping = ImportMapping(title="Title", author="Author")
        assert apply_mapping({"Title": "   ", "Author": "Brandon Sanderson"}, mapping) is None

    def test_unmapped_optional_fields_are_none(self):
        mapping = ImportMapping(title="Title", author="Author", isbn="ISBN")
        result = apply_mapping({"Title": "Mistborn", "Author": "Brandon Sanderson", "ISBN": ""}, mapping)
        assert result is not None
        assert result.isbn is None
        assert result.publication_year is None


class TestParseCsv:
    """Tests for CSV text and file parsing."""

    def test_parse_text(self, sample_csv_text):
        headers, rows = parse_csv_text(sample_csv_text)
        assert headers == ["Book Title", "Author Name", "ISBN-13", "Year Published"]
        assert len(rows) == 3
        assert rows[0]["Book Title"] == "The Way of Kings"

    def test_skips_blank_lines(self):
        headers, rows = parse_csv_text("Title,Author\n\nDune,Frank Herbert\n,\n")
        assert rows == [{"Title": "Dune", "Author": "Frank Herbert"}]

    def test_strips_byte_order_mark(self):
        headers, _ = parse_csv_text("\ufeffTitle,Author\nDune,Frank Herbert\n")
        assert headers == ["Title", "Author"]

    def test_quoted_commas(self):
        _, rows = parse_csv_text('Title,Author\n"Dune, Part One",Frank Herbert\n')
        assert rows[0]["Title"] == "Dune, Part One"

    def test_empty_text(self):
        with pytest.raises(ValidationError, match="empty"):
            parse_csv_text("   \n")

    def test_parse_file(self, tmp_path: Path, sample_csv_text):
        path = tmp_path / "books.csv"
        path.write_text(sample_csv_text, encoding="utf-8")
        headers, rows = parse_csv_file(path)
        assert len(headers) == 4
        assert len(rows) == 3

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ValidationError, match="File not found"):
            parse_csv_file(tmp_path / "missing.csv")

    def test_wrong_extension(self, tmp_path: Path):
        path = tmp_path / "books.txt"
        path.write_text("Title,Author\n")
        with pytest.raises(ValidationError, match="Only CSV"):
            parse_csv_file(path)


class TestPreview:
    """Tests for import previews."""

    def test_generic_preview(self, sample_csv_text):
        preview = create_preview_from_text(sample_csv_text)
        assert preview.format == ImportFormat.CSV
        assert preview.total_rows == 3
        assert preview.suggested_mapping.title == "Book Title"
        assert preview.sample_rows[0]["Author Name"] == "Brandon Sanderson"

    def test_goodreads_preview_uses_fixed_mapping(self, goodreads_csv_text):
        preview = create_preview_from_text(goodreads_csv_text)
        assert preview.format == ImportFormat.GOODREADS
        assert preview.suggested_mapping == GOODREADS_MAPPING
        assert preview.suggested_mapping.isbn == "ISBN13"

    def test_goodreads_mapping_is_a_copy(self, goodreads_csv_text):
        preview = create_preview_from_text(goodreads_csv_text)
        preview.suggested_mapping.title = "Something Else"
        assert GOODREADS_MAPPING.title == "Title"

    def test_sample_rows_capped(self):
        headers = ["Title", "Author"]
        rows = [{"Title": f"Book {i}", "Author": "Someone"} for i in range(12)]
        preview = build_preview(headers, rows)
        assert preview.total_rows == 12
        assert len(preview.sample_rows) == SAMPLE_ROW_COUNT

    def test_to_dict(self, sample_csv_text):
        data = create_preview_from_text(sample_csv_text).to_dict()
        assert data["format"] == "csv"
        assert data["columns"][0] == "Book Title"
        assert data["suggested_mapping"]["author"] == "Author Name"
