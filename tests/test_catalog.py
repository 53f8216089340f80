"""Tests for the catalog service facade."""

import pytest

from tometracker.catalog import CatalogService
from tometracker.db.schemas import BookCreate
from tometracker.errors import (
    DuplicateIdentifierError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)
from tometracker.imports.base import ImportFormat, ImportMapping
from tometracker.imports.csv_import import parse_csv_text
from tometracker.ratelimit import RateLimiter, RateLimitPolicy

USER_ID = "user-1"
MISTBORN_ISBN = "9780765311788"


class TestImport:
    """Tests for preview and execution."""

    def test_preview(self, service: CatalogService, goodreads_csv_text):
        preview = service.preview_import(goodreads_csv_text)
        assert preview.format == ImportFormat.GOODREADS
        assert preview.total_rows == 2

    def test_preview_empty(self, service: CatalogService):
        with pytest.raises(ValidationError):
            service.preview_import("")

    def test_execute(self, service: CatalogService, sample_csv_text):
        preview = service.preview_import(sample_csv_text)
        _, rows = parse_csv_text(sample_csv_text)

        result = service.execute_import(rows, preview.suggested_mapping, preview.format)

        assert result.imported == 2
        assert len(result.errors) == 1
        assert result.errors[0].row == 3

    def test_execute_with_dict_mapping_and_string_format(self, service: CatalogService):
        rows = [{"Title": "Dune", "Author": "Frank Herbert"}]
        result = service.execute_import(rows, {"title": "Title", "author": "Author"}, "csv")
        assert result.imported == 1

    def test_execute_rejects_bad_shape(self, service: CatalogService):
        with pytest.raises(ValidationError):
            service.execute_import("not rows", ImportMapping(title="Title"))

    def test_execute_rejects_unknown_format(self, service: CatalogService):
        with pytest.raises(ValidationError):
            service.execute_import([], ImportMapping(), "librarything")

    def test_import_rate_limited(self, db, config, metadata, mirror):
        limiter = RateLimiter(policies={"import": RateLimitPolicy(limit=1, window_seconds=3600)})
        service = CatalogService(db, USER_ID, limiter, metadata, config, mirror)

        service.execute_import([], ImportMapping())
        with pytest.raises(RateLimitedError):
            service.execute_import([], ImportMapping())

    def test_invalid_request_does_not_consume_quota(self, db, config, metadata, mirror):
        limiter = RateLimiter(policies={"import": RateLimitPolicy(limit=1, window_seconds=3600)})
        service = CatalogService(db, USER_ID, limiter, metadata, config, mirror)

        with pytest.raises(ValidationError):
            service.execute_import("not rows", ImportMapping())
        service.execute_import([], ImportMapping())


class TestDuplicateCheck:
    """Tests for advisory duplicate detection."""

    def test_finds_near_match(self, service: CatalogService, sample_books):
        matches = service.check_duplicate("Mistborn The Final Empire", "Brandon Sanderson")

        assert len(matches) == 1
        assert matches[0].id == sample_books[1].id
        assert matches[0].score >= 0.82

    def test_no_match(self, service: CatalogService, sample_books):
        assert service.check_duplicate("Dune", "Frank Herbert") == []

    def test_sorted_best_first(self, service: CatalogService):
        service.add_book(BookCreate(title="The Way of Kings", author_name="Brandon Sanderson"))
        service.add_book(BookCreate(title="The Way of Kings!", author_name="Brandon Sanderson"))
        service.add_book(BookCreate(title="Way of Kings", author_name="Brandon Sanderson"))

        matches = service.check_duplicate("The Way of Kings", "Brandon Sanderson")

        scores = [m.score for m in matches]
        assert scores == sorted(scores, reverse=True)
        assert scores[0] == 1.0

    def test_capped_at_five(self, service: CatalogService):
        for _ in range(7):
            service.add_book(BookCreate(title="Dune", author_name="Frank Herbert"))
        assert len(service.check_duplicate("Dune", "Frank Herbert")) == 5

    def test_requires_title_and_author(self, service: CatalogService):
        with pytest.raises(ValidationError):
            service.check_duplicate("", "Frank Herbert")


class TestLookupAndSearch:
    """Tests for identifier lookup and metadata search."""

    def test_lookup_owned_barcode(self, service: CatalogService, sample_books):
        result = service.lookup_identifier(f"EAN {MISTBORN_ISBN}")

        assert result.is_isbn
        assert result.normalized_isbn == MISTBORN_ISBN
        assert result.owned
        assert result.metadata.publisher == "Tor Fantasy"

    def test_lookup_isbn10(self, service: CatalogService):
        result = service.lookup_identifier("0-7653-1178-X")
        assert result.normalized_isbn == MISTBORN_ISBN
        assert not result.owned

    def test_lookup_unknown_metadata(self, service: CatalogService):
        result = service.lookup_identifier("9780316769488")
        assert result.is_isbn
        assert result.metadata is None

    def test_lookup_not_an_isbn(self, service: CatalogService, fake_provider):
        result = service.lookup_identifier("hello world")
        assert not result.is_isbn
        assert result.to_dict()["metadata"] is None
        assert fake_provider.lookups == []

    def test_lookup_provider_down(self, db, config, mirror, rate_limiter, make_provider):
        from tometracker.api.lookup import MetadataLookup

        lookup = MetadataLookup([make_provider(fail=True)])
        service = CatalogService(db, USER_ID, rate_limiter, lookup, config, mirror)

        result = service.lookup_identifier(MISTBORN_ISBN)

        assert result.is_isbn
        assert result.metadata is None

    def test_search(self, service: CatalogService):
        results = service.search_metadata("  mistborn ")
        assert results[0].isbn13 == MISTBORN_ISBN

    def test_search_query_too_short(self, service: CatalogService, fake_provider):
        with pytest.raises(ValidationError, match="at least 2"):
            service.search_metadata(" a ")
        assert fake_provider.searches == []

    def test_search_rate_limited(self, db, config, metadata, mirror):
        limiter = RateLimiter(policies={"search": RateLimitPolicy(limit=2, window_seconds=60)})
        service = CatalogService(db, USER_ID, limiter, metadata, config, mirror)
        service.search_metadata("mistborn")
        service.search_metadata("mistborn")
        with pytest.raises(RateLimitedError):
            service.search_metadata("mistborn")

    def test_check_ownership(self, service: CatalogService, sample_books):
        check = service.check_ownership("076531178X")
        assert check.owned
        assert check.book_id == sample_books[1].id

        not_owned = service.check_ownership("9791090636071")
        assert not_owned.valid_isbn
        assert not not_owned.owned

        invalid = service.check_ownership("12345")
        assert not invalid.valid_isbn

    def test_check_ownership_requires_value(self, service: CatalogService):
        with pytest.raises(ValidationError):
            service.check_ownership("  ")


class TestLibraryOperations:
    """Tests for sync and enrichment."""

    def test_sync(self, service: CatalogService, sample_books):
        response = service.sync()

        assert response.stats.book_count == 3
        assert response.stats.author_count == 2
        data = response.to_dict()
        assert data["stats"]["book_count"] == 3
        assert len(data["authors"]) == 2

    def test_enrich(self, service: CatalogService):
        book = service.add_book(
            BookCreate(title="Mistborn", author_name="Brandon Sanderson", isbn13=MISTBORN_ISBN)
        )

        result = service.enrich()

        assert result.to_dict() == {"processed": 1, "enriched": 1, "errors": 0}
        updated = service.get_book(book.id)
        assert updated.publisher == "Tor Fantasy"
        assert updated.publication_year == 2006
        assert updated.cover_url.endswith("-L.jpg")
        assert updated.get_genres() == ["Fantasy", "Magic", "Fiction"]

    def test_enrich_keeps_existing_values(self, service: CatalogService):
        book = service.add_book(
            BookCreate(
                title="Mistborn",
                author_name="Brandon Sanderson",
                isbn13=MISTBORN_ISBN,
                publisher="My Publisher",
            )
        )

        service.enrich()

        updated = service.get_book(book.id)
        assert updated.publisher == "My Publisher"
        assert updated.cover_url is not None

    def test_enrich_without_metadata(self, service: CatalogService, sample_books):
        result = service.enrich()
        assert result.processed == 3
        assert result.enriched == 1
        assert result.errors == 0

    def test_enrich_rate_limited(self, service: CatalogService):
        service.enrich()
        with pytest.raises(RateLimitedError):
            service.enrich()


class TestBookAndAuthorEdits:
    """Tests for single-record edits."""

    def test_add_book_from_dict(self, service: CatalogService):
        book = service.add_book({"title": "Dune", "author_name": "Frank Herbert", "isbn13": ""})
        assert service.get_book(book.id).title == "Dune"

    def test_add_book_invalid(self, service: CatalogService):
        with pytest.raises(ValidationError):
            service.add_book({"title": "", "author_name": "Frank Herbert"})

    def test_add_duplicate_isbn(self, service: CatalogService, sample_books):
        with pytest.raises(DuplicateIdentifierError):
            service.add_book({"title": "Mistborn", "author_name": "B", "isbn13": "076531178X"})

    def test_get_missing_book(self, service: CatalogService):
        with pytest.raises(NotFoundError):
            service.get_book("missing")

    def test_update_book(self, service: CatalogService, sample_books):
        updated = service.update_book(sample_books[2].id, {"publication_year": 1951})
        assert updated.publication_year == 1951

    def test_delete_book(self, service: CatalogService, sample_books):
        service.delete_book(sample_books[2].id)
        with pytest.raises(NotFoundError):
            service.delete_book(sample_books[2].id)

    def test_update_author_keeps_unset_fields(self, service: CatalogService, sample_books):
        author_id = sample_books[0].author_id
        service.update_author(author_id, bio="Epic fantasy", photo_url="https://x/p.jpg")
        updated = service.update_author(author_id, bio="Cosmere")
        assert updated.bio == "Cosmere"
        assert updated.photo_url == "https://x/p.jpg"

    def test_delete_account(self, service: CatalogService, sample_books, mirror):
        mirror.cache_snapshot(service.snapshot())

        counts = service.delete_account()

        assert counts == {"books": 3, "authors": 2}
        assert service.sync().stats.book_count == 0
        assert mirror.get_cached_library().is_empty
