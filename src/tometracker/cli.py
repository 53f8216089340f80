"""Command-line interface for tometracker.

Built with Typer for commands and Rich for beautiful output.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from .books.isbn import is_valid_isbn13, isbn13_to_isbn10, normalize_to_isbn13
from .catalog import CatalogService
from .config import get_config
from .db import get_db
from .db.schemas import BookSource
from .errors import RateLimitedError, TomeTrackerError
from .imports.base import ImportFormat, ImportMapping
from .imports.csv_import import build_preview, parse_csv_file
from .offline.library import OfflineLibrary
from .offline.mirror import OfflineMirror

logger = logging.getLogger(__name__)

# Create the main app
app = typer.Typer(
    name="tometracker",
    help="Catalog your physical books: scan, import, dedupe, browse offline.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
import_app = typer.Typer(help="Import books from spreadsheet exports.")
app.add_typer(import_app, name="import")

mirror_app = typer.Typer(help="Manage the offline library cache.")
app.add_typer(mirror_app, name="mirror")

# Rich console for pretty output
console = Console()
err_console = Console(stderr=True)

_state: dict = {"user": None}


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through Rich."""
    level = logging.DEBUG if verbose else get_config().log_level
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def get_mirror() -> OfflineMirror:
    return OfflineMirror(str(get_config().mirror_path))


def get_service() -> CatalogService:
    """Catalog service for the selected user."""
    return CatalogService(db=get_db(), user_id=_state["user"], mirror=get_mirror())


@contextmanager
def handle_errors() -> Generator[None, None, None]:
    """Turn typed catalog errors into a message and an exit code."""
    try:
        yield
    except RateLimitedError as e:
        print_error(str(e))
        raise typer.Exit(2)
    except TomeTrackerError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except SQLAlchemyError as e:
        logger.debug("Catalog store failure", exc_info=True)
        cause = getattr(e, "orig", None) or type(e).__name__
        print_error(f"Database error: {cause}")
        raise typer.Exit(1)


def parse_mapping_overrides(overrides: list[str], mapping: ImportMapping) -> ImportMapping:
    """Apply "field=column" overrides; an empty column unmaps the field."""
    fields = mapping.to_dict()
    for override in overrides:
        if "=" not in override:
            raise typer.BadParameter(f"Expected field=column, got: {override}")
        field, column = override.split("=", 1)
        field = field.strip()
        if field not in fields:
            raise typer.BadParameter(
                f"Unknown field '{field}'. Choose from: {', '.join(fields)}"
            )
        fields[field] = column.strip() or None
    return ImportMapping.from_dict(fields)


def format_mapping_table(mapping: ImportMapping) -> Table:
    table = Table(title="Column Mapping", show_header=True, header_style="bold magenta")
    table.add_column("Field", style="cyan")
    table.add_column("Column", style="green")
    for field, column in mapping.to_dict().items():
        table.add_row(field, column or "[dim]-[/dim]")
    return table


@app.callback()
def main_callback(
    user: Optional[str] = typer.Option(
        None, "--user", "-u", help="Catalog owner (defaults to TOMETRACKER_USER_ID)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Catalog your physical books."""
    _state["user"] = user
    setup_logging(verbose)


# ============================================================================
# Import Commands
# ============================================================================


@import_app.command("preview")
def import_preview_cmd(
    file: Path = typer.Argument(..., help="Path to CSV export"),
) -> None:
    """Show the detected format, suggested mapping and sample rows."""
    with handle_errors():
        headers, rows = parse_csv_file(file)
        preview = build_preview(headers, rows)

    console.print(
        Panel(
            f"[bold]Format:[/bold] {preview.format.value}\n"
            f"[bold]Rows:[/bold] {preview.total_rows}\n"
            f"[bold]Columns:[/bold] {', '.join(preview.columns)}",
            title=file.name,
        )
    )
    console.print(format_mapping_table(preview.suggested_mapping))

    if preview.sample_rows:
        sample = Table(title="Sample Rows", show_header=True, header_style="bold")
        shown = [c for c in preview.suggested_mapping.to_dict().values() if c]
        for column in shown:
            sample.add_column(column, max_width=30)
        for row in preview.sample_rows:
            sample.add_row(*(row.get(column, "") for column in shown))
        console.print(sample)


@import_app.command("run")
def import_run_cmd(
    file: Path = typer.Argument(..., help="Path to CSV export"),
    import_format: Optional[ImportFormat] = typer.Option(
        None, "--format", "-f", help="Override the detected format"
    ),
    overrides: Optional[List[str]] = typer.Option(
        None, "--map", "-m", help="Override a mapping: field=column (repeatable)"
    ),
) -> None:
    """Import every row of a CSV export."""
    service = get_service()

    with handle_errors():
        headers, rows = parse_csv_file(file)
        preview = build_preview(headers, rows)
        mapping = parse_mapping_overrides(overrides or [], preview.suggested_mapping)
        chosen_format = import_format or preview.format

        print_info(f"Importing {len(rows)} rows as {chosen_format.value}...")
        result = service.execute_import(rows, mapping, chosen_format)

    print_success(result.summary)

    if result.errors:
        table = Table(title="Row Errors", show_header=True, header_style="bold red")
        table.add_column("Row", justify="right")
        table.add_column("Error")
        for error in result.errors:
            table.add_row(str(error.row), error.error)
        console.print(table)

        if result.imported == 0 and result.duplicates == 0:
            raise typer.Exit(1)


# ============================================================================
# Lookup Commands
# ============================================================================


@app.command()
def lookup(code: str = typer.Argument(..., help="Scanned barcode or typed ISBN")) -> None:
    """Resolve a barcode or ISBN: owned? what book is it?"""
    service = get_service()
    with handle_errors():
        result = service.lookup_identifier(code)

    if not result.is_isbn:
        print_warning(f"Not a valid ISBN: {code}")
        raise typer.Exit(1)

    owned = "[bold green]yes[/bold green]" if result.owned else "no"
    lines = [f"[bold]ISBN-13:[/bold] {result.normalized_isbn}", f"[bold]Owned:[/bold] {owned}"]
    if result.metadata:
        meta = result.metadata
        lines.append(f"[bold]Title:[/bold] {meta.title}")
        lines.append(f"[bold]Authors:[/bold] {', '.join(meta.authors) or '-'}")
        lines.append(f"[bold]Publisher:[/bold] {meta.publisher or '-'}")
        lines.append(f"[bold]Year:[/bold] {meta.published_year or '-'}")
    else:
        lines.append("[dim]No metadata found[/dim]")
    console.print(Panel("\n".join(lines), title="Lookup"))


@app.command()
def search(query: str = typer.Argument(..., help="Title, author or keywords")) -> None:
    """Search the metadata providers."""
    service = get_service()
    with handle_errors():
        results = service.search_metadata(query)

    if not results:
        print_warning(f"No books found matching: {query}")
        return

    table = Table(title=f"Results for '{query}'", show_header=True, header_style="bold magenta")
    table.add_column("Title", style="cyan", max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Year", justify="center")
    table.add_column("ISBN-13")
    for r in results:
        table.add_row(
            r.title,
            ", ".join(r.authors[:2]) or "-",
            str(r.published_year or "-"),
            r.isbn13 or "-",
        )
    console.print(table)


@app.command("check-duplicate")
def check_duplicate(
    title: str = typer.Argument(..., help="Book title"),
    author: str = typer.Argument(..., help="Author name"),
) -> None:
    """List existing books that look like this one."""
    service = get_service()
    with handle_errors():
        matches = service.check_duplicate(title, author)

    if not matches:
        print_info("No likely duplicates.")
        return

    table = Table(title="Possible Duplicates", show_header=True, header_style="bold yellow")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Author", style="green")
    table.add_column("Score", justify="right")
    for match in matches:
        table.add_row(match.id, match.title, match.author, f"{match.score:.2f}")
    console.print(table)


@app.command()
def owned(isbn: str = typer.Argument(..., help="ISBN-10 or ISBN-13")) -> None:
    """Check whether a book is already in the catalog."""
    service = get_service()
    with handle_errors():
        check = service.check_ownership(isbn)

    if not check.valid_isbn:
        print_warning(f"Not a valid ISBN: {isbn}")
        raise typer.Exit(1)
    if check.owned:
        print_success(f"Owned ({check.normalized_isbn}, book {check.book_id})")
    else:
        print_info(f"Not owned ({check.normalized_isbn})")


@app.command()
def isbn(value: str = typer.Argument(..., help="Any ISBN form")) -> None:
    """Normalize and validate an ISBN."""
    normalized = normalize_to_isbn13(value)
    if not normalized:
        print_error(f"Not a usable ISBN: {value}")
        raise typer.Exit(1)

    valid = is_valid_isbn13(normalized)
    console.print(f"[bold]ISBN-13:[/bold] {normalized}")
    console.print(f"[bold]ISBN-10:[/bold] {isbn13_to_isbn10(normalized) or '-'}")
    console.print(f"[bold]Checksum:[/bold] {'valid' if valid else '[red]invalid[/red]'}")


# ============================================================================
# Book Management Commands
# ============================================================================


@app.command()
def add(
    title: str = typer.Argument(..., help="Book title"),
    author: str = typer.Argument(..., help="Author name"),
    isbn_value: Optional[str] = typer.Option(None, "--isbn", "-i", help="ISBN-10 or ISBN-13"),
    publisher: Optional[str] = typer.Option(None, "--publisher", "-p"),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Publication year"),
    series: Optional[str] = typer.Option(None, "--series", "-s", help="Series name"),
    series_number: Optional[float] = typer.Option(None, "--series-number", "-n"),
    source: BookSource = typer.Option(BookSource.MANUAL, "--source", help="How it was added"),
    force: bool = typer.Option(False, "--force", help="Add even if it looks like a duplicate"),
) -> None:
    """Add a book manually."""
    service = get_service()

    with handle_errors():
        if not force:
            matches = service.check_duplicate(title, author)
            if matches:
                best = matches[0]
                print_warning(
                    f"Looks like '{best.title}' by {best.author} ({best.score:.0%} match). "
                    "Use --force to add anyway."
                )
                raise typer.Exit(1)

        book = service.add_book(
            {
                "title": title,
                "author_name": author,
                "isbn13": isbn_value,
                "publisher": publisher,
                "publication_year": year,
                "series_name": series,
                "series_number": series_number,
                "source": source,
            }
        )

    print_success(f"Added: {book.title} by {author} ({book.id})")


@app.command()
def delete(book_id: str = typer.Argument(..., help="Book ID")) -> None:
    """Delete a book (and its author, if it was their last book)."""
    service = get_service()
    with handle_errors():
        service.delete_book(book_id)
    print_success(f"Deleted book {book_id}")


# ============================================================================
# Library Commands
# ============================================================================


@app.command()
def library(
    offline: bool = typer.Option(False, "--offline", help="Read from the offline cache only"),
) -> None:
    """Show the library grouped by author."""
    service = get_service()
    reader = OfflineLibrary(service.mirror, service.snapshot, online=not offline)

    with handle_errors():
        view = reader.load_library()

    if not view.authors:
        print_info("Your library is empty.")
        return

    for author in view.authors:
        table = Table(title=author.name, show_header=True, header_style="bold")
        table.add_column("Title", style="cyan", max_width=45)
        table.add_column("Series", style="yellow", max_width=30)
        table.add_column("ISBN-13")
        for book in author.books:
            series_label = "-"
            if book.series_name:
                series_label = book.series_name
                if book.series_number is not None:
                    series_label += f" #{book.series_number:g}"
            table.add_row(book.title, series_label, book.isbn13 or "-")
        console.print(table)

    source = "offline cache" if view.from_cache else "catalog"
    print_info(f"{view.book_count} books from {source}, last sync {view.last_sync}")


@app.command()
def stats() -> None:
    """Show catalog counts."""
    service = get_service()
    with handle_errors():
        library_stats = service.sync().stats
    console.print(
        Panel(
            f"[bold]Books:[/bold] {library_stats.book_count}\n"
            f"[bold]Authors:[/bold] {library_stats.author_count}",
            title="Library Stats",
        )
    )


@app.command()
def enrich() -> None:
    """Fill missing covers, publishers, years and genres."""
    service = get_service()
    with handle_errors():
        result = service.enrich()
    print_success(
        f"Processed: {result.processed}, Enriched: {result.enriched}, Errors: {result.errors}"
    )


@app.command("delete-account")
def delete_account(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Delete every book and author for this user, and the offline cache."""
    service = get_service()
    if not yes and not typer.confirm(
        f"Delete all catalog data for '{service.user_id}'?", default=False
    ):
        print_info("Cancelled.")
        raise typer.Exit(0)

    with handle_errors():
        counts = service.delete_account()
    print_success(f"Deleted {counts['books']} books and {counts['authors']} authors")


# ============================================================================
# Offline Cache Commands
# ============================================================================


@mirror_app.command("stats")
def mirror_stats() -> None:
    """Show what the offline cache holds."""
    cache = get_mirror().get_cache_stats()
    console.print(
        Panel(
            f"[bold]Authors:[/bold] {cache.author_count}\n"
            f"[bold]Books:[/bold] {cache.book_count}\n"
            f"[bold]Last sync:[/bold] {cache.last_sync or 'never'}",
            title="Offline Cache",
        )
    )


@mirror_app.command("clear")
def mirror_clear() -> None:
    """Empty the offline cache."""
    get_mirror().clear_cache()
    print_success("Offline cache cleared")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
