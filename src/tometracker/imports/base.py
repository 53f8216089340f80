"""Shared import types.

An import runs in two phases: a preview (format detection, suggested
column mapping, sample rows) and an execution that turns mapped rows into
catalog books.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional

from ..errors import RowError


class ImportFormat(str, Enum):
    """Recognized spreadsheet export formats."""

    GOODREADS = "goodreads"
    STORYGRAPH = "storygraph"
    CSV = "csv"


@dataclass
class ImportMapping:
    """Canonical field -> spreadsheet column name. Unmapped fields are None."""

    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    series_name: Optional[str] = None
    series_number: Optional[str] = None
    publisher: Optional[str] = None
    publication_year: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ImportMapping":
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{name: data.get(name) for name in cls.__dataclass_fields__})


@dataclass
class ImportRow:
    """A raw spreadsheet row projected onto canonical fields."""

    title: str
    author: str
    isbn: Optional[str] = None
    series_name: Optional[str] = None
    series_number: Optional[float] = None
    publisher: Optional[str] = None
    publication_year: Optional[int] = None


@dataclass
class ImportPreview:
    """What an uploaded file looks like before anything is written."""

    format: ImportFormat
    total_rows: int
    columns: list[str]
    suggested_mapping: ImportMapping
    sample_rows: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "format": self.format.value,
            "total_rows": self.total_rows,
            "columns": self.columns,
            "suggested_mapping": self.suggested_mapping.to_dict(),
            "sample_rows": self.sample_rows,
        }


@dataclass
class ImportResult:
    """Result of an import batch, accumulated across every row."""

    imported: int = 0
    duplicates: int = 0
    errors: list[RowError] = field(default_factory=list)

    @property
    def summary(self) -> str:
        """Get summary string."""
        return (
            f"Imported: {self.imported}, "
            f"Duplicates: {self.duplicates}, "
            f"Errors: {len(self.errors)}"
        )

    def to_dict(self) -> dict:
        return {
            "imported": self.imported,
            "duplicates": self.duplicates,
            "errors": [error.to_dict() for error in self.errors],
        }
