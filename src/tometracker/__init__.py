"""tometracker - book catalog ingestion and deduplication engine.

Catalog physical books by barcode scan, manual entry or spreadsheet
import, detect duplicates, and keep an offline mirror of the catalog.
"""

__version__ = "0.1.0"
