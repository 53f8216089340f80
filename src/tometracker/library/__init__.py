"""Library snapshot and stats for syncing clients."""

from .sync import LibrarySync, book_sort_key

__all__ = ["LibrarySync", "book_sort_key"]
