"""Offline mirror of the library and the online/offline read policy."""

from .library import LibraryView, OfflineLibrary
from .mirror import (
    CachedAuthor,
    CachedAuthorBooks,
    CachedBook,
    CachedLibrary,
    CacheStats,
    OfflineMirror,
    flatten_snapshot,
)

__all__ = [
    "LibraryView",
    "OfflineLibrary",
    "CachedAuthor",
    "CachedAuthorBooks",
    "CachedBook",
    "CachedLibrary",
    "CacheStats",
    "OfflineMirror",
    "flatten_snapshot",
]
