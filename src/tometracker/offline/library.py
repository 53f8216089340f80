"""Online/offline library reads.

While online, reads come from a fresh snapshot and refresh the mirror.
When offline, or when fetching the snapshot fails, reads fall back to
the mirror immediately; ``last_sync`` tells the caller how stale it is.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..db.schemas import LibrarySnapshot
from ..errors import OfflineUnavailableError
from .mirror import CachedAuthorBooks, CachedLibrary, OfflineMirror, flatten_snapshot

logger = logging.getLogger(__name__)

SnapshotSource = Callable[[], LibrarySnapshot]


@dataclass
class LibraryView:
    """What a reader gets back, fresh or cached."""

    authors: list[CachedAuthorBooks] = field(default_factory=list)
    last_sync: Optional[str] = None
    from_cache: bool = False

    @property
    def book_count(self) -> int:
        return sum(len(author.books) for author in self.authors)


class OfflineLibrary:
    """Chooses between the live catalog and the offline mirror."""

    def __init__(self, mirror: OfflineMirror, source: SnapshotSource, online: bool = True):
        """Initialize the reader.

        Args:
            mirror: Local mirror to refresh and fall back on
            source: Returns a fresh LibrarySnapshot; may raise on network failure
            online: Initial connectivity state
        """
        self.mirror = mirror
        self.source = source
        self._online = threading.Event()
        self.set_online(online)

    @property
    def is_online(self) -> bool:
        return self._online.is_set()

    def set_online(self, online: bool) -> None:
        """Record a connectivity change; affects subsequent reads."""
        if online:
            self._online.set()
        else:
            self._online.clear()
        logger.debug("Connectivity: %s", "online" if online else "offline")

    def _fetch(self) -> Optional[tuple[LibrarySnapshot, str]]:
        """Fetch and cache a snapshot; None when offline or the fetch fails."""
        if not self.is_online:
            return None
        try:
            snapshot = self.source()
            last_sync = self.mirror.cache_snapshot(snapshot)
        except Exception as e:
            logger.warning("Library sync failed, using offline cache: %s", e)
            return None
        return snapshot, last_sync

    def sync_and_cache(self) -> bool:
        """Refresh the mirror from the live catalog.

        Returns:
            True when the mirror now holds a fresh snapshot
        """
        return self._fetch() is not None

    def load_library(self) -> LibraryView:
        """Read the library, from the network when possible.

        Raises:
            OfflineUnavailableError: No fresh data and nothing cached
        """
        fetched = self._fetch()
        if fetched is not None:
            snapshot, last_sync = fetched
            authors, books = flatten_snapshot(snapshot)
            tree = CachedLibrary(authors=authors, books=books, last_sync=last_sync).to_tree()
            return LibraryView(authors=tree, last_sync=last_sync, from_cache=False)

        cached = self.mirror.get_cached_library()
        if cached.is_empty:
            raise OfflineUnavailableError()

        return LibraryView(authors=cached.to_tree(), last_sync=cached.last_sync, from_cache=True)
