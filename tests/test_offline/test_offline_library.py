"""Tests for online/offline library reads."""

import pytest

from tometracker.db.sqlite import Database
from tometracker.errors import OfflineUnavailableError
from tometracker.library.sync import LibrarySync
from tometracker.offline.library import OfflineLibrary
from tometracker.offline.mirror import OfflineMirror

USER_ID = "user-1"


def _failing_source():
    raise ConnectionError("network unreachable")


@pytest.fixture
def live_source(db: Database, sample_books):
    sync = LibrarySync(db)
    return lambda: sync.get_library_snapshot(USER_ID)


class TestOnlineReads:
    """Tests for reads while connected."""

    def test_fresh_read_refreshes_mirror(self, mirror: OfflineMirror, live_source):
        reader = OfflineLibrary(mirror, live_source)

        view = reader.load_library()

        assert view.from_cache is False
        assert view.book_count == 3
        assert view.last_sync == mirror.get_last_sync()
        assert mirror.get_cache_stats().book_count == 3

    def test_sync_and_cache(self, mirror: OfflineMirror, live_source):
        reader = OfflineLibrary(mirror, live_source)
        assert reader.sync_and_cache() is True
        assert mirror.get_last_sync() is not None

    def test_failed_fetch_falls_back_to_cache(self, mirror: OfflineMirror, live_source):
        OfflineLibrary(mirror, live_source).sync_and_cache()
        last_sync = mirror.get_last_sync()

        view = OfflineLibrary(mirror, _failing_source).load_library()

        assert view.from_cache is True
        assert view.last_sync == last_sync
        assert view.book_count == 3

    def test_failed_fetch_without_cache(self, mirror: OfflineMirror):
        reader = OfflineLibrary(mirror, _failing_source)
        assert reader.sync_and_cache() is False
        with pytest.raises(OfflineUnavailableError):
            reader.load_library()


class TestOfflineReads:
    """Tests for reads while disconnected."""

    def test_offline_does_not_fetch(self, mirror: OfflineMirror):
        calls = []

        def source():
            calls.append(1)
            raise AssertionError("should not be called offline")

        reader = OfflineLibrary(mirror, source, online=False)

        assert reader.sync_and_cache() is False
        with pytest.raises(OfflineUnavailableError):
            reader.load_library()
        assert calls == []

    def test_connectivity_change(self, mirror: OfflineMirror, live_source):
        reader = OfflineLibrary(mirror, live_source, online=False)
        assert not reader.is_online

        reader.set_online(True)
        assert reader.load_library().from_cache is False

        reader.set_online(False)
        assert reader.load_library().from_cache is True

    def test_restart_reconstructs_last_snapshot(self, tmp_path, db: Database, sample_books):
        """After a restart while offline, the mirror rebuilds the synced tree."""
        path = str(tmp_path / "offline.db")
        sync = LibrarySync(db)
        snapshot = sync.get_library_snapshot(USER_ID)
        OfflineLibrary(OfflineMirror(path), lambda: snapshot).sync_and_cache()

        view = OfflineLibrary(OfflineMirror(path), _failing_source, online=False).load_library()

        assert view.from_cache is True
        assert [(a.id, a.name) for a in view.authors] == [(a.id, a.name) for a in snapshot.authors]
        for cached, live in zip(view.authors, snapshot.authors):
            assert [(b.id, b.title, b.isbn13) for b in cached.books] == [
                (b.id, b.title, b.isbn13) for b in live.books
            ]
