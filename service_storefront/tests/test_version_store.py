"""
Unit tests for the client cache version store.
"""

from service_storefront.app.caching import CacheVersionStore


class TestCacheVersionStore:
    """Test cases for CacheVersionStore."""

    def test_initial_version(self):
        store = CacheVersionStore()

        assert store.current() == {"version": 1, "reset_at": None}
        assert store.history()["history"] == []

    def test_bump_records_reset(self):
        store = CacheVersionStore()

        state = store.bump(reset_by="admin-1", reason="Full cache flush")

        assert state.version == 2
        assert store.current()["reset_at"] == state.reset_at.isoformat()
        entry = store.history()["history"][0]
        assert entry["version"] == 2
        assert entry["reset_by"] == "admin-1"
        assert entry["reason"] == "Full cache flush"

    def test_history_is_newest_first_and_capped(self):
        store = CacheVersionStore()
        for _ in range(25):
            store.bump(reset_by="admin-1")

        history = store.history()
        assert history["current_version"] == 26
        assert len(history["history"]) == 20
        assert history["history"][0]["version"] == 26
        assert history["history"][-1]["version"] == 7
