"""
Tests for the storefront logging processors.
"""

from shared.logging import (
    add_cache_context,
    add_correlation_context,
    clear_context,
    set_cache_context,
    set_request_id,
)


class TestCacheLoggingContext:
    """Cache key and outcome are attached to log events."""

    def teardown_method(self):
        clear_context()

    def test_cache_context_is_added(self):
        set_cache_context("graba2z:products:|/api/products||", "HIT")

        event = add_cache_context(None, "info", {"event": "HTTP request"})

        assert event["cache_key"] == "graba2z:products:|/api/products||"
        assert event["cache_status"] == "HIT"

    def test_explicit_fields_win(self):
        set_cache_context("graba2z:brands:|/api/brands||", "MISS")

        event = add_cache_context(None, "info", {"event": "Response not cached", "cache_status": "SKIPPED"})

        assert event["cache_status"] == "SKIPPED"

    def test_clear_context_removes_cache_fields(self):
        set_request_id("req-1")
        set_cache_context("graba2z:brands:|/api/brands||", "MISS")
        clear_context()

        event = add_correlation_context(None, "info", {})
        event = add_cache_context(None, "info", event)

        assert event == {}
