"""
Tests for the refreshable pricing table.
"""

import json
import threading
import time

import httpx
import pytest

from agent_statusline.core.pricing import ModelPricing
from agent_statusline.core.pricing_cache import PricingCache

URL = "https://example.invalid/pricing.json"

REMOTE_PAYLOAD = {
    "updated": "2025-12-01T00:00:00Z",
    "models": {"claude-sonnet-4-5": {"input": 2.0, "output": 10.0}},
}


def write_cache(path, payload=REMOTE_PAYLOAD):
    path.write_text(json.dumps(payload))


class TestLoadTable:
    """Test choosing the active pricing table."""

    def setup_method(self):
        self.refreshes = []

    def make_cache(self, tmp_path, age_hours=0.0, fetcher=None):
        cache = PricingCache(
            tmp_path / "pricing.json",
            URL,
            ttl_hours=24,
            fetcher=fetcher or (lambda url: REMOTE_PAYLOAD),
            clock=lambda: time.time() + age_hours * 3600,
        )
        cache.refresh_in_background = lambda: self.refreshes.append(True)
        return cache

    def test_fresh_cache_used_without_refresh(self, tmp_path):
        """Verify a recent download serves the run."""
        write_cache(tmp_path / "pricing.json")
        cache = self.make_cache(tmp_path, age_hours=1)

        table = cache.load_table()

        assert table.get_pricing("claude-sonnet-4-5") == ModelPricing(2.0, 10.0)
        assert cache.source == "cache"
        assert self.refreshes == []

    def test_stale_cache_used_and_refresh_started(self, tmp_path):
        """Verify an expired download still serves while a refresh starts."""
        write_cache(tmp_path / "pricing.json")
        cache = self.make_cache(tmp_path, age_hours=25)

        table = cache.load_table()

        assert table.get_pricing("claude-sonnet-4-5") == ModelPricing(2.0, 10.0)
        assert cache.source == "stale cache"
        assert self.refreshes == [True]

    def test_missing_cache_uses_embedded(self, tmp_path):
        """Verify the embedded table serves the first run."""
        cache = self.make_cache(tmp_path)

        table = cache.load_table()

        assert cache.source == "embedded"
        assert table.get_pricing("claude-sonnet") is not None
        assert self.refreshes == [True]

    def test_corrupt_cache_uses_embedded(self, tmp_path):
        """Verify an unreadable download is ignored."""
        (tmp_path / "pricing.json").write_text("{oops")
        cache = self.make_cache(tmp_path, age_hours=1)

        cache.load_table()

        assert cache.source == "embedded"

    def test_refresh_can_be_disabled(self, tmp_path):
        """Verify read-only callers never trigger a download."""
        cache = self.make_cache(tmp_path)
        cache.load_table(refresh=False)
        assert self.refreshes == []


class TestFetchAndStore:
    """Test downloading and validating the pricing table."""

    def test_valid_payload_written(self, tmp_path):
        """Verify a valid table is persisted."""
        path = tmp_path / "sub" / "pricing.json"
        cache = PricingCache(path, URL, fetcher=lambda url: REMOTE_PAYLOAD)

        assert cache.fetch_and_store()
        assert json.loads(path.read_text()) == REMOTE_PAYLOAD

    def test_invalid_payload_discarded(self, tmp_path):
        """Verify schema violations never reach the cache file."""
        path = tmp_path / "pricing.json"
        write_cache(path)
        cache = PricingCache(path, URL, fetcher=lambda url: {"models": "nope"})

        assert not cache.fetch_and_store()
        assert json.loads(path.read_text()) == REMOTE_PAYLOAD

    @pytest.mark.parametrize("error", [
        httpx.ConnectError("no route"),
        ValueError("not json"),
    ])
    def test_fetch_errors_swallowed(self, tmp_path, error):
        """Verify network and decode failures are not raised."""
        def fetcher(url):
            raise error

        cache = PricingCache(tmp_path / "pricing.json", URL, fetcher=fetcher)

        assert not cache.fetch_and_store()
        assert not (tmp_path / "pricing.json").exists()

    def test_background_refresh_is_detached(self, tmp_path):
        """Verify the refresh runs on a daemon thread and the caller returns first."""
        release = threading.Event()

        def slow_fetcher(url):
            release.wait(5)
            return REMOTE_PAYLOAD

        path = tmp_path / "pricing.json"
        cache = PricingCache(path, URL, fetcher=slow_fetcher)

        thread = cache.refresh_in_background()
        assert thread.daemon
        assert not path.exists()

        release.set()
        thread.join(5)
        assert path.exists()

    def test_fetched_table_visible_to_next_load(self, tmp_path):
        """Verify a later invocation picks up the refreshed table."""
        path = tmp_path / "pricing.json"
        PricingCache(path, URL, fetcher=lambda url: REMOTE_PAYLOAD).fetch_and_store()

        later = PricingCache(path, URL)
        assert later.load_table(refresh=False).get_pricing("claude-sonnet-4-5") == ModelPricing(2.0, 10.0)
        assert later.source == "cache"
