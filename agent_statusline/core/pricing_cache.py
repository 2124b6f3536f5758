"""
Refreshable pricing table.

The active table comes from the cached download when it is fresh, otherwise
from the stale download or the embedded default while a detached refresh
runs in the background. A refresh only benefits later invocations.
"""

import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

import httpx

from .pricing import PricingTable, load_embedded_pricing, parse_pricing_payload

log = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 5.0

# url -> decoded JSON payload
Fetcher = Callable[[str], Any]


def fetch_pricing_json(url: str) -> Any:
    """Download the pricing document.

    Raises:
        httpx.HTTPError: On transport failures or non-2xx status
        ValueError: If the body is not JSON
    """
    response = httpx.get(url, timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True)
    response.raise_for_status()
    return response.json()


class PricingCache:
    """Serves the active pricing table and keeps the cached copy current."""

    def __init__(
        self,
        cache_file: Union[str, Path],
        url: str,
        ttl_hours: float = 24.0,
        fetcher: Fetcher = fetch_pricing_json,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_file = Path(cache_file)
        self.url = url
        self.ttl_seconds = ttl_hours * 3600
        self.fetcher = fetcher
        self.clock = clock
        self.source = "embedded"

    def load_table(self, refresh: bool = True) -> PricingTable:
        """Return the pricing table for this run.

        Args:
            refresh: Start a background refresh when the cache is missing or stale

        Returns:
            Fresh cached table, else stale cached table, else embedded table
        """
        cached = self._read_cached()
        age = self._cache_age()

        if cached is not None and age is not None and age < self.ttl_seconds:
            log.debug("Using cached pricing (age: %.0fs)", age)
            self.source = "cache"
            return cached

        if age is None:
            log.debug("No pricing cache, fetching...")
        else:
            log.debug("Pricing cache expired, fetching update...")
        if refresh:
            self.refresh_in_background()

        if cached is not None:
            self.source = "stale cache"
            return cached
        self.source = "embedded"
        return load_embedded_pricing()

    def refresh_in_background(self) -> threading.Thread:
        """Start a detached refresh; the caller never waits on it."""
        thread = threading.Thread(
            target=self.fetch_and_store,
            name="pricing-refresh",
            daemon=True,
        )
        thread.start()
        return thread

    def fetch_and_store(self) -> bool:
        """Fetch, validate and persist the pricing table.

        Returns:
            True if a valid table was written; failures are logged only
        """
        try:
            payload = self.fetcher(self.url)
        except (httpx.HTTPError, ValueError) as e:
            log.debug("Failed to fetch pricing: %s", e)
            return False

        try:
            parse_pricing_payload(payload)
        except ValueError as e:
            log.debug("Invalid pricing JSON: %s", e)
            return False

        tmp_path = None
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".pricing.", suffix=".tmp", dir=str(self.cache_file.parent)
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.cache_file)
        except OSError as e:
            log.debug("Failed to cache pricing: %s", e)
            if tmp_path is not None:
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
            return False

        log.debug("Pricing updated and cached")
        return True

    def _cache_age(self) -> Optional[float]:
        try:
            return self.clock() - os.stat(self.cache_file).st_mtime
        except OSError:
            return None

    def _read_cached(self) -> Optional[PricingTable]:
        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                return parse_pricing_payload(json.load(f))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            log.debug("Ignoring unreadable pricing cache: %s", e)
            return None
