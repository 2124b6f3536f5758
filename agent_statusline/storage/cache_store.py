"""
Persistent cost cache.

Stores day buckets, per-file scan state and the dedup set as one JSON file.
Loading never fails and saving is best-effort: losing the cache only costs
a rescan on the next run.
"""

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from .lock import CacheLock, make_lock
from .models import CacheSnapshot, FileScanState

log = logging.getLogger(__name__)

DAY_FORMAT = "%Y-%m-%d"


class CacheStore:
    """Loads and saves CacheSnapshot objects under a cross-process lock.

    Typical cycle:

        with store.locked():
            snapshot = store.load()
            ...mutate snapshot...
            store.save(snapshot)
    """

    def __init__(
        self,
        cache_file: Union[str, Path],
        lock: Optional[CacheLock] = None,
        lock_attempts: int = 10,
        lock_backoff: float = 0.05,
    ):
        """Initialize the store.

        Args:
            cache_file: Path of the JSON cache file
            lock: Lock guarding the cycle (defaults to a platform lock next to the cache file)
            lock_attempts: Attempts before proceeding without the lock
            lock_backoff: Seconds between attempts
        """
        self.cache_file = Path(cache_file)
        self.lock = lock if lock is not None else make_lock(self.cache_file.with_suffix(".lock"))
        self.lock_attempts = lock_attempts
        self.lock_backoff = lock_backoff

    @contextmanager
    def locked(self) -> Iterator[bool]:
        """Hold the lock for the duration of the block, if it can be taken.

        Yields:
            Whether the lock is held; the block runs either way
        """
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            acquired = self.lock.try_acquire(self.lock_attempts, self.lock_backoff)
        except OSError as e:
            log.debug("Failed to prepare lock for %s: %s", self.cache_file, e)
            acquired = False
        if not acquired:
            log.debug("Failed to acquire lock, proceeding without")
        try:
            yield acquired
        finally:
            if acquired:
                self.lock.release()

    def load(self) -> CacheSnapshot:
        """Read the cache file.

        Returns:
            The stored snapshot, or an empty one if the file is missing or
            unreadable; malformed entries are dropped individually
        """
        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except FileNotFoundError:
            return CacheSnapshot()
        except (OSError, ValueError) as e:
            log.debug("Discarding unreadable cost cache %s: %s", self.cache_file, e)
            return CacheSnapshot()

        if not isinstance(raw, dict):
            return CacheSnapshot()
        return snapshot_from_dict(raw)

    def save(self, snapshot: CacheSnapshot) -> bool:
        """Atomically replace the cache file with the snapshot.

        Returns:
            True on success; failures are logged, never raised
        """
        tmp_path = None
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".cost_cache.", suffix=".tmp", dir=str(self.cache_file.parent)
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(snapshot_to_dict(snapshot), f)
            os.replace(tmp_path, self.cache_file)
            return True
        except (OSError, TypeError, ValueError) as e:
            log.debug("Failed to save cost cache: %s", e)
            if tmp_path is not None:
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
            return False


def prune(snapshot: CacheSnapshot, cutoff: datetime, dedup_cap: int) -> None:
    """Drop state that fell out of the retention window.

    Removes day buckets dated before the cutoff and scan states of files last
    modified before it. If the dedup set exceeds `dedup_cap` it is cleared
    together with every scan state and day bucket. The forced full rescan of
    files inside the retention window then rebuilds the buckets exactly.
    """
    cutoff_day = cutoff.strftime(DAY_FORMAT)
    for day in [day for day in snapshot.day_costs if day < cutoff_day]:
        del snapshot.day_costs[day]

    cutoff_ns = int(cutoff.timestamp() * 1_000_000_000)
    for path in [p for p, state in snapshot.file_state.items() if state.mod_time_ns < cutoff_ns]:
        del snapshot.file_state[path]

    if len(snapshot.processed_messages) > dedup_cap:
        snapshot.processed_messages.clear()
        snapshot.file_state.clear()
        snapshot.day_costs.clear()
        log.debug("Cleared message cache (exceeded %d entries)", dedup_cap)


def snapshot_to_dict(snapshot: CacheSnapshot) -> Dict[str, Any]:
    """Serialize a snapshot to the on-disk JSON shape."""
    return {
        "day_costs": dict(snapshot.day_costs),
        "file_state": {
            path: {
                "mod_time_ns": state.mod_time_ns,
                "size": state.size,
                "offset": state.offset,
            }
            for path, state in snapshot.file_state.items()
        },
        "processed_messages": {key: True for key in snapshot.processed_messages},
    }


def snapshot_from_dict(raw: Dict[str, Any]) -> CacheSnapshot:
    """Build a snapshot from decoded JSON, skipping malformed entries."""
    snapshot = CacheSnapshot()

    day_costs = raw.get("day_costs")
    if isinstance(day_costs, dict):
        for day, cost in day_costs.items():
            if _is_day(day) and _is_number(cost):
                snapshot.day_costs[day] = float(cost)

    file_state = raw.get("file_state")
    if isinstance(file_state, dict):
        for path, state in file_state.items():
            parsed = _parse_file_state(state)
            if parsed is not None:
                snapshot.file_state[path] = parsed

    processed = raw.get("processed_messages")
    if isinstance(processed, dict):
        snapshot.processed_messages.update(key for key, seen in processed.items() if seen is True)

    return snapshot


def _parse_file_state(state: Any) -> Optional[FileScanState]:
    if not isinstance(state, dict):
        return None
    values = [state.get(key) for key in ("mod_time_ns", "size", "offset")]
    if any(isinstance(v, bool) or not isinstance(v, int) for v in values):
        return None
    try:
        return FileScanState(mod_time_ns=values[0], size=values[1], offset=values[2])
    except ValueError:
        return None


def _is_day(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        datetime.strptime(value, DAY_FORMAT)
    except ValueError:
        return False
    return True


def _is_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float))
