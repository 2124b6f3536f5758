"""
Cost statistics computation.

Runs the lock -> load -> scan -> save -> aggregate cycle over the usage logs.
Every failure along the way degrades the result instead of aborting it; the
worst case is a summary of zeros.
"""

import logging
from datetime import datetime, timedelta, tzinfo
from typing import Iterable, Optional

from .accumulator import CostAccumulator
from .aggregator import CostSummary, aggregate
from .decoder import decode_line
from .pricing import PricingTable
from .pricing_cache import PricingCache
from .scanner import CandidateFile, Reader, iter_log_files, open_at_offset, scan_file
from agent_statusline.config.loader import StatuslineConfig
from agent_statusline.storage.cache_store import CacheStore, prune
from agent_statusline.storage.lock import make_lock
from agent_statusline.storage.models import CacheSnapshot

log = logging.getLogger(__name__)


def compute_cost_stats(
    config: StatuslineConfig,
    now: Optional[datetime] = None,
    files: Optional[Iterable[CandidateFile]] = None,
    reader: Reader = open_at_offset,
    pricing_table: Optional[PricingTable] = None,
    store: Optional[CacheStore] = None,
    tz: Optional[tzinfo] = None,
) -> CostSummary:
    """Compute daily, weekly and monthly cost from the usage logs.

    Args:
        config: Settings for paths, retention and aggregation mode
        now: Current time (defaults to the local clock)
        files: Candidate log files (defaults to walking config.projects_dir)
        reader: Opens a log file at a byte offset
        pricing_table: Table to price events with (defaults to PricingCache)
        store: Cache store (defaults to config.cache_file)
        tz: Timezone for day buckets (defaults to local time)

    Returns:
        CostSummary for the configured aggregation mode
    """
    now = now if now is not None else datetime.now().astimezone()
    if now.tzinfo is None:
        now = now.astimezone()
    cutoff = now - timedelta(days=config.retention_days)

    if store is None:
        store = CacheStore(
            config.cache_file,
            lock=make_lock(config.lock_file),
            lock_attempts=config.lock_attempts,
            lock_backoff=config.lock_backoff_seconds,
        )
    if pricing_table is None:
        pricing_table = PricingCache(
            config.pricing_cache_file,
            config.pricing_url,
            ttl_hours=config.pricing_ttl_hours,
        ).load_table()

    with store.locked():
        snapshot = store.load()
        prune(snapshot, cutoff, config.dedup_cap)

        if files is None:
            log.debug("Scanning logs from: %s", config.projects_dir)
            files = iter_log_files(str(config.projects_dir))

        accumulator = CostAccumulator(snapshot, pricing_table, tz=tz)
        process_files(files, snapshot, accumulator, cutoff, reader)

        store.save(snapshot)

    local_now = now.astimezone(tz)
    stats = aggregate(snapshot.day_costs, local_now, config.aggregation_mode)
    log.debug(
        "Cost stats: daily=$%.2f, weekly=$%.2f, monthly=$%.2f",
        stats.daily_cost, stats.weekly_cost, stats.monthly_cost,
    )
    return stats


def process_files(
    files: Iterable[CandidateFile],
    snapshot: CacheSnapshot,
    accumulator: CostAccumulator,
    cutoff: datetime,
    reader: Reader = open_at_offset,
) -> int:
    """Scan every candidate file and fold its new events into the snapshot.

    Returns:
        Number of events counted
    """
    cutoff_ns = int(cutoff.timestamp() * 1_000_000_000)
    counted = 0
    for candidate in files:
        # Files untouched since the cutoff cannot hold retained events
        if candidate.mod_time_ns < cutoff_ns:
            continue

        result = scan_file(candidate, snapshot.file_state.get(candidate.path), reader)
        if result is None:
            continue

        for line in result.lines:
            event = decode_line(line, cutoff)
            if event is not None and accumulator.accumulate(event):
                counted += 1

        if result.state is not None:
            snapshot.file_state[candidate.path] = result.state
    return counted
