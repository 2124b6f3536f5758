"""
Deduplicating cost accumulation.

Folds usage events into per-day cost buckets, counting each dedup key once.
"""

from datetime import tzinfo
from typing import Optional

from .pricing import PricingTable, calculate_cost, resolve_price
from agent_statusline.storage.models import CacheSnapshot, UsageEvent

DAY_FORMAT = "%Y-%m-%d"


class CostAccumulator:
    """Adds event costs to the day buckets of a cache snapshot.

    Idempotent per dedup key: the same event folded N times counts once.
    Day buckets use the local calendar unless `tz` is given.
    """

    def __init__(self, snapshot: CacheSnapshot, pricing_table: PricingTable, tz: Optional[tzinfo] = None):
        self.snapshot = snapshot
        self.pricing_table = pricing_table
        self.tz = tz

    def accumulate(self, event: UsageEvent) -> bool:
        """Fold one event into its day bucket.

        Returns:
            True if the event was counted, False if its key was already seen
        """
        key = event.dedup_key
        if key in self.snapshot.processed_messages:
            return False
        self.snapshot.processed_messages.add(key)

        pricing = resolve_price(event.model, self.pricing_table)
        cost = calculate_cost(event.usage, pricing)

        day = self.day_of(event)
        self.snapshot.day_costs[day] = self.snapshot.day_costs.get(day, 0.0) + cost
        return True

    def day_of(self, event: UsageEvent) -> str:
        """Calendar date of the event in the accumulator's timezone."""
        return event.timestamp.astimezone(self.tz).strftime(DAY_FORMAT)
