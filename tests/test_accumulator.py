"""
Unit tests for deduplicating cost accumulation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from agent_statusline.core.accumulator import CostAccumulator
from agent_statusline.core.pricing import ModelPricing, PricingTable
from agent_statusline.core.token_counter import TokenUsage
from agent_statusline.storage.models import CacheSnapshot, UsageEvent


def create_event(msg_id="msg1", req_id="req1", when=None, model="claude-sonnet-4-5", **tokens):
    """Create a test event."""
    return UsageEvent(
        timestamp=when or datetime(2025, 11, 29, 10, 0, tzinfo=timezone.utc),
        role="assistant",
        model=model,
        usage=TokenUsage(**tokens),
        message_id=msg_id,
        request_id=req_id,
    )


class TestCostAccumulator:
    """Test folding events into day buckets."""

    def setup_method(self):
        """Create an empty snapshot and a sonnet-only table."""
        self.snapshot = CacheSnapshot()
        self.table = PricingTable(models={"claude-sonnet-4-5": ModelPricing(input=3.0, output=15.0)})
        self.accumulator = CostAccumulator(self.snapshot, self.table, tz=timezone.utc)

    def test_event_added_to_day_bucket(self):
        """Verify cost lands in the event's day."""
        assert self.accumulator.accumulate(create_event(input_tokens=1_000_000))
        assert self.snapshot.day_costs == {"2025-11-29": pytest.approx(3.0)}
        assert self.snapshot.processed_messages == {"msg1:req1"}

    @pytest.mark.parametrize("repeats", [1, 2, 5, 50])
    def test_idempotent_per_dedup_key(self, repeats):
        """Verify N copies of one event cost the same as one."""
        event = create_event(cache_creation_tokens=1_000_000)
        results = [self.accumulator.accumulate(event) for _ in range(repeats)]

        assert results[0] is True
        assert not any(results[1:])
        assert self.snapshot.day_costs["2025-11-29"] == pytest.approx(3.75)

    def test_distinct_keys_sum(self):
        """Verify different keys on the same day add up."""
        self.accumulator.accumulate(create_event(msg_id="a", cache_read_tokens=1_000_000))
        self.accumulator.accumulate(create_event(msg_id="b", cache_read_tokens=1_000_000))
        assert self.snapshot.day_costs["2025-11-29"] == pytest.approx(0.60)

    def test_same_message_different_request_counted(self):
        """Verify the request id is part of the key."""
        self.accumulator.accumulate(create_event(req_id="r1", input_tokens=10))
        assert self.accumulator.accumulate(create_event(req_id="r2", input_tokens=10))

    def test_key_already_in_snapshot_skipped(self):
        """Verify keys loaded from a previous run are honoured."""
        self.snapshot.processed_messages.add("msg1:req1")
        assert not self.accumulator.accumulate(create_event(input_tokens=10))
        assert self.snapshot.day_costs == {}

    def test_unknown_model_uses_default_pricing(self):
        """Verify pricing misses never drop the event."""
        self.accumulator.accumulate(create_event(model="mystery-model", input_tokens=1_000_000))
        assert self.snapshot.day_costs["2025-11-29"] == pytest.approx(3.0)

    def test_day_bucket_follows_timezone(self):
        """Verify the bucket date is taken in the accumulator's timezone."""
        tokyo = timezone(timedelta(hours=9))
        accumulator = CostAccumulator(self.snapshot, self.table, tz=tokyo)
        when = datetime(2025, 11, 29, 20, 0, tzinfo=timezone.utc)

        accumulator.accumulate(create_event(when=when, input_tokens=1))

        assert list(self.snapshot.day_costs) == ["2025-11-30"]

    def test_existing_bucket_extended(self):
        """Verify costs add to a bucket restored from disk."""
        self.snapshot.day_costs["2025-11-29"] = 10.0
        self.accumulator.accumulate(create_event(input_tokens=1_000_000))
        assert self.snapshot.day_costs["2025-11-29"] == pytest.approx(13.0)
