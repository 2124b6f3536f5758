"""
Reporting window aggregation.

Folds day buckets into daily, weekly and monthly totals. Pure functions only:
same buckets and same `now` give the same summary.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping

from agent_statusline.config.loader import AggregationMode

DAY_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class CostSummary:
    """Windowed cost totals in USD, consumed by the renderer."""
    daily_cost: float = 0.0
    weekly_cost: float = 0.0
    monthly_cost: float = 0.0


def aggregate(day_costs: Mapping[str, float], now: datetime, mode: AggregationMode) -> CostSummary:
    """Sum day buckets into the windows of the given mode.

    Args:
        day_costs: Cost per local calendar day (YYYY-MM-DD)
        now: Current local time
        mode: FIXED for calendar periods, SLIDING for trailing windows

    Returns:
        CostSummary for the three windows
    """
    if mode == AggregationMode.SLIDING:
        return _aggregate_sliding(day_costs, now)
    return _aggregate_fixed(day_costs, now)


def _aggregate_sliding(day_costs: Mapping[str, float], now: datetime) -> CostSummary:
    # Monthly covers everything retained; pruning already caps it
    daily_cutoff = (now - timedelta(days=1)).strftime(DAY_FORMAT)
    weekly_cutoff = (now - timedelta(days=7)).strftime(DAY_FORMAT)

    daily = weekly = monthly = 0.0
    for day, cost in day_costs.items():
        monthly += cost
        if day >= weekly_cutoff:
            weekly += cost
        if day >= daily_cutoff:
            daily += cost
    return CostSummary(daily_cost=daily, weekly_cost=weekly, monthly_cost=monthly)


def _aggregate_fixed(day_costs: Mapping[str, float], now: datetime) -> CostSummary:
    today = now.strftime(DAY_FORMAT)
    week_start = (now - timedelta(days=now.weekday())).strftime(DAY_FORMAT)
    month_start = now.replace(day=1).strftime(DAY_FORMAT)

    daily = weekly = monthly = 0.0
    for day, cost in day_costs.items():
        if day > today:
            continue
        if day >= month_start:
            monthly += cost
        if day >= week_start:
            weekly += cost
        if day == today:
            daily += cost
    return CostSummary(daily_cost=daily, weekly_cost=weekly, monthly_cost=monthly)
