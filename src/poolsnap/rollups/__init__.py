"""Period labelling and rollup aggregation for pool snapshots."""

from .aggregator import PoolAccumulator, RollupSummary, aggregate, mean
from .periods import (
    PeriodKeys,
    current_time,
    day_of_week_slot,
    estimate_month_for_week,
    iso_week,
    month_label,
    parse_week_label,
    period_keys,
    previous_month,
    previous_year,
    week_in_month,
    week_label,
    year_label,
)

__all__ = [
    # Periods
    "PeriodKeys",
    "current_time",
    "day_of_week_slot",
    "estimate_month_for_week",
    "iso_week",
    "month_label",
    "parse_week_label",
    "period_keys",
    "previous_month",
    "previous_year",
    "week_in_month",
    "week_label",
    "year_label",
    # Aggregation
    "PoolAccumulator",
    "RollupSummary",
    "aggregate",
    "mean",
]
