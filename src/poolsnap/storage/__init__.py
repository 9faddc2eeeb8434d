"""Tiered flat-file storage for pool snapshots and aggregates."""

from .record_store import TIERS, RecordStore, RecordStoreError, Tier
from .records import AGGREGATE_HEADER, DAILY_HEADER, AggregateRow, Observation, SnapshotRow

__all__ = [
    "AGGREGATE_HEADER",
    "AggregateRow",
    "DAILY_HEADER",
    "Observation",
    "RecordStore",
    "RecordStoreError",
    "SnapshotRow",
    "TIERS",
    "Tier",
]
