"""Integration tests for rollup pipeline orchestration.

Tests verify that:
- Daily runs write the weekday slot file and a dated backup
- Weekly, monthly and yearly runs pick the right lower-tier files
- Snapshot counts survive re-aggregation
- Invalid API responses leave storage untouched
- Publish failures never fail a run
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest
import pytz

from poolsnap.adapters.pool_api import InvalidPoolResponseError
from poolsnap.config.settings import Settings
from poolsnap.pipelines.rollup_pipeline import (
    RollupPipeline,
    RollupPipelineConfig,
    build_snapshot_rows,
    create_rollup_pipeline,
)
from poolsnap.storage.record_store import RecordStore
from poolsnap.storage.records import AggregateRow, SnapshotRow
from poolsnap.sync.publisher import NullPublisher, PublishError

# Thursday of ISO week 2024-W05
RUN_AT = pytz.utc.localize(datetime(2024, 2, 1, 8, 30, 0))

POOLS = [
    {
        "pool_id": "X",
        "pool_address": "addrX",
        "tvl_usd": 1234.5,
        "volume_24h_usd": 10,
        "volume_7d_usd": 70,
        "apr_7d": 0.12,
        "reserve_0": 500,
        "reserve_1": 600,
        "total_share": 700,
    },
    {"pool_id": "Y", "pool_address": "addrY", "tvl_usd": "not-a-number"},
]


class RecordingPublisher:
    """Publisher double that remembers commit messages."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.messages: list[str] = []

    def prepare(self) -> None:
        pass

    def publish(self, message: str) -> bool:
        self.messages.append(message)
        if self.error:
            raise self.error
        return True


@pytest.fixture
def store(tmp_path: Path) -> RecordStore:
    store = RecordStore(tmp_path / "data")
    store.ensure_dirs()
    return store


def make_pipeline(store: RecordStore, *, pools=POOLS, publisher=None, log_path=None) -> RollupPipeline:
    return RollupPipeline(
        RollupPipelineConfig(data_dir=store.root, log_path=log_path),
        store=store,
        fetch_pools=lambda: pools,
        publisher=publisher or RecordingPublisher(),
    )


def daily_row(pool_id: str, tvl: str, volume: str) -> SnapshotRow:
    return SnapshotRow(
        date="2024-01-29",
        time="00:00:00",
        pool_id=pool_id,
        pool_address=f"addr{pool_id}",
        tvl_usd=tvl,
        volume_24h_usd=volume,
    )


def aggregate_row(period: str, pool_id: str, tvl: float, count: int) -> AggregateRow:
    return AggregateRow(
        period=period,
        pool_id=pool_id,
        pool_address=f"addr{pool_id}",
        avg_tvl_usd=tvl,
        total_volume_usd=10.0,
        avg_apr_7d=0.1,
        avg_reserve_0=1.0,
        avg_reserve_1=2.0,
        avg_total_share=3.0,
        snapshot_count=count,
    )


class TestDailySnapshot:
    """Daily mode: fetch and write."""

    def test_writes_slot_and_backup(self, store: RecordStore):
        publisher = RecordingPublisher()
        pipeline = make_pipeline(store, publisher=publisher)

        result = pipeline.run("daily", now=RUN_AT)

        assert result.success
        assert result.period == "day-4"
        assert result.file == "day-4.csv"
        assert result.pools_count == 2
        assert result.published is True
        assert publisher.messages == ["daily snapshot: day-4.csv"]

        slot = store.path_for("daily", "day-4")
        backup = store.path_for("daily", "2024-02-01")
        assert slot.read_text(encoding="utf-8") == backup.read_text(encoding="utf-8")

        lines = slot.read_text(encoding="utf-8").splitlines()
        assert lines[1] == '2024-02-01,08:30:00,"X",addrX,1234.5,10,70,0.12,500,600,700'
        assert lines[2] == '2024-02-01,08:30:00,"Y",addrY,not-a-number,,,,,,'

    def test_summary_lines(self, store: RecordStore):
        result = make_pipeline(store).run("daily", now=RUN_AT)

        assert result.summary_lines == [
            "  X                    TVL: $  1,234.50",
            "  Y                    TVL: $      0.00",
        ]

    def test_slot_is_overwritten_next_week(self, store: RecordStore):
        make_pipeline(store).run("daily", now=RUN_AT)
        make_pipeline(store, pools=POOLS[:1]).run("daily", now=pytz.utc.localize(datetime(2024, 2, 8, 9, 0)))

        assert [row.pool_id for row in store.read("daily", "day-4")] == ["X"]
        assert store.list_periods("daily") == ["2024-02-01", "2024-02-08", "day-4"]

    def test_invalid_shape_writes_nothing(self, store: RecordStore):
        pipeline = make_pipeline(store, pools={"pools": "not-an-array"})

        with pytest.raises(InvalidPoolResponseError):
            pipeline.run("daily", now=RUN_AT)

        assert store.list_periods("daily") == []

    def test_fetch_error_writes_nothing(self, store: RecordStore):
        def failing_fetch():
            raise InvalidPoolResponseError("Invalid API response")

        pipeline = RollupPipeline(
            RollupPipelineConfig(data_dir=store.root),
            store=store,
            fetch_pools=failing_fetch,
        )

        with pytest.raises(InvalidPoolResponseError):
            pipeline.run_daily(now=RUN_AT)

        assert store.list_periods("daily") == []

    def test_values_kept_as_received(self, store: RecordStore):
        """The daily archive holds upstream text untouched."""
        pools = [{"pool_id": "Z", "pool_address": "addrZ", "tvl_usd": "12.50", "reserve_0": "123456789012345678901234"}]

        make_pipeline(store, pools=pools).run("daily", now=RUN_AT)

        line = store.path_for("daily", "day-4").read_text(encoding="utf-8").splitlines()[1]
        assert line == '2024-02-01,08:30:00,"Z",addrZ,12.50,,,,123456789012345678901234,,'

    def test_build_snapshot_rows_missing_fields(self):
        [row] = build_snapshot_rows([{}], RUN_AT)

        assert row.pool_id == ""
        assert row.tvl_usd == ""
        assert row.date == "2024-02-01"


class TestWeeklyRollup:
    """Weekly mode: day-N files into the ISO week."""

    def test_two_day_scenario(self, store: RecordStore):
        store.write("daily", "day-1", [daily_row("X", "100", "10")])
        store.write("daily", "day-2", [daily_row("X", "200", "20")])
        # dated backups are not weekly sources
        store.write("daily", "2024-01-29", [daily_row("X", "999", "999")])

        result = make_pipeline(store).run("weekly", now=RUN_AT)

        assert result.period == "2024-W05"
        assert result.source_files == ["day-1", "day-2"]
        [row] = store.read("weekly", "2024-W05")
        assert row.avg_tvl_usd == 150.0
        assert row.total_volume_usd == 30.0
        assert row.snapshot_count == 2
        assert result.summary_lines == ["  X                    Avg TVL: $    150.00  Total Vol: $30.00"]

    def test_no_daily_files_writes_header_only(self, store: RecordStore):
        result = make_pipeline(store).run("weekly", now=RUN_AT)

        assert result.pools_count == 0
        assert store.read("weekly", "2024-W05") == []

    def test_week_label_uses_iso_year(self, store: RecordStore):
        result = make_pipeline(store).run("weekly", now=pytz.utc.localize(datetime(2024, 12, 30, 12, 0)))

        assert result.file == "2025-W01.csv"


class TestMonthlyRollup:
    """Monthly mode: previous month's weekly files."""

    def test_selects_weeks_of_previous_month(self, store: RecordStore):
        for week, tvl in (("2024-W04", 1.0), ("2024-W05", 100.0), ("2024-W08", 300.0), ("2024-W09", 5.0)):
            store.write("weekly", week, [aggregate_row(week, "X", tvl, 7)])

        result = make_pipeline(store).run("monthly", now=pytz.utc.localize(datetime(2024, 3, 10)))

        assert result.period == "2024-02"
        assert result.source_files == ["2024-W05", "2024-W08"]
        [row] = store.read("monthly", "2024-02")
        assert row.avg_tvl_usd == 200.0
        assert row.total_volume_usd == 20.0
        assert row.snapshot_count == 14

    def test_january_run_targets_previous_december(self, store: RecordStore):
        store.write("weekly", "2023-W49", [aggregate_row("2023-W49", "X", 10.0, 7)])
        store.write("weekly", "2024-W49", [aggregate_row("2024-W49", "X", 99.0, 7)])

        result = make_pipeline(store).run("monthly", now=pytz.utc.localize(datetime(2024, 1, 2)))

        assert result.file == "2023-12.csv"
        assert result.source_files == ["2023-W49"]


class TestYearlyRollup:
    """Yearly mode: previous year's monthly files."""

    def test_aggregates_previous_year(self, store: RecordStore):
        store.write("monthly", "2023-01", [aggregate_row("2023-01", "X", 100.0, 28)])
        store.write("monthly", "2023-02", [aggregate_row("2023-02", "X", 300.0, 21)])
        store.write("monthly", "2024-01", [aggregate_row("2024-01", "X", 5.0, 28)])

        result = make_pipeline(store).run_yearly(now=pytz.utc.localize(datetime(2024, 1, 1)))

        assert result.period == "2023"
        assert result.source_files == ["2023-01", "2023-02"]
        [row] = store.read("yearly", "2023")
        assert row.avg_tvl_usd == 200.0
        assert row.snapshot_count == 49


class TestPublishing:
    """Publishing happens after the write and never fails the run."""

    def test_publish_failure_is_reported_not_raised(self, store: RecordStore):
        publisher = RecordingPublisher(error=PublishError("git push failed: rejected"))

        result = make_pipeline(store, publisher=publisher).run("daily", now=RUN_AT)

        assert result.success
        assert result.published is False
        assert result.errors == ["git push failed: rejected"]
        assert store.path_for("daily", "day-4").exists()

    def test_local_mode_uses_null_publisher(self, tmp_path: Path):
        settings = Settings(data_dir=tmp_path / "data", github_token="tok", github_repo="org/data")

        pipeline = create_rollup_pipeline(settings, fetch_pools=lambda: POOLS, publish=False)

        assert isinstance(pipeline.publisher, NullPublisher)


class TestStructuredLogging:
    """JSONL events carry a shared trace ID."""

    def test_events_written_with_trace_id(self, store: RecordStore, tmp_path: Path):
        log_path = tmp_path / "logs" / "pipeline-events.jsonl"

        result = make_pipeline(store, log_path=log_path).run("daily", now=RUN_AT)

        events = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
        types = [event["event_type"] for event in events]
        assert types[0] == "pipeline_started"
        assert types[-1] == "pipeline_completed"
        assert types.count("file_written") == 2
        assert {event["trace_id"] for event in events} == {result.trace_id}

    def test_factory_places_events_under_log_dir(self, tmp_path: Path):
        settings = Settings(data_dir=tmp_path / "data", log_dir=tmp_path / "logs")

        pipeline = create_rollup_pipeline(settings, fetch_pools=lambda: POOLS)

        assert pipeline.config.log_path == tmp_path / "logs" / "pipeline-events.jsonl"


def test_unknown_mode_rejected(store: RecordStore):
    with pytest.raises(ValueError, match="Unknown mode"):
        make_pipeline(store).run("hourly", now=RUN_AT)
