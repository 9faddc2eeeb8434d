"""Rollup Pipeline - one linear pass per run mode.

daily:   fetch pools -> write day-of-week slot file and dated backup
weekly:  daily slot files -> aggregate -> ``YYYY-Www``
monthly: weekly files of the previous month -> aggregate -> ``YYYY-MM``
yearly:  monthly files of the previous year -> aggregate -> ``YYYY``

After the files are written the run is handed to the publisher. Publish
failures are logged and reported on the result; they never fail the run.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from ..adapters.pool_api import InvalidPoolResponseError, PoolAPIClient
from ..observability.loguru_config import get_logger, timing_context
from ..rollups.aggregator import RollupSummary, aggregate
from ..rollups.periods import (
    current_time,
    day_of_week_slot,
    month_label,
    previous_month,
    previous_year,
    week_in_month,
    week_label,
    year_label,
)
from ..storage.record_store import RecordStore, Tier
from ..storage.records import SnapshotRow, format_cell
from ..sync.publisher import NullPublisher, PublishError, create_publisher

if TYPE_CHECKING:
    from ..config.settings import Settings
    from ..sync.publisher import Publisher

__all__ = [
    "MODES",
    "RollupPipeline",
    "RollupPipelineConfig",
    "RollupPipelineResult",
    "build_snapshot_rows",
    "create_rollup_pipeline",
]

MODES = ("daily", "weekly", "monthly", "yearly")

PoolFetcher = Callable[[], Any]


@dataclass
class RollupPipelineConfig:
    """Configuration for rollup pipeline."""

    data_dir: Path
    timezone: str = "UTC"
    log_path: Path | None = None


@dataclass
class RollupPipelineResult:
    """Result of one pipeline run."""

    success: bool
    mode: str
    period: str
    file: str
    path: Path | None
    pools_count: int
    duration_ms: float
    trace_id: str
    source_files: list[str] = field(default_factory=list)
    summary_lines: list[str] = field(default_factory=list)
    published: bool = False
    errors: list[str] = field(default_factory=list)


@dataclass
class _TierOutput:
    period: str
    path: Path
    pools_count: int
    source_files: list[str]
    summary_lines: list[str]


def build_snapshot_rows(pools: list[dict[str, Any]], now: datetime) -> list[SnapshotRow]:
    """Turn fetched pool objects into daily rows captured at ``now``.

    Values are kept as the API sent them and missing fields become empty
    cells. Nothing is parsed here; unreadable numbers are reported when the
    file is read back for aggregation.
    """
    date_str = now.strftime("%Y-%m-%d")
    time_str = now.strftime("%H:%M:%S")

    return [
        SnapshotRow(
            date=date_str,
            time=time_str,
            pool_id=format_cell(pool.get("pool_id")),
            pool_address=format_cell(pool.get("pool_address")),
            tvl_usd=format_cell(pool.get("tvl_usd")),
            volume_24h_usd=format_cell(pool.get("volume_24h_usd")),
            volume_7d_usd=format_cell(pool.get("volume_7d_usd")),
            apr_7d=format_cell(pool.get("apr_7d")),
            reserve_0=format_cell(pool.get("reserve_0")),
            reserve_1=format_cell(pool.get("reserve_1")),
            total_share=format_cell(pool.get("total_share")),
        )
        for pool in pools
    ]


class RollupPipeline:
    """Orchestrates one run of a single tier.

    Responsibilities:
    - Select the lower-tier files that belong to the target period
    - Aggregate them and persist the result via the record store
    - Hand the written files to the publisher
    - Emit structured JSONL logs with trace IDs

    Example:
        >>> pipeline = create_rollup_pipeline(Settings(data_dir=Path("data")))
        >>> result = pipeline.run("weekly")
        >>> result.file
        '2024-W05.csv'
    """

    def __init__(
        self,
        config: RollupPipelineConfig,
        *,
        store: RecordStore | None = None,
        fetch_pools: PoolFetcher | None = None,
        publisher: Publisher | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize rollup pipeline.

        Parameters
        ----------
        config
            Pipeline configuration
        store
            Record store (default: one rooted at ``config.data_dir``)
        fetch_pools
            Callable returning the current pool list; required for daily runs
        publisher
            Publish capability (default: local mode)
        logger
            Optional loguru logger
        """
        self.config = config
        self.store = store or RecordStore(config.data_dir)
        self.fetch_pools = fetch_pools
        self.publisher = publisher or NullPublisher()
        self.logger = logger or get_logger("pipeline")

    def run(self, mode: str, now: datetime | None = None) -> RollupPipelineResult:
        """Run one mode end to end.

        Parameters
        ----------
        mode
            One of ``daily``, ``weekly``, ``monthly``, ``yearly``
        now
            Run timestamp (default: current time in the configured timezone)

        Returns
        -------
        RollupPipelineResult
            Execution result

        Raises
        ------
        ValueError
            If the mode is unknown
        PoolAPIError
            If the daily fetch fails or returns an invalid shape
        RecordStoreError
            If a tier file cannot be read or written
        """
        handlers: dict[str, Callable[[datetime, str], _TierOutput]] = {
            "daily": self._run_daily,
            "weekly": self._run_weekly,
            "monthly": self._run_monthly,
            "yearly": self._run_yearly,
        }
        if mode not in handlers:
            raise ValueError(f"Unknown mode: {mode}")

        if now is None:
            now = current_time(self.config.timezone)

        trace_id = str(uuid.uuid4())
        start_time = time.time()

        self._log_event(
            "pipeline_started",
            {"trace_id": trace_id, "mode": mode, "run_at": now.isoformat()},
        )

        output = handlers[mode](now, trace_id)

        result = RollupPipelineResult(
            success=True,
            mode=mode,
            period=output.period,
            file=output.path.name,
            path=output.path,
            pools_count=output.pools_count,
            duration_ms=0.0,
            trace_id=trace_id,
            source_files=output.source_files,
            summary_lines=output.summary_lines,
        )

        message = f"{mode} snapshot: {result.file}"
        try:
            result.published = self.publisher.publish(message)
        except PublishError as exc:
            result.errors.append(str(exc))
            self._log_event(
                "publish_failed",
                {"trace_id": trace_id, "error": str(exc), "error_type": type(exc).__name__},
            )

        result.duration_ms = (time.time() - start_time) * 1000

        self._log_event(
            "pipeline_completed",
            {
                "trace_id": trace_id,
                "mode": mode,
                "period": result.period,
                "file": result.file,
                "pools_count": result.pools_count,
                "published": result.published,
                "duration_ms": result.duration_ms,
                "outcome": "success",
            },
        )

        return result

    def run_daily(self, now: datetime | None = None) -> RollupPipelineResult:
        return self.run("daily", now)

    def run_weekly(self, now: datetime | None = None) -> RollupPipelineResult:
        return self.run("weekly", now)

    def run_monthly(self, now: datetime | None = None) -> RollupPipelineResult:
        return self.run("monthly", now)

    def run_yearly(self, now: datetime | None = None) -> RollupPipelineResult:
        return self.run("yearly", now)

    def _run_daily(self, now: datetime, trace_id: str) -> _TierOutput:
        """Fetch pools and write the weekday slot file plus a dated backup.

        The pool list is validated before anything is written.
        """
        if self.fetch_pools is None:
            raise RuntimeError("Daily mode needs a pool fetcher")

        slot = day_of_week_slot(now)
        date_str = now.strftime("%Y-%m-%d")
        self.logger.info(f"Date: {date_str} (Day {slot} of week)")
        self.logger.info(f"Time: {now.strftime('%H:%M:%S')} {now.tzname() or ''}".rstrip())

        with timing_context("fetch_pools", component="api", trace_id=trace_id) as ctx:
            pools = self.fetch_pools()
            if not isinstance(pools, list):
                raise InvalidPoolResponseError("Invalid API response: 'pools' is not an array")
            ctx["pools"] = len(pools)

        rows = build_snapshot_rows(pools, now)

        slot_id = f"day-{slot}"
        path = self.store.write("daily", slot_id, rows)
        self._log_file_written(trace_id, "daily", path, len(rows))

        backup_path = self.store.write("daily", date_str, rows)
        self._log_file_written(trace_id, "daily", backup_path, len(rows))

        lines = [f"  {row.pool_id:<20} TVL: ${row.number('tvl_usd') or 0:>10,.2f}" for row in rows]

        return _TierOutput(
            period=slot_id,
            path=path,
            pools_count=len(rows),
            source_files=[],
            summary_lines=lines,
        )

    def _run_weekly(self, now: datetime, trace_id: str) -> _TierOutput:
        period = week_label(now)
        self.logger.info(f"Aggregating week: {period}")

        sources = self.store.list_periods("daily", prefix="day-")
        self.logger.info(f"Found {len(sources)} daily files")

        summary = self._aggregate_tier("daily", sources, period, trace_id)
        return self._persist("weekly", summary, sources, trace_id, include_volume=True)

    def _run_monthly(self, now: datetime, trace_id: str) -> _TierOutput:
        year, month = previous_month(now)
        period = month_label(year, month)
        self.logger.info(f"Aggregating month: {period}")

        candidates = self.store.list_periods("weekly", prefix=f"{year}-W")
        self.logger.info(f"Found {len(candidates)} weekly files for {year}")

        sources = [label for label in candidates if week_in_month(label, year, month)]
        self.logger.info(f"Using {len(sources)} weekly files for {period}")

        summary = self._aggregate_tier("weekly", sources, period, trace_id)
        return self._persist("monthly", summary, sources, trace_id)

    def _run_yearly(self, now: datetime, trace_id: str) -> _TierOutput:
        year = previous_year(now)
        period = year_label(year)
        self.logger.info(f"Aggregating year: {period}")

        sources = self.store.list_periods("monthly", prefix=f"{year}-")
        self.logger.info(f"Found {len(sources)} monthly files for {year}")

        summary = self._aggregate_tier("monthly", sources, period, trace_id)
        return self._persist("yearly", summary, sources, trace_id)

    def _aggregate_tier(
        self,
        source_tier: Tier,
        sources: list[str],
        period: str,
        trace_id: str,
    ) -> RollupSummary:
        """Read every source file of a tier and aggregate its rows.

        Parameters
        ----------
        source_tier
            Tier the sources live in
        sources
            Identifiers to read, in order
        period
            Target period label
        trace_id
            Trace ID

        Returns
        -------
        RollupSummary
            Aggregated rows
        """
        self._log_event(
            "source_files_selected",
            {"trace_id": trace_id, "tier": source_tier, "period": period, "files": sources},
        )

        observations = []
        for identifier in sources:
            for row in self.store.read(source_tier, identifier):
                observations.append(row.to_observation())

        return aggregate(observations, period)

    def _persist(
        self,
        tier: Tier,
        summary: RollupSummary,
        sources: list[str],
        trace_id: str,
        *,
        include_volume: bool = False,
    ) -> _TierOutput:
        path = self.store.write(tier, summary.period, summary.rows)
        self._log_file_written(trace_id, tier, path, summary.pool_count)

        return _TierOutput(
            period=summary.period,
            path=path,
            pools_count=summary.pool_count,
            source_files=sources,
            summary_lines=summary.lines(include_volume=include_volume),
        )

    def _log_file_written(self, trace_id: str, tier: str, path: Path, rows: int) -> None:
        self.logger.info(f"Saved: {path}")
        self._log_event(
            "file_written",
            {"trace_id": trace_id, "tier": tier, "path": str(path), "rows": rows},
        )

    def _log_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Emit structured JSONL log entry.

        Parameters
        ----------
        event_type
            Type of log event
        data
            Event data (must be JSON-serializable)
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": "pipeline",
            "pipeline": "rollup",
            "event_type": event_type,
            **data,
        }

        if self.config.log_path:
            self.config.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(log_entry, ensure_ascii=False) + "\n")

        if event_type.endswith("_failed"):
            self.logger.warning(f"{event_type}: {json.dumps(data)}")
        else:
            self.logger.debug(f"{event_type}: {json.dumps(data)}")


def create_rollup_pipeline(
    settings: Settings,
    *,
    store: RecordStore | None = None,
    fetch_pools: PoolFetcher | None = None,
    publisher: Publisher | None = None,
    publish: bool = True,
    log_path: Path | str | None = None,
) -> RollupPipeline:
    """Factory function to create rollup pipeline from settings.

    Parameters
    ----------
    settings
        Run settings
    store
        Record store (default: rooted at ``settings.data_dir``)
    fetch_pools
        Pool fetcher (default: ``PoolAPIClient`` for ``settings.api_url``)
    publisher
        Publisher (default: chosen by ``create_publisher``)
    publish
        False forces local mode
    log_path
        Optional path for JSONL pipeline events (default: under
        ``settings.log_dir`` when set)

    Returns
    -------
    RollupPipeline
        Configured pipeline instance
    """
    if log_path is None and settings.log_dir is not None:
        log_path = settings.log_dir / "pipeline-events.jsonl"

    config = RollupPipelineConfig(
        data_dir=settings.data_dir,
        timezone=settings.timezone,
        log_path=Path(log_path) if log_path else None,
    )

    if fetch_pools is None:
        client = PoolAPIClient(settings.api_url, timeout=settings.http_timeout)
        fetch_pools = client.fetch_pools

    if publisher is None:
        publisher = create_publisher(settings, enabled=publish)

    return RollupPipeline(
        config,
        store=store,
        fetch_pools=fetch_pools,
        publisher=publisher,
    )
