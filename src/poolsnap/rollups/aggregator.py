"""Pool rollup aggregation.

Reduce many observations of the same pools to one aggregate row per pool
for a period. Used for daily -> weekly, weekly -> monthly and
monthly -> yearly rollups alike.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..storage.records import AggregateRow

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ..storage.records import Observation

__all__ = [
    "PoolAccumulator",
    "RollupSummary",
    "aggregate",
    "mean",
]


def mean(values: list[float]) -> float:
    """Arithmetic mean, 0 for an empty list."""
    if not values:
        return 0
    return sum(values) / len(values)


@dataclass
class PoolAccumulator:
    """Values collected for one pool within a period."""

    pool_id: str
    pool_address: str
    tvl: list[float] = field(default_factory=list)
    volume: list[float] = field(default_factory=list)
    apr: list[float] = field(default_factory=list)
    reserve_0: list[float] = field(default_factory=list)
    reserve_1: list[float] = field(default_factory=list)
    total_share: list[float] = field(default_factory=list)
    snapshots: int = 0

    def add(self, observation: Observation) -> None:
        """Fold one observation into the accumulator.

        Absent values are skipped. A raw observation counts as one
        snapshot; an aggregate one contributes its own snapshot count.
        """
        for name in ("tvl", "volume", "apr", "reserve_0", "reserve_1", "total_share"):
            value = getattr(observation, name)
            if value is not None:
                getattr(self, name).append(value)

        if observation.raw:
            self.snapshots += 1
        elif observation.snapshots is not None:
            self.snapshots += observation.snapshots

    def to_row(self, period: str) -> AggregateRow:
        return AggregateRow(
            period=period,
            pool_id=self.pool_id,
            pool_address=self.pool_address,
            avg_tvl_usd=mean(self.tvl),
            total_volume_usd=sum(self.volume),
            avg_apr_7d=mean(self.apr),
            avg_reserve_0=mean(self.reserve_0),
            avg_reserve_1=mean(self.reserve_1),
            avg_total_share=mean(self.total_share),
            snapshot_count=self.snapshots,
        )


class RollupSummary:
    """Aggregated rows for one period.

    Attributes
    ----------
    period : str
        Period label the rows belong to
    rows : list[AggregateRow]
        One row per pool, in first-seen order
    input_rows : int
        Number of observations folded in
    """

    def __init__(self, period: str) -> None:
        self.period = period
        self.rows: list[AggregateRow] = []
        self.input_rows = 0

    @property
    def pool_count(self) -> int:
        return len(self.rows)

    def lines(self, *, include_volume: bool = False) -> list[str]:
        """Fixed-format per-pool summary lines for console output.

        Parameters
        ----------
        include_volume
            Append the summed volume to each line

        Returns
        -------
        list[str]
            One line per pool
        """
        result = []
        for row in self.rows:
            line = f"  {row.pool_id:<20} Avg TVL: ${row.avg_tvl_usd or 0:>10.2f}"
            if include_volume:
                line += f"  Total Vol: ${row.total_volume_usd or 0:.2f}"
            result.append(line)
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "period": self.period,
            "pool_count": self.pool_count,
            "input_rows": self.input_rows,
            "pools": [row.pool_id for row in self.rows],
        }


def aggregate(observations: Iterable[Observation], period: str) -> RollupSummary:
    """Aggregate observations into one row per pool.

    Parameters
    ----------
    observations
        Observations from the lower tier, in file order
    period
        Label of the target period

    Returns
    -------
    RollupSummary
        Summary holding one ``AggregateRow`` per distinct pool id

    Example:
        >>> rows = store.read("daily", "day-1") + store.read("daily", "day-2")
        >>> summary = aggregate((r.to_observation() for r in rows), "2024-W05")
        >>> summary.rows[0].snapshot_count
        2
    """
    pools: dict[str, PoolAccumulator] = {}
    summary = RollupSummary(period)

    for observation in observations:
        summary.input_rows += 1
        accumulator = pools.get(observation.pool_id)
        if accumulator is None:
            accumulator = PoolAccumulator(
                pool_id=observation.pool_id,
                pool_address=observation.pool_address,
            )
            pools[observation.pool_id] = accumulator
        accumulator.add(observation)

    summary.rows = [acc.to_row(period) for acc in pools.values()]
    return summary
