"""Typed rows for the daily and aggregate tiers.

Rows are decoded from the field-keyed cells of a delimited file. Daily
numeric cells keep their text; aggregate numeric cells that are empty or
unparseable decode as None. Unparseable cell names are kept in
``invalid_fields`` so callers can report them.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

__all__ = [
    "AGGREGATE_HEADER",
    "AggregateRow",
    "DAILY_HEADER",
    "Observation",
    "SnapshotRow",
    "format_cell",
    "parse_count",
    "parse_number",
]

DAILY_HEADER = (
    "date",
    "time",
    "pool_id",
    "pool_address",
    "tvl_usd",
    "volume_24h_usd",
    "volume_7d_usd",
    "apr_7d",
    "reserve_0",
    "reserve_1",
    "total_share",
)

AGGREGATE_HEADER = (
    "period",
    "pool_id",
    "pool_address",
    "avg_tvl_usd",
    "total_volume_usd",
    "avg_apr_7d",
    "avg_reserve_0",
    "avg_reserve_1",
    "avg_total_share",
    "snapshot_count",
)

_DAILY_NUMERIC = DAILY_HEADER[4:]
_AGGREGATE_NUMERIC = AGGREGATE_HEADER[3:9]

_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_COUNT_RE = re.compile(r"[+-]?\d+")


def parse_number(value: str | None) -> tuple[float | None, bool]:
    """Parse a numeric cell.

    Returns
    -------
    tuple[float | None, bool]
        (value, ok). Empty cells give (None, True); unparseable cells give
        (None, False). Only plain decimal literals are accepted, so padded or
        underscored text is unparseable.
    """
    if value is None or value == "":
        return None, True
    if not _NUMBER_RE.fullmatch(value):
        return None, False
    number = float(value)
    if not math.isfinite(number):
        return None, False
    return number, True


def parse_count(value: str | None) -> tuple[int | None, bool]:
    """Parse an integer count cell, same contract as ``parse_number``."""
    if value is None or value == "":
        return None, True
    if _COUNT_RE.fullmatch(value):
        return int(value), True
    number, ok = parse_number(value)
    if number is None:
        return None, False
    return int(number), ok


def format_cell(value: Any) -> str:
    """Render a raw upstream value for a daily cell (None becomes empty).

    Strings and integers are kept verbatim. Floats use their shortest
    round-trip digits in plain notation from 1e-6 up to 1e21, the way JSON
    producers print them.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _float_text(value)
    return str(value)


def _float_text(value: float) -> str:
    if value == 0:
        return "0"
    if not math.isfinite(value):
        return str(value)

    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    text = "".join(str(d) for d in digits)
    size = len(text)
    point = exponent + size

    if size <= point <= 21:
        text += "0" * (point - size)
    elif 0 < point <= 21:
        text = text[:point] + "." + text[point:]
    elif -6 < point <= 0:
        text = "0." + "0" * -point + text
    else:
        mantissa = text[0] + ("." + text[1:] if size > 1 else "")
        text = f"{mantissa}e{point - 1:+d}"

    return "-" + text if sign else text


@dataclass
class Observation:
    """One pool's values as seen by the aggregator.

    ``snapshots`` is None for a raw daily observation (it counts once) and
    the child row's own count when re-aggregating aggregates.
    """

    pool_id: str
    pool_address: str
    tvl: float | None = None
    volume: float | None = None
    apr: float | None = None
    reserve_0: float | None = None
    reserve_1: float | None = None
    total_share: float | None = None
    snapshots: int | None = None
    raw: bool = True


@dataclass
class SnapshotRow:
    """A single pool captured by a daily fetch.

    Numeric cells keep the text the API sent, so a snapshot is written back
    exactly as captured. ``number`` parses a cell when it is aggregated.
    """

    date: str
    time: str
    pool_id: str
    pool_address: str
    tvl_usd: str = ""
    volume_24h_usd: str = ""
    volume_7d_usd: str = ""
    apr_7d: str = ""
    reserve_0: str = ""
    reserve_1: str = ""
    total_share: str = ""
    invalid_fields: tuple[str, ...] = field(default=(), compare=False)

    @classmethod
    def from_fields(cls, fields: Mapping[str, str]) -> SnapshotRow:
        """Decode a field-keyed daily row."""
        values = {name: fields.get(name, "") for name in _DAILY_NUMERIC}
        invalid = [name for name, text in values.items() if not parse_number(text)[1]]

        return cls(
            date=fields.get("date", ""),
            time=fields.get("time", ""),
            pool_id=fields.get("pool_id", ""),
            pool_address=fields.get("pool_address", ""),
            invalid_fields=tuple(invalid),
            **values,
        )

    def number(self, name: str) -> float | None:
        """Parsed value of a numeric cell, None when empty or unparseable."""
        value, _ = parse_number(getattr(self, name))
        return value

    def to_observation(self) -> Observation:
        return Observation(
            pool_id=self.pool_id,
            pool_address=self.pool_address,
            tvl=self.number("tvl_usd"),
            volume=self.number("volume_24h_usd"),
            apr=self.number("apr_7d"),
            reserve_0=self.number("reserve_0"),
            reserve_1=self.number("reserve_1"),
            total_share=self.number("total_share"),
            raw=True,
        )


@dataclass
class AggregateRow:
    """One pool's summary for a weekly, monthly or yearly period."""

    period: str
    pool_id: str
    pool_address: str
    avg_tvl_usd: float | None = None
    total_volume_usd: float | None = None
    avg_apr_7d: float | None = None
    avg_reserve_0: float | None = None
    avg_reserve_1: float | None = None
    avg_total_share: float | None = None
    snapshot_count: int | None = None
    invalid_fields: tuple[str, ...] = field(default=(), compare=False)

    @classmethod
    def from_fields(cls, fields: Mapping[str, str]) -> AggregateRow:
        """Decode a field-keyed aggregate row."""
        values: dict[str, Any] = {}
        invalid = []
        for name in _AGGREGATE_NUMERIC:
            value, ok = parse_number(fields.get(name, ""))
            values[name] = value
            if not ok:
                invalid.append(name)

        count, ok = parse_count(fields.get("snapshot_count", ""))
        if not ok:
            invalid.append("snapshot_count")

        return cls(
            period=fields.get("period", ""),
            pool_id=fields.get("pool_id", ""),
            pool_address=fields.get("pool_address", ""),
            snapshot_count=count,
            invalid_fields=tuple(invalid),
            **values,
        )

    def to_observation(self) -> Observation:
        return Observation(
            pool_id=self.pool_id,
            pool_address=self.pool_address,
            tvl=self.avg_tvl_usd,
            volume=self.total_volume_usd,
            apr=self.avg_apr_7d,
            reserve_0=self.avg_reserve_0,
            reserve_1=self.avg_reserve_1,
            total_share=self.avg_total_share,
            snapshots=self.snapshot_count,
            raw=False,
        )
