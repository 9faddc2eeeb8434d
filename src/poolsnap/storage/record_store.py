"""Flat-file storage for the daily, weekly, monthly and yearly tiers.

Each tier is a directory of ``<identifier>.csv`` files under the storage
root. Files are header-first, comma-delimited, with ``pool_id`` wrapped in
double quotes. There is no escaping: a comma or quote inside a value breaks
the row, so identifiers must not contain them.
"""

from __future__ import annotations

import tempfile
from decimal import ROUND_HALF_UP, Context, Decimal
from pathlib import Path
from typing import Any, Literal, Sequence, Union

from ..observability.loguru_config import get_logger
from .records import AGGREGATE_HEADER, DAILY_HEADER, AggregateRow, SnapshotRow

__all__ = [
    "RecordStore",
    "RecordStoreError",
    "TIERS",
    "Tier",
    "decode_rows",
    "encode_aggregate_row",
    "encode_snapshot_row",
    "parse_delimited",
    "to_fixed",
]

Tier = Literal["daily", "weekly", "monthly", "yearly"]

TIERS: tuple[Tier, ...] = ("daily", "weekly", "monthly", "yearly")

Row = Union[SnapshotRow, AggregateRow]

logger = get_logger("storage")

# wide enough to quantize any finite float without signalling
_WIDE = Context(prec=400)


class RecordStoreError(Exception):
    """Raised when a tier file cannot be read or written."""

    pass


def parse_delimited(content: str) -> list[dict[str, str]]:
    """Parse header-first delimited text into field-keyed rows.

    One leading and one trailing double quote are stripped from every cell;
    missing trailing cells decode as empty strings.

    Parameters
    ----------
    content
        File contents

    Returns
    -------
    list[dict[str, str]]
        One mapping per data line (empty when there is no data line)
    """
    lines = content.strip().split("\n")
    if len(lines) < 2:
        return []

    headers = [h.strip() for h in lines[0].split(",")]
    rows = []

    for line in lines[1:]:
        values = line.split(",")
        row = {}
        for idx, header in enumerate(headers):
            value = values[idx] if idx < len(values) else ""
            row[header] = _strip_quotes(value)
        rows.append(row)

    return rows


def _strip_quotes(value: str) -> str:
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


def _quote(value: str) -> str:
    return f'"{value}"'


def to_fixed(value: float | None, places: int) -> str:
    """Render a number with a fixed count of decimals.

    The exact binary value is rounded with ties away from zero, so 0.125
    gives 0.13 and 100.5 gives 101, while 1.005 (stored just below) gives
    1.00. A missing value renders as zero.
    """
    quantum = Decimal(1).scaleb(-places)
    exact = Decimal(value or 0)
    return format(exact.quantize(quantum, rounding=ROUND_HALF_UP, context=_WIDE), "f")


def encode_snapshot_row(row: SnapshotRow) -> str:
    """Serialize a daily row in ``DAILY_HEADER`` order."""
    return ",".join(
        [
            row.date,
            row.time,
            _quote(row.pool_id),
            row.pool_address,
            row.tvl_usd,
            row.volume_24h_usd,
            row.volume_7d_usd,
            row.apr_7d,
            row.reserve_0,
            row.reserve_1,
            row.total_share,
        ]
    )


def encode_aggregate_row(row: AggregateRow) -> str:
    """Serialize an aggregate row in ``AGGREGATE_HEADER`` order.

    Monetary fields keep two decimals, the APR four, reserves and share
    none. Missing values are written as zero.
    """
    return ",".join(
        [
            row.period,
            _quote(row.pool_id),
            row.pool_address,
            to_fixed(row.avg_tvl_usd, 2),
            to_fixed(row.total_volume_usd, 2),
            to_fixed(row.avg_apr_7d, 4),
            to_fixed(row.avg_reserve_0, 0),
            to_fixed(row.avg_reserve_1, 0),
            to_fixed(row.avg_total_share, 0),
            str(row.snapshot_count or 0),
        ]
    )


def decode_rows(tier: Tier, fields: list[dict[str, str]]) -> list[Any]:
    """Decode field-keyed rows into the tier's typed records."""
    if tier == "daily":
        return [SnapshotRow.from_fields(f) for f in fields]
    return [AggregateRow.from_fields(f) for f in fields]


class RecordStore:
    """Tiered CSV storage rooted at a data directory.

    Example:
        >>> store = RecordStore(Path("data"))
        >>> store.ensure_dirs()
        >>> store.list_periods("daily", prefix="day-")
        ['day-1', 'day-2']
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def tier_dir(self, tier: Tier) -> Path:
        if tier not in TIERS:
            raise ValueError(f"Unknown tier: {tier}")
        return self.root / tier

    def path_for(self, tier: Tier, identifier: str) -> Path:
        """Path of the file holding ``identifier`` in ``tier``."""
        return self.tier_dir(tier) / f"{identifier}.csv"

    def ensure_dirs(self) -> None:
        """Create missing tier directories and report existing ones."""
        for tier in TIERS:
            directory = self.tier_dir(tier)
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created directory: {directory}")
            else:
                count = sum(1 for p in directory.iterdir() if p.is_file())
                logger.info(f"Directory {directory} exists with {count} files")

    def list_periods(self, tier: Tier, prefix: str | None = None) -> list[str]:
        """List identifiers stored in a tier.

        Parameters
        ----------
        tier
            Tier to list
        prefix
            Only return identifiers starting with this prefix

        Returns
        -------
        list[str]
            Sorted identifiers (file names without ``.csv``); empty when the
            tier directory does not exist
        """
        directory = self.tier_dir(tier)
        if not directory.is_dir():
            return []

        identifiers = sorted(p.stem for p in directory.glob("*.csv") if p.is_file())
        if prefix is not None:
            identifiers = [i for i in identifiers if i.startswith(prefix)]
        return identifiers

    def read_fields(self, tier: Tier, identifier: str) -> list[dict[str, str]]:
        """Read a tier file as field-keyed string rows.

        Raises
        ------
        RecordStoreError
            If the file is missing or unreadable
        """
        path = self.path_for(tier, identifier)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise RecordStoreError(f"File not found: {path}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise RecordStoreError(f"Failed to read {path}: {exc}") from exc

        return parse_delimited(content)

    def read(self, tier: Tier, identifier: str) -> list[Any]:
        """Read a tier file as typed rows.

        Returns ``SnapshotRow`` objects for the daily tier and
        ``AggregateRow`` objects for the others.
        """
        rows = decode_rows(tier, self.read_fields(tier, identifier))
        for row in rows:
            if row.invalid_fields:
                logger.debug(
                    f"Ignoring unparseable values in {tier}/{identifier} "
                    f"for pool {row.pool_id}: {', '.join(row.invalid_fields)}"
                )
        return rows

    def write(self, tier: Tier, identifier: str, rows: Sequence[Row]) -> Path:
        """Overwrite a tier file with ``rows``.

        The write goes through a temporary file in the same directory and
        a rename, so readers never see a partial file.

        Returns
        -------
        Path
            Written file

        Raises
        ------
        RecordStoreError
            If the write fails
        """
        path = self.path_for(tier, identifier)

        if tier == "daily":
            header = DAILY_HEADER
            lines = [encode_snapshot_row(r) for r in rows]  # type: ignore[arg-type]
        else:
            header = AGGREGATE_HEADER
            lines = [encode_aggregate_row(r) for r in rows]  # type: ignore[arg-type]

        content = ",".join(header) + "\n" + "".join(line + "\n" for line in lines)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.tmp",
                delete=False,
            ) as tmp_file:
                tmp_file.write(content)
                tmp_file.flush()
                tmp_path = Path(tmp_file.name)

            tmp_path.replace(path)
        except OSError as exc:
            raise RecordStoreError(f"Failed to write {path}: {exc}") from exc

        logger.debug(f"Wrote {len(lines)} rows to {path}")
        return path
