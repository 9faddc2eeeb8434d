"""Period labels for the four storage tiers.

Compute the day-of-week slot, ISO week, month and year keys a timestamp
belongs to, and the approximate week-to-month mapping used when rolling
weekly files up into a month.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime

import pytz

__all__ = [
    "PeriodKeys",
    "WEEKS_PER_MONTH",
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
]

WEEKS_PER_MONTH = 4.33

_WEEK_LABEL_RE = re.compile(r"(\d{4})-W(\d{2})")


@dataclass(frozen=True)
class PeriodKeys:
    """Period keys a single timestamp belongs to."""

    day_slot: int
    week: str
    month: str
    year: str


def current_time(timezone_name: str = "UTC") -> datetime:
    """Get the current time in a timezone.

    Parameters
    ----------
    timezone_name
        IANA timezone name (e.g., "UTC", "Europe/Brussels")

    Returns
    -------
    datetime
        Timezone-aware current time
    """
    return datetime.now(pytz.timezone(timezone_name))


def day_of_week_slot(dt: date) -> int:
    """Day-of-week slot, Monday=1 through Sunday=7."""
    return dt.isoweekday()


def iso_week(dt: date) -> tuple[int, int]:
    """ISO 8601 year and week number.

    Week 1 is the week holding the year's first Thursday, so the first days
    of January can belong to the previous year's last week.

    Parameters
    ----------
    dt
        Date or datetime

    Returns
    -------
    tuple[int, int]
        (iso_year, week)
    """
    iso_year, week, _ = dt.isocalendar()
    return iso_year, week


def week_label(dt: date) -> str:
    """Weekly period label, e.g. ``2024-W05``.

    Examples
    --------
    >>> week_label(date(2024, 1, 1))
    '2024-W01'
    >>> week_label(date(2023, 1, 1))
    '2022-W52'
    """
    iso_year, week = iso_week(dt)
    return f"{iso_year}-W{week:02d}"


def month_label(year: int, month: int) -> str:
    """Monthly period label, e.g. ``2024-02``."""
    return f"{year}-{month:02d}"


def year_label(year: int) -> str:
    """Yearly period label, e.g. ``2023``."""
    return f"{year}"


def previous_month(dt: date) -> tuple[int, int]:
    """Year and month immediately preceding ``dt``'s month."""
    if dt.month == 1:
        return dt.year - 1, 12
    return dt.year, dt.month - 1


def previous_year(dt: date) -> int:
    """Year immediately preceding ``dt``'s year."""
    return dt.year - 1


def period_keys(dt: date) -> PeriodKeys:
    """Compute all period keys for a timestamp.

    Parameters
    ----------
    dt
        Timestamp to label

    Returns
    -------
    PeriodKeys
        Day slot plus week, month and year labels
    """
    return PeriodKeys(
        day_slot=day_of_week_slot(dt),
        week=week_label(dt),
        month=month_label(dt.year, dt.month),
        year=year_label(dt.year),
    )


def parse_week_label(text: str) -> tuple[int, int] | None:
    """Extract (year, week) from a weekly identifier such as ``2024-W05``.

    Returns None when the text holds no week label.
    """
    match = _WEEK_LABEL_RE.search(text)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def estimate_month_for_week(week: int) -> int:
    """Approximate calendar month of an ISO week number.

    ``ceil(week / 4.33)``: weeks 1-4 map to January, 5-8 to February and so
    on. Weeks straddling a month boundary can land in the wrong month.
    """
    return math.ceil(week / WEEKS_PER_MONTH)


def week_in_month(label: str, year: int, month: int) -> bool:
    """Whether a weekly identifier is rolled into ``year``-``month``.

    Parameters
    ----------
    label
        Weekly identifier (e.g. ``2024-W05``)
    year
        Target year; the label's year must match it
    month
        Target month (1-12)

    Returns
    -------
    bool
        True when the estimated month of the label's week equals ``month``
    """
    parsed = parse_week_label(label)
    if parsed is None:
        return False

    label_year, week = parsed
    return label_year == year and estimate_month_for_week(week) == month
