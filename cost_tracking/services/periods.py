"""
Time bucketing for period reports.

Bucket labels are computed in SQL so grouping happens in the database:
  day   → YYYY-MM-DD
  week  → YYYY-Www   (ISO 8601 week-numbering year and week)
  month → YYYY-MM

All labels are UTC. PostgreSQL renders them with to_char(); SQLite has no
ISO-week formatter on older builds, so the week label is derived from the
Thursday of the ISO week (which always lies in the ISO year).
"""

from __future__ import annotations

import enum

from sqlalchemy import Integer, cast, func, literal_column
from sqlalchemy.sql.elements import ColumnElement


class Period(str, enum.Enum):
    """Report bucket size."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


VALID_PERIODS: tuple[str, ...] = tuple(p.value for p in Period)

_PG_FORMATS: dict[Period, str] = {
    Period.DAY: "YYYY-MM-DD",
    Period.WEEK: 'IYYY-"W"IW',
    Period.MONTH: "YYYY-MM",
}

_SQLITE_FORMATS: dict[Period, str] = {
    Period.DAY: "%Y-%m-%d",
    Period.MONTH: "%Y-%m",
}


def parse_period(value: str | None) -> Period | None:
    """Return the Period for `value`, or None if it is not one."""
    if value is None:
        return None
    try:
        return Period(value.strip().lower())
    except ValueError:
        return None


def coerce_period(value: str | Period | None) -> Period:
    """Like parse_period, but unknown or missing values fall back to day."""
    if isinstance(value, Period):
        return value
    return parse_period(value) or Period.DAY


def period_label(
    timestamp: ColumnElement,
    period: Period,
    dialect_name: str,
) -> ColumnElement[str]:
    """
    Build a SQL expression that renders `timestamp` as a bucket label.

    Args:
        timestamp:    A timestamp column (stored in UTC).
        period:       Bucket size.
        dialect_name: Name of the bound dialect ("postgresql", "sqlite").
    """
    if dialect_name == "sqlite":
        return _sqlite_label(timestamp, period)
    # Constants are inlined: Postgres only accepts the SELECT expression in
    # GROUP BY when both render identically, and bind params get new numbers.
    utc = func.timezone(literal_column("'UTC'"), timestamp)
    return func.to_char(utc, literal_column(f"'{_PG_FORMATS[period]}'"))


def _sqlite_label(timestamp: ColumnElement, period: Period) -> ColumnElement[str]:
    if period is not Period.WEEK:
        return func.strftime(_SQLITE_FORMATS[period], timestamp)

    # Step back 3 days, then forward to the next Thursday (weekday 4).
    thursday = func.date(timestamp, "-3 days", "weekday 4")
    day_of_year = cast(func.strftime("%j", thursday), Integer)
    week = (day_of_year + 6) // 7
    return func.printf("%s-W%02d", func.strftime("%Y", thursday), week)
