"""
Errors surfaced to cost-tracking API callers.

Every subclass carries the HTTP status it maps to. main.py renders them
as {"error": message}; raw store errors raised outside a report (SQLAlchemy
or connection errors) become a 500 with STORE_UNAVAILABLE.
"""

from __future__ import annotations

from fastapi import status

STORE_UNAVAILABLE = "Cost tracking store unavailable"


class CostTrackingError(Exception):
    """Base class for errors returned to the caller as {"error": ...}."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidPeriodError(CostTrackingError):
    """The `period` query parameter is missing or not day/week/month."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self) -> None:
        super().__init__("Invalid period. Must be: day, week, or month")


class InvalidDateRangeError(CostTrackingError):
    """startDate is after endDate."""

    status_code = status.HTTP_400_BAD_REQUEST


class ReportError(CostTrackingError):
    """A report query failed or timed out. No partial data is returned."""
