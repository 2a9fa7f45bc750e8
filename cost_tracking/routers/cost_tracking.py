"""
Cost-tracking router — admin-only spend reports over billing transactions.

Endpoints (all require an active admin API key):
  GET /cost-tracking/summary               — totals + last 7 / 30 days
  GET /cost-tracking/by-agent              — per agent, with display names
  GET /cost-tracking/by-period             — per day / week / month
  GET /cost-tracking/by-agent-and-period   — per agent per bucket (raw ids)

startDate / endDate are calendar dates (YYYY-MM-DD), both inclusive:
startDate starts at 00:00 UTC, endDate runs to the end of that UTC day.

Errors come back as {"error": message}: 400 for a bad period or date
range, 500 for any failure while building the report.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Awaitable
from typing import Annotated, TypeVar

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cost_tracking.auth.dependencies import AuthContext, require_admin
from cost_tracking.core.config import settings
from cost_tracking.core.database import get_db_session
from cost_tracking.core.errors import (
    CostTrackingError,
    InvalidDateRangeError,
    InvalidPeriodError,
    ReportError,
)
from cost_tracking.schemas.cost_tracking import (
    CostByAgentAndPeriodOut,
    CostByAgentOut,
    CostByPeriodOut,
    CostSummaryOut,
)
from cost_tracking.services.cost_tracking import CostAggregator
from cost_tracking.services.periods import Period, parse_period

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Cost Tracking"])

T = TypeVar("T")


def get_cost_aggregator(
    session: AsyncSession = Depends(get_db_session),
) -> CostAggregator:
    """One aggregator per request, bound to the request's session."""
    return CostAggregator(session, logger=logger)


Aggregator = Annotated[CostAggregator, Depends(get_cost_aggregator)]
Admin = Annotated[AuthContext, Depends(require_admin)]

StartDate = Annotated[
    datetime.date | None,
    Query(alias="startDate", description="First day included (YYYY-MM-DD, UTC)"),
]
EndDate = Annotated[
    datetime.date | None,
    Query(alias="endDate", description="Last day included (YYYY-MM-DD, UTC)"),
]
AgentId = Annotated[
    str | None,
    Query(alias="agentId", description="Agent id or part of an agent name"),
]
PeriodParam = Annotated[
    str | None,
    Query(description="Bucket size: day, week or month", examples=["day"]),
]


# ── Helpers ─────────────────────────────────────────────────
def _window(
    start_date: datetime.date | None,
    end_date: datetime.date | None,
) -> tuple[datetime.datetime | None, datetime.datetime | None]:
    """Turn inclusive calendar dates into inclusive UTC datetimes."""
    if start_date and end_date and start_date > end_date:
        raise InvalidDateRangeError("startDate must be on or before endDate")

    utc = datetime.timezone.utc
    start = (
        datetime.datetime.combine(start_date, datetime.time.min, tzinfo=utc)
        if start_date
        else None
    )
    end = (
        datetime.datetime.combine(end_date, datetime.time.max, tzinfo=utc)
        if end_date
        else None
    )
    return start, end


def _require_period(value: str | None) -> Period:
    period = parse_period(value)
    if period is None:
        raise InvalidPeriodError()
    return period


async def _run_report(report: Awaitable[T], name: str) -> T:
    """
    Await a report under the request timeout.

    Reports either succeed completely or fail as a ReportError; there
    are no partial results.
    """
    try:
        async with asyncio.timeout(settings.REPORT_TIMEOUT_SECONDS):
            return await report
    except CostTrackingError:
        raise
    except TimeoutError as exc:
        logger.error(
            "Cost report %s timed out after %.1fs",
            name,
            settings.REPORT_TIMEOUT_SECONDS,
        )
        raise ReportError("Cost report timed out") from exc
    except Exception as exc:
        logger.exception("Cost report %s failed", name)
        raise ReportError(f"Failed to build cost report: {name}") from exc


# ── 1. Summary ──────────────────────────────────────────────
@router.get(
    "/summary",
    response_model=CostSummaryOut,
    summary="Overall cost summary",
    description=(
        "Total spend, transaction count and distinct agents/users in the "
        "window, plus spend over the last 7 and 30 days measured from now."
    ),
)
async def get_summary(
    aggregator: Aggregator,
    _admin: Admin,
    start_date: StartDate = None,
    end_date: EndDate = None,
) -> CostSummaryOut:
    start, end = _window(start_date, end_date)
    return await _run_report(
        aggregator.get_cost_summary(start=start, end=end),
        "summary",
    )


# ── 2. By agent ─────────────────────────────────────────────
@router.get(
    "/by-agent",
    response_model=list[CostByAgentOut],
    summary="Cost breakdown per agent",
    description=(
        "Spend per agent id, most expensive first. Ephemeral agent ids are "
        "mapped to a persisted agent's name when one can be inferred."
    ),
)
async def get_by_agent(
    aggregator: Aggregator,
    _admin: Admin,
    agent_id: AgentId = None,
    start_date: StartDate = None,
    end_date: EndDate = None,
) -> list[CostByAgentOut]:
    start, end = _window(start_date, end_date)
    return await _run_report(
        aggregator.get_cost_by_agent(agent_id=agent_id, start=start, end=end),
        "by-agent",
    )


# ── 3. By period ────────────────────────────────────────────
@router.get(
    "/by-period",
    response_model=list[CostByPeriodOut],
    summary="Cost breakdown per time period",
    description="Spend per UTC day, ISO week (YYYY-Www) or month, oldest first.",
)
async def get_by_period(
    aggregator: Aggregator,
    _admin: Admin,
    period: PeriodParam = None,
    agent_id: AgentId = None,
    start_date: StartDate = None,
    end_date: EndDate = None,
) -> list[CostByPeriodOut]:
    bucket = _require_period(period)
    start, end = _window(start_date, end_date)
    return await _run_report(
        aggregator.get_cost_by_period(bucket, agent_id=agent_id, start=start, end=end),
        "by-period",
    )


# ── 4. By agent and period ──────────────────────────────────
@router.get(
    "/by-agent-and-period",
    response_model=list[CostByAgentAndPeriodOut],
    summary="Cost breakdown per agent per time period",
    description=(
        "Spend per (agent id, period) ordered by period, then cost. "
        "Agent ids are returned raw, without name resolution."
    ),
)
async def get_by_agent_and_period(
    aggregator: Aggregator,
    _admin: Admin,
    period: PeriodParam = None,
    start_date: StartDate = None,
    end_date: EndDate = None,
) -> list[CostByAgentAndPeriodOut]:
    bucket = _require_period(period)
    start, end = _window(start_date, end_date)
    return await _run_report(
        aggregator.get_cost_by_agent_and_period(bucket, start=start, end=end),
        "by-agent-and-period",
    )
