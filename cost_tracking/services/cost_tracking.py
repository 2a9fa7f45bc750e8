"""
Cost aggregation over billing transactions.

Four read-only reports, each scoped to an optional inclusive
[start, end] window on Transaction.created_at:

  get_cost_summary              — totals + trailing 7/30 day totals
  get_cost_by_agent             — per agent id, with resolved display names
  get_cost_by_period            — per day / ISO week / month bucket
  get_cost_by_agent_and_period  — per (agent id, bucket), raw ids only

Only transactions with estimated_cost_usd > 0 are counted, everywhere.
Grouping and summing happen in SQL; Python only rounds, joins the
distinct model/provider lists and attaches names.

Costs are rounded half-up to 6 decimal places.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from sqlalchemy import case, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from cost_tracking.models.agent import Agent
from cost_tracking.models.transaction import Transaction
from cost_tracking.schemas.cost_tracking import (
    CostByAgentAndPeriodOut,
    CostByAgentOut,
    CostByPeriodOut,
    CostSummaryOut,
    WindowTotals,
)
from cost_tracking.services.agent_names import AgentNameResolver
from cost_tracking.services.periods import Period, coerce_period, period_label

_SIX_PLACES = Decimal("0.000001")


def round_cost(value: Any) -> float:
    """Round a cost (Decimal, float, int or None) half-up to 6 decimals."""
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(_SIX_PLACES, rounding=ROUND_HALF_UP))


class CostAggregator:
    """
    Cost reports over one request's session.

    Args:
        session: Async DB session; nothing is ever written through it.
        logger:  Logger for this request. Defaults to the module logger.
    """

    def __init__(
        self,
        session: AsyncSession,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session = session
        self.logger = logger or logging.getLogger(__name__)

    # ── 1. Summary ──────────────────────────────────────────
    async def get_cost_summary(
        self,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
        now: datetime.datetime | None = None,
    ) -> CostSummaryOut:
        """
        Totals for the window plus trailing 7 and 30 day totals.

        The trailing windows are measured back from `now` (default: the
        moment of the call), not from `end`, and are still clipped by the
        report window. All three figures come from one aggregate query.
        """
        now = now or datetime.datetime.now(datetime.timezone.utc)
        cost = Transaction.estimated_cost_usd
        in_last_7 = Transaction.created_at >= now - datetime.timedelta(days=7)
        in_last_30 = Transaction.created_at >= now - datetime.timedelta(days=30)

        stmt = select(
            func.sum(cost).label("total_cost"),
            func.count().label("total_transactions"),
            func.count(distinct(func.nullif(Transaction.agent_id, ""))).label("unique_agents"),
            func.count(distinct(Transaction.user)).label("unique_users"),
            func.sum(case((in_last_7, cost), else_=0)).label("last_7_cost"),
            func.count(case((in_last_7, 1))).label("last_7_transactions"),
            func.sum(case((in_last_30, cost), else_=0)).label("last_30_cost"),
            func.count(case((in_last_30, 1))).label("last_30_transactions"),
        ).where(*self._window_filters(start, end))

        row = (await self.session.execute(stmt)).one()

        return CostSummaryOut(
            total_cost=round_cost(row.total_cost),
            total_transactions=row.total_transactions or 0,
            unique_agents=row.unique_agents or 0,
            unique_users=row.unique_users or 0,
            last_7_days=WindowTotals(
                total_cost=round_cost(row.last_7_cost),
                total_transactions=row.last_7_transactions or 0,
            ),
            last_30_days=WindowTotals(
                total_cost=round_cost(row.last_30_cost),
                total_transactions=row.last_30_transactions or 0,
            ),
        )

    # ── 2. By agent ─────────────────────────────────────────
    async def get_cost_by_agent(
        self,
        agent_id: str | None = None,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> list[CostByAgentOut]:
        """Per-agent totals, most expensive first, with display names."""
        filters = self._window_filters(start, end) + self._has_agent()
        if agent_id:
            filters.append(await self._agent_filter(agent_id))

        total_cost = func.sum(Transaction.estimated_cost_usd).label("total_cost")
        stmt = (
            select(
                Transaction.agent_id,
                total_cost,
                func.count().label("total_transactions"),
                self._input_tokens(),
            )
            .where(*filters)
            .group_by(Transaction.agent_id)
            .order_by(total_cost.desc(), Transaction.agent_id.asc())
        )
        rows = (await self.session.execute(stmt)).all()
        if not rows:
            return []

        models, providers = await self._models_and_providers(filters)

        resolver = AgentNameResolver(self.session, logger=self.logger)
        names = await resolver.resolve(row.agent_id for row in rows)

        results = []
        for row in rows:
            total = Decimal(str(row.total_cost))
            results.append(
                CostByAgentOut(
                    agent_id=row.agent_id,
                    agent_name=names.get(row.agent_id, row.agent_id),
                    total_cost=round_cost(total),
                    total_transactions=row.total_transactions,
                    total_input_tokens=int(row.total_input_tokens or 0),
                    avg_cost_per_transaction=round_cost(total / row.total_transactions),
                    models=sorted(models.get(row.agent_id, ())),
                    providers=sorted(providers.get(row.agent_id, ())),
                )
            )
        return results

    # ── 3. By period ────────────────────────────────────────
    async def get_cost_by_period(
        self,
        period: str | Period | None = Period.DAY,
        agent_id: str | None = None,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> list[CostByPeriodOut]:
        """
        Totals per time bucket, oldest bucket first.

        Unknown periods fall back to day. With an agent filter the agent
        count is reported as 1: the filter names one logical agent even
        when it matches several ids.
        """
        bucket = self._bucket(coerce_period(period))
        filters = self._window_filters(start, end)
        if agent_id:
            filters.append(await self._agent_filter(agent_id))

        stmt = (
            select(
                bucket,
                func.sum(Transaction.estimated_cost_usd).label("total_cost"),
                func.count().label("total_transactions"),
                self._input_tokens(),
                func.count(distinct(func.nullif(Transaction.agent_id, ""))).label("agent_count"),
                func.count(distinct(Transaction.model)).label("model_count"),
            )
            .where(*filters)
            .group_by(bucket)
            .order_by(bucket.asc())
        )
        rows = (await self.session.execute(stmt)).all()

        return [
            CostByPeriodOut(
                period=row.period,
                total_cost=round_cost(row.total_cost),
                total_transactions=row.total_transactions,
                total_input_tokens=int(row.total_input_tokens or 0),
                agent_count=1 if agent_id else row.agent_count,
                model_count=row.model_count,
            )
            for row in rows
        ]

    # ── 4. By agent and period ──────────────────────────────
    async def get_cost_by_agent_and_period(
        self,
        period: str | Period | None = Period.DAY,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> list[CostByAgentAndPeriodOut]:
        """Totals per (agent id, bucket): buckets ascending, cost descending within one."""
        bucket = self._bucket(coerce_period(period))
        total_cost = func.sum(Transaction.estimated_cost_usd).label("total_cost")

        stmt = (
            select(
                Transaction.agent_id,
                bucket,
                total_cost,
                func.count().label("total_transactions"),
                self._input_tokens(),
            )
            .where(*self._window_filters(start, end), *self._has_agent())
            .group_by(Transaction.agent_id, bucket)
            .order_by(bucket.asc(), total_cost.desc(), Transaction.agent_id.asc())
        )
        rows = (await self.session.execute(stmt)).all()

        return [
            CostByAgentAndPeriodOut(
                agent_id=row.agent_id,
                period=row.period,
                total_cost=round_cost(row.total_cost),
                total_transactions=row.total_transactions,
                total_input_tokens=int(row.total_input_tokens or 0),
            )
            for row in rows
        ]

    # ── Internal helpers ────────────────────────────────────

    @staticmethod
    def _window_filters(
        start: datetime.datetime | None,
        end: datetime.datetime | None,
    ) -> list[ColumnElement[bool]]:
        filters: list[ColumnElement[bool]] = [
            Transaction.estimated_cost_usd.is_not(None),
            Transaction.estimated_cost_usd > 0,
        ]
        if start is not None:
            filters.append(Transaction.created_at >= start)
        if end is not None:
            filters.append(Transaction.created_at <= end)
        return filters

    @staticmethod
    def _has_agent() -> list[ColumnElement[bool]]:
        return [Transaction.agent_id.is_not(None), Transaction.agent_id != ""]

    @staticmethod
    def _input_tokens() -> ColumnElement[int]:
        return func.coalesce(
            func.sum(func.abs(Transaction.raw_amount)), 0
        ).label("total_input_tokens")

    def _bucket(self, period: Period) -> ColumnElement[str]:
        dialect_name = self.session.get_bind().dialect.name
        return period_label(Transaction.created_at, period, dialect_name).label("period")

    async def _agent_filter(self, agent_id: str) -> ColumnElement[bool]:
        """
        Turn a user-supplied agent filter into a WHERE clause.

        Persisted agents match by exact id or case-insensitive name
        substring. When none match, the value is compared verbatim
        against agent_id, which is how ephemeral ids are filtered.
        """
        stmt = select(Agent.id).where(
            or_(
                Agent.id == agent_id,
                func.lower(Agent.name).contains(agent_id.lower(), autoescape=True),
            )
        )
        matched = list((await self.session.execute(stmt)).scalars().all())
        if matched:
            self.logger.debug("Agent filter %r matched %d agents", agent_id, len(matched))
            return Transaction.agent_id.in_(matched)
        return Transaction.agent_id == agent_id

    async def _models_and_providers(
        self,
        filters: list[ColumnElement[bool]],
    ) -> tuple[dict[str, set[str]], dict[str, set[str]]]:
        stmt = (
            select(Transaction.agent_id, Transaction.model, Transaction.provider)
            .where(*filters)
            .distinct()
        )
        models: dict[str, set[str]] = {}
        providers: dict[str, set[str]] = {}
        for agent_id, model, provider in (await self.session.execute(stmt)).all():
            if model:
                models.setdefault(agent_id, set()).add(model)
            if provider:
                providers.setdefault(agent_id, set()).add(provider)
        return models, providers
