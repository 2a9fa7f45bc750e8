"""Tests for CostAggregator — the four cost reports."""

from __future__ import annotations

import logging

import pytest

from conftest import NOW, at, make_transaction
from cost_tracking.services.cost_tracking import CostAggregator, round_cost
from cost_tracking.services.periods import Period


@pytest.fixture
def aggregator(seeded):
    return CostAggregator(seeded)


# ---------------------------------------------------------------------------
# round_cost
# ---------------------------------------------------------------------------


class TestRoundCost:
    def test_none_is_zero(self):
        assert round_cost(None) == 0.0

    def test_rounds_half_up_to_six_places(self):
        assert round_cost("0.0000005") == 0.000001
        assert round_cost("1.23456749") == 1.234567

    def test_keeps_exact_values(self):
        assert round_cost(4) == 4.0


# ---------------------------------------------------------------------------
# get_cost_summary
# ---------------------------------------------------------------------------


class TestCostSummary:
    async def test_totals_over_everything(self, aggregator):
        summary = await aggregator.get_cost_summary(now=NOW)

        assert summary.total_cost == pytest.approx(7.25)
        assert summary.total_transactions == 4
        assert summary.unique_agents == 3
        assert summary.unique_users == 3

    async def test_trailing_windows_measured_from_now(self, aggregator):
        summary = await aggregator.get_cost_summary(now=NOW)

        # 2026-10-16 and 2026-10-12 fall within 7 days of 2026-10-17 noon
        assert summary.last_7_days.total_cost == pytest.approx(1.75)
        assert summary.last_7_days.total_transactions == 2
        # 2026-10-05 joins within 30 days; 2026-08-01 does not
        assert summary.last_30_days.total_cost == pytest.approx(4.25)
        assert summary.last_30_days.total_transactions == 3

    async def test_trailing_windows_never_exceed_total(self, aggregator):
        summary = await aggregator.get_cost_summary(now=NOW)
        assert summary.last_7_days.total_cost <= summary.total_cost
        assert summary.last_30_days.total_cost <= summary.total_cost

    async def test_trailing_windows_ignore_end_date(self, aggregator):
        # Window ends long before "now": nothing is in the last 7 days.
        summary = await aggregator.get_cost_summary(end=at(2026, 8, 31), now=NOW)
        assert summary.total_cost == pytest.approx(3.0)
        assert summary.last_7_days.total_transactions == 0
        assert summary.last_30_days.total_cost == 0.0

    async def test_window_bounds_are_inclusive(self, aggregator):
        summary = await aggregator.get_cost_summary(
            start=at(2026, 10, 12, 0, 30),
            end=at(2026, 10, 16, 10),
            now=NOW,
        )
        assert summary.total_transactions == 2
        assert summary.total_cost == pytest.approx(1.75)

    async def test_empty_store_returns_zeroed_summary(self, session):
        summary = await CostAggregator(session).get_cost_summary(now=NOW)

        assert summary.total_cost == 0.0
        assert summary.total_transactions == 0
        assert summary.unique_agents == 0
        assert summary.unique_users == 0
        assert summary.last_7_days.total_cost == 0.0
        assert summary.last_30_days.total_transactions == 0

    async def test_unique_agents_skips_missing_and_empty_ids(self, session):
        session.add_all(
            [
                make_transaction("agent_a", 1.0, at(2026, 10, 1), user="u1"),
                make_transaction(None, 1.0, at(2026, 10, 1), user="u2"),
                make_transaction("", 1.0, at(2026, 10, 1), user="u2"),
            ]
        )
        await session.commit()

        summary = await CostAggregator(session).get_cost_summary(now=NOW)
        assert summary.total_transactions == 3
        assert summary.unique_agents == 1
        assert summary.unique_users == 2

    async def test_is_idempotent(self, aggregator):
        first = await aggregator.get_cost_summary(now=NOW)
        second = await aggregator.get_cost_summary(now=NOW)
        assert first == second


# ---------------------------------------------------------------------------
# get_cost_by_agent
# ---------------------------------------------------------------------------


class TestCostByAgent:
    async def test_groups_and_sorts_by_cost(self, aggregator):
        rows = await aggregator.get_cost_by_agent()

        assert [r.agent_id for r in rows] == ["agent_support", "ephemeral_X", "agent_research"]
        support, ephemeral, research = rows

        assert support.total_cost == pytest.approx(4.0)
        assert support.total_transactions == 2
        assert support.total_input_tokens == 300
        assert support.avg_cost_per_transaction == pytest.approx(2.0)
        assert support.models == ["gpt-4o", "gpt-4o-mini"]
        assert support.providers == ["openai"]

        assert ephemeral.total_cost == pytest.approx(3.0)
        assert ephemeral.models == ["claude-3-haiku"]

        # Positive raw amounts count by absolute value too.
        assert research.total_input_tokens == 300

    async def test_resolves_names(self, aggregator):
        rows = await aggregator.get_cost_by_agent()
        names = {r.agent_id: r.agent_name for r in rows}

        assert names == {
            "agent_support": "Support Bot",
            "agent_research": "Research Assistant",
            # No conversation and no embedded model: falls back to the raw id
            "ephemeral_X": "ephemeral_X",
        }

    async def test_total_matches_summary(self, aggregator):
        rows = await aggregator.get_cost_by_agent()
        summary = await aggregator.get_cost_summary(now=NOW)
        assert sum(r.total_cost for r in rows) == pytest.approx(summary.total_cost)

    async def test_zero_and_missing_cost_rows_are_excluded(self, aggregator):
        rows = await aggregator.get_cost_by_agent()
        research = next(r for r in rows if r.agent_id == "agent_research")
        support = next(r for r in rows if r.agent_id == "agent_support")
        assert research.total_transactions == 1
        assert support.total_transactions == 2

    async def test_filter_by_exact_agent_id(self, aggregator):
        rows = await aggregator.get_cost_by_agent(agent_id="agent_research")
        assert [r.agent_id for r in rows] == ["agent_research"]

    async def test_filter_by_name_substring_is_case_insensitive(self, aggregator):
        rows = await aggregator.get_cost_by_agent(agent_id="SUPPORT bot")
        assert [r.agent_id for r in rows] == ["agent_support"]

    async def test_filter_name_substring_can_match_several_agents(self, aggregator):
        # "r" appears in both "Support Bot" and "Research Assistant"
        rows = await aggregator.get_cost_by_agent(agent_id="r")
        assert {r.agent_id for r in rows} == {"agent_support", "agent_research"}

    async def test_filter_falls_back_to_verbatim_ephemeral_id(self, aggregator):
        rows = await aggregator.get_cost_by_agent(agent_id="ephemeral_X")
        assert [r.agent_id for r in rows] == ["ephemeral_X"]

    async def test_filter_wildcards_are_literal(self, aggregator):
        assert await aggregator.get_cost_by_agent(agent_id="%") == []

    async def test_unknown_filter_returns_nothing(self, aggregator):
        assert await aggregator.get_cost_by_agent(agent_id="nobody") == []

    async def test_rows_without_agent_are_skipped(self, session):
        session.add(make_transaction(None, 5.0, at(2026, 10, 1)))
        await session.commit()
        assert await CostAggregator(session).get_cost_by_agent() == []

    async def test_date_window(self, aggregator):
        rows = await aggregator.get_cost_by_agent(start=at(2026, 10, 10), end=at(2026, 10, 17))
        totals = {r.agent_id: r.total_cost for r in rows}
        assert totals == pytest.approx({"agent_support": 1.5, "agent_research": 0.25})

    async def test_is_idempotent(self, aggregator):
        assert await aggregator.get_cost_by_agent() == await aggregator.get_cost_by_agent()


# ---------------------------------------------------------------------------
# get_cost_by_period
# ---------------------------------------------------------------------------


class TestCostByPeriod:
    async def test_daily_buckets_ascending(self, aggregator):
        rows = await aggregator.get_cost_by_period(Period.DAY)

        assert [r.period for r in rows] == ["2026-08-01", "2026-10-05", "2026-10-12", "2026-10-16"]
        assert [r.total_cost for r in rows] == pytest.approx([3.0, 2.5, 0.25, 1.5])
        assert all(r.total_transactions == 1 for r in rows)

    async def test_same_iso_week_shares_a_bucket(self, aggregator):
        rows = await aggregator.get_cost_by_period("week")
        by_label = {r.period: r for r in rows}

        assert list(by_label) == ["2026-W31", "2026-W41", "2026-W42"]
        # Monday 2026-10-12 and Friday 2026-10-16
        week = by_label["2026-W42"]
        assert week.total_transactions == 2
        assert week.total_cost == pytest.approx(1.75)
        assert week.agent_count == 2
        assert week.model_count == 2
        assert week.total_input_tokens == 400

    async def test_monthly_buckets(self, aggregator):
        rows = await aggregator.get_cost_by_period("month")

        assert [r.period for r in rows] == ["2026-08", "2026-10"]
        october = rows[1]
        assert october.total_cost == pytest.approx(4.25)
        assert october.total_transactions == 3
        assert october.agent_count == 2
        assert october.model_count == 3

    async def test_unknown_period_defaults_to_day(self, aggregator):
        assert await aggregator.get_cost_by_period("fortnight") == await aggregator.get_cost_by_period("day")
        assert await aggregator.get_cost_by_period(None) == await aggregator.get_cost_by_period("day")

    async def test_agent_filter_reports_single_agent(self, aggregator):
        rows = await aggregator.get_cost_by_period("month", agent_id="r")

        october = rows[-1]
        assert october.period == "2026-10"
        # Matches agent_support and agent_research, still reported as one agent
        assert october.agent_count == 1
        assert october.total_cost == pytest.approx(4.25)

    async def test_agent_count_skips_missing_and_empty_ids(self, session):
        session.add_all(
            [
                make_transaction("agent_a", 1.0, at(2026, 10, 1)),
                make_transaction("", 1.0, at(2026, 10, 1, 6)),
                make_transaction(None, 1.0, at(2026, 10, 1, 7)),
            ]
        )
        await session.commit()
        aggregator = CostAggregator(session)

        rows = await aggregator.get_cost_by_period("day")
        summary = await aggregator.get_cost_summary(now=NOW)

        assert [(r.period, r.total_transactions, r.agent_count) for r in rows] == [("2026-10-01", 3, 1)]
        assert rows[0].agent_count == summary.unique_agents

    async def test_agent_filter_by_name(self, aggregator):
        rows = await aggregator.get_cost_by_period("month", agent_id="support")
        assert [(r.period, r.total_cost, r.total_transactions) for r in rows] == [
            ("2026-10", pytest.approx(4.0), 2)
        ]

    async def test_date_window(self, aggregator):
        rows = await aggregator.get_cost_by_period("day", start=at(2026, 10, 5), end=at(2026, 10, 12, 23, 59))
        assert [r.period for r in rows] == ["2026-10-05", "2026-10-12"]


# ---------------------------------------------------------------------------
# get_cost_by_agent_and_period
# ---------------------------------------------------------------------------


class TestCostByAgentAndPeriod:
    async def test_orders_by_period_then_cost(self, aggregator):
        rows = await aggregator.get_cost_by_agent_and_period("month")

        assert [(r.period, r.agent_id) for r in rows] == [
            ("2026-08", "ephemeral_X"),
            ("2026-10", "agent_support"),
            ("2026-10", "agent_research"),
        ]
        assert [r.total_cost for r in rows] == pytest.approx([3.0, 4.0, 0.25])
        assert rows[1].total_transactions == 2
        assert rows[1].total_input_tokens == 300

    async def test_returns_raw_agent_ids(self, aggregator):
        rows = await aggregator.get_cost_by_agent_and_period("day")
        assert {r.agent_id for r in rows} == {"agent_support", "agent_research", "ephemeral_X"}
        assert not hasattr(rows[0], "agent_name")

    async def test_weekly(self, aggregator):
        rows = await aggregator.get_cost_by_agent_and_period("week")
        week_42 = [r for r in rows if r.period == "2026-W42"]
        assert [r.agent_id for r in week_42] == ["agent_support", "agent_research"]


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


async def test_uses_injected_logger(seeded, caplog):
    request_logger = logging.getLogger("tests.request")
    aggregator = CostAggregator(seeded, logger=request_logger)

    with caplog.at_level(logging.DEBUG, logger="tests.request"):
        await aggregator.get_cost_by_agent(agent_id="support")

    assert any(rec.name == "tests.request" for rec in caplog.records)
