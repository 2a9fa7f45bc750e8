"""
Pydantic v2 response schemas for the cost-tracking endpoints.

Field names are snake_case in Python and camelCase on the wire
(totalCost, last7Days, …), except agent_id / agent_name which the UI
reads as-is. Costs are rounded to 6 decimals by the service before
they land here and are emitted as JSON numbers.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ReportModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class WindowTotals(_ReportModel):
    """Totals for a trailing window (last 7 / 30 days)."""

    total_cost: float = 0.0
    total_transactions: int = 0


class CostSummaryOut(_ReportModel):
    """Headline totals for the report window."""

    total_cost: float = 0.0
    total_transactions: int = 0
    unique_agents: int = 0
    unique_users: int = 0
    last_7_days: WindowTotals = Field(default_factory=WindowTotals, alias="last7Days")
    last_30_days: WindowTotals = Field(default_factory=WindowTotals, alias="last30Days")


class CostByAgentOut(_ReportModel):
    """Spend attributed to one agent id."""

    agent_id: str = Field(alias="agent_id")
    agent_name: str = Field(alias="agent_name")
    total_cost: float
    total_transactions: int
    total_input_tokens: int
    avg_cost_per_transaction: float
    models: list[str] = Field(default_factory=list)
    providers: list[str] = Field(default_factory=list)


class CostByPeriodOut(_ReportModel):
    """Spend in one time bucket."""

    period: str
    total_cost: float
    total_transactions: int
    total_input_tokens: int
    agent_count: int
    model_count: int


class CostByAgentAndPeriodOut(_ReportModel):
    """Spend for one (agent id, time bucket) pair. agent_id is not resolved to a name."""

    agent_id: str = Field(alias="agent_id")
    period: str
    total_cost: float
    total_transactions: int
    total_input_tokens: int
