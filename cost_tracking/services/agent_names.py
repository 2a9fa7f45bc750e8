"""
Best-effort display names for agent ids found on billing transactions.

Persisted agent ids resolve by direct lookup. Ephemeral ids (one-off
endpoint + model sessions, never stored as agents) are resolved by
heuristics, tried in order, each only for ids still unresolved:

  1. persisted_agents  — agents table, by id
  2. conversations     — ephemeral id → its conversations → the persisted
                         agent those conversations ran under → name
  3. model_match       — model parsed out of the ephemeral id → first
                         agent whose current version uses that model

Any id left over reports its own raw id. Each strategy runs in its own
SAVEPOINT; a failing strategy is rolled back, logged and skipped. It
never fails the report.

Everything here is read-only.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cost_tracking.core.config import settings
from cost_tracking.models.agent import Agent
from cost_tracking.models.conversation import Conversation
from cost_tracking.models.transaction import Transaction

logger = logging.getLogger(__name__)

# Ephemeral ids look like "<endpoint>__<model>" with an optional
# "___<sender>" suffix, e.g. "openAI__gpt-4o" or "google__gemini-pro___Bot".
_ENDPOINT_SEPARATOR = "__"
_SENDER_SEPARATOR = "___"


def is_persisted_agent_id(agent_id: str, prefix: str | None = None) -> bool:
    """True if `agent_id` carries the persisted-agent prefix."""
    return agent_id.startswith(prefix if prefix is not None else settings.PERSISTED_AGENT_PREFIX)


def model_from_ephemeral_id(agent_id: str) -> str | None:
    """
    Recover the model embedded in an ephemeral agent id.

    Returns None when the id does not follow the endpoint__model layout.
    """
    _, sep, rest = agent_id.partition(_ENDPOINT_SEPARATOR)
    if not sep or not rest:
        return None
    model = rest.split(_SENDER_SEPARATOR, 1)[0]
    return model or None


def _display_name(agent: Agent) -> str:
    name = (agent.name or "").strip()
    return name or agent.id


Strategy = Callable[[set[str]], Awaitable[dict[str, str]]]


@dataclass
class AgentNameResolver:
    """
    Resolve agent ids to display names against one session.

    Attributes:
        session: Read-only async session.
        prefix:  Persisted agent id prefix (defaults to settings).
        logger:  Where strategy failures are reported.
    """

    session: AsyncSession
    prefix: str = ""
    logger: logging.Logger = logger

    def __post_init__(self) -> None:
        if not self.prefix:
            self.prefix = settings.PERSISTED_AGENT_PREFIX

    @property
    def strategies(self) -> list[tuple[str, Strategy]]:
        return [
            ("persisted_agents", self._from_persisted_agents),
            ("conversations", self._from_conversations),
            ("model_match", self._from_model_match),
        ]

    async def resolve(self, agent_ids: Iterable[str]) -> dict[str, str]:
        """Map every id in `agent_ids` to a name. Never raises on lookup errors."""
        wanted = {agent_id for agent_id in agent_ids if agent_id}
        names: dict[str, str] = {}

        for strategy_name, strategy in self.strategies:
            pending = wanted - names.keys()
            if not pending:
                break
            try:
                # SAVEPOINT per strategy: a failed query only rolls back its
                # own work, so the session stays usable for the next one.
                async with self.session.begin_nested():
                    found = await strategy(pending)
            except Exception:
                self.logger.warning(
                    "Agent name strategy %r failed for %d ids; falling back",
                    strategy_name,
                    len(pending),
                    exc_info=True,
                )
                continue
            for agent_id, name in found.items():
                if agent_id in pending:
                    names[agent_id] = name

        for agent_id in wanted - names.keys():
            names[agent_id] = agent_id
        return names

    # ── Strategies ──────────────────────────────────────────

    async def _from_persisted_agents(self, pending: set[str]) -> dict[str, str]:
        persisted = {a for a in pending if is_persisted_agent_id(a, self.prefix)}
        return await self._agent_names(persisted)

    async def _from_conversations(self, pending: set[str]) -> dict[str, str]:
        ephemeral = {a for a in pending if not is_persisted_agent_id(a, self.prefix)}
        if not ephemeral:
            return {}

        # ephemeral id → conversations it was billed under, oldest first
        stmt = (
            select(Transaction.agent_id, Transaction.conversation_id)
            .where(
                Transaction.agent_id.in_(sorted(ephemeral)),
                Transaction.conversation_id.is_not(None),
            )
            .order_by(Transaction.created_at.asc(), Transaction.id.asc())
        )
        rows = (await self.session.execute(stmt)).all()

        convos_by_agent: dict[str, list[str]] = {}
        for agent_id, conversation_id in rows:
            convos = convos_by_agent.setdefault(agent_id, [])
            if conversation_id not in convos:
                convos.append(conversation_id)

        conversation_ids = {c for convos in convos_by_agent.values() for c in convos}
        if not conversation_ids:
            return {}

        agent_by_convo = await self._persisted_agent_by_conversation(conversation_ids)

        persisted_for: dict[str, str] = {}
        for agent_id, convos in convos_by_agent.items():
            for conversation_id in convos:
                target = agent_by_convo.get(conversation_id)
                if target:
                    persisted_for[agent_id] = target
                    break

        if not persisted_for:
            return {}

        agent_names = await self._agent_names(set(persisted_for.values()))
        resolved = {
            agent_id: agent_names[target]
            for agent_id, target in persisted_for.items()
            if target in agent_names
        }
        self.logger.debug(
            "Resolved %d/%d ephemeral agent ids via conversations",
            len(resolved),
            len(ephemeral),
        )
        return resolved

    async def _from_model_match(self, pending: set[str]) -> dict[str, str]:
        wanted_models: dict[str, str] = {}
        for agent_id in pending:
            if is_persisted_agent_id(agent_id, self.prefix):
                continue
            model = model_from_ephemeral_id(agent_id)
            if model:
                wanted_models[agent_id] = model
        if not wanted_models:
            return {}

        stmt = select(Agent).order_by(Agent.created_at.asc(), Agent.id.asc())
        agents = (await self.session.execute(stmt)).scalars().all()

        first_by_model: dict[str, Agent] = {}
        for agent in agents:
            model = agent.current_model
            if model and model not in first_by_model:
                first_by_model[model] = agent

        return {
            agent_id: _display_name(first_by_model[model])
            for agent_id, model in wanted_models.items()
            if model in first_by_model
        }

    # ── Lookups ─────────────────────────────────────────────

    async def _agent_names(self, agent_ids: set[str]) -> dict[str, str]:
        if not agent_ids:
            return {}
        stmt = select(Agent).where(Agent.id.in_(sorted(agent_ids)))
        agents = (await self.session.execute(stmt)).scalars().all()
        return {agent.id: _display_name(agent) for agent in agents}

    async def _persisted_agent_by_conversation(
        self,
        conversation_ids: set[str],
    ) -> dict[str, str]:
        """conversation id → persisted agent id it ran under."""
        stmt = select(Conversation.conversation_id, Conversation.agent_id).where(
            Conversation.conversation_id.in_(sorted(conversation_ids)),
            Conversation.agent_id.startswith(self.prefix, autoescape=True),
        )
        mapping = {
            conversation_id: agent_id
            for conversation_id, agent_id in (await self.session.execute(stmt)).all()
        }

        # The stored conversation pointer can lag behind; later transactions
        # on the same conversation may name the persisted agent directly.
        stmt = (
            select(Transaction.conversation_id, Transaction.agent_id)
            .where(
                Transaction.conversation_id.in_(sorted(conversation_ids)),
                Transaction.agent_id.startswith(self.prefix, autoescape=True),
            )
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        for conversation_id, agent_id in (await self.session.execute(stmt)).all():
            mapping.setdefault(conversation_id, agent_id)

        return mapping
