"""
Limits gate — plan caps checked before mutating operations.

A denied check is a user-facing LimitExceededError, never a system fault.
"""

from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Optional, Protocol

import structlog
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pricecast.config import settings
from pricecast.db.models import DecisionRecord, ScenarioRecord
from pricecast.errors import LimitExceededError

logger = structlog.get_logger(__name__)


class LimitAction(StrEnum):
    CREATE_DECISION = "create_decision"
    GENERATE_SCENARIOS = "generate_scenarios"


class LimitCheck(BaseModel):
    allowed: bool
    action: LimitAction
    limit: int
    used: int
    reason: str = ""


class LimitsGate(Protocol):
    async def check(self, session: AsyncSession, owner_id: str, action: LimitAction) -> LimitCheck: ...


async def enforce_limit(
    gate: Optional[LimitsGate],
    session: AsyncSession,
    owner_id: str,
    action: LimitAction,
) -> None:
    """Raise LimitExceededError when the gate denies the action."""
    if gate is None:
        return
    result = await gate.check(session, owner_id, action)
    if not result.allowed:
        logger.info(
            "limit_exceeded",
            owner_id=owner_id,
            action=action.value,
            limit=result.limit,
            used=result.used,
        )
        raise LimitExceededError(action.value, result.limit, result.used, result.reason)


class PlanLimitsGate:
    """
    Counts usage in a trailing window straight from the decision store.

    Soft-deleted decisions still count, so deleting does not free capacity.
    A cap of 0 or less means unlimited.
    """

    def __init__(
        self,
        max_decisions: Optional[int] = None,
        max_scenario_generations: Optional[int] = None,
        period_days: Optional[int] = None,
    ):
        self.max_decisions = (
            settings.limit_decisions_per_period if max_decisions is None else max_decisions
        )
        self.max_scenario_generations = (
            settings.limit_scenario_generations_per_period
            if max_scenario_generations is None
            else max_scenario_generations
        )
        self.period_days = settings.limits_period_days if period_days is None else period_days

    async def check(self, session: AsyncSession, owner_id: str, action: LimitAction) -> LimitCheck:
        since = datetime.now(timezone.utc) - timedelta(days=self.period_days)

        if action == LimitAction.CREATE_DECISION:
            limit = self.max_decisions
            stmt = select(func.count()).select_from(DecisionRecord).where(
                DecisionRecord.owner_id == owner_id,
                DecisionRecord.created_at >= since,
            )
        else:
            limit = self.max_scenario_generations
            stmt = (
                select(func.count(func.distinct(ScenarioRecord.generation_id)))
                .join(DecisionRecord, DecisionRecord.id == ScenarioRecord.decision_id)
                .where(
                    DecisionRecord.owner_id == owner_id,
                    ScenarioRecord.created_at >= since,
                )
            )

        if limit <= 0:
            return LimitCheck(allowed=True, action=action, limit=limit, used=0)

        used = (await session.execute(stmt)).scalar_one()
        allowed = used < limit
        return LimitCheck(
            allowed=allowed,
            action=action,
            limit=limit,
            used=used,
            reason="" if allowed else (
                f"Plan allows {limit} {action.value.replace('_', ' ')} per {self.period_days} days"
            ),
        )
