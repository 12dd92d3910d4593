"""
Scenario repository.

Callers bump the owning decision's revision in the same transaction, so two
concurrent regenerations or picks cannot both commit.
"""

import uuid
from datetime import datetime
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pricecast.db.models import ScenarioRecord
from pricecast.db.repositories.base import BaseRepository
from pricecast.elasticity.schemas import RiskLevel, ScenarioLevel
from pricecast.errors import ConcurrencyConflictError, InvariantViolationError, NotFoundError
from pricecast.scenarios.schemas import Scenario, ScenarioNarrative
from pricecast.simulation.schemas import SimulationResult


def to_domain(row: ScenarioRecord) -> Scenario:
    return Scenario(
        id=row.id,
        decision_id=row.decision_id,
        name=row.name,
        level=ScenarioLevel(row.level),
        description=row.description,
        narrative=ScenarioNarrative.model_validate(row.narrative or {}),
        projection=SimulationResult.model_validate(row.projection),
        risk_level=RiskLevel(row.risk_level),
        chosen=row.chosen,
        generation_id=row.generation_id,
        created_at=row.created_at,
    )


def to_row(scenario: Scenario) -> ScenarioRecord:
    return ScenarioRecord(
        id=scenario.id,
        decision_id=scenario.decision_id,
        generation_id=scenario.generation_id,
        name=scenario.name,
        level=scenario.level.value,
        description=scenario.description,
        narrative=scenario.narrative.model_dump(mode="json"),
        projection=scenario.projection.model_dump(mode="json"),
        risk_level=scenario.risk_level.value,
        chosen=scenario.chosen,
        is_deleted=False,
        created_at=scenario.created_at,
    )


class ScenarioRepository(BaseRepository[ScenarioRecord]):
    resource = "Scenario"

    def __init__(self):
        super().__init__(ScenarioRecord)

    async def list_active(self, db: AsyncSession, decision_id: uuid.UUID) -> list[Scenario]:
        result = await db.execute(
            select(ScenarioRecord)
            .where(ScenarioRecord.decision_id == decision_id, ScenarioRecord.is_deleted.is_(False))
            .order_by(ScenarioRecord.created_at, ScenarioRecord.name)
            .execution_options(populate_existing=True)
        )
        scenarios = [to_domain(row) for row in result.scalars().all()]
        chosen = [s for s in scenarios if s.chosen]
        if len(chosen) > 1:
            raise InvariantViolationError(
                "More than one chosen scenario",
                {"decision_id": str(decision_id), "chosen": [str(s.id) for s in chosen]},
            )
        return scenarios

    async def replace_unchosen(
        self,
        db: AsyncSession,
        decision_id: uuid.UUID,
        scenarios: Sequence[Scenario],
        now: datetime,
    ) -> int:
        """Tombstone the active unchosen set and insert the new one."""
        discarded = await self._tombstone_where(
            db,
            now,
            ScenarioRecord.decision_id == decision_id,
            ScenarioRecord.chosen.is_(False),
        )
        db.add_all([to_row(s) for s in scenarios])
        await db.flush()
        return discarded

    async def choose(self, db: AsyncSession, decision_id: uuid.UUID, scenario_id: uuid.UUID) -> Scenario:
        row = await self._get_row(db, scenario_id)
        if row is None or row.decision_id != decision_id:
            raise NotFoundError("Scenario", str(scenario_id), {"decision_id": str(decision_id)})

        # Clear first so the partial unique index never sees two chosen rows
        await db.execute(
            update(ScenarioRecord)
            .where(
                ScenarioRecord.decision_id == decision_id,
                ScenarioRecord.is_deleted.is_(False),
                ScenarioRecord.chosen.is_(True),
            )
            .values(chosen=False)
            .execution_options(synchronize_session=False)
        )
        try:
            await db.execute(
                update(ScenarioRecord)
                .where(ScenarioRecord.id == scenario_id)
                .values(chosen=True)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as exc:
            # A concurrent pick committed its chosen row first
            raise ConcurrencyConflictError(self.resource, str(decision_id)) from exc
        row = await self._get_row(db, scenario_id)
        return to_domain(row)

    async def get(self, db: AsyncSession, scenario_id: uuid.UUID, include_deleted: bool = False) -> Scenario:
        row = await self._get_row(db, scenario_id, include_deleted=include_deleted)
        if row is None:
            raise NotFoundError("Scenario", str(scenario_id))
        return to_domain(row)

    async def tombstone_for_decision(self, db: AsyncSession, decision_id: uuid.UUID, now: datetime) -> int:
        return await self._tombstone_where(db, now, ScenarioRecord.decision_id == decision_id)
