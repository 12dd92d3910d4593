"""
Outcome repository — one evolving outcome row per decision.
"""

import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pricecast.db.models import OutcomeRecord
from pricecast.db.repositories.base import BaseRepository
from pricecast.errors import ConcurrencyConflictError
from pricecast.outcomes.schemas import KPIMeasurement, Outcome, OutcomeSnapshot, OutcomeStatus


def to_domain(row: OutcomeRecord) -> Outcome:
    return Outcome(
        id=row.id,
        decision_id=row.decision_id,
        scenario_id=row.scenario_id,
        decision_taken=row.decision_taken,
        date_implemented=row.date_implemented,
        status=OutcomeStatus(row.status),
        horizon_days=row.horizon_days,
        kpis={key: KPIMeasurement.model_validate(value) for key, value in (row.kpis or {}).items()},
        summary=row.summary,
        notes=row.notes,
        history=tuple(OutcomeSnapshot.model_validate(h) for h in row.history or []),
        revision=row.revision,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_values(outcome: Outcome) -> dict:
    return {
        "scenario_id": outcome.scenario_id,
        "decision_taken": outcome.decision_taken,
        "date_implemented": outcome.date_implemented,
        "status": outcome.status.value,
        "horizon_days": outcome.horizon_days,
        "kpis": {key: kpi.model_dump(mode="json") for key, kpi in outcome.kpis.items()},
        "summary": outcome.summary,
        "notes": outcome.notes,
        "history": [h.model_dump(mode="json") for h in outcome.history],
        "updated_at": outcome.updated_at,
    }


class OutcomeRepository(BaseRepository[OutcomeRecord]):
    resource = "Outcome"

    def __init__(self):
        super().__init__(OutcomeRecord)

    async def get_for_decision(self, db: AsyncSession, decision_id: uuid.UUID) -> Optional[Outcome]:
        result = await db.execute(
            select(OutcomeRecord)
            .where(OutcomeRecord.decision_id == decision_id, OutcomeRecord.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return to_domain(row) if row is not None else None

    async def list_for_decisions(
        self, db: AsyncSession, decision_ids: Sequence[uuid.UUID]
    ) -> dict[uuid.UUID, Outcome]:
        if not decision_ids:
            return {}
        result = await db.execute(
            select(OutcomeRecord).where(
                OutcomeRecord.decision_id.in_(list(decision_ids)),
                OutcomeRecord.is_deleted.is_(False),
            )
        )
        return {row.decision_id: to_domain(row) for row in result.scalars().all()}

    async def insert(self, db: AsyncSession, outcome: Outcome) -> Outcome:
        row = OutcomeRecord(
            id=outcome.id,
            decision_id=outcome.decision_id,
            revision=1,
            is_deleted=False,
            created_at=outcome.created_at,
            **_row_values(outcome),
        )
        db.add(row)
        try:
            await db.flush()
        except IntegrityError as exc:
            # Another request created this decision's outcome first
            raise ConcurrencyConflictError(self.resource, str(outcome.decision_id)) from exc
        return outcome.model_copy(update={"revision": 1})

    async def save(self, db: AsyncSession, outcome: Outcome) -> Outcome:
        revision = await self._compare_and_swap(db, outcome.id, outcome.revision, _row_values(outcome))
        return outcome.model_copy(update={"revision": revision})

    async def tombstone_for_decision(self, db: AsyncSession, decision_id: uuid.UUID, now: datetime) -> int:
        return await self._tombstone_where(db, now, OutcomeRecord.decision_id == decision_id)
