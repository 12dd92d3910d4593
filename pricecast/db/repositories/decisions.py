"""
Decision repository — the aggregate's consistency boundary.

Reads validate the append-only invariants before handing out a Decision;
writes are a single compare-and-swap on `revision`.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pricecast.db.models import DecisionRecord
from pricecast.db.repositories.base import BaseRepository
from pricecast.decisions.schemas import (
    ContextVersion,
    Decision,
    DecisionStatus,
    ExpectedImpact,
    ModelMeta,
    PricingInput,
    StatusEvent,
    VerdictVersion,
)
from pricecast.decisions.versioning import check_decision_invariants
from pricecast.errors import InvariantViolationError, NotFoundError
from pricecast.simulation.schemas import SimulationResult


def _row_values(decision: Decision) -> dict:
    context_versions = [v.model_dump(mode="json") for v in decision.context_versions]
    verdict_versions = [v.model_dump(mode="json") for v in decision.verdict_versions]
    return {
        "owner_id": decision.owner_id,
        "company_name": decision.company_name,
        "website_url": decision.website_url,
        "status": decision.status.value,
        "context_version": len(context_versions),
        "context_versions": context_versions,
        "current_context": context_versions[-1]["context"],
        "verdict_version": len(verdict_versions),
        "verdict_versions": verdict_versions,
        "current_verdict": verdict_versions[-1]["verdict"],
        "status_events": [e.model_dump(mode="json") for e in decision.status_events],
        "expected_impact": decision.expected_impact.model_dump(mode="json"),
        "model_meta": decision.model_meta.model_dump(mode="json"),
        "pricing_input": decision.pricing_input.model_dump(mode="json") if decision.pricing_input else None,
        "simulation": decision.simulation.model_dump(mode="json") if decision.simulation else None,
        "updated_at": decision.updated_at,
    }


def _check_denormalized(row: DecisionRecord) -> None:
    """The stored counters and current copies must match the histories."""
    problems = []
    if row.context_version != len(row.context_versions or []):
        problems.append("context_version")
    if row.verdict_version != len(row.verdict_versions or []):
        problems.append("verdict_version")
    if row.context_versions and row.current_context != row.context_versions[-1].get("context"):
        problems.append("current_context")
    if row.verdict_versions and row.current_verdict != row.verdict_versions[-1].get("verdict"):
        problems.append("current_verdict")
    if problems:
        raise InvariantViolationError(
            "Decision current projection disagrees with its history",
            {"decision_id": str(row.id), "fields": problems},
        )


def to_domain(row: DecisionRecord) -> Decision:
    _check_denormalized(row)
    decision = Decision(
        id=row.id,
        owner_id=row.owner_id,
        company_name=row.company_name,
        website_url=row.website_url,
        status=DecisionStatus(row.status),
        context_versions=tuple(ContextVersion.model_validate(v) for v in row.context_versions),
        verdict_versions=tuple(VerdictVersion.model_validate(v) for v in row.verdict_versions),
        status_events=tuple(StatusEvent.model_validate(e) for e in row.status_events or []),
        expected_impact=ExpectedImpact.model_validate(row.expected_impact or {}),
        model_meta=ModelMeta.model_validate(row.model_meta or {}),
        pricing_input=PricingInput.model_validate(row.pricing_input) if row.pricing_input else None,
        simulation=SimulationResult.model_validate(row.simulation) if row.simulation else None,
        revision=row.revision,
        is_deleted=row.is_deleted,
        deleted_at=row.deleted_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
    check_decision_invariants(decision)
    return decision


class DecisionRepository(BaseRepository[DecisionRecord]):
    resource = "Decision"

    def __init__(self):
        super().__init__(DecisionRecord)

    async def add(self, db: AsyncSession, decision: Decision) -> Decision:
        check_decision_invariants(decision)
        row = DecisionRecord(
            id=decision.id,
            revision=1,
            is_deleted=False,
            created_at=decision.created_at,
            **_row_values(decision),
        )
        db.add(row)
        await db.flush()
        return decision.model_copy(update={"revision": 1})

    async def get(
        self,
        db: AsyncSession,
        decision_id: uuid.UUID,
        include_deleted: bool = False,
    ) -> Decision:
        row = await self._get_row(db, decision_id, include_deleted=include_deleted)
        if row is None:
            raise NotFoundError("Decision", str(decision_id))
        return to_domain(row)

    async def get_many(self, db: AsyncSession, decision_ids: Sequence[uuid.UUID]) -> list[Decision]:
        """All-or-nothing: any missing or deleted id raises NotFoundError."""
        result = await db.execute(
            select(DecisionRecord)
            .where(DecisionRecord.id.in_(list(decision_ids)), DecisionRecord.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        )
        rows = {row.id: row for row in result.scalars().all()}
        missing = [str(i) for i in decision_ids if i not in rows]
        if missing:
            raise NotFoundError("Decision", ", ".join(missing), {"missing": missing})
        return [to_domain(rows[i]) for i in decision_ids]

    async def list_for_owner(
        self,
        db: AsyncSession,
        owner_id: str,
        status: Optional[DecisionStatus] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Decision]:
        stmt = select(DecisionRecord).where(
            DecisionRecord.owner_id == owner_id,
            DecisionRecord.is_deleted.is_(False),
        )
        if status is not None:
            stmt = stmt.where(DecisionRecord.status == DecisionStatus(status).value)
        stmt = stmt.order_by(DecisionRecord.created_at.desc()).offset(offset).limit(limit)
        result = await db.execute(stmt.execution_options(populate_existing=True))
        return [to_domain(row) for row in result.scalars().all()]

    async def list_active_ids(self, db: AsyncSession, owner_id: Optional[str] = None) -> list[uuid.UUID]:
        stmt = select(DecisionRecord.id).where(DecisionRecord.is_deleted.is_(False))
        if owner_id is not None:
            stmt = stmt.where(DecisionRecord.owner_id == owner_id)
        result = await db.execute(stmt.order_by(DecisionRecord.created_at))
        return list(result.scalars().all())

    async def save(self, db: AsyncSession, decision: Decision) -> Decision:
        """Persist the whole aggregate if nobody else wrote it since it was read."""
        check_decision_invariants(decision)
        revision = await self._compare_and_swap(db, decision.id, decision.revision, _row_values(decision))
        return decision.model_copy(update={"revision": revision})

    async def bump_revision(self, db: AsyncSession, decision: Decision) -> Decision:
        """Claim the aggregate for a write that only touches child tables."""
        now = datetime.now(timezone.utc)
        revision = await self._compare_and_swap(db, decision.id, decision.revision, {"updated_at": now})
        return decision.model_copy(update={"revision": revision, "updated_at": now})

    async def soft_delete(self, db: AsyncSession, decision: Decision) -> Decision:
        """Tombstone the decision row. Children are tombstoned by their repositories."""
        now = datetime.now(timezone.utc)
        revision = await self._compare_and_swap(
            db,
            decision.id,
            decision.revision,
            {"is_deleted": True, "deleted_at": now, "updated_at": now},
        )
        return decision.model_copy(
            update={"revision": revision, "is_deleted": True, "deleted_at": now, "updated_at": now}
        )
