"""
Shared async repository plumbing.

Every versioned table is written with compare-and-swap on its `revision`
column; losing the race raises ConcurrencyConflictError instead of silently
overwriting. Nothing is hard-deleted: tombstones only.
"""

import uuid
from datetime import datetime
from typing import Any, Generic, Optional, Type, TypeVar

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pricecast.db.engine import Base
from pricecast.errors import ConcurrencyConflictError

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Async read + CAS write helpers for one table."""

    resource: str = "record"

    def __init__(self, model: Type[ModelT]):
        self.model = model

    async def _get_row(
        self,
        db: AsyncSession,
        id: uuid.UUID,
        include_deleted: bool = False,
    ) -> Optional[ModelT]:
        stmt = select(self.model).where(self.model.id == id)
        if not include_deleted:
            stmt = stmt.where(self.model.is_deleted.is_(False))
        result = await db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def _compare_and_swap(
        self,
        db: AsyncSession,
        id: uuid.UUID,
        expected_revision: int,
        values: dict[str, Any],
    ) -> int:
        """Apply `values` only if the stored revision is still `expected_revision`."""
        new_revision = expected_revision + 1
        stmt = (
            update(self.model)
            .where(
                self.model.id == id,
                self.model.revision == expected_revision,
                self.model.is_deleted.is_(False),
            )
            .values(**values, revision=new_revision)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "concurrency_conflict",
                resource=self.resource,
                id=str(id),
                expected_revision=expected_revision,
            )
            raise ConcurrencyConflictError(self.resource, str(id), expected_revision)
        return new_revision

    async def _tombstone_where(self, db: AsyncSession, now: datetime, *criteria: Any) -> int:
        stmt = (
            update(self.model)
            .where(self.model.is_deleted.is_(False), *criteria)
            .values(is_deleted=True, deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount
