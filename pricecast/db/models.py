"""
Decision store SQLAlchemy models.

Three tables, all soft-deletable. Uses compatibility types for SQLite (local)
+ PostgreSQL (prod).

Version histories are JSON arrays on the decision row; the row also keeps the
current counters and a copy of the current context/verdict so they can be
queried, and the repository cross-checks them on every read.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from pricecast.db.compat import GUID, JSONType, UTCDateTime
from pricecast.db.engine import Base


def _genuuid():
    return uuid.uuid4()


class DecisionRecord(Base):
    """One pricing decision with its context/verdict histories and audit trail."""

    __tablename__ = "pc_decisions"
    __table_args__ = (
        Index("ix_pc_decisions_owner_created", "owner_id", "created_at"),
        Index("ix_pc_decisions_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    website_url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    context_version: Mapped[int] = mapped_column(Integer, nullable=False)
    context_versions: Mapped[list] = mapped_column(JSONType(), nullable=False)
    current_context: Mapped[dict] = mapped_column(JSONType(), nullable=False)

    verdict_version: Mapped[int] = mapped_column(Integer, nullable=False)
    verdict_versions: Mapped[list] = mapped_column(JSONType(), nullable=False)
    current_verdict: Mapped[dict] = mapped_column(JSONType(), nullable=False)

    status_events: Mapped[list] = mapped_column(JSONType(), nullable=False, default=list)
    expected_impact: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    model_meta: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    pricing_input: Mapped[Optional[dict]] = mapped_column(JSONType())
    simulation: Mapped[Optional[dict]] = mapped_column(JSONType())

    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)


class ScenarioRecord(Base):
    """A generated scenario. At most one active chosen scenario per decision."""

    __tablename__ = "pc_scenarios"
    __table_args__ = (
        Index("ix_pc_scenarios_decision", "decision_id"),
        Index("ix_pc_scenarios_generation", "generation_id"),
        Index(
            "uq_pc_scenarios_one_chosen",
            "decision_id",
            unique=True,
            sqlite_where=text("chosen = 1 AND is_deleted = 0"),
            postgresql_where=text("chosen AND NOT is_deleted"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    decision_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("pc_decisions.id"), nullable=False)
    generation_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    narrative: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    projection: Mapped[dict] = mapped_column(JSONType(), nullable=False)
    risk_level: Mapped[str] = mapped_column(String(10), nullable=False)
    chosen: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)


class OutcomeRecord(Base):
    """The single evolving outcome of a decision, plus its merge history."""

    __tablename__ = "pc_outcomes"
    __table_args__ = (
        UniqueConstraint("decision_id", name="uq_pc_outcomes_decision"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    decision_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("pc_decisions.id"), nullable=False)
    scenario_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("pc_scenarios.id"))
    decision_taken: Mapped[Optional[bool]] = mapped_column(Boolean)
    date_implemented: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    horizon_days: Mapped[int] = mapped_column(Integer, nullable=False, default=90)
    kpis: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    history: Mapped[list] = mapped_column(JSONType(), nullable=False, default=list)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
