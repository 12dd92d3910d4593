"""
Outcome Schemas — what actually happened after a pricing decision shipped.
"""

import uuid
from datetime import date, datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from pricecast.elasticity.schemas import ScenarioLevel

DEFAULT_HORIZON_DAYS: int = 90


class OutcomeStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ACHIEVED = "achieved"
    MISSED = "missed"


class ComparisonStatus(StrEnum):
    BELOW = "below"
    ON_TRACK = "on_track"
    ABOVE = "above"


class KPIMeasurement(BaseModel):
    model_config = ConfigDict(frozen=True)

    actual_value: Optional[float] = None
    unit: str = ""
    notes: str = ""
    measured_at: Optional[datetime] = None


class OutcomeSnapshot(BaseModel):
    """Audit entry: which normalized fields one merge applied."""
    model_config = ConfigDict(frozen=True)

    recorded_at: datetime
    changes: dict[str, Any] = Field(default_factory=dict)


class Outcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    decision_id: uuid.UUID
    scenario_id: Optional[uuid.UUID] = None
    decision_taken: Optional[bool] = None
    date_implemented: Optional[date] = None
    status: OutcomeStatus = OutcomeStatus.PENDING
    horizon_days: int = DEFAULT_HORIZON_DAYS
    kpis: dict[str, KPIMeasurement] = Field(default_factory=dict)
    summary: Optional[str] = None
    notes: Optional[str] = None
    history: tuple[OutcomeSnapshot, ...] = ()
    revision: int = 0
    created_at: datetime
    updated_at: datetime


class OutcomeUpdate(BaseModel):
    """
    Partial outcome as typed by a person.

    Values are free text tolerated; only fields explicitly set are merged.
    """
    decision_taken: Any = None
    date_implemented: Any = None
    status: Any = None
    horizon_days: Any = None
    summary: Optional[str] = None
    notes: Optional[str] = None
    kpis: dict[str, Any] = Field(default_factory=dict)


class ScenarioDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    kpi_key: str
    predicted_min: float
    predicted_max: float
    actual: float
    comparison_status: ComparisonStatus
    delta_pct: Optional[float] = None


class EffectiveOutcome(BaseModel):
    """The one outcome view consumers should read."""
    decision_id: uuid.UUID
    outcome: Optional[Outcome] = None
    scenario_id: Optional[uuid.UUID] = None
    scenario_name: Optional[str] = None
    deltas: list[ScenarioDelta] = Field(default_factory=list)

    @property
    def on_track_count(self) -> int:
        return sum(1 for d in self.deltas if d.comparison_status == ComparisonStatus.ON_TRACK)


class DeltaRecord(BaseModel):
    """One delta tagged with the cohort keys the learning service groups by."""
    decision_id: uuid.UUID
    company_stage: Optional[str] = None
    primary_kpi: Optional[str] = None
    scenario_level: ScenarioLevel
    scenario_name: str
    outcome_status: OutcomeStatus
    kpi_key: str
    comparison_status: ComparisonStatus
    delta_pct: Optional[float] = None
    recorded_at: datetime
