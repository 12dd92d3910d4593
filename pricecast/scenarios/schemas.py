"""
Scenario schemas — named strategic options attached to a decision.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pricecast.elasticity.schemas import PricingGoal, RiskLevel, ScenarioLevel
from pricecast.simulation.schemas import ScenarioProjection, SimulationResult

MAX_TRADEOFFS: int = 3


class ScenarioSpec(BaseModel):
    """One scenario to generate. new_price overrides the decision's proposal."""
    name: str
    level: ScenarioLevel
    new_price: Optional[float] = None


class ScenarioInputs(BaseModel):
    """Everything the narrative writer gets to see about one scenario."""
    decision_id: uuid.UUID
    company_name: str
    name: str
    level: ScenarioLevel
    pricing_goal: PricingGoal
    current_price: float
    new_price: float
    currency: str
    price_change_pct: float
    projection: ScenarioProjection


class ScenarioNarrative(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str = ""
    summary: str = ""
    tradeoffs: tuple[str, ...] = ()
    time_to_impact: str = ""
    execution_effort: str = ""

    @field_validator("tradeoffs", mode="before")
    @classmethod
    def _trim_tradeoffs(cls, value):
        if value is None:
            return ()
        cleaned = [str(item).strip() for item in value if item is not None and str(item).strip()]
        return tuple(cleaned[:MAX_TRADEOFFS])


class Scenario(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    decision_id: uuid.UUID
    name: str
    level: ScenarioLevel
    description: str = ""
    narrative: ScenarioNarrative = Field(default_factory=ScenarioNarrative)
    projection: SimulationResult
    risk_level: RiskLevel
    chosen: bool = False
    generation_id: uuid.UUID
    created_at: datetime

    @property
    def band(self) -> ScenarioProjection:
        return self.projection.projection(self.level)

    def predicted_kpis(self) -> dict[str, tuple[float, float]]:
        return self.band.kpi_ranges()
