"""
Simulation schemas — immutable price-change projections.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from pricecast.elasticity.schemas import PricingGoal, RiskLevel, ScenarioLevel


class SimulationRequest(BaseModel):
    """Business metrics plus the proposed price pair."""
    model_config = ConfigDict(frozen=True)

    current_price: float
    new_price: float
    active_customers: int
    currency: str = "USD"
    global_mrr: float = 0.0
    global_churn_rate: float = 0.0        # monthly %, e.g. 5.0
    pricing_goal: Optional[str] = None


class ScenarioProjection(BaseModel):
    """Bounded projection for one scenario level."""
    model_config = ConfigDict(frozen=True)

    level: ScenarioLevel
    name: str
    customer_loss_min_pct: float = 0.0
    customer_loss_max_pct: float = 0.0
    customer_gain_min_pct: float = 0.0
    customer_gain_max_pct: float = 0.0
    new_customer_count_min: int
    new_customer_count_max: int
    new_mrr_min: float
    new_mrr_max: float
    new_arr_min: float
    new_arr_max: float
    estimated_churn_min_pct: float
    estimated_churn_max_pct: float
    risk_level: RiskLevel

    def kpi_ranges(self) -> dict[str, tuple[float, float]]:
        """Predicted KPI ranges measurable after the change ships."""
        return {
            "customers": (float(self.new_customer_count_min), float(self.new_customer_count_max)),
            "mrr": (self.new_mrr_min, self.new_mrr_max),
            "arr": (self.new_arr_min, self.new_arr_max),
            "churn_rate": (self.estimated_churn_min_pct, self.estimated_churn_max_pct),
        }


class SimulationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_price: float
    new_price: float
    price_change_pct: float
    currency: str
    active_customers: int
    global_mrr: float
    global_churn_rate: float
    pricing_goal: PricingGoal
    bucket_label: str
    scenarios: tuple[ScenarioProjection, ...] = Field(default_factory=tuple)
    risk_level: RiskLevel

    @property
    def is_increase(self) -> bool:
        return self.price_change_pct >= 0

    @property
    def current_arr(self) -> float:
        return round(self.active_customers * self.current_price * 12, 2)

    def projection(self, level: ScenarioLevel) -> ScenarioProjection:
        for scenario in self.scenarios:
            if scenario.level == level:
                return scenario
        raise KeyError(level)
