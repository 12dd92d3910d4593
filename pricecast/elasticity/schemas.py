"""
Elasticity table schemas.

The table maps a price-change percentage to a bucket, and each bucket to
customer loss/gain bands per pricing goal and scenario level. Loaded once,
immutable afterwards.
"""

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PricingGoal(StrEnum):
    REVENUE = "revenue"
    RETENTION = "retention"
    CONVERSION = "conversion"
    DIFFERENTIATION = "differentiation"


DEFAULT_PRICING_GOAL = PricingGoal.REVENUE


def normalize_pricing_goal(goal: Optional[str]) -> PricingGoal:
    """Unknown or empty goals fall back to revenue. Matching is case-sensitive."""
    try:
        return PricingGoal(goal)
    except ValueError:
        return DEFAULT_PRICING_GOAL


class ScenarioLevel(StrEnum):
    CONSERVATIVE = "conservative"
    BASE = "base"
    AGGRESSIVE = "aggressive"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ScenarioBand(BaseModel):
    """Customer loss (price increase) and gain (price decrease) percentages."""
    model_config = ConfigDict(frozen=True)

    customer_loss_min_pct: float = Field(default=0.0, ge=0)
    customer_loss_max_pct: float = Field(default=0.0, ge=0)
    customer_gain_min_pct: float = Field(default=0.0, ge=0)
    customer_gain_max_pct: float = Field(default=0.0, ge=0)


class GoalProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    conservative: ScenarioBand
    base: ScenarioBand
    aggressive: ScenarioBand

    def band(self, level: ScenarioLevel) -> ScenarioBand:
        return getattr(self, ScenarioLevel(level).value)


class PriceChangeBucket(BaseModel):
    """Closed-open range [min_pct, max_pct) of price change percentages."""
    model_config = ConfigDict(frozen=True)

    min_pct: float
    max_pct: float
    label: str = ""
    profiles: dict[PricingGoal, GoalProfile]

    def contains(self, pct: float) -> bool:
        return self.min_pct <= pct < self.max_pct


class ChurnAdjustment(BaseModel):
    model_config = ConfigDict(frozen=True)

    high_threshold: float = 8.0
    high_multiplier: float = 1.3
    low_threshold: float = 4.0
    low_multiplier: float = 0.8


class RiskThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    low_max: float = 10.0
    medium_max: float = 20.0


class ElasticityConfig(BaseModel):
    """Ordered buckets plus churn and risk thresholds."""
    model_config = ConfigDict(frozen=True)

    version: str = "1"
    buckets: tuple[PriceChangeBucket, ...]
    churn_adjustment: ChurnAdjustment = Field(default_factory=ChurnAdjustment)
    risk_thresholds: RiskThresholds = Field(default_factory=RiskThresholds)

    def find_bucket(self, price_change_pct: float) -> Optional[PriceChangeBucket]:
        """
        Linear scan for the first bucket with min <= pct < max.

        Past the last bucket's max, the last bucket still matches as long as
        pct is at or above its min (open-ended upper tail).
        """
        for bucket in self.buckets:
            if bucket.contains(price_change_pct):
                return bucket
        if self.buckets:
            last = self.buckets[-1]
            if price_change_pct >= last.min_pct:
                return last
        return None

    def churn_multiplier(self, global_churn_rate: float) -> float:
        """Stepped multiplier. Between the two thresholds there is no adjustment."""
        adj = self.churn_adjustment
        if global_churn_rate >= adj.high_threshold:
            return adj.high_multiplier
        if global_churn_rate <= adj.low_threshold:
            return adj.low_multiplier
        return 1.0

    def derive_risk_level(self, abs_price_change_pct: float, level: ScenarioLevel) -> RiskLevel:
        thresholds = self.risk_thresholds
        if abs_price_change_pct > thresholds.medium_max:
            base_risk = RiskLevel.HIGH
        elif abs_price_change_pct > thresholds.low_max:
            base_risk = RiskLevel.MEDIUM
        else:
            base_risk = RiskLevel.LOW

        if level == ScenarioLevel.CONSERVATIVE:
            return RiskLevel.MEDIUM if base_risk == RiskLevel.HIGH else base_risk
        if level == ScenarioLevel.AGGRESSIVE:
            return RiskLevel.MEDIUM if base_risk == RiskLevel.LOW else RiskLevel.HIGH
        return base_risk
