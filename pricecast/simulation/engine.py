"""
Simulation Engine — deterministic elasticity projections.

Given a price change and business metrics, produces bounded customer-count,
MRR and ARR ranges for the conservative, base and aggressive scenario levels.

Pipeline:
1. Validate inputs
2. Price change % → bucket (closed-open, open-ended tail)
3. Pricing goal → goal profile
4. Loss/gain bands × churn multiplier
5. Ranges + estimated churn + risk level per scenario level
"""

import math

import structlog

from pricecast.elasticity.schemas import (
    ElasticityConfig,
    ScenarioBand,
    ScenarioLevel,
    normalize_pricing_goal,
)
from pricecast.errors import ConfigurationError, ValidationError
from pricecast.simulation.schemas import ScenarioProjection, SimulationRequest, SimulationResult

logger = structlog.get_logger(__name__)

SCENARIO_LEVELS: tuple[ScenarioLevel, ...] = (
    ScenarioLevel.CONSERVATIVE,
    ScenarioLevel.BASE,
    ScenarioLevel.AGGRESSIVE,
)

SCENARIO_NAMES: dict[ScenarioLevel, str] = {
    ScenarioLevel.CONSERVATIVE: "Conservative",
    ScenarioLevel.BASE: "Base",
    ScenarioLevel.AGGRESSIVE: "Aggressive",
}

# Estimated churn drift per point of price change
CHURN_DRIFT_ON_INCREASE: float = 0.05
CHURN_DRIFT_ON_DECREASE: float = 0.03


def _round_count(value: float) -> int:
    """Half away from zero, for non-negative customer counts."""
    return int(math.floor(value + 0.5))


class SimulationEngine:
    """
    Projects the effect of a price change using an injected elasticity table.

    Stateless apart from the read-only config; safe to share across requests.
    """

    def __init__(self, config: ElasticityConfig):
        self.config = config

    def simulate(self, request: SimulationRequest) -> SimulationResult:
        self._validate(request)

        price_change_pct = (request.new_price - request.current_price) / request.current_price * 100
        abs_pct = abs(price_change_pct)
        goal = normalize_pricing_goal(request.pricing_goal)

        bucket = self.config.find_bucket(price_change_pct)
        if bucket is None:
            raise ConfigurationError(
                "No elasticity bucket matches price change",
                {"price_change_pct": round(price_change_pct, 2)},
            )
        profile = bucket.profiles.get(goal)
        if profile is None:
            raise ConfigurationError(
                "Elasticity bucket has no profile for pricing goal",
                {"bucket": bucket.label, "goal": goal.value},
            )

        multiplier = self.config.churn_multiplier(request.global_churn_rate)
        is_increase = price_change_pct >= 0

        scenarios = tuple(
            self._project(
                level=level,
                band=profile.band(level),
                request=request,
                multiplier=multiplier,
                is_increase=is_increase,
                abs_pct=abs_pct,
            )
            for level in SCENARIO_LEVELS
        )

        result = SimulationResult(
            current_price=request.current_price,
            new_price=request.new_price,
            price_change_pct=round(price_change_pct, 2),
            currency=request.currency,
            active_customers=request.active_customers,
            global_mrr=request.global_mrr,
            global_churn_rate=request.global_churn_rate,
            pricing_goal=goal,
            bucket_label=bucket.label,
            scenarios=scenarios,
            risk_level=scenarios[1].risk_level,
        )

        logger.info(
            "simulation_completed",
            price_change_pct=result.price_change_pct,
            bucket=bucket.label,
            goal=goal.value,
            churn_multiplier=multiplier,
            risk_level=result.risk_level.value,
        )
        return result

    def _validate(self, request: SimulationRequest) -> None:
        numbers = {
            "current_price": request.current_price,
            "new_price": request.new_price,
            "global_mrr": request.global_mrr,
            "global_churn_rate": request.global_churn_rate,
        }
        for field, value in numbers.items():
            if not math.isfinite(value):
                raise ValidationError(f"{field} must be a finite number", field=field)
        if request.current_price <= 0:
            raise ValidationError("current_price must be greater than 0", field="current_price")
        if request.new_price < 0:
            raise ValidationError("new_price cannot be negative", field="new_price")
        if request.active_customers < 0:
            raise ValidationError("active_customers cannot be negative", field="active_customers")
        if request.global_churn_rate < 0:
            raise ValidationError("global_churn_rate cannot be negative", field="global_churn_rate")

    def _project(
        self,
        level: ScenarioLevel,
        band: ScenarioBand,
        request: SimulationRequest,
        multiplier: float,
        is_increase: bool,
        abs_pct: float,
    ) -> ScenarioProjection:
        customers = request.active_customers
        loss_min_pct = loss_max_pct = gain_min_pct = gain_max_pct = 0.0

        if is_increase:
            loss_min_pct = min(band.customer_loss_min_pct * multiplier, 100.0)
            loss_max_pct = min(band.customer_loss_max_pct * multiplier, 100.0)
            lost_min = _round_count(customers * loss_min_pct / 100)
            lost_max = _round_count(customers * loss_max_pct / 100)
            count_min = max(customers - lost_max, 0)
            count_max = max(customers - lost_min, 0)

            drift = abs_pct * CHURN_DRIFT_ON_INCREASE
            churn_min = request.global_churn_rate + drift * 0.5
            churn_max = request.global_churn_rate + drift
        else:
            gain_min_pct = band.customer_gain_min_pct * multiplier
            gain_max_pct = band.customer_gain_max_pct * multiplier
            count_min = customers + _round_count(customers * gain_min_pct / 100)
            count_max = customers + _round_count(customers * gain_max_pct / 100)

            drift = abs_pct * CHURN_DRIFT_ON_DECREASE
            churn_min = max(0.0, request.global_churn_rate - drift)
            churn_max = max(0.0, request.global_churn_rate - drift * 0.5)

        mrr_min = round(count_min * request.new_price, 2)
        mrr_max = round(count_max * request.new_price, 2)

        return ScenarioProjection(
            level=level,
            name=SCENARIO_NAMES[level],
            customer_loss_min_pct=round(loss_min_pct, 2),
            customer_loss_max_pct=round(loss_max_pct, 2),
            customer_gain_min_pct=round(gain_min_pct, 2),
            customer_gain_max_pct=round(gain_max_pct, 2),
            new_customer_count_min=count_min,
            new_customer_count_max=count_max,
            new_mrr_min=mrr_min,
            new_mrr_max=mrr_max,
            new_arr_min=round(mrr_min * 12, 2),
            new_arr_max=round(mrr_max * 12, 2),
            estimated_churn_min_pct=round(churn_min, 2),
            estimated_churn_max_pct=round(churn_max, 2),
            risk_level=self.config.derive_risk_level(abs_pct, level),
        )
