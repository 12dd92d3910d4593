"""
Pricing elasticity table.

Components:
- schemas: buckets, goal profiles, churn and risk thresholds
- loader: packaged JSON table + validation
"""

from pricecast.elasticity.loader import load_elasticity_config
from pricecast.elasticity.schemas import (
    ElasticityConfig,
    PriceChangeBucket,
    PricingGoal,
    RiskLevel,
    ScenarioLevel,
)

__all__ = [
    "ElasticityConfig",
    "PriceChangeBucket",
    "PricingGoal",
    "RiskLevel",
    "ScenarioLevel",
    "load_elasticity_config",
]
