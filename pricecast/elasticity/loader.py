"""
Elasticity table loader.

Reads the packaged pricing_elasticity.json (or an operator-supplied file) and
validates it before anything is simulated against it.
"""

import json
from importlib import resources
from pathlib import Path
from typing import Optional, Union

import pydantic
import structlog

from pricecast.config import settings
from pricecast.elasticity.schemas import ElasticityConfig, PricingGoal
from pricecast.errors import ConfigurationError

logger = structlog.get_logger(__name__)

PACKAGED_TABLE = "pricing_elasticity.json"


def load_elasticity_config(path: Optional[Union[str, Path]] = None) -> ElasticityConfig:
    """Load and validate an elasticity table (ELASTICITY_CONFIG_PATH, else the packaged one)."""
    path = path or settings.elasticity_config_path
    source = str(path) if path else f"pricecast.elasticity.data/{PACKAGED_TABLE}"
    try:
        if path:
            raw = Path(path).read_text(encoding="utf-8")
        else:
            raw = resources.files("pricecast.elasticity.data").joinpath(PACKAGED_TABLE).read_text(
                encoding="utf-8"
            )
        config = ElasticityConfig.model_validate(json.loads(raw))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read elasticity table: {exc}", {"path": source}) from exc
    except pydantic.ValidationError as exc:
        raise ConfigurationError(
            "Elasticity table does not match schema",
            {"path": source, "errors": exc.error_count()},
        ) from exc

    validate_elasticity_config(config)
    logger.info(
        "elasticity_config_loaded",
        path=source,
        version=config.version,
        buckets=len(config.buckets),
    )
    return config


def validate_elasticity_config(config: ElasticityConfig) -> None:
    """Structural checks the schema alone cannot express."""
    if not config.buckets:
        raise ConfigurationError("Elasticity table has no buckets")

    previous = None
    for bucket in config.buckets:
        if bucket.min_pct >= bucket.max_pct:
            raise ConfigurationError(
                "Bucket range is empty",
                {"bucket": bucket.label, "min_pct": bucket.min_pct, "max_pct": bucket.max_pct},
            )
        if previous is not None and bucket.min_pct < previous.max_pct:
            raise ConfigurationError(
                "Buckets must be ascending and non-overlapping",
                {"bucket": bucket.label, "previous": previous.label},
            )
        missing = [goal.value for goal in PricingGoal if goal not in bucket.profiles]
        if missing:
            raise ConfigurationError(
                "Bucket is missing pricing goal profiles",
                {"bucket": bucket.label, "missing": missing},
            )
        for goal, profile in bucket.profiles.items():
            for band in (profile.conservative, profile.base, profile.aggressive):
                if (band.customer_loss_min_pct > band.customer_loss_max_pct
                        or band.customer_gain_min_pct > band.customer_gain_max_pct):
                    raise ConfigurationError(
                        "Band minimum exceeds maximum",
                        {"bucket": bucket.label, "goal": goal.value},
                    )
        previous = bucket

    churn = config.churn_adjustment
    if churn.low_threshold > churn.high_threshold:
        raise ConfigurationError("Churn low threshold is above the high threshold")
    risk = config.risk_thresholds
    if risk.low_max > risk.medium_max:
        raise ConfigurationError("Risk low_max is above medium_max")
