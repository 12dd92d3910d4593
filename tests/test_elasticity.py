"""
Tests for the elasticity table.

Covers:
- Bucket lookup at edges, below the table and in the open upper tail
- Churn multiplier steps
- Risk level per scenario level
- Loader validation of broken tables
"""

import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pricecast.elasticity.loader import load_elasticity_config, validate_elasticity_config
from pricecast.elasticity.schemas import (
    PricingGoal,
    RiskLevel,
    ScenarioLevel,
    normalize_pricing_goal,
)
from pricecast.errors import ConfigurationError


# ── Bucket lookup ────────────────────────────────────────────────────────


class TestFindBucket:
    def setup_method(self):
        self.config = load_elasticity_config()

    def test_packaged_table_shape(self):
        assert len(self.config.buckets) == 7
        assert self.config.buckets[0].min_pct == -100
        assert self.config.buckets[-1].max_pct == 100

    def test_lower_edge_is_inclusive(self):
        assert self.config.find_bucket(-10).min_pct == -10
        assert self.config.find_bucket(0).min_pct == 0
        assert self.config.find_bucket(20).min_pct == 20

    def test_upper_edge_is_exclusive(self):
        assert self.config.find_bucket(-10.01).max_pct == -10
        assert self.config.find_bucket(19.99).max_pct == 20

    def test_open_upper_tail(self):
        last = self.config.buckets[-1]
        assert self.config.find_bucket(100) is last
        assert self.config.find_bucket(150) is last

    def test_lowest_min_is_inclusive(self):
        assert self.config.find_bucket(-100) is self.config.buckets[0]

    def test_below_table_has_no_bucket(self):
        assert self.config.find_bucket(-101) is None

    @given(pct=st.floats(min_value=-500, max_value=500, allow_nan=False))
    @settings(max_examples=50)
    def test_bucket_exists_iff_above_lowest_min(self, pct):
        config = load_elasticity_config()
        bucket = config.find_bucket(pct)
        assert (bucket is not None) == (pct >= config.buckets[0].min_pct)
        if bucket is not None and pct < config.buckets[-1].max_pct:
            assert bucket.min_pct <= pct < bucket.max_pct


# ── Churn multiplier ─────────────────────────────────────────────────────


class TestChurnMultiplier:
    def setup_method(self):
        self.config = load_elasticity_config()

    @pytest.mark.parametrize(
        "rate,expected",
        [(0.0, 0.8), (4.0, 0.8), (4.01, 1.0), (7.99, 1.0), (8.0, 1.3), (20.0, 1.3)],
    )
    def test_steps(self, rate, expected):
        assert self.config.churn_multiplier(rate) == expected


# ── Risk level ───────────────────────────────────────────────────────────


class TestRiskLevel:
    def setup_method(self):
        self.config = load_elasticity_config()

    def test_base_follows_thresholds(self):
        assert self.config.derive_risk_level(10, ScenarioLevel.BASE) == RiskLevel.LOW
        assert self.config.derive_risk_level(10.5, ScenarioLevel.BASE) == RiskLevel.MEDIUM
        assert self.config.derive_risk_level(20, ScenarioLevel.BASE) == RiskLevel.MEDIUM
        assert self.config.derive_risk_level(25, ScenarioLevel.BASE) == RiskLevel.HIGH

    def test_conservative_caps_high_at_medium(self):
        assert self.config.derive_risk_level(25, ScenarioLevel.CONSERVATIVE) == RiskLevel.MEDIUM
        assert self.config.derive_risk_level(5, ScenarioLevel.CONSERVATIVE) == RiskLevel.LOW

    def test_aggressive_raises_one_step(self):
        assert self.config.derive_risk_level(5, ScenarioLevel.AGGRESSIVE) == RiskLevel.MEDIUM
        assert self.config.derive_risk_level(15, ScenarioLevel.AGGRESSIVE) == RiskLevel.HIGH
        assert self.config.derive_risk_level(25, ScenarioLevel.AGGRESSIVE) == RiskLevel.HIGH


# ── Pricing goal ─────────────────────────────────────────────────────────


def test_goal_normalization():
    assert normalize_pricing_goal("retention") == PricingGoal.RETENTION
    assert normalize_pricing_goal(None) == PricingGoal.REVENUE
    assert normalize_pricing_goal("growth") == PricingGoal.REVENUE
    # Case-sensitive
    assert normalize_pricing_goal("Retention") == PricingGoal.REVENUE


# ── Loader ───────────────────────────────────────────────────────────────


def _table() -> dict:
    band = {"customer_loss_min_pct": 1, "customer_loss_max_pct": 2}
    profile = {"conservative": band, "base": band, "aggressive": band}
    return {
        "version": "test",
        "buckets": [
            {"min_pct": 0, "max_pct": 10, "label": "a", "profiles": {g.value: profile for g in PricingGoal}},
            {"min_pct": 10, "max_pct": 20, "label": "b", "profiles": {g.value: profile for g in PricingGoal}},
        ],
    }


class TestLoader:
    def test_loads_custom_file(self, tmp_path):
        path = tmp_path / "table.json"
        path.write_text(json.dumps(_table()))
        config = load_elasticity_config(path)
        assert config.version == "test"
        assert config.find_bucket(-1) is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_elasticity_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "table.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_elasticity_config(path)

    def test_schema_mismatch(self, tmp_path):
        path = tmp_path / "table.json"
        path.write_text(json.dumps({"buckets": [{"min_pct": "x"}]}))
        with pytest.raises(ConfigurationError):
            load_elasticity_config(path)

    def test_overlapping_buckets_rejected(self, tmp_path):
        table = _table()
        table["buckets"][1]["min_pct"] = 5
        path = tmp_path / "table.json"
        path.write_text(json.dumps(table))
        with pytest.raises(ConfigurationError, match="non-overlapping"):
            load_elasticity_config(path)

    def test_missing_goal_rejected(self, tmp_path):
        table = _table()
        del table["buckets"][0]["profiles"]["conversion"]
        path = tmp_path / "table.json"
        path.write_text(json.dumps(table))
        with pytest.raises(ConfigurationError, match="missing pricing goal"):
            load_elasticity_config(path)

    def test_inverted_band_rejected(self):
        config = load_elasticity_config()
        bucket = config.buckets[3]
        base = bucket.profiles[PricingGoal.REVENUE].base.model_copy(
            update={"customer_loss_min_pct": 50.0}
        )
        profile = bucket.profiles[PricingGoal.REVENUE].model_copy(update={"base": base})
        broken_bucket = bucket.model_copy(
            update={"profiles": {**bucket.profiles, PricingGoal.REVENUE: profile}}
        )
        broken = config.model_copy(
            update={"buckets": config.buckets[:3] + (broken_bucket,) + config.buckets[4:]}
        )
        with pytest.raises(ConfigurationError, match="Band minimum"):
            validate_elasticity_config(broken)
