"""
Verdict scoring — turns a collaborator draft into a Verdict with
deterministic scores.

The narrative comes from the inference collaborator; its numbers are only
a starting point. Risk follows the simulation, confidence is discounted for guessed
context and boosted by historical outcomes.
"""

from typing import Optional

from pricecast.decisions.schemas import (
    ContextSource,
    DecisionContext,
    ExpectedImpact,
    Verdict,
    WhatToExpect,
)
from pricecast.elasticity.schemas import RiskLevel, ScenarioLevel
from pricecast.services.inference import VerdictDraft
from pricecast.services.learning import MAX_CONFIDENCE_BOOST, LearningSignal
from pricecast.simulation.schemas import SimulationResult

RISK_SCORE_BY_LEVEL: dict[RiskLevel, float] = {
    RiskLevel.LOW: 0.25,
    RiskLevel.MEDIUM: 0.55,
    RiskLevel.HIGH: 0.85,
}

# Confidence lost per context field that was not supplied by the user
UNCONFIRMED_FIELD_PENALTY: float = 0.05
MAX_UNCONFIRMED_PENALTY: float = 0.2


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class VerdictScorer:
    """Scores drafts and derives the expected-impact summary."""

    def __init__(
        self,
        field_penalty: float = UNCONFIRMED_FIELD_PENALTY,
        max_penalty: float = MAX_UNCONFIRMED_PENALTY,
        max_boost: float = MAX_CONFIDENCE_BOOST,
    ):
        self.field_penalty = field_penalty
        self.max_penalty = max_penalty
        self.max_boost = max_boost

    def score(
        self,
        draft: VerdictDraft,
        context: DecisionContext,
        simulation: Optional[SimulationResult] = None,
        learning: Optional[LearningSignal] = None,
    ) -> Verdict:
        return Verdict(
            headline=draft.headline,
            summary=draft.summary,
            confidence_score=self.confidence_score(draft.confidence_score, context, learning),
            cta=draft.cta,
            why_this_decision=tuple(item for item in draft.why_this_decision if item),
            what_to_expect=WhatToExpect(
                risk_score=self.risk_score(draft.risk_score, simulation),
                description=draft.risk_description,
            ),
            supporting_details=draft.supporting_details,
        )

    def risk_score(self, proposed: float, simulation: Optional[SimulationResult]) -> float:
        if simulation is not None:
            return RISK_SCORE_BY_LEVEL[simulation.risk_level]
        return round(_clamp(proposed), 2)

    def confidence_score(
        self,
        proposed: float,
        context: DecisionContext,
        learning: Optional[LearningSignal] = None,
    ) -> float:
        unconfirmed = sum(1 for f in context.fields().values() if f.source != ContextSource.USER)
        penalty = min(unconfirmed * self.field_penalty, self.max_penalty)
        boost = min(learning.confidence_boost, self.max_boost) if learning else 0.0
        return round(_clamp(_clamp(proposed) - penalty + boost), 2)

    def expected_impact(
        self,
        verdict: Verdict,
        simulation: Optional[SimulationResult],
        learning: Optional[LearningSignal] = None,
    ) -> ExpectedImpact:
        rationale = f"{verdict.confidence_label.value} confidence ({verdict.confidence_score:.2f})"
        if learning and learning.summary:
            rationale = f"{rationale}; {learning.summary}"

        if simulation is None:
            return ExpectedImpact(
                revenue_range=verdict.supporting_details.expected_revenue_impact,
                churn_note=verdict.supporting_details.churn_outlook,
                confidence_rationale=rationale,
            )

        base = simulation.projection(ScenarioLevel.BASE)
        current_mrr = simulation.active_customers * simulation.current_price
        if current_mrr > 0:
            low = (base.new_mrr_min - current_mrr) / current_mrr * 100
            high = (base.new_mrr_max - current_mrr) / current_mrr * 100
            revenue_range = f"{low:+.0f}% to {high:+.0f}% MRR"
        else:
            revenue_range = f"{base.new_mrr_min:,.0f}-{base.new_mrr_max:,.0f} {simulation.currency} MRR"

        if simulation.is_increase:
            churn_note = (
                f"Expect losing {base.customer_loss_min_pct:g}-{base.customer_loss_max_pct:g}% "
                f"of customers; churn {base.estimated_churn_min_pct:g}-{base.estimated_churn_max_pct:g}%"
            )
        else:
            churn_note = (
                f"Expect gaining {base.customer_gain_min_pct:g}-{base.customer_gain_max_pct:g}% "
                f"more customers; churn {base.estimated_churn_min_pct:g}-{base.estimated_churn_max_pct:g}%"
            )
        return ExpectedImpact(
            revenue_range=revenue_range,
            churn_note=churn_note,
            confidence_rationale=rationale,
        )
