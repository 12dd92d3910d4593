"""
Decision Schemas — the versioned, auditable pricing decision.

A decision carries two independent append-only version streams (context and
verdict) plus an append-only status audit trail. The "current" context and
verdict are read off the last version entry, never stored on their own.
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from pricecast.simulation.schemas import SimulationResult

CONFIDENCE_HIGH: float = 0.8
CONFIDENCE_MEDIUM: float = 0.6
RISK_HIGH: float = 0.7
RISK_MEDIUM: float = 0.4


class DecisionStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class ContextSource(StrEnum):
    USER = "user"
    INFERRED = "inferred"
    DEFAULT = "default"


class ScoreLabel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def confidence_label(score: float) -> ScoreLabel:
    if score >= CONFIDENCE_HIGH:
        return ScoreLabel.HIGH
    if score >= CONFIDENCE_MEDIUM:
        return ScoreLabel.MEDIUM
    return ScoreLabel.LOW


def risk_label(score: float) -> ScoreLabel:
    if score >= RISK_HIGH:
        return ScoreLabel.HIGH
    if score >= RISK_MEDIUM:
        return ScoreLabel.MEDIUM
    return ScoreLabel.LOW


# ── Context ──────────────────────────────────────────────────────────────


class ContextField(BaseModel):
    """A context value with provenance."""
    model_config = ConfigDict(frozen=True)

    value: Optional[str] = None
    source: ContextSource = ContextSource.INFERRED
    confidence_score: Optional[float] = None
    inferred_signal: Optional[str] = None


class MarketContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ContextField = Field(default_factory=ContextField)
    segment: ContextField = Field(default_factory=ContextField)


class DecisionContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    company_stage: ContextField = Field(default_factory=ContextField)
    business_model: ContextField = Field(default_factory=ContextField)
    primary_kpi: ContextField = Field(default_factory=ContextField)
    market: MarketContext = Field(default_factory=MarketContext)

    def fields(self) -> dict[str, ContextField]:
        """Flattened view keyed like ContextInput attributes."""
        return {
            "company_stage": self.company_stage,
            "business_model": self.business_model,
            "primary_kpi": self.primary_kpi,
            "market_type": self.market.type,
            "market_segment": self.market.segment,
        }


class ContextInput(BaseModel):
    """Plain context values as supplied by a user or workspace defaults."""
    company_stage: Optional[str] = None
    business_model: Optional[str] = None
    primary_kpi: Optional[str] = None
    market_type: Optional[str] = None
    market_segment: Optional[str] = None


class InferredValue(BaseModel):
    value: Optional[str] = None
    confidence: float = 0.0
    signal: Optional[str] = None


class InferredContext(BaseModel):
    """What the inference collaborator guessed from the company website."""
    company_name: Optional[str] = None
    company_stage: Optional[InferredValue] = None
    business_model: Optional[InferredValue] = None
    primary_kpi: Optional[InferredValue] = None
    market_type: Optional[InferredValue] = None
    market_segment: Optional[InferredValue] = None


class ContextVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int
    context: DecisionContext
    reason: str
    created_at: datetime


# ── Verdict ──────────────────────────────────────────────────────────────


class WhatToExpect(BaseModel):
    model_config = ConfigDict(frozen=True)

    risk_score: float = Field(ge=0, le=1)
    description: str = ""

    @computed_field
    @property
    def risk_label(self) -> ScoreLabel:
        return risk_label(self.risk_score)


class SupportingDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    expected_revenue_impact: str = ""
    churn_outlook: str = ""
    market_positioning: str = ""


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    headline: str
    summary: str
    confidence_score: float = Field(ge=0, le=1)
    cta: str = ""
    why_this_decision: tuple[str, ...] = ()
    what_to_expect: WhatToExpect
    supporting_details: SupportingDetails = Field(default_factory=SupportingDetails)

    @computed_field
    @property
    def confidence_label(self) -> ScoreLabel:
        return confidence_label(self.confidence_score)


class ModelMeta(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str = ""
    prompt_version: str = ""
    inference_duration_ms: int = 0


class VerdictVersion(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    version: int
    verdict: Verdict
    reason: str
    model_meta: ModelMeta = Field(default_factory=ModelMeta)
    created_at: datetime


# ── Status & impact ──────────────────────────────────────────────────────


class StatusEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: DecisionStatus
    actor: str
    reason: str = ""
    created_at: datetime
    implemented_at: Optional[datetime] = None
    rollback_at: Optional[datetime] = None
    is_rollback: bool = False


class ExpectedImpact(BaseModel):
    model_config = ConfigDict(frozen=True)

    revenue_range: str = ""
    churn_note: str = ""
    confidence_rationale: str = ""


class PricingInput(BaseModel):
    """The price change a decision is about."""
    model_config = ConfigDict(frozen=True)

    current_price: float
    new_price: float
    active_customers: int
    currency: str = "USD"
    global_mrr: float = 0.0
    global_churn_rate: float = 0.0
    pricing_goal: Optional[str] = None


# ── Aggregate ────────────────────────────────────────────────────────────


class Decision(BaseModel):
    """Aggregate root. Mutations go through versioning/lifecycle and return a copy."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: uuid.UUID
    owner_id: str
    company_name: str = ""
    website_url: str = ""
    status: DecisionStatus = DecisionStatus.PENDING
    context_versions: tuple[ContextVersion, ...]
    verdict_versions: tuple[VerdictVersion, ...]
    status_events: tuple[StatusEvent, ...] = ()
    expected_impact: ExpectedImpact = Field(default_factory=ExpectedImpact)
    model_meta: ModelMeta = Field(default_factory=ModelMeta)
    pricing_input: Optional[PricingInput] = None
    simulation: Optional[SimulationResult] = None
    revision: int = 0
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def context(self) -> DecisionContext:
        return self.context_versions[-1].context

    @computed_field
    @property
    def context_version(self) -> int:
        return len(self.context_versions)

    @computed_field
    @property
    def verdict(self) -> Verdict:
        return self.verdict_versions[-1].verdict

    @computed_field
    @property
    def verdict_version(self) -> int:
        return len(self.verdict_versions)


class DecisionCreate(BaseModel):
    """Input for creating a decision."""
    owner_id: str
    company_name: Optional[str] = None
    website_url: str = ""
    context: ContextInput = Field(default_factory=ContextInput)
    workspace_defaults: Optional[ContextInput] = None
    pricing_input: Optional[PricingInput] = None
    infer_context: bool = True


class ComparisonEntry(BaseModel):
    decision_id: uuid.UUID
    company_name: str
    status: DecisionStatus
    context: DecisionContext
    context_version: int
    verdict_headline: str
    verdict_version: int
    confidence_score: float
    confidence_label: ScoreLabel
    risk_score: float
    risk_label: ScoreLabel
    price_change_pct: Optional[float] = None
    created_at: datetime


class ComparisonView(BaseModel):
    """Side-by-side projection of several decisions."""
    entries: list[ComparisonEntry] = Field(default_factory=list)
    generated_at: datetime
