"""
Test fixtures for PriceCast.

Provides:
- Per-test SQLite database (aiosqlite, file under tmp_path) with all tables
- Fake inference and learning collaborators with controllable delay/failure
- Engines wired to the fakes
- Sample pricing input and decision requests
"""

import asyncio
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pricecast.db.engine import Base
from pricecast.db import models  # noqa: F401 — register all models
from pricecast.decisions.engine import DecisionEngine
from pricecast.decisions.schemas import (
    ContextInput,
    DecisionContext,
    DecisionCreate,
    DecisionStatus,
    InferredContext,
    InferredValue,
    PricingInput,
    SupportingDetails,
)
from pricecast.elasticity.loader import load_elasticity_config
from pricecast.outcomes.tracker import OutcomeTracker
from pricecast.scenarios.generator import ScenarioGenerator
from pricecast.scenarios.schemas import ScenarioInputs, ScenarioNarrative
from pricecast.services.inference import VerdictDraft
from pricecast.services.learning import LearningSignal
from pricecast.simulation.engine import SimulationEngine
from pricecast.simulation.schemas import SimulationResult

OWNER = "owner-1"


# ── Fake collaborators ───────────────────────────────────────────────────


class FakeInference:
    """In-memory InferenceCollaborator. Set delay/fail to misbehave."""

    def __init__(self):
        self.delay: float = 0.0
        self.fail: Optional[Exception] = None
        self.confidence: float = 0.9
        self.risk: float = 0.3
        self.inferred: Optional[InferredContext] = None
        self.verdict_calls = 0
        self.narrative_calls = 0
        self.context_calls = 0

    async def _misbehave(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail

    async def generate_verdict(
        self,
        context: DecisionContext,
        simulation: Optional[SimulationResult],
        learning: Optional[LearningSignal] = None,
    ) -> VerdictDraft:
        self.verdict_calls += 1
        await self._misbehave()
        return VerdictDraft(
            headline=f"Verdict #{self.verdict_calls}",
            summary="Raise the price on the Pro plan.",
            confidence_score=self.confidence,
            risk_score=self.risk,
            cta="Roll out to new customers first",
            why_this_decision=["Below market median", "", "Low churn"],
            risk_description="Some price-sensitive customers may leave.",
            supporting_details=SupportingDetails(expected_revenue_impact="+10% MRR"),
            model_name="fake-model",
            prompt_version="test-1",
        )

    async def generate_scenario_narrative(self, inputs: ScenarioInputs) -> ScenarioNarrative:
        self.narrative_calls += 1
        await self._misbehave()
        return ScenarioNarrative(
            description=f"{inputs.name} path for {inputs.company_name}",
            summary=f"{inputs.level.value} projection",
            tradeoffs=["Slower growth", "Fewer support tickets", "Higher ARPU", "Extra"],
            time_to_impact="1-2 billing cycles",
            execution_effort="low",
        )

    async def infer_context(self, website_url: str) -> InferredContext:
        self.context_calls += 1
        await self._misbehave()
        return self.inferred or InferredContext(
            company_name="Acme Cloud",
            company_stage=InferredValue(value="growth", confidence=0.9, signal="pricing page"),
            business_model=InferredValue(value="b2b_saas", confidence=0.8, signal="seat pricing"),
            primary_kpi=InferredValue(value="mrr", confidence=0.3, signal="guess"),
        )


class FakeLearning:
    def __init__(self, boost: float = 0.1, fail: Optional[Exception] = None):
        self.boost = boost
        self.fail = fail
        self.calls = 0

    async def get_learning_signal(self, context: DecisionContext) -> LearningSignal:
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return LearningSignal(confidence_boost=self.boost, summary="3 similar decisions on track", sample_size=3)


# ── Database ─────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh database file per test, so separate sessions really race."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ── Engines ──────────────────────────────────────────────────────────────


@pytest.fixture
def elasticity_config():
    return load_elasticity_config()


@pytest.fixture
def simulation_engine(elasticity_config) -> SimulationEngine:
    return SimulationEngine(elasticity_config)


@pytest.fixture
def inference() -> FakeInference:
    return FakeInference()


@pytest.fixture
def decision_engine(inference, simulation_engine) -> DecisionEngine:
    return DecisionEngine(inference, simulation_engine, inference_timeout=0.5, compare_max=5)


@pytest.fixture
def scenario_generator(inference, simulation_engine) -> ScenarioGenerator:
    return ScenarioGenerator(inference, simulation_engine, inference_timeout=0.5)


@pytest.fixture
def outcome_tracker() -> OutcomeTracker:
    return OutcomeTracker()


# ── Sample data ──────────────────────────────────────────────────────────


@pytest.fixture
def pricing_input() -> PricingInput:
    return PricingInput(
        current_price=79.0,
        new_price=99.0,
        active_customers=423,
        global_mrr=33417.0,
        global_churn_rate=5.0,
        pricing_goal="revenue",
    )


@pytest.fixture
def create_request(pricing_input) -> DecisionCreate:
    return DecisionCreate(
        owner_id=OWNER,
        website_url="https://www.acme-cloud.io",
        context=ContextInput(company_stage="seed"),
        pricing_input=pricing_input,
    )


@pytest_asyncio.fixture
async def approved_decision(decision_engine, db, create_request):
    """A created decision moved to approved, ready for scenarios and outcomes."""
    decision = await decision_engine.create_decision(db, create_request)
    return await decision_engine.transition(db, decision.id, DecisionStatus.APPROVED, actor="ceo")
