"""
Scenario Generator — named strategic options for a decision.

Generate-then-commit: every projection and narrative is produced in memory
first; only a complete set is written. Regeneration discards the previous
unchosen scenarios and never touches the chosen one, which outcomes may
already be measured against.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

import pydantic
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pricecast.config import settings
from pricecast.db.repositories import DecisionRepository, ScenarioRepository
from pricecast.decisions.engine import simulation_request
from pricecast.decisions.schemas import Decision
from pricecast.elasticity.schemas import ScenarioLevel
from pricecast.errors import DependencyError, ValidationError
from pricecast.scenarios.schemas import Scenario, ScenarioInputs, ScenarioNarrative, ScenarioSpec
from pricecast.services.inference import InferenceCollaborator
from pricecast.services.limits import LimitAction, LimitsGate, enforce_limit
from pricecast.services.resilience import call_dependency
from pricecast.simulation.engine import SCENARIO_NAMES, SimulationEngine

logger = structlog.get_logger(__name__)

MIN_SCENARIOS: int = 2
MAX_SCENARIOS: int = 4

CANONICAL_SPECS: tuple[ScenarioSpec, ...] = tuple(
    ScenarioSpec(name=SCENARIO_NAMES[level], level=level)
    for level in (ScenarioLevel.CONSERVATIVE, ScenarioLevel.BASE, ScenarioLevel.AGGRESSIVE)
)


class ScenarioGenerator:
    """Builds, stores and picks scenarios for one decision at a time."""

    def __init__(
        self,
        inference: InferenceCollaborator,
        simulation_engine: SimulationEngine,
        limits: Optional[LimitsGate] = None,
        decisions: Optional[DecisionRepository] = None,
        scenarios: Optional[ScenarioRepository] = None,
        inference_timeout: Optional[float] = None,
    ):
        self.inference = inference
        self.simulation_engine = simulation_engine
        self.limits = limits
        self.decisions = decisions or DecisionRepository()
        self.scenarios = scenarios or ScenarioRepository()
        self.inference_timeout = inference_timeout or settings.inference_timeout_seconds

    async def generate_scenarios(
        self,
        session: AsyncSession,
        decision_id: uuid.UUID,
        specs: Optional[Sequence[ScenarioSpec]] = None,
    ) -> list[Scenario]:
        """Replace the unchosen scenarios of a decision with a fresh set."""
        specs = list(specs) if specs else list(CANONICAL_SPECS)
        if not MIN_SCENARIOS <= len(specs) <= MAX_SCENARIOS:
            raise ValidationError(
                f"Between {MIN_SCENARIOS} and {MAX_SCENARIOS} scenarios are required",
                field="specs",
                details={"requested": len(specs)},
            )

        decision = await self.decisions.get(session, decision_id)
        if decision.pricing_input is None:
            raise ValidationError("Decision has no pricing input to simulate", field="pricing_input")
        preserved = sum(1 for s in await self.scenarios.list_active(session, decision.id) if s.chosen)
        if len(specs) + preserved > MAX_SCENARIOS:
            raise ValidationError(
                f"At most {MAX_SCENARIOS} scenarios per decision, the chosen one included",
                field="specs",
                details={"requested": len(specs), "preserved": preserved},
            )
        await enforce_limit(self.limits, session, decision.owner_id, LimitAction.GENERATE_SCENARIOS)

        # Build everything before writing anything
        generation_id = uuid.uuid4()
        now = datetime.now(timezone.utc)
        drafts = [self._build(decision, spec, generation_id, now) for spec in specs]
        tasks = [asyncio.ensure_future(self._narrate(decision, scenario)) for scenario in drafts]
        try:
            narratives = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        scenarios = [
            scenario.model_copy(update={"narrative": narrative, "description": narrative.description})
            for scenario, narrative in zip(drafts, narratives)
        ]

        await self.decisions.bump_revision(session, decision)
        discarded = await self.scenarios.replace_unchosen(session, decision.id, scenarios, now)

        logger.info(
            "scenarios_generated",
            decision_id=str(decision.id),
            generation_id=str(generation_id),
            count=len(scenarios),
            discarded=discarded,
        )
        return await self.scenarios.list_active(session, decision.id)

    async def set_chosen_scenario(
        self,
        session: AsyncSession,
        decision_id: uuid.UUID,
        scenario_id: uuid.UUID,
    ) -> Scenario:
        """Choose one scenario; any previously chosen one is un-chosen."""
        decision = await self.decisions.get(session, decision_id)
        # Claim the decision row before touching any chosen flag
        await self.decisions.bump_revision(session, decision)
        scenario = await self.scenarios.choose(session, decision.id, scenario_id)

        logger.info(
            "scenario_chosen",
            decision_id=str(decision.id),
            scenario_id=str(scenario.id),
            name=scenario.name,
        )
        return scenario

    async def list_scenarios(self, session: AsyncSession, decision_id: uuid.UUID) -> list[Scenario]:
        decision = await self.decisions.get(session, decision_id)
        return await self.scenarios.list_active(session, decision.id)

    async def get_chosen_scenario(self, session: AsyncSession, decision_id: uuid.UUID) -> Optional[Scenario]:
        for scenario in await self.list_scenarios(session, decision_id):
            if scenario.chosen:
                return scenario
        return None

    def _build(
        self,
        decision: Decision,
        spec: ScenarioSpec,
        generation_id: uuid.UUID,
        now: datetime,
    ) -> Scenario:
        projection = self.simulation_engine.simulate(
            simulation_request(decision.pricing_input, spec.new_price)
        )
        return Scenario(
            id=uuid.uuid4(),
            decision_id=decision.id,
            name=spec.name,
            level=spec.level,
            projection=projection,
            risk_level=projection.projection(spec.level).risk_level,
            chosen=False,
            generation_id=generation_id,
            created_at=now,
        )

    async def _narrate(self, decision: Decision, scenario: Scenario) -> ScenarioNarrative:
        inputs = ScenarioInputs(
            decision_id=decision.id,
            company_name=decision.company_name,
            name=scenario.name,
            level=scenario.level,
            pricing_goal=scenario.projection.pricing_goal,
            current_price=scenario.projection.current_price,
            new_price=scenario.projection.new_price,
            currency=scenario.projection.currency,
            price_change_pct=scenario.projection.price_change_pct,
            projection=scenario.band,
        )
        narrative = await call_dependency(
            "inference",
            "generate_scenario_narrative",
            lambda: self.inference.generate_scenario_narrative(inputs),
            self.inference_timeout,
        )
        if not isinstance(narrative, ScenarioNarrative):
            try:
                narrative = ScenarioNarrative.model_validate(narrative)
            except pydantic.ValidationError as exc:
                raise DependencyError("inference", "malformed scenario narrative") from exc
        return narrative
