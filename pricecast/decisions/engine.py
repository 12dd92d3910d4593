"""
Decision Engine — orchestrates the decision lifecycle against the store.

Every write follows the same shape:
1. Load the aggregate (invariants checked on read)
2. Call collaborators (bounded by a timeout) before touching the store
3. Build the new aggregate value (append version / append status event)
4. Compare-and-swap it back in one statement

So a collaborator timeout or a lost race leaves the stored decision exactly
as it was.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence, TypeVar
from urllib.parse import urlparse

import pydantic
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pricecast.config import settings
from pricecast.db.repositories import DecisionRepository, OutcomeRepository, ScenarioRepository
from pricecast.decisions.context import ContextResolver
from pricecast.decisions.lifecycle import apply_rollback, apply_transition, creation_event
from pricecast.decisions.schemas import (
    ComparisonEntry,
    ComparisonView,
    ContextInput,
    ContextVersion,
    Decision,
    DecisionContext,
    DecisionCreate,
    DecisionStatus,
    ModelMeta,
    PricingInput,
    Verdict,
    VerdictVersion,
)
from pricecast.decisions.verdict import VerdictScorer
from pricecast.decisions.versioning import (
    INITIAL_CONTEXT_REASON,
    INITIAL_VERDICT_REASON,
    append_context_version,
    append_verdict_version,
)
from pricecast.errors import DependencyError, ValidationError
from pricecast.services.inference import InferenceCollaborator, VerdictDraft
from pricecast.services.learning import LearningCollaborator, LearningSignal
from pricecast.services.limits import LimitAction, LimitsGate, enforce_limit
from pricecast.services.resilience import call_dependency
from pricecast.simulation.engine import SimulationEngine
from pricecast.simulation.schemas import SimulationRequest, SimulationResult

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CONTEXT_UPDATE_REASON = "Context updated by user"
VERDICT_REGENERATED_REASON = "Verdict regenerated"


def company_name_from_url(website_url: str) -> str:
    """'https://www.acme-cloud.io/pricing' → 'Acme Cloud'."""
    if not website_url:
        return ""
    parsed = urlparse(website_url if "://" in website_url else f"https://{website_url}")
    host = (parsed.hostname or "").removeprefix("www.")
    label = host.split(".")[0] if host else ""
    return label.replace("-", " ").replace("_", " ").title()


def simulation_request(pricing: PricingInput, new_price: Optional[float] = None) -> SimulationRequest:
    values = pricing.model_dump()
    if new_price is not None:
        values["new_price"] = new_price
    return SimulationRequest(**values)


class DecisionEngine:
    """
    Creates and evolves pricing decisions.

    Collaborators are injected; the elasticity table reaches it through the
    SimulationEngine it is given.
    """

    def __init__(
        self,
        inference: InferenceCollaborator,
        simulation_engine: SimulationEngine,
        limits: Optional[LimitsGate] = None,
        learning: Optional[LearningCollaborator] = None,
        decisions: Optional[DecisionRepository] = None,
        scenarios: Optional[ScenarioRepository] = None,
        outcomes: Optional[OutcomeRepository] = None,
        resolver: Optional[ContextResolver] = None,
        scorer: Optional[VerdictScorer] = None,
        inference_timeout: Optional[float] = None,
        compare_max: Optional[int] = None,
    ):
        self.inference = inference
        self.simulation_engine = simulation_engine
        self.limits = limits
        self.learning = learning
        self.decisions = decisions or DecisionRepository()
        self.scenarios = scenarios or ScenarioRepository()
        self.outcomes = outcomes or OutcomeRepository()
        self.resolver = resolver or ContextResolver(settings.context_min_inferred_confidence)
        self.scorer = scorer or VerdictScorer()
        self.inference_timeout = inference_timeout or settings.inference_timeout_seconds
        self.compare_max = compare_max or settings.compare_max_decisions

    # ── Create ───────────────────────────────────────────────────────────

    async def create_decision(
        self,
        session: AsyncSession,
        request: DecisionCreate,
        actor: Optional[str] = None,
    ) -> Decision:
        await enforce_limit(self.limits, session, request.owner_id, LimitAction.CREATE_DECISION)

        inferred = None
        if request.infer_context and request.website_url:
            inferred = await self._call(
                "infer_context", lambda: self.inference.infer_context(request.website_url)
            )

        context = self.resolver.resolve(request.context, request.workspace_defaults, inferred)
        simulation = self._simulate(request.pricing_input)
        learning = await self._learning_signal(context)
        verdict, meta = await self._generate_verdict(context, simulation, learning)

        now = datetime.now(timezone.utc)
        company_name = (
            request.company_name
            or (inferred.company_name if inferred else None)
            or company_name_from_url(request.website_url)
        )
        decision = Decision(
            id=uuid.uuid4(),
            owner_id=request.owner_id,
            company_name=company_name,
            website_url=request.website_url,
            status=DecisionStatus.PENDING,
            context_versions=(
                ContextVersion(version=1, context=context, reason=INITIAL_CONTEXT_REASON, created_at=now),
            ),
            verdict_versions=(
                VerdictVersion(
                    version=1,
                    verdict=verdict,
                    reason=INITIAL_VERDICT_REASON,
                    model_meta=meta,
                    created_at=now,
                ),
            ),
            status_events=(creation_event(actor or request.owner_id, now),),
            expected_impact=self.scorer.expected_impact(verdict, simulation, learning),
            model_meta=meta,
            pricing_input=request.pricing_input,
            simulation=simulation,
            created_at=now,
            updated_at=now,
        )
        decision = await self.decisions.add(session, decision)

        logger.info(
            "decision_created",
            decision_id=str(decision.id),
            owner_id=decision.owner_id,
            confidence=verdict.confidence_score,
            risk=verdict.what_to_expect.risk_score,
            has_simulation=simulation is not None,
        )
        return decision

    # ── Read ─────────────────────────────────────────────────────────────

    async def get_decision(self, session: AsyncSession, decision_id: uuid.UUID) -> Decision:
        return await self.decisions.get(session, decision_id)

    async def list_decisions(
        self,
        session: AsyncSession,
        owner_id: str,
        status: Optional[DecisionStatus] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Decision]:
        return await self.decisions.list_for_owner(session, owner_id, status, offset, limit)

    async def compare(self, session: AsyncSession, decision_ids: Sequence[uuid.UUID]) -> ComparisonView:
        """Read-only side-by-side view of current context and verdict."""
        ids = list(dict.fromkeys(decision_ids))
        if not ids:
            raise ValidationError("At least one decision id is required", field="decision_ids")
        if len(ids) > self.compare_max:
            raise ValidationError(
                f"At most {self.compare_max} decisions can be compared",
                field="decision_ids",
                details={"requested": len(ids)},
            )

        decisions = await self.decisions.get_many(session, ids)
        entries = [
            ComparisonEntry(
                decision_id=d.id,
                company_name=d.company_name,
                status=d.status,
                context=d.context,
                context_version=d.context_version,
                verdict_headline=d.verdict.headline,
                verdict_version=d.verdict_version,
                confidence_score=d.verdict.confidence_score,
                confidence_label=d.verdict.confidence_label,
                risk_score=d.verdict.what_to_expect.risk_score,
                risk_label=d.verdict.what_to_expect.risk_label,
                price_change_pct=d.simulation.price_change_pct if d.simulation else None,
                created_at=d.created_at,
            )
            for d in decisions
        ]
        return ComparisonView(entries=entries, generated_at=datetime.now(timezone.utc))

    # ── Versioned updates ────────────────────────────────────────────────

    async def update_context(
        self,
        session: AsyncSession,
        decision_id: uuid.UUID,
        changes: ContextInput,
        reason: str = CONTEXT_UPDATE_REASON,
    ) -> Decision:
        if not changes.model_fields_set:
            raise ValidationError("No context fields to update", field="changes")

        decision = await self.decisions.get(session, decision_id)
        context = self.resolver.merge_user_update(decision.context, changes)
        decision = append_context_version(decision, context, reason)
        decision = await self.decisions.save(session, decision)

        logger.info(
            "context_version_appended",
            decision_id=str(decision.id),
            context_version=decision.context_version,
            fields=sorted(changes.model_fields_set),
        )
        return decision

    async def regenerate_verdict(
        self,
        session: AsyncSession,
        decision_id: uuid.UUID,
        reason: str = VERDICT_REGENERATED_REASON,
    ) -> Decision:
        decision = await self.decisions.get(session, decision_id)

        simulation = self._simulate(decision.pricing_input)
        learning = await self._learning_signal(decision.context)
        verdict, meta = await self._generate_verdict(decision.context, simulation, learning)

        decision = append_verdict_version(decision, verdict, reason, meta)
        decision = decision.model_copy(
            update={
                "simulation": simulation,
                "expected_impact": self.scorer.expected_impact(verdict, simulation, learning),
            }
        )
        decision = await self.decisions.save(session, decision)

        logger.info(
            "verdict_regenerated",
            decision_id=str(decision.id),
            verdict_version=decision.verdict_version,
            confidence=verdict.confidence_score,
            inference_ms=meta.inference_duration_ms,
        )
        return decision

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def transition(
        self,
        session: AsyncSession,
        decision_id: uuid.UUID,
        target: DecisionStatus,
        actor: str,
        reason: str = "",
        implemented_at: Optional[datetime] = None,
    ) -> Decision:
        decision = await self.decisions.get(session, decision_id)
        previous = decision.status
        decision = apply_transition(decision, target, actor, reason, implemented_at)
        decision = await self.decisions.save(session, decision)

        logger.info(
            "decision_transitioned",
            decision_id=str(decision.id),
            from_status=previous.value,
            to_status=decision.status.value,
            actor=actor,
        )
        return decision

    async def record_rollback(
        self,
        session: AsyncSession,
        decision_id: uuid.UUID,
        actor: str,
        reason: str = "",
        rollback_at: Optional[datetime] = None,
    ) -> Decision:
        decision = await self.decisions.get(session, decision_id)
        decision = apply_rollback(decision, actor, reason, rollback_at)
        return await self.decisions.save(session, decision)

    async def soft_delete(self, session: AsyncSession, decision_id: uuid.UUID) -> Decision:
        """Tombstone the decision with its scenarios and outcome."""
        decision = await self.decisions.get(session, decision_id)
        decision = await self.decisions.soft_delete(session, decision)
        scenarios = await self.scenarios.tombstone_for_decision(session, decision.id, decision.deleted_at)
        outcomes = await self.outcomes.tombstone_for_decision(session, decision.id, decision.deleted_at)

        logger.info(
            "decision_soft_deleted",
            decision_id=str(decision.id),
            scenarios=scenarios,
            outcomes=outcomes,
        )
        return decision

    # ── Internals ────────────────────────────────────────────────────────

    def _simulate(self, pricing: Optional[PricingInput]) -> Optional[SimulationResult]:
        if pricing is None:
            return None
        return self.simulation_engine.simulate(simulation_request(pricing))

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        return await call_dependency("inference", operation, fn, self.inference_timeout)

    async def _learning_signal(self, context: DecisionContext) -> Optional[LearningSignal]:
        if self.learning is None:
            return None
        try:
            return await call_dependency(
                "learning",
                "get_learning_signal",
                lambda: self.learning.get_learning_signal(context),
                self.inference_timeout,
            )
        except DependencyError as exc:
            # A verdict without history is still a verdict
            logger.warning("learning_signal_unavailable", error=exc.message)
            return None

    async def _generate_verdict(
        self,
        context: DecisionContext,
        simulation: Optional[SimulationResult],
        learning: Optional[LearningSignal],
    ) -> tuple[Verdict, ModelMeta]:
        started = time.monotonic()
        draft = await self._call(
            "generate_verdict",
            lambda: self.inference.generate_verdict(context, simulation, learning),
        )
        duration_ms = int((time.monotonic() - started) * 1000)

        if not isinstance(draft, VerdictDraft):
            try:
                draft = VerdictDraft.model_validate(draft)
            except pydantic.ValidationError as exc:
                raise DependencyError("inference", "malformed verdict draft") from exc

        verdict = self.scorer.score(draft, context, simulation, learning)
        meta = ModelMeta(
            model_name=draft.model_name,
            prompt_version=draft.prompt_version,
            inference_duration_ms=duration_ms,
        )
        return verdict, meta
