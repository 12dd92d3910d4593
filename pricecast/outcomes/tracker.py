"""
Outcome Tracker — record what actually happened and measure it against the
scenario that was chosen.

One outcome per decision. Every write is a merge of only the fields the
caller supplied; free text that does not parse is stored as None rather
than rejected. KPI actuals are only accepted for KPIs the chosen scenario
predicted, so every delta has something to be compared against.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pricecast.db.repositories import DecisionRepository, OutcomeRepository, ScenarioRepository
from pricecast.decisions.lifecycle import ensure_outcome_allowed
from pricecast.decisions.schemas import Decision
from pricecast.errors import UnknownKPIError, ValidationError
from pricecast.outcomes.normalize import (
    parse_bool,
    parse_date,
    parse_horizon_days,
    parse_number,
    parse_status,
)
from pricecast.outcomes.schemas import (
    ComparisonStatus,
    DeltaRecord,
    EffectiveOutcome,
    KPIMeasurement,
    Outcome,
    OutcomeSnapshot,
    OutcomeUpdate,
    ScenarioDelta,
)
from pricecast.scenarios.schemas import Scenario

logger = structlog.get_logger(__name__)


def compute_delta(outcome: Optional[Outcome], scenario: Optional[Scenario]) -> list[ScenarioDelta]:
    """
    Compare measured KPIs with the scenario's predicted ranges.

    Bounds are inclusive. KPIs without both a prediction and an actual are
    left out. delta_pct is measured from the middle of the predicted range.
    """
    if outcome is None or scenario is None:
        return []

    deltas = []
    for key, (low, high) in scenario.predicted_kpis().items():
        measurement = outcome.kpis.get(key)
        if measurement is None or measurement.actual_value is None:
            continue
        actual = measurement.actual_value
        if actual < low:
            status = ComparisonStatus.BELOW
        elif actual > high:
            status = ComparisonStatus.ABOVE
        else:
            status = ComparisonStatus.ON_TRACK

        midpoint = (low + high) / 2
        delta_pct = round((actual - midpoint) / midpoint * 100, 2) if midpoint else None
        deltas.append(
            ScenarioDelta(
                kpi_key=key,
                predicted_min=low,
                predicted_max=high,
                actual=actual,
                comparison_status=status,
                delta_pct=delta_pct,
            )
        )
    return deltas


def _measurement(raw: Any, existing: Optional[KPIMeasurement], now: datetime) -> KPIMeasurement:
    """Merge one raw KPI entry (a bare value or a dict) over what is stored."""
    base = existing or KPIMeasurement()
    if isinstance(raw, KPIMeasurement):
        raw = raw.model_dump(exclude_unset=True)
    if isinstance(raw, dict):
        update: dict[str, Any] = {}
        if "actual_value" in raw:
            update["actual_value"] = parse_number(raw["actual_value"])
        if "unit" in raw:
            update["unit"] = str(raw["unit"] or "")
        if "notes" in raw:
            update["notes"] = str(raw["notes"] or "")
    else:
        update = {"actual_value": parse_number(raw)}
    update["measured_at"] = now
    return base.model_copy(update=update)


class OutcomeTracker:
    """Merges outcome updates and derives predicted-vs-actual deltas."""

    def __init__(
        self,
        decisions: Optional[DecisionRepository] = None,
        scenarios: Optional[ScenarioRepository] = None,
        outcomes: Optional[OutcomeRepository] = None,
    ):
        self.decisions = decisions or DecisionRepository()
        self.scenarios = scenarios or ScenarioRepository()
        self.outcomes = outcomes or OutcomeRepository()

    async def record_outcome(
        self,
        session: AsyncSession,
        decision_id: uuid.UUID,
        partial: OutcomeUpdate,
    ) -> Outcome:
        """Upsert-merge the fields set on `partial` into the decision's outcome."""
        decision = await self.decisions.get(session, decision_id)
        ensure_outcome_allowed(decision)

        existing = await self.outcomes.get_for_decision(session, decision.id)
        scenario = await self._measured_scenario(session, decision, existing)
        now = datetime.now(timezone.utc)

        changes = self._normalize(partial, existing, scenario, now)
        if existing is None:
            outcome = Outcome(
                id=uuid.uuid4(),
                decision_id=decision.id,
                scenario_id=scenario.id if scenario else None,
                created_at=now,
                updated_at=now,
            )
        else:
            outcome = existing
            if outcome.scenario_id is None and scenario is not None:
                changes["scenario_id"] = scenario.id

        history = outcome.history + (
            OutcomeSnapshot(recorded_at=now, changes=_audit(changes)),
        )
        outcome = outcome.model_copy(update={**changes, "history": history, "updated_at": now})

        if existing is None:
            outcome = await self.outcomes.insert(session, outcome)
        else:
            outcome = await self.outcomes.save(session, outcome)
        await self.decisions.bump_revision(session, decision)

        logger.info(
            "outcome_recorded",
            decision_id=str(decision.id),
            outcome_id=str(outcome.id),
            fields=sorted(changes),
            revision=outcome.revision,
        )
        return outcome

    async def update_kpi_actual(
        self,
        session: AsyncSession,
        decision_id: uuid.UUID,
        kpi_key: str,
        actual_value: Any,
    ) -> Outcome:
        return await self.record_outcome(
            session,
            decision_id,
            OutcomeUpdate(kpis={kpi_key: {"actual_value": actual_value}}),
        )

    async def get_effective_outcome(self, session: AsyncSession, decision_id: uuid.UUID) -> EffectiveOutcome:
        decision = await self.decisions.get(session, decision_id)
        outcome = await self.outcomes.get_for_decision(session, decision.id)
        scenario = await self._measured_scenario(session, decision, outcome)
        return EffectiveOutcome(
            decision_id=decision.id,
            outcome=outcome,
            scenario_id=scenario.id if scenario else None,
            scenario_name=scenario.name if scenario else None,
            deltas=compute_delta(outcome, scenario),
        )

    async def delta_history(self, session: AsyncSession, owner_id: Optional[str] = None) -> list[DeltaRecord]:
        """Every delta measured so far, tagged for cohort grouping."""
        decision_ids = await self.decisions.list_active_ids(session, owner_id)
        outcomes = await self.outcomes.list_for_decisions(session, decision_ids)
        if not outcomes:
            return []

        records = []
        for decision in await self.decisions.get_many(session, list(outcomes)):
            outcome = outcomes[decision.id]
            scenario = await self._measured_scenario(session, decision, outcome)
            if scenario is None:
                continue
            context = decision.context
            for delta in compute_delta(outcome, scenario):
                records.append(
                    DeltaRecord(
                        decision_id=decision.id,
                        company_stage=context.company_stage.value,
                        primary_kpi=context.primary_kpi.value,
                        scenario_level=scenario.level,
                        scenario_name=scenario.name,
                        outcome_status=outcome.status,
                        kpi_key=delta.kpi_key,
                        comparison_status=delta.comparison_status,
                        delta_pct=delta.delta_pct,
                        recorded_at=outcome.updated_at,
                    )
                )
        return records

    async def _measured_scenario(
        self,
        session: AsyncSession,
        decision: Decision,
        outcome: Optional[Outcome],
    ) -> Optional[Scenario]:
        """The scenario captured on the outcome, else the one chosen now."""
        if outcome is not None and outcome.scenario_id is not None:
            return await self.scenarios.get(session, outcome.scenario_id, include_deleted=True)
        for scenario in await self.scenarios.list_active(session, decision.id):
            if scenario.chosen:
                return scenario
        return None

    def _normalize(
        self,
        partial: OutcomeUpdate,
        existing: Optional[Outcome],
        scenario: Optional[Scenario],
        now: datetime,
    ) -> dict[str, Any]:
        provided = partial.model_fields_set
        changes: dict[str, Any] = {}

        if "decision_taken" in provided:
            changes["decision_taken"] = parse_bool(partial.decision_taken)
        if "date_implemented" in provided:
            changes["date_implemented"] = parse_date(partial.date_implemented)
        if "status" in provided:
            status = parse_status(partial.status)
            if status is not None:
                changes["status"] = status
        if "horizon_days" in provided:
            changes["horizon_days"] = parse_horizon_days(partial.horizon_days)
        if "summary" in provided:
            changes["summary"] = partial.summary
        if "notes" in provided:
            changes["notes"] = partial.notes

        if "kpis" in provided and partial.kpis:
            allowed = set(scenario.predicted_kpis()) if scenario else set()
            for key in partial.kpis:
                if key not in allowed:
                    raise UnknownKPIError(key, allowed)
            kpis = dict(existing.kpis) if existing else {}
            for key, raw in partial.kpis.items():
                kpis[key] = _measurement(raw, kpis.get(key), now)
            changes["kpis"] = kpis

        if not provided:
            raise ValidationError("Outcome update has no fields", field="outcome")
        return changes


def _audit(changes: dict[str, Any]) -> dict[str, Any]:
    """JSON-friendly copy of a change set for the outcome history."""
    audit: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "kpis":
            audit[key] = {k: v.model_dump(mode="json") for k, v in value.items()}
        elif isinstance(value, uuid.UUID):
            audit[key] = str(value)
        elif isinstance(value, date):
            audit[key] = value.isoformat()
        else:
            audit[key] = value
    return audit
