"""
Decision Lifecycle — allowed status transitions and their audit events.

    pending ──► approved ──► completed ··(rollback event)
       │
       └──────► rejected

A transition appends exactly one StatusEvent and changes status in the same
new aggregate value. A rollback on a completed decision is recorded as an
event only; the status stays `completed`.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from pricecast.decisions.schemas import Decision, DecisionStatus, StatusEvent
from pricecast.errors import InvalidTransitionError, ValidationError

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[DecisionStatus, frozenset[DecisionStatus]] = {
    DecisionStatus.PENDING: frozenset({DecisionStatus.APPROVED, DecisionStatus.REJECTED}),
    DecisionStatus.APPROVED: frozenset({DecisionStatus.COMPLETED}),
    DecisionStatus.REJECTED: frozenset(),
    DecisionStatus.COMPLETED: frozenset(),
}

# Statuses in which measured outcomes may be written
OUTCOME_STATUSES: frozenset[DecisionStatus] = frozenset(
    {DecisionStatus.APPROVED, DecisionStatus.COMPLETED}
)

ROLLBACK = "rollback"
CREATED_REASON = "Decision created"


def can_transition(current: DecisionStatus, target: DecisionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def creation_event(actor: str, now: datetime) -> StatusEvent:
    return StatusEvent(
        status=DecisionStatus.PENDING,
        actor=actor,
        reason=CREATED_REASON,
        created_at=now,
    )


def apply_transition(
    decision: Decision,
    target: DecisionStatus,
    actor: str,
    reason: str = "",
    implemented_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Decision:
    target = DecisionStatus(target)
    if not can_transition(decision.status, target):
        raise InvalidTransitionError(decision.status.value, target.value)
    if implemented_at is not None and target not in OUTCOME_STATUSES:
        raise ValidationError(
            "implemented_at only applies to approved or completed decisions",
            field="implemented_at",
        )

    now = now or datetime.now(timezone.utc)
    event = StatusEvent(
        status=target,
        actor=actor,
        reason=reason,
        created_at=now,
        implemented_at=implemented_at,
    )
    logger.info(
        "decision_transition_applied",
        decision_id=str(decision.id),
        from_status=decision.status.value,
        to_status=target.value,
        actor=actor,
    )
    return decision.model_copy(
        update={
            "status": target,
            "status_events": decision.status_events + (event,),
            "updated_at": now,
        }
    )


def apply_rollback(
    decision: Decision,
    actor: str,
    reason: str = "",
    rollback_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Decision:
    """Record that a completed price change was rolled back."""
    if decision.status != DecisionStatus.COMPLETED:
        raise InvalidTransitionError(decision.status.value, ROLLBACK)

    now = now or datetime.now(timezone.utc)
    event = StatusEvent(
        status=DecisionStatus.COMPLETED,
        actor=actor,
        reason=reason,
        created_at=now,
        rollback_at=rollback_at or now,
        is_rollback=True,
    )
    logger.info("decision_rollback_recorded", decision_id=str(decision.id), actor=actor)
    return decision.model_copy(
        update={
            "status_events": decision.status_events + (event,),
            "updated_at": now,
        }
    )


def ensure_outcome_allowed(decision: Decision) -> None:
    if decision.status not in OUTCOME_STATUSES:
        raise InvalidTransitionError(decision.status.value, "record_outcome")
