"""
Tests for the decision lifecycle.

Covers:
- pending → approved → completed audit trail
- Invalid transitions leave the decision unchanged
- implemented_at only on approved/completed
- Rollback events on completed decisions
- Outcome gate by status
"""

from datetime import datetime, timezone

import pytest

from pricecast.decisions.lifecycle import (
    apply_rollback,
    apply_transition,
    can_transition,
    creation_event,
    ensure_outcome_allowed,
)
from pricecast.decisions.schemas import DecisionStatus
from pricecast.errors import InvalidTransitionError, ValidationError

from test_versioning import T0, make_decision


def _created():
    decision = make_decision()
    return decision.model_copy(update={"status_events": (creation_event("owner-1", T0),)})


# ── Transitions ──────────────────────────────────────────────────────────


class TestTransitions:
    def test_happy_path_appends_two_events(self):
        decision = _created()
        decision = apply_transition(decision, DecisionStatus.APPROVED, actor="ceo", reason="Go")
        decision = apply_transition(decision, DecisionStatus.COMPLETED, actor="ops")

        assert decision.status == DecisionStatus.COMPLETED
        after_creation = decision.status_events[1:]
        assert [e.status for e in after_creation] == [DecisionStatus.APPROVED, DecisionStatus.COMPLETED]
        assert [e.actor for e in after_creation] == ["ceo", "ops"]
        assert decision.status_events[0].status == DecisionStatus.PENDING

    def test_rejected_to_approved_is_refused(self):
        decision = apply_transition(_created(), DecisionStatus.REJECTED, actor="ceo")
        events_before = decision.status_events

        with pytest.raises(InvalidTransitionError) as exc_info:
            apply_transition(decision, DecisionStatus.APPROVED, actor="ceo")

        assert exc_info.value.current == "rejected"
        assert exc_info.value.requested == "approved"
        assert decision.status == DecisionStatus.REJECTED
        assert decision.status_events == events_before

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (DecisionStatus.PENDING, DecisionStatus.APPROVED, True),
            (DecisionStatus.PENDING, DecisionStatus.REJECTED, True),
            (DecisionStatus.PENDING, DecisionStatus.COMPLETED, False),
            (DecisionStatus.APPROVED, DecisionStatus.COMPLETED, True),
            (DecisionStatus.APPROVED, DecisionStatus.REJECTED, False),
            (DecisionStatus.COMPLETED, DecisionStatus.PENDING, False),
            (DecisionStatus.APPROVED, DecisionStatus.APPROVED, False),
        ],
    )
    def test_transition_table(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_implemented_at_recorded(self):
        shipped = datetime(2026, 2, 1, tzinfo=timezone.utc)
        decision = apply_transition(_created(), DecisionStatus.APPROVED, "ceo", implemented_at=shipped)
        assert decision.status_events[-1].implemented_at == shipped

    def test_implemented_at_rejected_on_reject(self):
        with pytest.raises(ValidationError):
            apply_transition(
                _created(),
                DecisionStatus.REJECTED,
                "ceo",
                implemented_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
            )


# ── Rollback ─────────────────────────────────────────────────────────────


class TestRollback:
    def test_rollback_on_completed_is_event_only(self):
        decision = apply_transition(_created(), DecisionStatus.APPROVED, "ceo")
        decision = apply_transition(decision, DecisionStatus.COMPLETED, "ops")
        rolled = apply_rollback(decision, "ops", reason="Churn spike")

        assert rolled.status == DecisionStatus.COMPLETED
        assert len(rolled.status_events) == len(decision.status_events) + 1
        event = rolled.status_events[-1]
        assert event.is_rollback
        assert event.rollback_at is not None
        assert event.reason == "Churn spike"

    def test_rollback_requires_completed(self):
        decision = apply_transition(_created(), DecisionStatus.APPROVED, "ceo")
        with pytest.raises(InvalidTransitionError) as exc_info:
            apply_rollback(decision, "ops")
        assert exc_info.value.requested == "rollback"


# ── Outcome gate ─────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "status,allowed",
    [
        (DecisionStatus.PENDING, False),
        (DecisionStatus.REJECTED, False),
        (DecisionStatus.APPROVED, True),
        (DecisionStatus.COMPLETED, True),
    ],
)
def test_outcome_gate(status, allowed):
    decision = _created().model_copy(update={"status": status})
    if allowed:
        ensure_outcome_allowed(decision)
    else:
        with pytest.raises(InvalidTransitionError):
            ensure_outcome_allowed(decision)
