"""
Append-only context and verdict version streams.

Both streams live on one Decision but evolve independently: each has its own
1-based counter and never rewrites or drops an earlier entry. Every function
returns a new Decision; the input is left untouched.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence, Union

from pricecast.decisions.schemas import (
    ContextVersion,
    Decision,
    DecisionContext,
    ModelMeta,
    Verdict,
    VerdictVersion,
)
from pricecast.errors import InvariantViolationError, ValidationError

INITIAL_CONTEXT_REASON = "Initial context from creation"
INITIAL_VERDICT_REASON = "Initial verdict from AI analysis"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_reason(reason: str) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required for every new version", field="reason")
    return reason


def append_context_version(
    decision: Decision,
    context: DecisionContext,
    reason: str,
    now: Optional[datetime] = None,
) -> Decision:
    check_decision_invariants(decision)
    now = now or _now()
    entry = ContextVersion(
        version=len(decision.context_versions) + 1,
        context=context,
        reason=_require_reason(reason),
        created_at=now,
    )
    return decision.model_copy(
        update={
            "context_versions": decision.context_versions + (entry,),
            "updated_at": now,
        }
    )


def append_verdict_version(
    decision: Decision,
    verdict: Verdict,
    reason: str,
    model_meta: Optional[ModelMeta] = None,
    now: Optional[datetime] = None,
) -> Decision:
    check_decision_invariants(decision)
    now = now or _now()
    meta = model_meta or decision.model_meta
    entry = VerdictVersion(
        version=len(decision.verdict_versions) + 1,
        verdict=verdict,
        reason=_require_reason(reason),
        model_meta=meta,
        created_at=now,
    )
    return decision.model_copy(
        update={
            "verdict_versions": decision.verdict_versions + (entry,),
            "model_meta": meta,
            "updated_at": now,
        }
    )


def check_version_stream(
    versions: Sequence[Union[ContextVersion, VerdictVersion]],
    stream: str,
    decision_id: object,
) -> None:
    """Versions must be exactly 1..n in order."""
    if not versions:
        raise InvariantViolationError(
            f"Decision has an empty {stream} history",
            {"decision_id": str(decision_id), "stream": stream},
        )
    for expected, entry in enumerate(versions, start=1):
        if entry.version != expected:
            raise InvariantViolationError(
                f"{stream} version sequence is broken",
                {
                    "decision_id": str(decision_id),
                    "stream": stream,
                    "expected": expected,
                    "found": entry.version,
                },
            )


def check_decision_invariants(decision: Decision) -> None:
    check_version_stream(decision.context_versions, "context", decision.id)
    check_version_stream(decision.verdict_versions, "verdict", decision.id)


def context_as_of(decision: Decision, at: datetime) -> Optional[ContextVersion]:
    """The context version in force at `at`, or None before the first one."""
    current = None
    for entry in decision.context_versions:
        if entry.created_at > at:
            break
        current = entry
    return current


def verdict_as_of(decision: Decision, at: datetime) -> Optional[VerdictVersion]:
    current = None
    for entry in decision.verdict_versions:
        if entry.created_at > at:
            break
        current = entry
    return current
