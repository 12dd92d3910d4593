"""
Context resolution with per-field provenance.

Priority per field:
1. user-supplied value       → source=user
2. workspace default         → source=default
3. inferred, confident enough → source=inferred (confidence kept)
4. nothing                   → value=None, source=inferred
"""

from typing import Optional

from pricecast.decisions.schemas import (
    ContextField,
    ContextInput,
    ContextSource,
    DecisionContext,
    InferredContext,
    InferredValue,
    MarketContext,
)

MIN_INFERRED_CONFIDENCE: float = 0.6

CONTEXT_KEYS: tuple[str, ...] = (
    "company_stage",
    "business_model",
    "primary_kpi",
    "market_type",
    "market_segment",
)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _assemble(fields: dict[str, ContextField]) -> DecisionContext:
    return DecisionContext(
        company_stage=fields["company_stage"],
        business_model=fields["business_model"],
        primary_kpi=fields["primary_kpi"],
        market=MarketContext(type=fields["market_type"], segment=fields["market_segment"]),
    )


class ContextResolver:
    """Builds a DecisionContext from user input, workspace defaults and inference."""

    def __init__(self, min_inferred_confidence: float = MIN_INFERRED_CONFIDENCE):
        self.min_inferred_confidence = min_inferred_confidence

    def resolve(
        self,
        user: Optional[ContextInput] = None,
        defaults: Optional[ContextInput] = None,
        inferred: Optional[InferredContext] = None,
    ) -> DecisionContext:
        fields = {
            key: self._resolve_field(
                _clean(getattr(user, key, None)) if user else None,
                _clean(getattr(defaults, key, None)) if defaults else None,
                getattr(inferred, key, None) if inferred else None,
            )
            for key in CONTEXT_KEYS
        }
        return _assemble(fields)

    def _resolve_field(
        self,
        user_value: Optional[str],
        default_value: Optional[str],
        inferred: Optional[InferredValue],
    ) -> ContextField:
        if user_value is not None:
            return ContextField(value=user_value, source=ContextSource.USER)
        if default_value is not None:
            return ContextField(value=default_value, source=ContextSource.DEFAULT)
        if (
            inferred is not None
            and _clean(inferred.value) is not None
            and inferred.confidence >= self.min_inferred_confidence
        ):
            return ContextField(
                value=_clean(inferred.value),
                source=ContextSource.INFERRED,
                confidence_score=inferred.confidence,
                inferred_signal=inferred.signal,
            )
        return ContextField(value=None, source=ContextSource.INFERRED)

    def merge_user_update(self, current: DecisionContext, update: ContextInput) -> DecisionContext:
        """Fields present in `update` become user-sourced; the rest are kept."""
        fields = current.fields()
        for key in update.model_fields_set:
            if key in fields:
                fields[key] = ContextField(value=_clean(getattr(update, key)), source=ContextSource.USER)
        return _assemble(fields)
