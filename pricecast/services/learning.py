"""
Learning collaborator — historical signal consumed by verdict generation.

The learning service aggregates delta history (see
pricecast.outcomes.tracker.OutcomeTracker.delta_history) on its own side. The
core only asks it for a signal about a context and applies the boost.
"""

from typing import Protocol

from pydantic import BaseModel, Field

from pricecast.decisions.schemas import DecisionContext

MAX_CONFIDENCE_BOOST: float = 0.25


class LearningSignal(BaseModel):
    confidence_boost: float = Field(default=0.0, ge=0)
    summary: str = ""
    sample_size: int = 0


class LearningCollaborator(Protocol):
    async def get_learning_signal(self, context: DecisionContext) -> LearningSignal: ...
