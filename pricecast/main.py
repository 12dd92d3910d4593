"""
PriceCast — in-process composition root.

Wires the engines to their collaborators once at process start. Adapters
(HTTP, workers) own the sessions and call the engines directly:

    app = create_pricecast()
    await startup()
    async with get_db_session() as session:
        decision = await app.decisions.create_decision(session, request)
    await shutdown()
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from pricecast import __version__
from pricecast.config import settings
from pricecast.db.engine import close_db, init_db
from pricecast.decisions.engine import DecisionEngine
from pricecast.elasticity.loader import load_elasticity_config
from pricecast.logging_config import configure_logging
from pricecast.outcomes.tracker import OutcomeTracker
from pricecast.scenarios.generator import ScenarioGenerator
from pricecast.services.inference import InferenceCollaborator, LLMInferenceClient
from pricecast.services.learning import LearningCollaborator
from pricecast.services.limits import LimitsGate, PlanLimitsGate
from pricecast.simulation.engine import SimulationEngine

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PriceCast:
    simulation: SimulationEngine
    decisions: DecisionEngine
    scenarios: ScenarioGenerator
    outcomes: OutcomeTracker


def create_pricecast(
    inference: Optional[InferenceCollaborator] = None,
    learning: Optional[LearningCollaborator] = None,
    limits: Optional[LimitsGate] = None,
) -> PriceCast:
    """Build every engine from settings; collaborators may be swapped in."""
    simulation = SimulationEngine(load_elasticity_config())
    inference = inference or LLMInferenceClient()
    limits = limits or PlanLimitsGate()
    return PriceCast(
        simulation=simulation,
        decisions=DecisionEngine(inference, simulation, limits=limits, learning=learning),
        scenarios=ScenarioGenerator(inference, simulation, limits=limits),
        outcomes=OutcomeTracker(),
    )


async def startup() -> None:
    configure_logging()
    logger.info("pricecast_starting", version=__version__, environment=settings.environment)
    await init_db()


async def shutdown() -> None:
    await close_db()
    logger.info("pricecast_shutdown")
