"""
Price-change simulation.

Components:
- schemas: request, per-level projection, result
- engine: SimulationEngine (bucket → goal profile → bounded ranges)
"""

from pricecast.simulation.engine import SimulationEngine
from pricecast.simulation.schemas import ScenarioProjection, SimulationRequest, SimulationResult

__all__ = ["ScenarioProjection", "SimulationEngine", "SimulationRequest", "SimulationResult"]
