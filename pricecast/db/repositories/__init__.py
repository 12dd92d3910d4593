from pricecast.db.repositories.decisions import DecisionRepository
from pricecast.db.repositories.outcomes import OutcomeRepository
from pricecast.db.repositories.scenarios import ScenarioRepository

__all__ = ["DecisionRepository", "OutcomeRepository", "ScenarioRepository"]
