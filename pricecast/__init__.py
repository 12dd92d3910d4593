"""
PriceCast — Pricing Decision & Scenario Modeling Engine.

Architecture:
    pricecast/
    ├── elasticity/      # Elasticity table (buckets × pricing goals × thresholds)
    ├── simulation/      # Deterministic price-change projections
    ├── decisions/       # Versioned decision aggregate, lifecycle, verdict scoring
    ├── scenarios/       # Named strategic scenarios, chosen-scenario tracking
    ├── outcomes/        # Measured outcomes, predicted-vs-actual deltas
    ├── services/        # Collaborator interfaces (inference, learning, limits)
    └── db/              # SQLAlchemy models, engine, repositories

Module Boundaries:
    - The elasticity table is loaded once and injected, never global
    - Context and verdict history are append-only
    - Every status change has an audit event
    - Every decision write is a compare-and-swap on the decision revision

Data Flow:
    Pricing input → Simulation → Scenarios → Decision (context + verdict)
    → Status events → Outcomes → Deltas → Learning signal

Version: 1.0.0
"""

__version__ = "1.0.0"
