"""
Pricing Decision Support.

Components:
- schemas: Decision aggregate, context with provenance, verdict, status events
- context: context resolution (user > workspace default > confident inference)
- versioning: append-only context and verdict version streams
- lifecycle: status transitions and rollback events
- verdict: deterministic confidence/risk scoring of verdict drafts
- engine: DecisionEngine (create, update, regenerate, transition, compare)
"""
