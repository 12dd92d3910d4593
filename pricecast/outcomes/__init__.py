"""
Outcomes — what happened after a pricing decision shipped.

Components:
- schemas: Outcome, KPI measurements, predicted-vs-actual deltas
- normalize: lenient parsing of human-typed values
- tracker: OutcomeTracker (merge-on-write, delta computation, history)
"""
