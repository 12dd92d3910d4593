"""
Collaborators and cross-cutting service helpers.

- inference: InferenceCollaborator protocol + Anthropic-backed client
- learning: LearningCollaborator protocol
- limits: plan limits gate
- resilience: retry, circuit breaker, timeout-bounded dependency calls
"""
