"""
Strategic scenarios.

Components:
- schemas: Scenario, ScenarioSpec, narrative fields
- generator: ScenarioGenerator (generate-then-commit, chosen-scenario tracking)
"""
