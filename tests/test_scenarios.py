"""
Tests for the Scenario Generator.

Covers:
- Canonical three-level generation with narratives
- Custom specs and spec count bounds
- Regeneration discards unchosen scenarios and keeps the chosen one
- At most one chosen scenario
- Foreign scenario ids are not found
- Narrative failure writes nothing
"""

import uuid

import pytest

from pricecast.decisions.schemas import DecisionCreate
from pricecast.elasticity.schemas import ScenarioLevel
from pricecast.errors import DependencyError, NotFoundError, ValidationError
from pricecast.scenarios.schemas import ScenarioSpec

from conftest import OWNER


class TestGenerate:
    @pytest.mark.asyncio
    async def test_canonical_scenarios(self, db, scenario_generator, decision_engine, create_request):
        decision = await decision_engine.create_decision(db, create_request)
        scenarios = await scenario_generator.generate_scenarios(db, decision.id)

        assert [s.name for s in scenarios] == ["Aggressive", "Base", "Conservative"]
        assert len({s.generation_id for s in scenarios}) == 1
        assert not any(s.chosen for s in scenarios)

        base = next(s for s in scenarios if s.level == ScenarioLevel.BASE)
        assert base.description == "Base path for Acme Cloud"
        assert len(base.narrative.tradeoffs) == 3
        assert set(base.predicted_kpis()) == {"customers", "mrr", "arr", "churn_rate"}
        assert base.band.new_arr_min > 423 * 79 * 12

        stored = await decision_engine.get_decision(db, decision.id)
        assert stored.revision == decision.revision + 1

    @pytest.mark.asyncio
    async def test_custom_price_specs(self, db, scenario_generator, decision_engine, create_request):
        decision = await decision_engine.create_decision(db, create_request)
        scenarios = await scenario_generator.generate_scenarios(
            db,
            decision.id,
            [
                ScenarioSpec(name="Small step", level=ScenarioLevel.BASE, new_price=85.0),
                ScenarioSpec(name="Big step", level=ScenarioLevel.BASE, new_price=119.0),
            ],
        )
        by_name = {s.name: s for s in scenarios}
        assert by_name["Small step"].projection.new_price == 85.0
        assert by_name["Big step"].projection.bucket_label == "Very large price increase (>30%)"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [1, 5])
    async def test_spec_count_bounds(self, db, scenario_generator, decision_engine, create_request, count):
        decision = await decision_engine.create_decision(db, create_request)
        specs = [ScenarioSpec(name=f"s{i}", level=ScenarioLevel.BASE) for i in range(count)]
        with pytest.raises(ValidationError):
            await scenario_generator.generate_scenarios(db, decision.id, specs)

    @pytest.mark.asyncio
    async def test_requires_pricing_input(self, db, scenario_generator, decision_engine):
        decision = await decision_engine.create_decision(
            db, DecisionCreate(owner_id=OWNER, infer_context=False)
        )
        with pytest.raises(ValidationError):
            await scenario_generator.generate_scenarios(db, decision.id)

    @pytest.mark.asyncio
    async def test_narrative_timeout_writes_nothing(
        self, db, scenario_generator, decision_engine, create_request, inference
    ):
        decision = await decision_engine.create_decision(db, create_request)
        inference.delay = 2.0

        with pytest.raises(DependencyError):
            await scenario_generator.generate_scenarios(db, decision.id)

        assert await scenario_generator.list_scenarios(db, decision.id) == []
        stored = await decision_engine.get_decision(db, decision.id)
        assert stored.revision == decision.revision


class TestChosenScenario:
    @pytest.mark.asyncio
    async def test_regeneration_preserves_chosen(self, db, scenario_generator, decision_engine, create_request):
        decision = await decision_engine.create_decision(db, create_request)
        first = await scenario_generator.generate_scenarios(db, decision.id)
        chosen = await scenario_generator.set_chosen_scenario(db, decision.id, first[0].id)
        assert chosen.chosen

        second = await scenario_generator.generate_scenarios(db, decision.id)

        ids = {s.id for s in second}
        assert chosen.id in ids
        assert len(second) == 4
        assert not ({s.id for s in first} - {chosen.id}) & ids
        assert (await scenario_generator.get_chosen_scenario(db, decision.id)).id == chosen.id

    @pytest.mark.asyncio
    async def test_chosen_counts_toward_cap(self, db, scenario_generator, decision_engine, create_request):
        decision = await decision_engine.create_decision(db, create_request)
        first = await scenario_generator.generate_scenarios(db, decision.id)
        await scenario_generator.set_chosen_scenario(db, decision.id, first[0].id)

        four = [ScenarioSpec(name=f"s{i}", level=ScenarioLevel.BASE) for i in range(4)]
        with pytest.raises(ValidationError) as exc_info:
            await scenario_generator.generate_scenarios(db, decision.id, specs=four)
        assert exc_info.value.details == {"requested": 4, "preserved": 1}

        current = await scenario_generator.list_scenarios(db, decision.id)
        assert {s.id for s in current} == {s.id for s in first}

    @pytest.mark.asyncio
    async def test_single_chosen(self, db, scenario_generator, decision_engine, create_request):
        decision = await decision_engine.create_decision(db, create_request)
        scenarios = await scenario_generator.generate_scenarios(db, decision.id)

        await scenario_generator.set_chosen_scenario(db, decision.id, scenarios[0].id)
        await scenario_generator.set_chosen_scenario(db, decision.id, scenarios[1].id)

        current = await scenario_generator.list_scenarios(db, decision.id)
        chosen = [s for s in current if s.chosen]
        assert [s.id for s in chosen] == [scenarios[1].id]

    @pytest.mark.asyncio
    async def test_foreign_scenario_not_found(self, db, scenario_generator, decision_engine, create_request):
        a = await decision_engine.create_decision(db, create_request)
        b = await decision_engine.create_decision(db, create_request)
        scenarios_b = await scenario_generator.generate_scenarios(db, b.id)

        with pytest.raises(NotFoundError):
            await scenario_generator.set_chosen_scenario(db, a.id, scenarios_b[0].id)
        with pytest.raises(NotFoundError):
            await scenario_generator.set_chosen_scenario(db, a.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_no_chosen_yet(self, db, scenario_generator, decision_engine, create_request):
        decision = await decision_engine.create_decision(db, create_request)
        await scenario_generator.generate_scenarios(db, decision.id)
        assert await scenario_generator.get_chosen_scenario(db, decision.id) is None
