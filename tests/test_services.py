"""
Tests for collaborator plumbing.

Covers:
- Plan limits gate (decisions, scenario generations, unlimited caps)
- Limits enforced before any collaborator call
- call_dependency: timeouts, crashes, pass-through of core errors
- Circuit breaker state machine
- Retry with backoff
- Anthropic inference client over a mock transport
"""

import asyncio
import json

import httpx
import pytest

from pricecast.decisions.engine import DecisionEngine
from pricecast.decisions.schemas import DecisionContext
from pricecast.errors import DependencyError, LimitExceededError, ValidationError
from pricecast.scenarios.generator import ScenarioGenerator
from pricecast.services import inference as inference_module
from pricecast.services.inference import LLMInferenceClient, VerdictDraft
from pricecast.services.limits import LimitAction, PlanLimitsGate
from pricecast.services.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    call_dependency,
    retry_with_backoff,
)

from conftest import OWNER


# ── Limits ───────────────────────────────────────────────────────────────


class TestPlanLimits:
    @pytest.mark.asyncio
    async def test_decision_cap(self, db, inference, simulation_engine, create_request):
        gate = PlanLimitsGate(max_decisions=2, max_scenario_generations=0, period_days=30)
        engine = DecisionEngine(inference, simulation_engine, limits=gate, inference_timeout=0.5)

        await engine.create_decision(db, create_request)
        second = await engine.create_decision(db, create_request)
        calls_before = inference.verdict_calls

        with pytest.raises(LimitExceededError) as exc_info:
            await engine.create_decision(db, create_request)
        assert exc_info.value.details == {"action": "create_decision", "limit": 2, "used": 2}
        assert inference.verdict_calls == calls_before

        # Deleting does not free capacity
        await engine.soft_delete(db, second.id)
        with pytest.raises(LimitExceededError):
            await engine.create_decision(db, create_request)

    @pytest.mark.asyncio
    async def test_scenario_generation_cap(self, db, inference, simulation_engine, decision_engine, create_request):
        gate = PlanLimitsGate(max_decisions=0, max_scenario_generations=1, period_days=30)
        generator = ScenarioGenerator(inference, simulation_engine, limits=gate, inference_timeout=0.5)
        decision = await decision_engine.create_decision(db, create_request)

        await generator.generate_scenarios(db, decision.id)
        with pytest.raises(LimitExceededError):
            await generator.generate_scenarios(db, decision.id)

    @pytest.mark.asyncio
    async def test_unlimited(self, db):
        gate = PlanLimitsGate(max_decisions=0, max_scenario_generations=-1, period_days=30)
        check = await gate.check(db, OWNER, LimitAction.CREATE_DECISION)
        assert check.allowed
        assert (await gate.check(db, OWNER, LimitAction.GENERATE_SCENARIOS)).allowed


# ── call_dependency ──────────────────────────────────────────────────────


class TestCallDependency:
    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(DependencyError) as exc_info:
            await call_dependency("inference", "slow_op", slow, timeout=0.05)
        assert exc_info.value.details["operation"] == "slow_op"

    @pytest.mark.asyncio
    async def test_crash_wrapped(self):
        async def boom():
            raise KeyError("x")

        with pytest.raises(DependencyError) as exc_info:
            await call_dependency("learning", "boom", boom, timeout=1)
        assert exc_info.value.dependency == "learning"
        assert isinstance(exc_info.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_core_errors_pass_through(self):
        async def invalid():
            raise ValidationError("bad", field="x")

        with pytest.raises(ValidationError):
            await call_dependency("inference", "invalid", invalid, timeout=1)

    @pytest.mark.asyncio
    async def test_open_circuit(self):
        breaker = CircuitBreaker("test", failure_threshold=1)

        async def boom():
            raise RuntimeError("down")

        with pytest.raises(DependencyError):
            await call_dependency("inference", "op", lambda: breaker.call(boom), timeout=1)
        assert breaker.state == CircuitState.OPEN
        with pytest.raises(DependencyError, match="OPEN"):
            await call_dependency("inference", "op", lambda: breaker.call(boom), timeout=1)


# ── Circuit breaker & retry ──────────────────────────────────────────────


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_then_recovers(self):
        breaker = CircuitBreaker("t", failure_threshold=2, recovery_timeout=0.0)

        async def boom():
            raise RuntimeError("x")

        async def ok():
            return "ok"

        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(boom)
        # recovery_timeout=0 moves straight to half-open
        assert breaker.state == CircuitState.HALF_OPEN
        assert await breaker.call(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_rejects_while_open(self):
        breaker = CircuitBreaker("t", failure_threshold=1, recovery_timeout=60)

        async def boom():
            raise RuntimeError("x")

        with pytest.raises(RuntimeError):
            await breaker.call(boom)
        with pytest.raises(CircuitOpenError):
            await breaker.call(boom)


@pytest.mark.asyncio
async def test_retry_with_backoff():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("reset")
        return "done"

    result = await retry_with_backoff(flaky, max_retries=3, base_delay=0.001, jitter=0.0)
    assert result == "done"
    assert len(attempts) == 3


# ── Inference client ─────────────────────────────────────────────────────


def _anthropic_response(payload: dict) -> dict:
    return {"content": [{"type": "text", "text": "```json\n" + json.dumps(payload) + "\n```"}]}


class TestLLMInferenceClient:
    @pytest.fixture(autouse=True)
    def fresh_breaker(self, monkeypatch):
        monkeypatch.setattr(
            inference_module, "llm_breaker", CircuitBreaker("inference_llm", failure_threshold=3)
        )

    @pytest.mark.asyncio
    async def test_verdict_round_trip(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json=_anthropic_response(
                    {"headline": "Raise to $99", "summary": "s", "confidence_score": 0.7, "risk_score": 0.4}
                ),
            )

        client = LLMInferenceClient(
            api_key="test-key", model="m-1", prompt_version="p-1", transport=httpx.MockTransport(handler)
        )
        draft = await client.generate_verdict(DecisionContext(), None)

        assert isinstance(draft, VerdictDraft)
        assert draft.headline == "Raise to $99"
        assert draft.model_name == "m-1"
        assert draft.prompt_version == "p-1"
        assert seen["headers"]["x-api-key"] == "test-key"
        assert seen["body"]["model"] == "m-1"

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = LLMInferenceClient(
            api_key="k", transport=httpx.MockTransport(lambda r: httpx.Response(500, text="overloaded"))
        )
        with pytest.raises(DependencyError):
            await client.infer_context("https://acme.io")

    @pytest.mark.asyncio
    async def test_unparseable_response(self):
        client = LLMInferenceClient(
            api_key="k",
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"content": [{"type": "text", "text": "no json"}]})
            ),
        )
        with pytest.raises(DependencyError):
            await client.infer_context("https://acme.io")

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = LLMInferenceClient(api_key="")
        with pytest.raises(DependencyError):
            await client.infer_context("https://acme.io")

    @pytest.mark.asyncio
    async def test_breaker_opens_after_repeated_failures(self):
        hits = []

        def handler(request: httpx.Request) -> httpx.Response:
            hits.append(1)
            return httpx.Response(503, text="down")

        client = LLMInferenceClient(api_key="k", transport=httpx.MockTransport(handler))

        def infer():
            return client.infer_context("https://acme.io")

        for _ in range(3):
            with pytest.raises(DependencyError):
                await call_dependency("inference", "infer_context", infer, timeout=1)

        with pytest.raises(DependencyError, match="OPEN"):
            await call_dependency("inference", "infer_context", infer, timeout=1)
        assert len(hits) == 3
        assert inference_module.llm_breaker.state == CircuitState.OPEN
