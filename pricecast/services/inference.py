"""
Inference collaborator — verdict drafts, scenario narratives, website context.

The core only depends on the InferenceCollaborator protocol. LLMInferenceClient
is the production adapter: Anthropic Messages API over httpx, JSON in and out.
"""

import json
from typing import Any, Optional, Protocol, TypeVar

import httpx
import pydantic
import structlog
from pydantic import BaseModel, ConfigDict, Field

from pricecast.config import settings
from pricecast.decisions.schemas import DecisionContext, InferredContext, SupportingDetails
from pricecast.errors import DependencyError
from pricecast.scenarios.schemas import ScenarioInputs, ScenarioNarrative
from pricecast.services.learning import LearningSignal
from pricecast.services.resilience import CircuitBreaker, retry_with_backoff
from pricecast.simulation.schemas import SimulationResult

logger = structlog.get_logger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
SCENARIO_PROMPT_VERSION = "1.0-scenarios"

ModelT = TypeVar("ModelT", bound=BaseModel)


class VerdictDraft(BaseModel):
    """Verdict as proposed by the collaborator. Scores are rescored by the core."""
    model_config = ConfigDict(protected_namespaces=())

    headline: str
    summary: str
    confidence_score: float = 0.5
    risk_score: float = 0.5
    cta: str = ""
    why_this_decision: list[str] = Field(default_factory=list)
    risk_description: str = ""
    supporting_details: SupportingDetails = Field(default_factory=SupportingDetails)
    model_name: str = ""
    prompt_version: str = ""


class InferenceCollaborator(Protocol):
    async def generate_verdict(
        self,
        context: DecisionContext,
        simulation: Optional[SimulationResult],
        learning: Optional[LearningSignal] = None,
    ) -> VerdictDraft: ...

    async def generate_scenario_narrative(self, inputs: ScenarioInputs) -> ScenarioNarrative: ...

    async def infer_context(self, website_url: str) -> InferredContext: ...


# ── Anthropic adapter ──────────────────────────────────────────────────────

VERDICT_SYSTEM = (
    "You are a SaaS pricing analyst. Reply with one JSON object with keys "
    "headline, summary, confidence_score (0-1), risk_score (0-1), cta, "
    "why_this_decision (list of strings), risk_description, and "
    "supporting_details {expected_revenue_impact, churn_outlook, market_positioning}."
)
NARRATIVE_SYSTEM = (
    "You describe one pricing scenario. Reply with one JSON object with keys "
    "description, summary, tradeoffs (list of up to 3 strings), time_to_impact, "
    "execution_effort."
)
CONTEXT_SYSTEM = (
    "Infer a company's business context from its website URL. Reply with one JSON "
    "object with keys company_name, company_stage, business_model, primary_kpi, "
    "market_type, market_segment; each non-name key is {value, confidence (0-1), signal}."
)

llm_breaker = CircuitBreaker(name="inference_llm", failure_threshold=3, recovery_timeout=60.0)


def _extract_json(text: str) -> Any:
    text = text.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[4:]
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end == -1:
        raise ValueError("no JSON object in response")
    return json.loads(text[start:end + 1])


class LLMInferenceClient:
    """InferenceCollaborator backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        prompt_version: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.anthropic_api_key
        self.model = model or settings.inference_model
        self.prompt_version = prompt_version or settings.inference_prompt_version
        self.timeout = timeout or settings.inference_timeout_seconds
        self.max_retries = settings.inference_retry_attempts if max_retries is None else max_retries
        self._transport = transport
        if not self.api_key:
            logger.warning("anthropic_api_key_missing", msg="inference calls will fail")

    async def generate_verdict(
        self,
        context: DecisionContext,
        simulation: Optional[SimulationResult],
        learning: Optional[LearningSignal] = None,
    ) -> VerdictDraft:
        payload = {
            "context": context.model_dump(mode="json"),
            "simulation": simulation.model_dump(mode="json") if simulation else None,
            "historical_context": learning.summary if learning else "",
        }
        draft = await self._complete(VERDICT_SYSTEM, payload, VerdictDraft, max_tokens=1200)
        return draft.model_copy(update={"model_name": self.model, "prompt_version": self.prompt_version})

    async def generate_scenario_narrative(self, inputs: ScenarioInputs) -> ScenarioNarrative:
        return await self._complete(
            NARRATIVE_SYSTEM, inputs.model_dump(mode="json"), ScenarioNarrative, max_tokens=600
        )

    async def infer_context(self, website_url: str) -> InferredContext:
        return await self._complete(
            CONTEXT_SYSTEM, {"website_url": website_url}, InferredContext, max_tokens=600
        )

    async def _complete(
        self,
        system: str,
        payload: dict[str, Any],
        schema: type[ModelT],
        max_tokens: int,
    ) -> ModelT:
        if not self.api_key:
            raise DependencyError("inference", "API key not configured")

        text = await llm_breaker.call(
            retry_with_backoff,
            lambda: self._post(system, json.dumps(payload), max_tokens),
            max_retries=self.max_retries,
            retry_on=(httpx.TransportError,),
            operation_name="inference_request",
        )
        try:
            return schema.model_validate(_extract_json(text))
        except (ValueError, pydantic.ValidationError) as exc:
            logger.error("inference_response_invalid", schema=schema.__name__, error=str(exc))
            raise DependencyError("inference", f"unparseable {schema.__name__} response") from exc

    async def _post(self, system: str, user_message: str, max_tokens: int) -> str:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        body = {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": user_message}],
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(ANTHROPIC_API_URL, json=body, headers=headers)
            if response.status_code != 200:
                logger.error(
                    "inference_api_error",
                    status=response.status_code,
                    body=response.text[:500],
                )
                raise DependencyError(
                    "inference", f"HTTP {response.status_code}", {"status": response.status_code}
                )
            data = response.json()

        content = data.get("content", [])
        return "".join(block.get("text", "") for block in content if block.get("type") == "text")
