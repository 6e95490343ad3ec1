"""
AI coaching advisor for Fuge.

The engine consumes an AIAdvisor for three things: analyzing a behavior
the user wants to build (feasibility, a tiny recipe, environment tips),
diagnosing why a habit keeps failing (with an optional replacement recipe)
and a one-line praise after a check-in. ChatCompletionAdvisor implements it
against any OpenAI-compatible ``/chat/completions`` endpoint.

Provider failover:
- providers are tried in ``priority`` order, inactive ones skipped
- HTTP 429 and "model not supported" replies (status 435 in the body)
  move on to the next provider, at most ``max_retries`` times
- every provider has its own CircuitBreaker; an open circuit is skipped
- any other error is raised as ExternalServiceError with a readable message

Replies are expected to be JSON, but models like to wrap it in markdown
fences or add a sentence around it; ``clean_json_response`` strips that.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fuge.config.settings import Settings, get_settings
from fuge.lib.circuit_breaker import CircuitBreaker
from fuge.lib.exceptions import ExternalServiceError
from fuge.models.habit import Habit

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
MAX_RETRIES = 3
MODEL_NOT_SUPPORTED_STATUS = "435"

REASON_MAP: dict[str, str] = {
    "forgot": "I forgot to do it",
    "hard": "It was too hard or I was too tired",
    "unmotivated": "It felt pointless",
    "ineffective": "I did it but it did not help",
}

ANALYSIS_PROMPT = """You are a behavior design coach. Using the Fogg Behavior Model, help the
user turn a behavior into a tiny habit:
1. briefly assess how feasible the behavior is right now
2. suggest how to make it smaller and easier (markdown allowed)
3. design an "anchor + tiny behavior" recipe
Reply in the user's language with plain JSON only (no markdown around it):
{
  "analysis": "short analysis of the behavior",
  "suggestion": "how to make it easier",
  "recipe": {"anchor": "e.g. After I brush my teeth", "tiny_behavior": "e.g. do 2 squats"},
  "environment_setup": ["tip to prepare the environment", "another tip"]
}"""

ANALYSIS_PARSE_ERROR = "Parse error"

DIAGNOSIS_PROMPT = """You are a habit doctor. Using the Fogg Behavior Model, diagnose why
the user's tiny habit did not happen and propose a simpler recipe.
Reply in the user's language with plain JSON only (no markdown):
{
  "diagnosis": "short diagnosis of the failure",
  "new_plan": {"anchor": "new anchor", "tiny_behavior": "simpler tiny behavior"}
}"""

PRAISE_PROMPT = (
    "You are an enthusiastic cheerleader. Celebrate the user's completed habit "
    'in one sentence and one emoji. Reply as JSON: {"message": "...", "emoji": "🎉"}'
)

FALLBACK_PRAISE_MESSAGE = "You did it! Keep going!"
FALLBACK_PRAISE_EMOJI = "👍"

_JSON_FENCE_OPEN = re.compile(r"`{3,}\s*json\s*", re.IGNORECASE)
_JSON_FENCE_CLOSE = re.compile(r"\s*`{3,}")


# =============================================================================
# Schemas
# =============================================================================

@dataclass
class ProviderConfig:
    """One OpenAI-compatible endpoint the advisor may call."""

    id: str
    name: str
    api_key: str
    base_url: str
    model_name: str
    is_active: bool = True
    priority: int = 0


class Plan(BaseModel):
    """Replacement recipe proposed by a diagnosis."""

    anchor: str = Field(..., min_length=1)
    tiny_behavior: str = Field(..., min_length=1)


def _complete_plan_or_none(value: Any) -> Any:
    # A plan missing either half cannot be applied.
    if isinstance(value, dict) and not (value.get("anchor") and value.get("tiny_behavior")):
        return None
    return value


class Analysis(BaseModel):
    """
    Design-time analysis of a behavior the user wants to build.

    ``score`` is the weaker of motivation and ability: the side that limits
    whether the behavior happens at all.
    """

    behavior: str
    motivation: int
    ability: int
    score: int
    analysis: str = ""
    suggestion: str = ""
    recipe: Plan | None = None
    environment_setup: list[str] = Field(default_factory=list)

    @field_validator("recipe", mode="before")
    @classmethod
    def drop_incomplete_recipe(cls, value: Any) -> Any:
        return _complete_plan_or_none(value)

    @field_validator("environment_setup", mode="before")
    @classmethod
    def coerce_checklist(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    def habit_options(self) -> dict[str, Any]:
        """Keyword options for ``create_habit`` when the user keeps this design."""
        options: dict[str, Any] = {
            "original_behavior": self.behavior,
            "motivation": self.motivation,
            "ability": self.ability,
            "ai_suggestion": self.suggestion,
        }
        if self.environment_setup:
            options["environment_setup"] = list(self.environment_setup)
        return options


class Diagnosis(BaseModel):
    """Why a habit failed, and optionally a simpler recipe."""

    model_config = ConfigDict(populate_by_name=True)

    diagnosis_text: str = Field(..., alias="diagnosis")
    new_plan: Plan | None = None

    @field_validator("new_plan", mode="before")
    @classmethod
    def drop_incomplete_plan(cls, value: Any) -> Any:
        return _complete_plan_or_none(value)

    def as_patch(self) -> dict[str, str]:
        """Habit update patch for an accepted plan; empty without one."""
        if self.new_plan is None:
            return {}
        return {"anchor": self.new_plan.anchor, "tiny_behavior": self.new_plan.tiny_behavior}


class Praise(BaseModel):
    message: str = Field(..., min_length=1)
    emoji: str = FALLBACK_PRAISE_EMOJI


class AIAdvisor(Protocol):
    """Coaching collaborator consumed by the engine."""

    async def analyze(self, behavior: str, motivation: int, ability: int) -> Analysis: ...

    async def diagnose(self, habit: Habit, failure_reason: str) -> Diagnosis: ...

    async def praise(self, behavior: str) -> Praise: ...


# =============================================================================
# Helpers
# =============================================================================

def clean_json_response(text: str) -> str:
    """
    Strip markdown fences and surrounding prose from a model reply.

    Returns "{}" for an empty reply.

    >>> clean_json_response('Sure!\\n```json\\n{"a": 1}\\n```')
    '{"a": 1}'
    """
    if not text:
        return "{}"
    cleaned = _JSON_FENCE_CLOSE.sub("", _JSON_FENCE_OPEN.sub("", text))
    first, last = cleaned.find("{"), cleaned.rfind("}")
    if first != -1 and last != -1:
        cleaned = cleaned[first:last + 1]
    return cleaned.strip()


def _friendly_http_message(status_code: int) -> str:
    if status_code == 401:
        return "The API key is invalid or expired; check the AI settings"
    if status_code == 429:
        return "Rate limit exceeded and no other provider is available"
    if status_code >= 500:
        return "The AI server is having trouble; please try again later"
    return f"AI request failed ({status_code})"


def _backend_error_message(response: httpx.Response) -> str:
    """Pull ``error.message`` (or a string ``error``) out of an error body."""
    try:
        body = response.json()
    except ValueError:
        return ""
    if not isinstance(body, dict):
        return ""
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or "")
    if isinstance(error, str):
        return error
    return ""


class _FailoverError(Exception):
    """Provider-level failure that should move on to the next provider."""

    def __init__(self, error: ExternalServiceError) -> None:
        self.error = error
        super().__init__(str(error))


# =============================================================================
# Chat completion advisor
# =============================================================================

class ChatCompletionAdvisor:
    """
    AIAdvisor over OpenAI-compatible chat completion endpoints.

    Args:
        providers: Candidate endpoints; inactive ones are ignored.
        timeout: Seconds per request.
        client: Shared httpx client (tests pass one with a MockTransport).
            Without it a client is opened per request.
        max_retries: Provider switches allowed after the first attempt.
    """

    def __init__(
        self,
        providers: list[ProviderConfig],
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        max_retries: int = MAX_RETRIES,
        temperature: float = 0.7,
    ) -> None:
        self._providers = providers
        self._timeout = timeout
        self._client = client
        self._max_retries = max_retries
        self._temperature = temperature
        self._breakers: dict[str, CircuitBreaker] = {
            provider.id: CircuitBreaker(name=f"ai:{provider.name}") for provider in providers
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> ChatCompletionAdvisor:
        settings = settings or get_settings()
        return cls(settings.ai_providers(), timeout=settings.ai_timeout, client=client)

    def breaker(self, provider_id: str) -> CircuitBreaker:
        return self._breakers[provider_id]

    def _candidates(self) -> list[ProviderConfig]:
        active = [provider for provider in self._providers if provider.is_active and provider.api_key]
        return sorted(active, key=lambda provider: provider.priority)

    async def complete(self, system_prompt: str, user_message: str) -> str:
        """
        Run one chat completion with failover.

        Raises:
            ExternalServiceError: no usable provider, or the last failure.
        """
        candidates = self._candidates()
        if not candidates:
            raise ExternalServiceError("No AI provider configured; add an API key in settings")

        last_error: ExternalServiceError | None = None
        attempts = 0
        for provider in candidates:
            if attempts > self._max_retries:
                break
            breaker = self._breakers.setdefault(
                provider.id, CircuitBreaker(name=f"ai:{provider.name}")
            )
            if not await breaker.allow_request():
                logger.info("Skipping AI provider %s: circuit open", provider.name)
                continue

            attempts += 1
            logger.info(
                "Calling AI provider %s with model %s (attempt %d)",
                provider.name,
                provider.model_name,
                attempts,
            )
            try:
                content = await self._request(provider, system_prompt, user_message)
            except _FailoverError as e:
                await breaker.record_failure()
                logger.warning("AI provider %s failed (%s); trying next provider", provider.name, e)
                last_error = e.error
                continue
            except ExternalServiceError:
                await breaker.record_failure()
                raise
            await breaker.record_success()
            return content

        raise last_error or ExternalServiceError("All AI providers are unavailable right now")

    async def _request(self, provider: ProviderConfig, system_prompt: str, user_message: str) -> str:
        if self._client is not None:
            return await self._post(self._client, provider, system_prompt, user_message)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._post(client, provider, system_prompt, user_message)

    async def _post(
        self,
        client: httpx.AsyncClient,
        provider: ProviderConfig,
        system_prompt: str,
        user_message: str,
    ) -> str:
        try:
            response = await client.post(
                f"{provider.base_url.rstrip('/')}/chat/completions",
                headers={"Authorization": f"Bearer {provider.api_key}"},
                json={
                    "model": provider.model_name,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_message},
                    ],
                    "temperature": self._temperature,
                },
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise ExternalServiceError(
                f"AI request timed out after {self._timeout:.0f}s; check the network or retry later"
            ) from e
        except httpx.TransportError as e:
            raise ExternalServiceError(
                "Could not reach the AI server; check the network or base URL"
            ) from e

        if response.is_error:
            logger.error("AI API error %d: %s", response.status_code, response.text[:200])
            message = _backend_error_message(response) or _friendly_http_message(response.status_code)
            error = ExternalServiceError(message, status_code=response.status_code)
            if response.status_code == 429:
                raise _FailoverError(error)
            raise error

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError("AI returned a non-JSON response", response.status_code) from e
        if not isinstance(data, dict):
            raise ExternalServiceError("AI returned an unexpected response shape", response.status_code)

        choices = data.get("choices") or [{}]
        first = choices[0] if isinstance(choices[0], dict) else {}
        content = (first.get("message") or {}).get("content")
        if content:
            return content
        raise self._empty_content_error(data)

    @staticmethod
    def _empty_content_error(data: dict[str, Any]) -> Exception:
        """Classify a 200 reply without content (some providers report errors this way)."""
        status = str(data.get("status") or "")
        if (data.get("status") and data.get("msg")) or status == MODEL_NOT_SUPPORTED_STATUS:
            msg = str(data.get("msg") or json.dumps(data.get("error")) or "Unknown error")
            error = ExternalServiceError(f"AI provider error: {msg}")
            if "Model not support" in msg or status == MODEL_NOT_SUPPORTED_STATUS:
                return _FailoverError(error)
            return error
        error_field = data.get("error")
        if error_field:
            message = error_field.get("message") if isinstance(error_field, dict) else error_field
            return ExternalServiceError(f"AI API error: {message or json.dumps(error_field)}")
        return ExternalServiceError("AI returned empty content with no error detail")

    # -------------------------------------------------------------------------
    # AIAdvisor
    # -------------------------------------------------------------------------

    async def analyze(self, behavior: str, motivation: int, ability: int) -> Analysis:
        """
        Analyze a behavior before it becomes a habit.

        A reply that is not the expected JSON object becomes an analysis
        whose suggestion carries the raw reply; provider failures still
        raise ExternalServiceError.
        """
        base = {
            "behavior": behavior,
            "motivation": motivation,
            "ability": ability,
            "score": min(motivation, ability),
        }
        user_message = (
            f"Behavior: {behavior}\n"
            f"Motivation: {motivation}/10\n"
            f"Ability: {ability}/10"
        )
        response = await self.complete(ANALYSIS_PROMPT, user_message)
        try:
            parsed = json.loads(clean_json_response(response))
            if not isinstance(parsed, dict):
                raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
            return Analysis.model_validate({**parsed, **base})
        except (ValueError, ValidationError):
            logger.warning("Could not parse behavior analysis for %r", behavior)
            return Analysis(
                **base,
                analysis=ANALYSIS_PARSE_ERROR,
                suggestion=(
                    "The AI reply could not be read as JSON.\n\n"
                    f"Raw reply:\n{response}"
                ),
            )

    async def diagnose(self, habit: Habit, failure_reason: str) -> Diagnosis:
        """
        Ask why ``habit`` failed.

        An unreadable reply becomes a diagnosis without a plan instead of
        an error; provider failures still raise ExternalServiceError.
        """
        user_message = (
            "Habit:\n"
            f"- Anchor: {habit.anchor}\n"
            f"- Tiny behavior: {habit.tiny_behavior}\n"
            f"- Original goal: {habit.original_behavior or '(unknown)'}\n\n"
            f"Failure reason: {REASON_MAP.get(failure_reason, failure_reason)}"
        )
        response = await self.complete(DIAGNOSIS_PROMPT, user_message)
        try:
            return Diagnosis.model_validate_json(clean_json_response(response))
        except ValidationError:
            logger.warning("Could not parse diagnosis for habit %s", habit.id)
            return Diagnosis(
                diagnosis_text=(
                    f"The AI reply was malformed, please retry. Raw reply: {response[:100]}..."
                ),
                new_plan=None,
            )

    async def praise(self, behavior: str) -> Praise:
        """One-line celebration; never fails."""
        try:
            response = await self.complete(PRAISE_PROMPT, f"The user completed: {behavior}")
            return Praise.model_validate_json(clean_json_response(response))
        except (ExternalServiceError, ValidationError) as e:
            logger.info("Using fallback praise: %s", e)
            return Praise(message=FALLBACK_PRAISE_MESSAGE, emoji=FALLBACK_PRAISE_EMOJI)


__all__ = [
    "AIAdvisor",
    "Analysis",
    "ChatCompletionAdvisor",
    "Diagnosis",
    "Plan",
    "Praise",
    "ProviderConfig",
    "REASON_MAP",
    "clean_json_response",
]
