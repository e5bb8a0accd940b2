"""
prdgate LLM Gateway

Single entry point for model calls. Resolves a tier to a model, sends the
request through a pluggable async transport and owns the retry policy.
The default transport talks to any OpenAI-compatible /chat/completions API
(OpenRouter by default) over httpx.
"""

import asyncio
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Tuple

import httpx

from prdgate.config import TIERS, Config, get_config
from prdgate.errors import ConfigError, LLMError, OperationCancelled, ProviderError
from prdgate.logging import get_logger

logger = get_logger(__name__)


class FinishReason(str, Enum):
    """Why the model stopped generating."""
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"


_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "end_turn": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "max_tokens": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
}


def map_finish_reason(reason: Optional[str]) -> FinishReason:
    return _FINISH_REASONS.get(reason or "", FinishReason.STOP)


# USD per 1k tokens
MODEL_COSTS: Dict[str, Tuple[float, float]] = {
    "anthropic/claude-3.5-sonnet": (0.003, 0.015),
    "anthropic/claude-3-sonnet": (0.003, 0.015),
    "anthropic/claude-3-haiku": (0.00025, 0.00125),
    "openai/gpt-4o": (0.005, 0.015),
    "openai/gpt-4o-mini": (0.00015, 0.0006),
    "google/gemini-pro-1.5": (0.00125, 0.005),
    "google/gemini-flash-1.5": (0.000075, 0.0003),
    "deepseek/deepseek-chat": (0.00014, 0.00028),
}
DEFAULT_MODEL_COST: Tuple[float, float] = (0.001, 0.002)


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Estimate the USD cost of a call from the price table."""
    price = MODEL_COSTS.get(model)
    if price is None:
        # Prefer the longest matching key so "gpt-4o-mini" does not price as "gpt-4o".
        matches = [key for key in MODEL_COSTS if key in model or (model and model in key)]
        price = MODEL_COSTS[max(matches, key=len)] if matches else DEFAULT_MODEL_COST
    input_cost, output_cost = price
    return (prompt_tokens / 1000) * input_cost + (completion_tokens / 1000) * output_cost


@dataclass
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0


@dataclass
class LLMResponse:
    content: str
    usage: LLMUsage = field(default_factory=LLMUsage)
    model: str = ""
    finish_reason: FinishReason = FinishReason.STOP


@dataclass
class LLMRequest:
    """A fully-resolved request handed to a transport."""
    model: str
    system_prompt: str
    user_prompt: str
    max_tokens: int = 4096
    temperature: float = 0.7
    tier: Optional[str] = None


class CancellationToken:
    """
    Cooperative cancellation signal for long-running model calls.

    The gateway checks it before every attempt and wakes up from a backoff
    sleep as soon as it fires.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(
                "Operation was cancelled",
                metadata={"reason": self.reason},
            )

    async def wait(self) -> None:
        await self._event.wait()


class LLMTransport(Protocol):
    """Anything that can turn an LLMRequest into an LLMResponse."""

    async def complete(self, request: LLMRequest) -> LLMResponse: ...


@dataclass
class RetryPolicy:
    """
    Bounded retries with exponential backoff.

    Attempt n (0-based) that fails waits backoff_seconds * 2**n before the
    next one. Errors marked non-retryable (auth failures) stop immediately.
    """
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 60.0

    def delay_for(self, attempt: int) -> float:
        return min(self.backoff_seconds * (2 ** attempt), self.max_backoff_seconds)

    def should_retry(self, error: LLMError, attempt: int, max_attempts: int) -> bool:
        if not error.retryable:
            return False
        return attempt < max_attempts - 1


class OpenAICompatibleTransport:
    """
    httpx transport for OpenAI-compatible chat completion endpoints.

    Example:
        transport = OpenAICompatibleTransport("https://openrouter.ai/api/v1", api_key)
        response = await transport.complete(LLMRequest(model=..., system_prompt=..., user_prompt=...))
        await transport.aclose()
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
        app_title: str = "prdgate",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.app_title = app_title
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": self.app_title,
        }

    async def complete(self, request: LLMRequest) -> LLMResponse:
        payload = {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        try:
            resp = await self._get_client().post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            raise LLMError(f"LLM request failed: {exc}", metadata={"model": request.model}) from exc

        if resp.status_code >= 400:
            raise ProviderError(
                _error_message(resp),
                status_code=resp.status_code,
                metadata={"model": request.model},
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise LLMError("Provider returned a non-JSON response", metadata={"model": request.model}) from exc
        return _parse_completion(data, request.model)


def _error_message(resp: httpx.Response) -> str:
    message = f"Provider API error: {resp.status_code}"
    try:
        body = resp.json()
    except ValueError:
        return message
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f"{message}: {error['message']}"
        if isinstance(error, str) and error:
            return f"{message}: {error}"
    return message


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)) and math.isfinite(value):
        return int(value)
    return 0


def _parse_completion(data: Any, requested_model: str) -> LLMResponse:
    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices or not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise LLMError("No response generated by the provider", metadata={"model": requested_model})

    choice = choices[0]
    message = choice.get("message") if isinstance(choice.get("message"), dict) else {}
    content = message.get("content") or ""
    model = data.get("model") or requested_model

    raw_usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
    prompt_tokens = _as_int(raw_usage.get("prompt_tokens"))
    completion_tokens = _as_int(raw_usage.get("completion_tokens"))
    total_tokens = _as_int(raw_usage.get("total_tokens")) or prompt_tokens + completion_tokens
    reported_cost = raw_usage.get("total_cost")
    if isinstance(reported_cost, (int, float)) and not isinstance(reported_cost, bool) and reported_cost > 0:
        cost = float(reported_cost)
    else:
        cost = estimate_cost(model, prompt_tokens, completion_tokens)

    return LLMResponse(
        content=content if isinstance(content, str) else str(content),
        usage=LLMUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            estimated_cost=cost,
        ),
        model=model,
        finish_reason=map_finish_reason(choice.get("finish_reason")),
    )


class LLMGateway:
    """
    Tier-aware model gateway with retries and cooperative cancellation.

    Example:
        gateway = LLMGateway(get_config())
        response = await gateway.call("prdAnalysis", system_prompt, user_prompt, max_tokens=8192)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        transport: Optional[LLMTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.config = config or get_config()
        self._transport = transport
        self.retry_policy = retry_policy or RetryPolicy(backoff_seconds=self.config.llm_backoff_seconds)

    @property
    def transport(self) -> LLMTransport:
        if self._transport is None:
            self._transport = OpenAICompatibleTransport(
                self.config.llm_base_url,
                self.config.llm_api_key or "",
                timeout=self.config.llm_timeout_seconds,
            )
        return self._transport

    async def aclose(self) -> None:
        closer = getattr(self._transport, "aclose", None)
        if closer is not None:
            await closer()

    def resolve_model(self, tier: str) -> str:
        """Return the model for a tier, or raise ConfigError if the tier cannot be used."""
        if tier not in TIERS:
            raise ConfigError(f"Unknown tier: {tier}", metadata={"tier": tier})
        if not self.config.llm_enabled:
            raise ConfigError("No API key configured for the LLM gateway", metadata={"tier": tier})
        if not self.config.tier_enabled(tier):
            raise ConfigError(f"Tier {tier} is disabled", metadata={"tier": tier})
        model = self.config.model_for_tier(tier)
        if not model:
            raise ConfigError(f"No model configured for tier {tier}", metadata={"tier": tier})
        return model

    async def call(
        self,
        tier: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4096,
        max_retries: int = 3,
        cancellation: Optional[CancellationToken] = None,
    ) -> LLMResponse:
        """
        Send one prompt pair to the model configured for a tier.

        Raises:
            ConfigError: missing API key, unknown or disabled tier
            ProviderError / LLMError: last transport failure once retries are exhausted
            OperationCancelled: the cancellation token fired
        """
        model = self.resolve_model(tier)
        request = LLMRequest(
            model=model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=max_tokens,
            tier=tier,
        )
        attempts = max(1, max_retries)

        for attempt in range(attempts):
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            try:
                response = await self.transport.complete(request)
            except LLMError as exc:
                logger.warning(
                    "llm_call_failed",
                    extra={
                        "tier": tier,
                        "model": model,
                        "attempt": attempt + 1,
                        "max_attempts": attempts,
                        "retryable": exc.retryable,
                        "error": str(exc),
                    },
                )
                # A cancel that lands while the attempt is in flight wins over its error.
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                if not self.retry_policy.should_retry(exc, attempt, attempts):
                    raise
                await self._backoff(self.retry_policy.delay_for(attempt), cancellation)
                continue

            logger.info(
                "llm_call_completed",
                extra={
                    "tier": tier,
                    "model": response.model,
                    "attempt": attempt + 1,
                    "total_tokens": response.usage.total_tokens,
                    "estimated_cost": response.usage.estimated_cost,
                    "finish_reason": response.finish_reason.value,
                },
            )
            return response

        # Unreachable: the final attempt either returns or raises.
        raise LLMError("Max retries exceeded", metadata={"tier": tier})

    @staticmethod
    async def _backoff(delay: float, cancellation: Optional[CancellationToken]) -> None:
        if cancellation is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancellation.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        cancellation.raise_if_cancelled()
