"""
prdgate LLM Package

Tier-aware gateway, transports and prompt builders.
"""

from prdgate.llm.gateway import (
    CancellationToken,
    FinishReason,
    LLMGateway,
    LLMRequest,
    LLMResponse,
    LLMTransport,
    LLMUsage,
    OpenAICompatibleTransport,
    RetryPolicy,
    estimate_cost,
    map_finish_reason,
)

__all__ = [
    "CancellationToken",
    "FinishReason",
    "LLMGateway",
    "LLMRequest",
    "LLMResponse",
    "LLMTransport",
    "LLMUsage",
    "OpenAICompatibleTransport",
    "RetryPolicy",
    "estimate_cost",
    "map_finish_reason",
]
