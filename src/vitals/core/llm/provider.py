"""LLM provider protocol — abstract interface for structured extraction calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


class ProviderError(Exception):
    """Raised when a provider returns no usable structured payload."""


@dataclass
class ExtractionTool:
    """A named JSON schema the model is forced to fill in."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class ProviderResponse:
    """Structured response from an LLM provider."""

    payload: dict[str, Any]
    input_tokens: int
    output_tokens: int
    model: str
    latency_ms: float
    raw: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class LLMProvider(Protocol):
    """Abstract interface for a forced tool-call (structured output) request."""

    async def extract(
        self,
        system_message: str,
        user_message: str,
        tool: ExtractionTool,
        max_tokens: int = 4096,
    ) -> ProviderResponse: ...


def create_provider(
    provider_name: str,
    api_key: str = "",
    model: str = "",
) -> LLMProvider:
    """Factory function to create an LLM provider by name.

    Args:
        provider_name: "anthropic", "openai", or "mock"
        api_key: API key for the provider.
        model: Model identifier override.

    Returns:
        An LLMProvider instance.
    """
    if provider_name == "anthropic":
        from vitals.core.llm.providers.anthropic import AnthropicProvider

        return AnthropicProvider(api_key=api_key, model=model or "claude-sonnet-4-20250514")
    elif provider_name == "openai":
        from vitals.core.llm.providers.openai import OpenAIProvider

        return OpenAIProvider(api_key=api_key, model=model or "gpt-4o")
    elif provider_name == "mock":
        from vitals.core.llm.providers.mock import MockProvider

        return MockProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")
