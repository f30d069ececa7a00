"""LLM provider implementations."""

from vitals.core.llm.providers.anthropic import AnthropicProvider
from vitals.core.llm.providers.mock import MockProvider
from vitals.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "MockProvider", "OpenAIProvider"]
