"""Anthropic Claude provider."""

from __future__ import annotations

import time

from vitals.core.llm.provider import ExtractionTool, ProviderError, ProviderResponse


class AnthropicProvider:
    """Claude provider using the Anthropic SDK with a forced tool call."""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514") -> None:
        import anthropic

        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model

    async def extract(
        self,
        system_message: str,
        user_message: str,
        tool: ExtractionTool,
        max_tokens: int = 4096,
    ) -> ProviderResponse:
        start = time.monotonic()
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system_message,
            tools=[
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.input_schema,
                }
            ],
            tool_choice={"type": "tool", "name": tool.name},
            messages=[{"role": "user", "content": user_message}],
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        tool_use = next(
            (block for block in response.content if getattr(block, "type", "") == "tool_use"),
            None,
        )
        if tool_use is None or not isinstance(tool_use.input, dict):
            raise ProviderError(f"No tool_use block for '{tool.name}' in response")

        return ProviderResponse(
            payload=tool_use.input,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
            latency_ms=elapsed_ms,
        )
