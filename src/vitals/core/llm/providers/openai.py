"""OpenAI GPT provider."""

from __future__ import annotations

import json
import time

from vitals.core.llm.provider import ExtractionTool, ProviderError, ProviderResponse


class OpenAIProvider:
    """OpenAI provider using the OpenAI SDK with a forced function call."""

    def __init__(self, api_key: str, model: str = "gpt-4o") -> None:
        import openai

        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.model = model

    async def extract(
        self,
        system_message: str,
        user_message: str,
        tool: ExtractionTool,
        max_tokens: int = 4096,
    ) -> ProviderResponse:
        start = time.monotonic()
        response = await self.client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=0,
            messages=[
                {"role": "system", "content": system_message},
                {"role": "user", "content": user_message},
            ],
            tools=[
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.input_schema,
                    },
                }
            ],
            tool_choice={"type": "function", "function": {"name": tool.name}},
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        choice = response.choices[0] if response.choices else None
        calls = (choice.message.tool_calls or []) if choice else []
        if not calls:
            raise ProviderError(f"No function call for '{tool.name}' in response")
        try:
            payload = json.loads(calls[0].function.arguments or "{}")
        except json.JSONDecodeError as exc:
            raise ProviderError(f"Malformed function arguments: {exc}") from exc
        if not isinstance(payload, dict):
            raise ProviderError("Function arguments are not a JSON object")

        usage = response.usage
        return ProviderResponse(
            payload=payload,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self.model,
            latency_ms=elapsed_ms,
        )
