"""Mock LLM provider for testing."""

from __future__ import annotations

import asyncio
from typing import Any

from vitals.core.llm.provider import ExtractionTool, ProviderResponse


class MockProvider:
    """Mock provider for testing — returns canned payloads per tool name.

    ``payloads`` maps a tool name to the dict returned for it. ``error`` is
    raised on every call when set, and ``delay`` (seconds) simulates a slow
    or stuck network call.
    """

    def __init__(
        self,
        payloads: dict[str, dict[str, Any]] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.payloads = payloads or {}
        self.error = error
        self.delay = delay
        self.last_user_message: str = ""
        self.calls: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def extract(
        self,
        system_message: str,
        user_message: str,
        tool: ExtractionTool,
        max_tokens: int = 4096,
    ) -> ProviderResponse:
        self.calls.append(tool.name)
        self.last_user_message = user_message
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        payload = dict(self.payloads.get(tool.name, {}))
        return ProviderResponse(
            payload=payload,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(payload),
            model="mock",
            latency_ms=0.0,
        )
