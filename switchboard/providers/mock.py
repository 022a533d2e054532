"""
Mock provider — deterministic responses for tests and offline development.

The reply is chosen by trigger word: the first registered trigger found
(case-insensitively) in the last user message wins, otherwise the default
response. stream() splits the same reply on spaces, so joining the token
chunks reproduces complete() exactly.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import AsyncIterator

from switchboard.errors import ProviderError
from switchboard.messages import create_message
from switchboard.models import (
    Message,
    ProviderRequest,
    ProviderResponse,
    StreamChunk,
    TokenUsage,
    ToolCall,
)
from switchboard.providers.base import BaseProvider
from switchboard.streaming.handler import create_stream_chunk

logger = logging.getLogger(__name__)

DEFAULT_MOCK_RESPONSE = "This is a mock response."


class MockProvider(BaseProvider):
    name = "mock"

    def __init__(
        self,
        default_response: str = DEFAULT_MOCK_RESPONSE,
        responses: dict[str, str] | None = None,
        latency_ms: int = 0,
        tokens_per_response: int = 10,
        simulate_errors: bool = False,
        error_rate: float = 0.1,
        tool_calls: list[ToolCall] | None = None,
        stream_delay_ms: int = 0,
    ):
        self.default_response = default_response
        self.responses = {k.lower(): v for k, v in (responses or {}).items()}
        self.latency_ms = latency_ms
        self.tokens_per_response = tokens_per_response
        self.simulate_errors = simulate_errors
        self.error_rate = error_rate
        self.tool_calls = list(tool_calls or [])
        self.stream_delay_ms = stream_delay_ms
        self.call_count = 0

    def set_response(self, trigger: str, response: str):
        self.responses[trigger.lower()] = response

    def set_default_response(self, response: str):
        self.default_response = response

    def reset_call_count(self):
        self.call_count = 0

    def _should_fail(self) -> bool:
        return self.simulate_errors and random.random() < self.error_rate

    def _pick_response(self, messages: list[Message]) -> str:
        last_user = next((m for m in reversed(messages) if m.role == "user"), None)
        if last_user is not None:
            content = last_user.content.lower()
            for trigger, response in self.responses.items():
                if trigger in content:
                    return response
        return self.default_response

    def _usage(self, messages: list[Message]) -> TokenUsage:
        prompt = math.ceil(sum(len(m.content) / 4 for m in messages))
        return TokenUsage(
            prompt_tokens=prompt,
            completion_tokens=self.tokens_per_response,
            total_tokens=prompt + self.tokens_per_response,
        )

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        self.call_count += 1

        if self._should_fail():
            raise ProviderError("Mock provider simulated error", provider=self.name)

        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000)

        content = self._pick_response(request.messages)
        finish_reason = "tool_calls" if self.tool_calls else "stop"
        message = create_message(
            "assistant", content,
            model=request.model,
            tokens=self.tokens_per_response,
            finish_reason=finish_reason,
        )
        return ProviderResponse(
            message=message,
            usage=self._usage(request.messages),
            tool_calls=list(self.tool_calls) or None,
            finish_reason=finish_reason,
        )

    async def stream(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        self.call_count += 1

        if self._should_fail():
            yield create_stream_chunk("error", "Mock provider simulated error")
            return

        content = self._pick_response(request.messages)
        for i, word in enumerate(content.split(" ")):
            if self.stream_delay_ms > 0:
                await asyncio.sleep(self.stream_delay_ms / 1000)
            yield create_stream_chunk("token", word if i == 0 else f" {word}")

        usage = self._usage(request.messages)
        yield create_stream_chunk("done", None, {
            "model": request.model,
            "usage": {
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
            },
        })
