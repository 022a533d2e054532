"""
Generic OpenAI-compatible provider.

Supports any endpoint that speaks the OpenAI chat completions format:
- OpenAI / Azure OpenAI
- Ollama (/v1 compatibility layer)
- llama.cpp server, vLLM, LocalAI
- OpenRouter, Together, etc.
"""

from __future__ import annotations

import json
import logging
import time
from typing import AsyncIterator

import httpx

from switchboard.errors import ProviderError, ProviderTimeoutError
from switchboard.messages import create_message
from switchboard.models import (
    ProviderRequest,
    ProviderResponse,
    StreamChunk,
    TokenUsage,
    ToolCall,
)
from switchboard.providers.base import BaseProvider
from switchboard.streaming.handler import create_stream_chunk

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


def map_finish_reason(reason: str | None) -> str:
    if reason in ("stop", "length", "content_filter"):
        return reason
    if reason in ("tool_calls", "function_call"):
        return "tool_calls"
    return "stop"


def parse_tool_calls(raw: list[dict] | None) -> list[ToolCall] | None:
    """OpenAI tool_calls array -> ToolCall list. Arguments arrive as a JSON string."""
    if not raw:
        return None
    calls = []
    for item in raw:
        fn = item.get("function", {})
        args = fn.get("arguments") or "{}"
        try:
            arguments = json.loads(args) if isinstance(args, str) else dict(args)
        except json.JSONDecodeError:
            logger.warning("Tool call '%s' had unparseable arguments: %.200s", fn.get("name"), args)
            arguments = {}
        calls.append(ToolCall(id=item.get("id", ""), name=fn.get("name", ""), arguments=arguments))
    return calls


class OpenAICompatibleProvider(BaseProvider):
    """
    Provider for any service implementing POST {base_url}/chat/completions.
    One short-lived httpx.AsyncClient per call.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = DEFAULT_BASE_URL,
        model: str = "gpt-4o",
        timeout: float = 30,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _body(self, request: ProviderRequest, stream: bool) -> dict:
        body = {
            "model": request.model or self.model,
            "messages": [m.to_openai_format() for m in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": stream,
        }
        if request.tools:
            body["tools"] = [t.to_openai_format() for t in request.tools]
        return body

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=self._body(request, stream=False),
                    headers=self._headers(),
                )
        except httpx.TimeoutException as e:
            logger.warning("Provider '%s' timed out after %.0fms", self.name, (time.monotonic() - t0) * 1000)
            raise ProviderTimeoutError(f"Timeout after {self.timeout}s", provider=self.name) from e
        except httpx.HTTPError as e:
            logger.warning("Provider '%s' failed: %s", self.name, e)
            raise ProviderError(str(e), provider=self.name) from e

        latency = (time.monotonic() - t0) * 1000
        if resp.status_code >= 400:
            raise ProviderError(
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
                provider=self.name,
            )

        data = resp.json()
        choice = (data.get("choices") or [{}])[0]
        msg = choice.get("message", {}) or {}
        usage = data.get("usage") or {}
        finish_reason = map_finish_reason(choice.get("finish_reason"))

        logger.debug("Provider '%s' completed in %.0fms", self.name, latency)
        return ProviderResponse(
            message=create_message(
                "assistant", msg.get("content") or "",
                model=data.get("model", request.model),
                tokens=usage.get("completion_tokens"),
                finish_reason=finish_reason,
            ),
            usage=TokenUsage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
            ),
            tool_calls=parse_tool_calls(msg.get("tool_calls")),
            finish_reason=finish_reason,
        )

    async def stream(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        """
        Yield token chunks from the SSE response, then one done chunk.
        The HTTP response is closed on every exit path (the async with blocks
        unwind when the consumer stops iterating and the generator is closed).
        """
        finish_reason = "stop"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    json=self._body(request, stream=True),
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code >= 400:
                        body = (await resp.aread()).decode(errors="replace")
                        raise ProviderError(
                            f"HTTP {resp.status_code}: {body[:200]}",
                            status_code=resp.status_code,
                            provider=self.name,
                        )
                    async for line in resp.aiter_lines():
                        line = line.strip()
                        if not line.startswith("data:"):
                            continue
                        payload = line[5:].strip()
                        if payload == "[DONE]":
                            break
                        try:
                            parsed = json.loads(payload)
                        except json.JSONDecodeError:
                            continue
                        choice = (parsed.get("choices") or [{}])[0]
                        if choice.get("finish_reason"):
                            finish_reason = map_finish_reason(choice["finish_reason"])
                        content = (choice.get("delta") or {}).get("content")
                        if content:
                            yield create_stream_chunk("token", content)
        except httpx.TimeoutException as e:
            logger.warning("Provider '%s' stream timed out", self.name)
            raise ProviderTimeoutError(f"Timeout after {self.timeout}s", provider=self.name) from e
        except httpx.HTTPError as e:
            logger.warning("Provider '%s' stream failed: %s", self.name, e)
            raise ProviderError(str(e), provider=self.name) from e

        yield create_stream_chunk("done", None, {"model": request.model, "finish_reason": finish_reason})
