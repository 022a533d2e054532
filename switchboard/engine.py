"""
Engine: the core of switchboard.
Takes a chat request through plugins and middleware, keeps the conversation
and memory up to date, and dispatches to the model provider.

Two entry points share the same setup:

    get-or-create conversation -> plugin before hooks -> middleware pipeline
      blocked:  error response (chat) / error + done chunks (stream);
                no provider call, no user message stored
      proceed:  store user message -> system prompt + memory context
                -> provider

chat() then stores the assistant reply, runs any tool calls and the plugin
after hooks. stream() yields provider chunks as they arrive and stores the
assembled reply when the provider's done chunk arrives (or, with no done
chunk, once the provider stream runs out); it does not run tool
calls or after hooks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import AsyncIterator
from uuid import uuid4

from switchboard.config import ChatConfig, get_config
from switchboard.conversation import ConversationManager
from switchboard.errors import ToolNotFoundError, ValidationError
from switchboard.memory import MemoryStrategy, create_memory, provider_summarizer
from switchboard.messages import create_message, estimate_tokens, truncate_messages, validate_message_content
from switchboard.middleware import (
    Middleware,
    MiddlewarePipeline,
    RateLimiter,
    create_content_filter,
    create_logger,
    create_rate_limiter,
)
from switchboard.models import (
    ROLES,
    ChatRequest,
    ChatResponse,
    Message,
    MiddlewareContext,
    MiddlewareResult,
    ProviderRequest,
    StreamChunk,
    ToolCall,
    ToolDefinition,
)
from switchboard.plugins import Plugin, PluginManager, system_prompt_plugin
from switchboard.providers import BaseProvider, create_provider
from switchboard.streaming import create_stream_chunk
from switchboard.tools import ToolRegistry
from switchboard.wiretap import WireLog

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_CALLS = 5


class ChatEngine:
    """One engine owns its conversations, memory, middleware, plugins and tools."""

    def __init__(
        self,
        config: ChatConfig,
        provider: BaseProvider,
        memory: MemoryStrategy | None = None,
        wiretap: WireLog | None = None,
    ):
        self.config = config
        self.provider = provider
        self.conversations = ConversationManager()
        self.memory = memory or create_memory(config.memory)
        self.pipeline = MiddlewarePipeline()
        self.plugins = PluginManager()
        self.tools = ToolRegistry()
        self.wire = wiretap
        self._locks: dict[str, asyncio.Lock] = {}

        if config.rate_limit is not None:
            self.use(create_rate_limiter(config.rate_limit))

    @classmethod
    def from_config(cls, cfg: dict | None = None) -> "ChatEngine":
        """
        Build an engine from the raw config dict (the shape of config.yaml).
        Wires provider, memory, built-in middleware, plugins and wiretap.
        """
        cfg = cfg if cfg is not None else get_config()
        config = ChatConfig.from_dict(cfg)
        provider = create_provider(cfg.get("provider"))

        summarizer = None
        if config.memory.summarizer == "provider":
            summarizer = provider_summarizer(provider, config.model, prompt=config.memory.summary_prompt)
        memory = create_memory(config.memory, summarizer=summarizer)

        wire = None
        wt_cfg = cfg.get("wiretap", {}) or {}
        if wt_cfg.get("enabled", False):
            wire = WireLog(wt_cfg.get("path", "./data/wire.jsonl"))

        engine = cls(config, provider, memory=memory, wiretap=wire)

        mw_cfg = cfg.get("middleware", {}) or {}
        cf_cfg = mw_cfg.get("content_filter", {}) or {}
        if cf_cfg.get("enabled", False):
            engine.use(create_content_filter(block_severity=cf_cfg.get("block_severity", "high")))
        log_cfg = mw_cfg.get("logger", {}) or {}
        if log_cfg.get("enabled", False):
            engine.use(create_logger(
                level=log_cfg.get("level", "info"),
                log_content=bool(log_cfg.get("log_content", False)),
            ))

        pl_cfg = cfg.get("plugins", {}) or {}
        sp_cfg = pl_cfg.get("system_prompt", {}) or {}
        if sp_cfg.get("enabled", False):
            engine.register_plugin(system_prompt_plugin(
                default_persona=sp_cfg.get("persona"),
                variables=sp_cfg.get("variables"),
                prefix=sp_cfg.get("prefix"),
                suffix=sp_cfg.get("suffix"),
            ))
        if pl_cfg.get("path"):
            engine.plugins.load_directory(pl_cfg["path"])

        logger.info(
            "Engine ready: provider=%s model=%s memory=%s middleware=%s plugins=%s",
            provider.name, config.model, engine.memory.name,
            engine.pipeline.names(), engine.plugins.names(),
        )
        return engine

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def use(self, middleware: Middleware) -> "ChatEngine":
        self.pipeline.use(middleware)
        return self

    def register_plugin(self, plugin: Plugin) -> "ChatEngine":
        self.plugins.register(plugin)
        return self

    def register_tool(self, tool: ToolDefinition) -> "ChatEngine":
        self.tools.register(tool)
        return self

    def set_provider(self, provider: BaseProvider) -> "ChatEngine":
        self.provider = provider
        return self

    def tool_names(self) -> list[str]:
        return self.tools.list_tools()

    async def init(self):
        await self.plugins.init(self.config)

    async def forget(self, conversation_id: str) -> bool:
        """Drop a conversation along with its memory, turn lock and rate-limit bucket."""
        deleted = self.conversations.delete(conversation_id)
        await self.memory.clear(conversation_id)
        self._locks.pop(conversation_id, None)
        for name in self.pipeline.names():
            limiter = getattr(self.pipeline.get(name).execute, "__self__", None)
            if isinstance(limiter, RateLimiter):
                limiter.reset(conversation_id)
        return deleted

    async def destroy(self):
        await self.plugins.destroy()
        await self.memory.clear_all()
        self.conversations.clear()
        self.pipeline.clear()
        self.tools.clear()
        self._locks.clear()
        if self.wire:
            self.wire.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate(self, request: ChatRequest):
        if not isinstance(request.message, str):
            raise ValidationError("Message content must be a string")
        valid, error = validate_message_content(request.message)
        if not valid:
            raise ValidationError(error)
        if request.role not in ROLES:
            raise ValidationError(f"Invalid role '{request.role}'")

    def _turn_lock(self, conversation_id: str):
        """Per-conversation lock when turns are serialized, otherwise a no-op."""
        if not self.config.serialize_turns:
            return contextlib.nullcontext()
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    def _wire(self, direction: str, message: Message, conversation_id: str, model: str = ""):
        if self.wire is None:
            return
        self.wire.log(
            direction=direction,
            role=message.role,
            content=message.content,
            model=model or message.metadata.model or "",
            conversation_id=conversation_id,
            token_count=message.metadata.tokens or estimate_tokens(message.content),
            tool_name=message.metadata.tool_name or "",
        )

    async def _append(self, conversation_id: str, message: Message):
        """Record a message in both the conversation store and memory."""
        self.conversations.add_message(conversation_id, message)
        await self.memory.save(conversation_id, [message])

    async def _prepare(self, request: ChatRequest, conversation_id: str) -> MiddlewareResult:
        conversation = self.conversations.get_or_create(conversation_id, model=self.config.model)
        context = MiddlewareContext(request=request, conversation=conversation, config=self.config)
        context = await self.plugins.before_chat(context)
        return await self.pipeline.execute(context)

    async def _provider_messages(self, context: MiddlewareContext) -> list[Message]:
        """System prompt (conversation override, else config) + memory context within budget."""
        budget = self.config.memory.max_tokens
        history = await self.memory.get_context(context.conversation.id, budget)
        history = truncate_messages(history, budget)

        system_prompt = context.conversation.metadata.system_prompt or self.config.system_prompt
        if system_prompt:
            return [create_message("system", system_prompt)] + history
        return history

    def _turn_tools(self, request: ChatRequest) -> ToolRegistry:
        extra = request.options.tools if request.options else None
        return self.tools.merged(extra) if extra else self.tools

    def _provider_request(self, request: ChatRequest, messages: list[Message], tools: ToolRegistry, stream: bool) -> ProviderRequest:
        opts = request.options
        return ProviderRequest(
            messages=messages,
            model=(opts.model if opts and opts.model else self.config.model),
            temperature=(opts.temperature if opts and opts.temperature is not None else self.config.temperature),
            max_tokens=(opts.max_tokens if opts and opts.max_tokens else self.config.max_tokens),
            tools=tools.definitions() or None,
            stream=stream,
        )

    def _log_dispatch(self, conversation_id: str, provider_request: ProviderRequest):
        """Per-turn dispatch summary; INFO when chat.verbose is on, DEBUG otherwise."""
        logger.log(
            logging.INFO if self.config.verbose else logging.DEBUG,
            "Dispatching %s to %s: model=%s messages=%d tools=%d stream=%s",
            conversation_id[:16], self.provider.name, provider_request.model,
            len(provider_request.messages), len(provider_request.tools or []), provider_request.stream,
        )

    async def _run_tool_calls(self, conversation_id: str, calls: list[ToolCall], tools: ToolRegistry):
        """Run each call in order; failures become tool messages, never exceptions."""
        for call in calls:
            try:
                content = await tools.run_tool(call)
            except ToolNotFoundError as e:
                content = str(e)
            except Exception as e:
                logger.warning("Tool '%s' failed: %s", call.name, e)
                content = f"Tool error: {e}"

            message = create_message("tool", content, tool_call_id=call.id, tool_name=call.name)
            await self._append(conversation_id, message)
            self._wire("outbound", message, conversation_id)

    async def _store_streamed(
        self, conversation_id: str, provider_request: ProviderRequest, parts: list[str], t0: float, finish_reason: str,
    ):
        content = "".join(parts)
        assistant = create_message(
            "assistant", content,
            model=provider_request.model,
            tokens=estimate_tokens(content),
            latency_ms=round((time.monotonic() - t0) * 1000, 2),
            finish_reason=finish_reason,
        )
        await self._append(conversation_id, assistant)
        self._wire("outbound", assistant, conversation_id)

    def _blocked_message(self, result: MiddlewareResult, conversation_id: str) -> Message:
        message = create_message(
            "assistant", result.error or "Request blocked by middleware", finish_reason="error",
        )
        logger.info("Request blocked for %s: %s", conversation_id[:16], message.content)
        self._wire("outbound", message, conversation_id)
        return message

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send one message and wait for the complete reply."""
        self._validate(request)
        await self.init()
        conversation_id = request.conversation_id or uuid4().hex

        async with self._turn_lock(conversation_id):
            result = await self._prepare(request, conversation_id)
            if not result.proceed:
                return ChatResponse(
                    message=self._blocked_message(result, conversation_id),
                    conversation_id=conversation_id,
                    finish_reason="error",
                )

            context = result.context
            request = context.request
            user_message = create_message(request.role, request.message)
            await self._append(conversation_id, user_message)
            self._wire("inbound", user_message, conversation_id, model=self.config.model)

            tools = self._turn_tools(request)
            provider_request = self._provider_request(
                request, await self._provider_messages(context), tools, stream=False,
            )
            self._log_dispatch(conversation_id, provider_request)

            try:
                t0 = time.monotonic()
                provider_response = await self.provider.complete(provider_request)
                latency_ms = round((time.monotonic() - t0) * 1000, 2)

                assistant = create_message(
                    "assistant", provider_response.message.content,
                    model=provider_request.model,
                    tokens=provider_response.usage.completion_tokens,
                    latency_ms=latency_ms,
                    finish_reason=provider_response.finish_reason,
                )
                await self._append(conversation_id, assistant)
                self._wire("outbound", assistant, conversation_id)

                calls = provider_response.tool_calls
                if calls and context.metadata.get("auto_execute_tools", True):
                    limit = context.metadata.get("max_tool_calls_per_turn", DEFAULT_MAX_TOOL_CALLS)
                    if len(calls) > limit:
                        logger.warning("Model requested %d tool calls, running first %d", len(calls), limit)
                    await self._run_tool_calls(conversation_id, calls[:limit], tools)

                response = ChatResponse(
                    message=assistant,
                    conversation_id=conversation_id,
                    usage=provider_response.usage,
                    tool_calls=calls,
                    finish_reason=provider_response.finish_reason,
                )
                return await self.plugins.after_chat(response, context)
            except Exception as e:
                logger.error("Chat turn failed for %s: %s", conversation_id[:16], e)
                await self.plugins.on_error(e, context)
                raise

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """
        Send one message and yield the reply as StreamChunks.
        Breaking out of the iteration before `done` closes the provider stream
        and stores nothing for the assistant side.
        """
        self._validate(request)
        await self.init()
        conversation_id = request.conversation_id or uuid4().hex

        async with self._turn_lock(conversation_id):
            result = await self._prepare(request, conversation_id)
            if not result.proceed:
                message = self._blocked_message(result, conversation_id)
                yield create_stream_chunk("error", message.content)
                yield create_stream_chunk("done", None, {
                    "conversation_id": conversation_id,
                    "finish_reason": "error",
                })
                return

            context = result.context
            request = context.request
            user_message = create_message(request.role, request.message)
            await self._append(conversation_id, user_message)
            self._wire("inbound", user_message, conversation_id, model=self.config.model)

            provider_request = self._provider_request(
                request, await self._provider_messages(context), self._turn_tools(request), stream=True,
            )
            self._log_dispatch(conversation_id, provider_request)

            parts: list[str] = []
            t0 = time.monotonic()
            source = self.provider.stream(provider_request)
            finish_reason = "stop"
            persisted = False
            try:
                async for chunk in source:
                    if chunk.type == "token" and isinstance(chunk.data, str):
                        parts.append(chunk.data)
                    elif chunk.type == "error":
                        finish_reason = "error"
                    elif chunk.type == "done" and parts and not persisted:
                        # persisted before the terminal chunk is yielded
                        finish_reason = (chunk.metadata or {}).get("finish_reason", finish_reason)
                        await self._store_streamed(conversation_id, provider_request, parts, t0, finish_reason)
                        persisted = True
                    yield chunk
                # source ran out without a done chunk
                if parts and not persisted:
                    await self._store_streamed(conversation_id, provider_request, parts, t0, finish_reason)
            except Exception as e:
                logger.error("Stream failed for %s: %s", conversation_id[:16], e)
                await self.plugins.on_error(e, context)
                raise
            finally:
                await source.aclose()
