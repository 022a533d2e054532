"""
FastAPI application — the switchboard HTTP surface.

Endpoints:
  POST   /v1/chat                     one turn; JSON, or SSE when "stream": true
  GET    /v1/conversations            conversation summaries (newest first)
  GET    /v1/conversations/{id}       full export
  DELETE /v1/conversations/{id}
  GET    /health

Errors: ValidationError -> 400, unknown conversation -> 404,
provider failure -> 502.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from switchboard.config import get_config
from switchboard.engine import ChatEngine
from switchboard.errors import NotFoundError, ProviderError, ValidationError
from switchboard.models import ChatRequest, StreamChunk
from switchboard.streaming import TokenStreamer, create_stream_chunk, format_sse

logger = logging.getLogger(__name__)


def _setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {}) or {}
    level = getattr(logging, str(log_cfg.get("level", "INFO")).upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


async def _sse_events(
    engine: ChatEngine,
    first: StreamChunk,
    chunks: AsyncIterator[StreamChunk],
    conversation_id: str,
) -> AsyncIterator[str]:
    """
    Re-buffer provider tokens through a TokenStreamer and frame everything
    as SSE. While the provider is quiet the adapter wakes every flush
    interval, so timer-driven flushes reach the client without waiting for
    the next provider chunk.
    """
    stream_cfg = engine.config.streaming
    pending: list[StreamChunk] = []
    streamer = TokenStreamer(
        buffer_size=stream_cfg.chunk_size,
        flush_interval_ms=stream_cfg.flush_interval_ms,
    ).on_emit(pending.append)
    wake_after = stream_cfg.flush_interval_ms / 1000 if stream_cfg.flush_interval_ms > 0 else None

    def drain():
        out = [format_sse(c) for c in pending]
        pending.clear()
        return out

    def frames_for(chunk: StreamChunk) -> list[str]:
        if chunk.type == "token":
            streamer.write(str(chunk.data))
            return drain()
        if chunk.type == "error":
            return [format_sse(streamer.error(str(chunk.data)))]
        if chunk.type == "done":
            metadata = dict(chunk.metadata or {})
            metadata.setdefault("conversation_id", conversation_id)
            terminal = streamer.done(metadata)[-1]
            return drain() + [format_sse(terminal)]
        streamer.flush()
        return drain() + [format_sse(chunk)]

    async def pull():
        return await anext(chunks, None)

    next_chunk: asyncio.Task | None = None
    try:
        for frame in frames_for(first):
            yield frame
        while True:
            if next_chunk is None:
                next_chunk = asyncio.create_task(pull())
            finished, _ = await asyncio.wait({next_chunk}, timeout=wake_after)
            # tokens the flush timer emitted while we waited
            for frame in drain():
                yield frame
            if not finished:
                continue
            task, next_chunk = next_chunk, None
            chunk = task.result()
            if chunk is None:
                break
            for frame in frames_for(chunk):
                yield frame
    except ProviderError as e:
        logger.warning("Stream for %s failed: %s", conversation_id[:16], e)
        yield format_sse(streamer.error(str(e)))
        yield format_sse(create_stream_chunk("done", None, {
            "conversation_id": conversation_id,
            "finish_reason": "error",
        }))
    finally:
        streamer.reset()
        if next_chunk is not None:
            next_chunk.cancel()
            await asyncio.gather(next_chunk, return_exceptions=True)
        await chunks.aclose()


def create_app(engine: ChatEngine | None = None) -> FastAPI:
    """
    Build the app. With no engine, one is built from config.yaml at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "engine", None) is None:
            cfg = get_config()
            _setup_logging(cfg)
            app.state.engine = ChatEngine.from_config(cfg)
        await app.state.engine.init()
        logger.info("switchboard online")
        yield
        await app.state.engine.destroy()
        logger.info("switchboard offline")

    app = FastAPI(title="switchboard", lifespan=lifespan)
    app.state.engine = engine

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return JSONResponse({"error": str(exc)}, status_code=404)

    @app.exception_handler(ProviderError)
    async def _provider_error(request: Request, exc: ProviderError):
        return JSONResponse(
            {"error": str(exc), "provider": exc.provider, "status_code": exc.status_code},
            status_code=502,
        )

    @app.post("/v1/chat")
    async def chat(request: Request):
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return JSONResponse({"error": "invalid JSON"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "body must be a JSON object"}, status_code=400)

        chat_request = ChatRequest.from_dict(body)
        if not chat_request.conversation_id:
            chat_request.conversation_id = uuid4().hex
        eng: ChatEngine = app.state.engine

        if not chat_request.stream:
            response = await eng.chat(chat_request)
            return JSONResponse(response.to_dict())

        # Pull the first chunk here so validation and provider connect
        # errors still map to proper status codes.
        chunks = eng.stream(chat_request)
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            first = create_stream_chunk("done", None)
        return StreamingResponse(
            _sse_events(eng, first, chunks, chat_request.conversation_id),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Conversation-Id": chat_request.conversation_id},
        )

    @app.get("/v1/conversations")
    async def list_conversations(limit: int = 50, offset: int = 0, tag: str | None = None):
        eng: ChatEngine = app.state.engine
        conversations = eng.conversations.list(limit=limit, offset=offset, tags=[tag] if tag else None)
        return JSONResponse({
            "conversations": [
                {
                    "id": c.id,
                    "title": c.metadata.title,
                    "message_count": c.metadata.message_count,
                    "total_tokens": c.metadata.total_tokens,
                    "created_at": c.created_at,
                    "updated_at": c.updated_at,
                }
                for c in conversations
            ],
            "count": len(conversations),
        })

    @app.get("/v1/conversations/{conversation_id}")
    async def get_conversation(conversation_id: str):
        exported = app.state.engine.conversations.export(conversation_id)
        if exported is None:
            raise NotFoundError(conversation_id)
        return JSONResponse(json.loads(exported))

    @app.delete("/v1/conversations/{conversation_id}")
    async def delete_conversation(conversation_id: str):
        eng: ChatEngine = app.state.engine
        if not await eng.forget(conversation_id):
            raise NotFoundError(conversation_id)
        return JSONResponse({"deleted": conversation_id})

    @app.get("/health")
    async def health():
        eng: ChatEngine = app.state.engine
        return JSONResponse({
            "status": "ok",
            "provider": eng.provider.name,
            "model": eng.config.model,
            "memory": eng.memory.name,
            "middleware": eng.pipeline.names(),
            "plugins": eng.plugins.names(),
            "tools": eng.tool_names(),
            "conversations": len(eng.conversations),
        })

    return app


app = create_app()
