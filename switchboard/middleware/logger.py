"""
Logger middleware — one structured event before dispatch, one after.

Events:
    chat.request    (info)   before next()
    chat.response   (info)   chain proceeded
    chat.blocked    (warn)   chain stopped by a later middleware
    chat.error      (error)  next() raised; the exception is re-raised

Message content is left out unless log_content=True. Entries go to a
handler; the default handler forwards to the stdlib `logging` module.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from switchboard.middleware.pipeline import Middleware, NextFn
from switchboard.models import MiddlewareContext, MiddlewareResult, now_ms

logger = logging.getLogger(__name__)

LOG_LEVEL_ORDER = {"debug": 0, "info": 1, "warn": 2, "error": 3}
_STDLIB_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class LogEntry:
    level: str
    conversation_id: str
    event: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)


def default_log_handler(entry: LogEntry):
    logger.log(
        _STDLIB_LEVELS[entry.level],
        "%s (%s) %s",
        entry.event, entry.conversation_id[:16], entry.data,
    )


class LogStore:
    """In-memory sink, handy in tests: LogStore().handler as the logger handler."""

    def __init__(self):
        self.entries: list[LogEntry] = []

    def handler(self, entry: LogEntry):
        self.entries.append(entry)

    def get_entries(self, level: str | None = None, event: str | None = None) -> list[LogEntry]:
        result = list(self.entries)
        if level:
            result = [e for e in result if e.level == level]
        if event:
            result = [e for e in result if e.event == event]
        return result

    def clear(self):
        self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)


class ChatLogger:
    name = "logger"
    priority = -50

    def __init__(
        self,
        level: str = "info",
        handler: Callable[[LogEntry], None] | None = None,
        log_content: bool = False,
    ):
        if level not in LOG_LEVEL_ORDER:
            raise ValueError(f"Unknown log level '{level}'")
        self.min_level = LOG_LEVEL_ORDER[level]
        self.handler = handler or default_log_handler
        self.log_content = log_content

    def _log(self, level: str, conversation_id: str, event: str, data: dict):
        if LOG_LEVEL_ORDER[level] >= self.min_level:
            self.handler(LogEntry(level=level, conversation_id=conversation_id, event=event, data=data))

    async def execute(self, context: MiddlewareContext, next: NextFn) -> MiddlewareResult:
        conv_id = context.conversation.id
        t0 = time.monotonic()

        data = {
            "message_length": len(context.request.message),
            "model": getattr(context.config, "model", None),
        }
        if self.log_content:
            data["message"] = context.request.message
        self._log("info", conv_id, "chat.request", data)

        try:
            result = await next()
        except Exception as e:
            duration = round((time.monotonic() - t0) * 1000, 2)
            self._log("error", conv_id, "chat.error", {"duration_ms": duration, "error": str(e)})
            raise

        duration = round((time.monotonic() - t0) * 1000, 2)
        if result.proceed:
            self._log("info", conv_id, "chat.response", {"duration_ms": duration})
        else:
            self._log("warn", conv_id, "chat.blocked", {"duration_ms": duration, "error": result.error})
        return result

    def as_middleware(self) -> Middleware:
        return Middleware(
            name=self.name,
            execute=self.execute,
            priority=self.priority,
            description="Structured conversation logger",
        )


def create_logger(
    level: str = "info",
    handler: Callable[[LogEntry], None] | None = None,
    log_content: bool = False,
) -> Middleware:
    return ChatLogger(level=level, handler=handler, log_content=log_content).as_middleware()
