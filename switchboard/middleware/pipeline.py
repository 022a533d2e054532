"""
Middleware pipeline — named, priority-ordered interceptors.

Each middleware is an async callable:

    async def execute(context: MiddlewareContext, next) -> MiddlewareResult

It either awaits `next()` and returns (or modifies) that result, or returns
MiddlewareResult(proceed=False, error=...) to short-circuit everything after
it. Lower priority runs first; equal priorities keep registration order.

Built-in priorities:
    -100  rate-limiter
     -90  content-filter
     -50  logger
       0  default

The engine is the terminal link: if every middleware calls next(), the
request proceeds to the provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from switchboard.models import MiddlewareContext, MiddlewareResult

logger = logging.getLogger(__name__)

NextFn = Callable[[], Awaitable[MiddlewareResult]]
MiddlewareFn = Callable[[MiddlewareContext, NextFn], Awaitable[MiddlewareResult]]


@dataclass
class Middleware:
    name: str
    execute: MiddlewareFn
    priority: int = 0
    description: str | None = None


def create_middleware(
    name: str,
    execute: MiddlewareFn,
    priority: int = 0,
    description: str | None = None,
) -> Middleware:
    return Middleware(name=name, execute=execute, priority=priority, description=description)


def compose_middleware(middlewares: list[Middleware]) -> Callable[[MiddlewareContext], Awaitable[MiddlewareResult]]:
    """Fold middlewares into one async callable taking a context."""
    ordered = sorted(middlewares, key=lambda m: m.priority)

    async def run(context: MiddlewareContext) -> MiddlewareResult:
        index = 0
        current = context

        async def next_() -> MiddlewareResult:
            nonlocal index, current
            if index >= len(ordered):
                return MiddlewareResult(proceed=True, context=current)

            middleware = ordered[index]
            index += 1
            result = await middleware.execute(current, next_)
            if result.proceed:
                current = result.context
            else:
                logger.debug("Middleware '%s' chain stopped: %s", middleware.name, result.error)
            return result

        return await next_()

    return run


class MiddlewarePipeline:
    """Named middleware registry. Re-using a name replaces the entry in place."""

    def __init__(self):
        self._middlewares: dict[str, Middleware] = {}

    def use(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middlewares[middleware.name] = middleware
        return self

    def remove(self, name: str) -> bool:
        return self._middlewares.pop(name, None) is not None

    def get(self, name: str) -> Middleware | None:
        return self._middlewares.get(name)

    def has(self, name: str) -> bool:
        return name in self._middlewares

    def names(self) -> list[str]:
        return list(self._middlewares.keys())

    def clear(self):
        self._middlewares.clear()

    def __len__(self) -> int:
        return len(self._middlewares)

    async def execute(self, context: MiddlewareContext) -> MiddlewareResult:
        if not self._middlewares:
            return MiddlewareResult(proceed=True, context=context)
        return await compose_middleware(list(self._middlewares.values()))(context)
