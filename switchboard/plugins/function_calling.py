"""
Function calling plugin — offer a set of tools to the model for each turn.

The plugin adds its tools to the request (alongside any already attached)
and tells the engine how to treat the resulting tool calls through the
context metadata:

    available_tools           names offered this turn
    max_tool_calls_per_turn   calls beyond this are not executed
    auto_execute_tools        False returns tool calls to the caller unexecuted

Execution itself stays in the engine so each call runs exactly once and its
result lands in the conversation as a `tool` message.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Callable

from switchboard.models import ChatOptions, MiddlewareContext, ToolDefinition
from switchboard.plugins.manager import Plugin


def define_tool(
    name: str,
    description: str,
    parameters: dict[str, Any] | None = None,
    execute: Callable[[dict[str, Any]], Any] | None = None,
) -> ToolDefinition:
    return ToolDefinition(name=name, description=description, parameters=parameters or {}, execute=execute)


def function_calling_plugin(
    tools: list[ToolDefinition] | None = None,
    max_tool_calls_per_turn: int = 5,
    auto_execute: bool = True,
) -> Plugin:
    owned = {t.name: t for t in tools or []}

    def on_before_chat(context: MiddlewareContext) -> MiddlewareContext:
        metadata = dict(context.metadata)
        metadata["max_tool_calls_per_turn"] = max_tool_calls_per_turn
        metadata["auto_execute_tools"] = auto_execute
        if not owned:
            return dataclasses.replace(context, metadata=metadata)

        request = context.request
        options = request.options or ChatOptions()
        existing = [t for t in (options.tools or []) if t.name not in owned]
        options = dataclasses.replace(options, tools=existing + list(owned.values()))

        metadata["available_tools"] = list(owned.keys())
        return dataclasses.replace(
            context,
            request=dataclasses.replace(request, options=options),
            metadata=metadata,
        )

    return Plugin(
        name="function-calling",
        version="1.0.0",
        description="Tool/function calling support for conversational AI",
        on_before_chat=on_before_chat,
    )
