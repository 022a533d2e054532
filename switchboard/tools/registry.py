"""
Tool registry: central dispatch for callable tools.

Tools are ToolDefinitions (name, description, JSON-schema parameters,
execute). execute may be sync or async and receives the parsed arguments
dict. Non-string results are JSON-encoded before they go back into the
conversation as a `tool` message.
"""

from __future__ import annotations

import json
import logging
import time

from switchboard.errors import ToolNotFoundError
from switchboard.models import ToolCall, ToolDefinition
from switchboard.utils import maybe_await

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Name -> ToolDefinition. Registering an existing name replaces it."""

    def __init__(self, tools: list[ToolDefinition] | None = None):
        self.tools: dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> "ToolRegistry":
        self.tools[tool.name] = tool
        return self

    def unregister(self, name: str) -> bool:
        return self.tools.pop(name, None) is not None

    def get(self, name: str) -> ToolDefinition | None:
        """Get a tool by name, or None if not registered."""
        return self.tools.get(name)

    def list_tools(self) -> list[str]:
        """Return names of all registered tools."""
        return list(self.tools.keys())

    def definitions(self) -> list[ToolDefinition]:
        return list(self.tools.values())

    def merged(self, extra: list[ToolDefinition] | None) -> "ToolRegistry":
        """A new registry with `extra` layered over this one."""
        return ToolRegistry(self.definitions() + list(extra or []))

    def clear(self):
        self.tools.clear()

    def __len__(self) -> int:
        return len(self.tools)

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    async def run_tool(self, call: ToolCall) -> str:
        """
        Execute one tool call and return its result as a string.
        Raises ToolNotFoundError for an unknown (or declaration-only) tool;
        exceptions from the tool itself propagate unchanged.
        """
        tool = self.tools.get(call.name)
        if tool is None or tool.execute is None:
            logger.warning("Tool '%s' not found in registry", call.name)
            raise ToolNotFoundError(call.name)

        start = time.monotonic()
        result = await maybe_await(tool.execute(call.arguments))
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug("Tool '%s' ran in %.1fms", call.name, elapsed_ms)

        if isinstance(result, str):
            return result
        return json.dumps(result, default=str)
