"""
Tests for the tool registry.
"""

import json

import pytest

from switchboard.errors import ToolNotFoundError
from switchboard.models import ToolCall, ToolDefinition
from switchboard.tools import ToolRegistry


def _tool(name, execute=None, description="test tool"):
    return ToolDefinition(name=name, description=description, execute=execute)


def test_register_and_list():
    registry = ToolRegistry([_tool("a"), _tool("b")])
    assert registry.list_tools() == ["a", "b"]
    assert "a" in registry
    assert len(registry) == 2
    assert registry.get("missing") is None


def test_register_same_name_replaces():
    registry = ToolRegistry()
    registry.register(_tool("a", description="old")).register(_tool("a", description="new"))
    assert len(registry) == 1
    assert registry.get("a").description == "new"


def test_unregister_and_clear():
    registry = ToolRegistry([_tool("a"), _tool("b")])
    assert registry.unregister("a") is True
    assert registry.unregister("a") is False
    registry.clear()
    assert len(registry) == 0


def test_merged_layers_without_mutating():
    base = ToolRegistry([_tool("a", description="base"), _tool("b")])
    merged = base.merged([_tool("a", description="override"), _tool("c")])
    assert merged.list_tools() == ["a", "b", "c"]
    assert merged.get("a").description == "override"
    assert base.get("a").description == "base"
    assert "c" not in base


@pytest.mark.asyncio
async def test_run_tool_sync_and_async():
    async def lookup(args):
        return f"found {args['q']}"

    registry = ToolRegistry([
        _tool("add", lambda args: args["x"] + args["y"]),
        _tool("lookup", lookup),
    ])
    assert await registry.run_tool(ToolCall(id="1", name="add", arguments={"x": 2, "y": 3})) == "5"
    assert await registry.run_tool(ToolCall(id="2", name="lookup", arguments={"q": "cats"})) == "found cats"


@pytest.mark.asyncio
async def test_run_tool_json_encodes_results():
    registry = ToolRegistry([_tool("info", lambda args: {"ok": True, "items": [1, 2]})])
    out = await registry.run_tool(ToolCall(id="1", name="info"))
    assert json.loads(out) == {"ok": True, "items": [1, 2]}


@pytest.mark.asyncio
async def test_run_tool_unknown_or_declared_only():
    registry = ToolRegistry([_tool("declared")])
    with pytest.raises(ToolNotFoundError, match="Tool not found: nope"):
        await registry.run_tool(ToolCall(id="1", name="nope"))
    with pytest.raises(ToolNotFoundError):
        await registry.run_tool(ToolCall(id="2", name="declared"))


@pytest.mark.asyncio
async def test_run_tool_exceptions_propagate():
    def boom(args):
        raise RuntimeError("tool exploded")

    registry = ToolRegistry([_tool("boom", boom)])
    with pytest.raises(RuntimeError, match="tool exploded"):
        await registry.run_tool(ToolCall(id="1", name="boom"))


def test_definitions_export_openai_format():
    registry = ToolRegistry([ToolDefinition(name="calc", description="math", parameters={"type": "object"})])
    assert registry.definitions()[0].to_openai_format() == {
        "type": "function",
        "function": {"name": "calc", "description": "math", "parameters": {"type": "object"}},
    }
