from switchboard.tools.registry import ToolRegistry

__all__ = ["ToolRegistry"]
