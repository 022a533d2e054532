"""
Plugins: lifecycle hooks (init, before/after chat, error, destroy) that
extend the engine without touching it.
"""
from switchboard.plugins.manager import Plugin, PluginManager
from switchboard.plugins.system_prompt import BUILT_IN_PERSONAS, Persona, system_prompt_plugin
from switchboard.plugins.function_calling import define_tool, function_calling_plugin

__all__ = [
    "Plugin",
    "PluginManager",
    "BUILT_IN_PERSONAS",
    "Persona",
    "system_prompt_plugin",
    "define_tool",
    "function_calling_plugin",
]
