"""
Plugins — lifecycle hooks around every chat turn.

A plugin is a named bundle of optional hooks, each sync or async:

    on_init(config)                        once, before the first turn
    on_before_chat(context) -> context     before the middleware pipeline
    on_after_chat(response, context) -> response
    on_error(error, context)               provider/dispatch failure
    on_destroy()                           engine teardown

before/after hooks run in registration order and thread their result into
the next plugin; returning None keeps the value unchanged.

Plugins can also be dropped into a directory as plain Python files whose
module-level functions use the hook names above:

    # plugins/shout.py
    PLUGIN_NAME = "shout"

    def on_before_chat(context):
        context.request.message = context.request.message.upper()
        return context
"""

from __future__ import annotations

import importlib.util
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from switchboard.errors import PluginError
from switchboard.models import ChatResponse, MiddlewareContext
from switchboard.utils import maybe_await

logger = logging.getLogger(__name__)

HOOK_NAMES = ("on_init", "on_before_chat", "on_after_chat", "on_error", "on_destroy")


@dataclass
class Plugin:
    name: str
    version: str = "1.0.0"
    description: str = ""
    on_init: Callable | None = None
    on_before_chat: Callable | None = None
    on_after_chat: Callable | None = None
    on_error: Callable | None = None
    on_destroy: Callable | None = None


async def _call_hook(plugin: Plugin, hook: str, *args) -> Any:
    """Call plugin.<hook>(*args) if the plugin defines it; None otherwise."""
    fn = getattr(plugin, hook)
    if fn is None:
        return None
    return await maybe_await(fn(*args))


class PluginManager:
    """Registers plugins and runs their hooks in registration order."""

    def __init__(self):
        self._plugins: dict[str, Plugin] = {}
        self._initialized = False

    def register(self, plugin: Plugin) -> "PluginManager":
        if plugin.name in self._plugins:
            raise PluginError(f"Plugin already registered: {plugin.name}")
        self._plugins[plugin.name] = plugin
        logger.debug("Registered plugin '%s' v%s", plugin.name, plugin.version)
        return self

    def unregister(self, name: str) -> bool:
        return self._plugins.pop(name, None) is not None

    def get(self, name: str) -> Plugin | None:
        return self._plugins.get(name)

    def has(self, name: str) -> bool:
        return name in self._plugins

    def names(self) -> list[str]:
        return list(self._plugins.keys())

    def __len__(self) -> int:
        return len(self._plugins)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def init(self, config):
        if self._initialized:
            return
        for plugin in self._plugins.values():
            await _call_hook(plugin, "on_init", config)
        self._initialized = True

    async def before_chat(self, context: MiddlewareContext) -> MiddlewareContext:
        for plugin in self._plugins.values():
            result = await _call_hook(plugin, "on_before_chat", context)
            if result is not None:
                context = result
        return context

    async def after_chat(self, response: ChatResponse, context: MiddlewareContext) -> ChatResponse:
        for plugin in self._plugins.values():
            result = await _call_hook(plugin, "on_after_chat", response, context)
            if result is not None:
                response = result
        return response

    async def on_error(self, error: Exception, context: MiddlewareContext):
        """
        Notify every plugin. A failing error hook is logged and skipped so
        the caller still sees the original error.
        """
        for plugin in self._plugins.values():
            try:
                await _call_hook(plugin, "on_error", error, context)
            except Exception as e:
                logger.error("Plugin '%s' on_error hook failed: %s", plugin.name, e)

    async def destroy(self):
        for plugin in self._plugins.values():
            await _call_hook(plugin, "on_destroy")
        self._plugins.clear()
        self._initialized = False

    # ------------------------------------------------------------------
    # File-based plugins
    # ------------------------------------------------------------------

    def _load_module(self, path: Path) -> Plugin | None:
        """Load one Python file as a plugin. Failures are logged, never raised."""
        try:
            spec = importlib.util.spec_from_file_location(f"switchboard_plugin_{path.stem}", path)
            if spec is None or spec.loader is None:
                logger.error("Could not load plugin from %s", path)
                return None
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except Exception as e:
            logger.error("Failed to load plugin from %s: %s", path, e)
            return None

        hooks = {name: getattr(module, name, None) for name in HOOK_NAMES}
        if not any(hooks.values()):
            logger.warning("Plugin file %s defines no hooks, skipping", path.name)
            return None

        plugin = Plugin(
            name=getattr(module, "PLUGIN_NAME", path.stem),
            version=getattr(module, "PLUGIN_VERSION", "1.0.0"),
            description=getattr(module, "PLUGIN_DESCRIPTION", "") or (module.__doc__ or "").strip(),
            **hooks,
        )
        logger.info(
            "Loaded plugin '%s': %s", plugin.name, ", ".join(n for n, fn in hooks.items() if fn),
        )
        return plugin

    def load_directory(self, plugins_dir: str | Path) -> list[str]:
        """Register every *.py file in a directory (skipping _-prefixed). Returns loaded names."""
        plugins_path = Path(plugins_dir)
        if not plugins_path.exists():
            logger.debug("Plugins directory %s does not exist, skipping", plugins_dir)
            return []

        loaded = []
        for py_file in sorted(plugins_path.glob("*.py")):
            if py_file.name.startswith("_"):
                continue
            plugin = self._load_module(py_file)
            if plugin is None:
                continue
            try:
                self.register(plugin)
            except PluginError as e:
                logger.error("%s (from %s)", e, py_file.name)
                continue
            loaded.append(plugin.name)
        return loaded
