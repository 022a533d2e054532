"""
Turn timer plugin.

Logs how long each chat turn took end to end (plugins, middleware, provider
and tool calls) along with the finish reason.

Loaded automatically from the directory named by config.yaml:
    plugins:
      path: ./plugins

Any *.py file there works the same way: define one or more of on_init,
on_before_chat, on_after_chat, on_error, on_destroy at module level.
"""

import logging
import time

logger = logging.getLogger(__name__)

PLUGIN_NAME = "turn_timer"
PLUGIN_VERSION = "1.0.0"


def on_before_chat(context):
    context.metadata["turn_started"] = time.monotonic()
    return context


def on_after_chat(response, context):
    started = context.metadata.get("turn_started")
    if started is not None:
        logger.info(
            "turn %s finished in %.0fms (%s)",
            response.conversation_id[:16], (time.monotonic() - started) * 1000, response.finish_reason,
        )
    return response


def on_error(error, context):
    started = context.metadata.get("turn_started")
    if started is not None:
        logger.warning(
            "turn %s failed after %.0fms: %s",
            context.conversation.id[:16], (time.monotonic() - started) * 1000, error,
        )
