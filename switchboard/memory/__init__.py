"""
Memory strategies: which messages are retained and how provider context is
assembled. Pick one per engine with `memory.type` in config.yaml.
"""
from switchboard.memory.base import MemoryStats, MemoryStrategy
from switchboard.memory.in_memory import InMemoryStorage
from switchboard.memory.sliding_window import SlidingWindowMemory
from switchboard.memory.summary import (
    SummaryMemory,
    default_summarizer,
    provider_summarizer,
)


def create_memory(memory_cfg, summarizer=None) -> MemoryStrategy:
    """Instantiate the strategy named by a MemoryConfig."""
    if memory_cfg.type == "in-memory":
        return InMemoryStorage()
    if memory_cfg.type == "summary":
        return SummaryMemory(recent_count=memory_cfg.recent_count, summarizer=summarizer)
    return SlidingWindowMemory(window_size=memory_cfg.window_size)


__all__ = [
    "MemoryStats",
    "MemoryStrategy",
    "InMemoryStorage",
    "SlidingWindowMemory",
    "SummaryMemory",
    "default_summarizer",
    "provider_summarizer",
    "create_memory",
]
