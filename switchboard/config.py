"""
Config loader for switchboard.
Reads config.yaml once at startup. All other modules import from here.

String values may reference environment variables as ${ENV_VAR}; they are
resolved at load time (after .env has been loaded). The typed ChatConfig
view is what the engine actually consumes.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

_config: dict | None = None

MEMORY_TYPES = ("in-memory", "sliding-window", "summary")
SUMMARIZERS = ("truncate", "provider")
DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with actual environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _walk_and_resolve(obj):
    """Recursively resolve env vars in all string values."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def load_config(path: Path | str | None = None) -> dict:
    """
    Load config from YAML and cache it.
    An explicit path always reloads; the default path is read only once.
    """
    global _config
    if _config is not None and path is None:
        return _config

    config_path = Path(path) if path else _CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    _config = _walk_and_resolve(raw)
    return _config


def get_config() -> dict:
    """Return cached base config, loading if necessary."""
    if _config is None:
        return load_config()
    return _config


# ---------------------------------------------------------------------------
# Typed views
# ---------------------------------------------------------------------------

@dataclass
class MemoryConfig:
    type: str = "sliding-window"
    window_size: int = 20
    max_tokens: int = 8192
    recent_count: int = 10
    summary_prompt: str | None = None
    summarizer: str = "truncate"

    def __post_init__(self):
        if self.type not in MEMORY_TYPES:
            raise ValueError(f"Unknown memory type '{self.type}' (expected one of {MEMORY_TYPES})")
        if self.summarizer not in SUMMARIZERS:
            raise ValueError(f"Unknown summarizer '{self.summarizer}' (expected one of {SUMMARIZERS})")
        for name in ("window_size", "max_tokens", "recent_count"):
            if getattr(self, name) <= 0:
                raise ValueError(f"memory.{name} must be positive")


@dataclass
class StreamConfig:
    enabled: bool = True
    chunk_size: int = 1
    flush_interval_ms: int = 50

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("streaming.chunk_size must be positive")
        if self.flush_interval_ms < 0:
            raise ValueError("streaming.flush_interval_ms must be non-negative")


@dataclass
class RateLimitConfig:
    max_requests: int = 60
    window_ms: int = 60000

    def __post_init__(self):
        if self.max_requests <= 0 or self.window_ms <= 0:
            raise ValueError("rate_limit.max_requests and rate_limit.window_ms must be positive")


@dataclass
class ChatConfig:
    """Immutable-by-convention chat configuration shared by every request."""
    model: str = "gpt-4o"
    temperature: float = 0.7
    max_tokens: int = 4096
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    streaming: StreamConfig = field(default_factory=StreamConfig)
    rate_limit: RateLimitConfig | None = None
    serialize_turns: bool = False
    verbose: bool = False

    def __post_init__(self):
        if not 0 <= self.temperature <= 2:
            raise ValueError(f"temperature must be within 0..2, got {self.temperature}")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive")

    @classmethod
    def from_dict(cls, cfg: dict) -> "ChatConfig":
        """
        Build from the full config dict (the shape of config.yaml).
        Missing sections fall back to defaults.
        """
        chat_cfg = cfg.get("chat", {}) or {}
        rl_cfg = cfg.get("rate_limit", {}) or {}

        rate_limit = None
        if rl_cfg.get("enabled", False):
            rate_limit = RateLimitConfig(
                max_requests=int(rl_cfg.get("max_requests", 60)),
                window_ms=int(rl_cfg.get("window_ms", 60000)),
            )

        mem_cfg = cfg.get("memory", {}) or {}
        stream_cfg = cfg.get("streaming", {}) or {}

        return cls(
            model=chat_cfg.get("model", "gpt-4o"),
            temperature=float(chat_cfg.get("temperature", 0.7)),
            max_tokens=int(chat_cfg.get("max_tokens", 4096)),
            system_prompt=chat_cfg.get("system_prompt", DEFAULT_SYSTEM_PROMPT),
            memory=MemoryConfig(
                type=mem_cfg.get("type", "sliding-window"),
                window_size=int(mem_cfg.get("window_size", 20)),
                max_tokens=int(mem_cfg.get("max_tokens", 8192)),
                recent_count=int(mem_cfg.get("recent_count", 10)),
                summary_prompt=mem_cfg.get("summary_prompt"),
                summarizer=mem_cfg.get("summarizer", "truncate"),
            ),
            streaming=StreamConfig(
                enabled=bool(stream_cfg.get("enabled", True)),
                chunk_size=int(stream_cfg.get("chunk_size", 1)),
                flush_interval_ms=int(stream_cfg.get("flush_interval_ms", 50)),
            ),
            rate_limit=rate_limit,
            serialize_turns=bool(chat_cfg.get("serialize_turns", False)),
            verbose=bool(chat_cfg.get("verbose", False)),
        )
