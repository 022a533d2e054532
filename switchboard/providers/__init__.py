"""
Model providers. The engine talks to exactly one at a time through the
BaseProvider interface.
"""
from switchboard.providers.base import BaseProvider
from switchboard.providers.mock import MockProvider
from switchboard.providers.openai_compat import OpenAICompatibleProvider
from switchboard.providers.retry_wrapper import RetryableProvider

PROVIDER_TYPES = ("mock", "openai")


def create_provider(provider_cfg: dict | None) -> BaseProvider:
    """
    Build a provider from the `provider:` section of config.yaml.

        provider:
          type: openai
          base_url: https://api.openai.com/v1
          api_key: ${OPENAI_API_KEY}
          retry: {max_retries: 2}
    """
    cfg = provider_cfg or {}
    ptype = cfg.get("type", "mock")

    if ptype == "mock":
        provider = MockProvider(
            default_response=cfg.get("default_response", "This is a mock response."),
            responses=cfg.get("responses"),
            latency_ms=int(cfg.get("latency_ms", 0)),
            stream_delay_ms=int(cfg.get("stream_delay_ms", 0)),
        )
    elif ptype == "openai":
        provider = OpenAICompatibleProvider(
            api_key=cfg.get("api_key", ""),
            base_url=cfg.get("base_url", "https://api.openai.com/v1"),
            model=cfg.get("model", "gpt-4o"),
            timeout=float(cfg.get("timeout", 30)),
        )
    else:
        raise ValueError(f"Unknown provider type '{ptype}' (expected one of {PROVIDER_TYPES})")

    retry_cfg = cfg.get("retry")
    if retry_cfg and int(retry_cfg.get("max_retries", 0)) > 0:
        provider = RetryableProvider(
            provider,
            max_retries=int(retry_cfg["max_retries"]),
            backoff_base=float(retry_cfg.get("backoff_base", 1.5)),
            backoff_max=float(retry_cfg.get("backoff_max", 10.0)),
        )
    return provider


__all__ = [
    "BaseProvider",
    "MockProvider",
    "OpenAICompatibleProvider",
    "RetryableProvider",
    "create_provider",
    "PROVIDER_TYPES",
]
