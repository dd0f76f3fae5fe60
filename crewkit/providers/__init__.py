"""Model service providers and the provider factory."""

from __future__ import annotations

import os
from typing import Dict

from .base import ChatProvider
from .gemini import GeminiProvider
from .openai_compat import OpenAICompatibleProvider
from .types import (
    FunctionCall,
    FunctionResponse,
    GenerationConfig,
    LLMResponse,
    Message,
    MessagePart,
    ResponseFormat,
    StreamDelta,
    ToolSchema,
)

PROVIDER_DEFAULTS: Dict[str, Dict[str, str]] = {
    "openai": {"api_base": "", "env_key": "OPENAI_API_KEY"},
    "gemini": {"api_base": "", "env_key": "GEMINI_API_KEY"},
    "deepseek": {"api_base": "https://api.deepseek.com", "env_key": "DEEPSEEK_API_KEY"},
    "kimi": {"api_base": "https://api.moonshot.cn/v1", "env_key": "KIMI_API_KEY"},
    "openrouter": {"api_base": "https://openrouter.ai/api/v1", "env_key": "OPENROUTER_API_KEY"},
}


def create_provider(provider: str, model: str, api_key: str = "", api_base: str = "") -> ChatProvider:
    """Build a provider by name.

    Any name other than ``gemini`` is treated as an OpenAI-compatible endpoint.

    Raises:
        ValueError: If no API key can be resolved.
    """
    provider_name = (provider or "openai").lower()
    resolved_key = resolve_api_key(provider_name, api_key)

    if provider_name == "gemini":
        return GeminiProvider(api_key=resolved_key, model=model)

    defaults = PROVIDER_DEFAULTS.get(provider_name, {})
    return OpenAICompatibleProvider(
        api_key=resolved_key,
        model=model,
        api_base=api_base or defaults.get("api_base", ""),
    )


def resolve_api_key(provider: str, api_key: str = "") -> str:
    """Resolve a key from the provider env var, a ``${VAR}`` reference, or a literal."""
    env_key = PROVIDER_DEFAULTS.get(provider, {}).get("env_key", "")
    if env_key and os.environ.get(env_key):
        return os.environ[env_key]

    if api_key.startswith("${") and api_key.endswith("}"):
        resolved = os.environ.get(api_key[2:-1], "")
        if resolved:
            return resolved
    elif api_key:
        return api_key

    hint = env_key or "an API key"
    raise ValueError(f"{hint} not set. Export it or add api_key to crewkit.local.yaml")


__all__ = [
    "ChatProvider",
    "FunctionCall",
    "FunctionResponse",
    "GeminiProvider",
    "GenerationConfig",
    "LLMResponse",
    "Message",
    "MessagePart",
    "OpenAICompatibleProvider",
    "PROVIDER_DEFAULTS",
    "ResponseFormat",
    "StreamDelta",
    "ToolSchema",
    "create_provider",
    "resolve_api_key",
]
