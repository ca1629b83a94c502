"""LLM integration module for powermem_core.

Provides a unified interface for model providers used in fact extraction and
memory merge decisions.
"""

from .base import (
    JSON_OBJECT_FORMAT,
    LLMProvider,
    LLMProviderError,
    LLMRequest,
    LLMResponse,
    LLMUsage,
    ToolCall,
)
from .config import LLMConfig
from .providers import OpenAIProvider


def create_llm_provider(config: LLMConfig) -> LLMProvider:
    """Create an LLM provider from configuration."""
    provider = (config.provider or "openai").strip().lower()
    if provider in ("openai", "openai_compatible", "qwen", "deepseek"):
        return OpenAIProvider(config.to_dict())
    raise LLMProviderError(f"Unsupported LLM provider: {config.provider}")


__all__ = [
    "JSON_OBJECT_FORMAT",
    "LLMConfig",
    "LLMProvider",
    "LLMProviderError",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "OpenAIProvider",
    "ToolCall",
    "create_llm_provider",
]
