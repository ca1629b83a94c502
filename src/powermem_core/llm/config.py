"""Configuration management for LLM providers."""

import os
from dataclasses import dataclass, field
from typing import Dict, Any, Optional


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""

    # Provider selection
    provider: str = "openai"

    # Model configuration
    model: str = "gpt-4o-mini"
    max_tokens: Optional[int] = 2000
    temperature: float = 0.1

    # API configuration
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    # Retry configuration
    max_retries: int = 3

    # Timeout
    timeout: float = 30.0

    # Additional provider-specific config
    provider_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Create configuration from environment variables."""
        max_tokens = os.getenv("POWERMEM_LLM_MAX_TOKENS", "2000")
        return cls(
            provider=os.getenv("POWERMEM_LLM_PROVIDER", "openai"),
            model=os.getenv("POWERMEM_LLM_MODEL", "gpt-4o-mini"),
            max_tokens=int(max_tokens) if max_tokens else None,
            temperature=float(os.getenv("POWERMEM_LLM_TEMPERATURE", "0.1")),
            api_key=os.getenv("POWERMEM_LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("POWERMEM_LLM_BASE_URL"),
            max_retries=int(os.getenv("POWERMEM_LLM_MAX_RETRIES", "3")),
            timeout=float(os.getenv("POWERMEM_LLM_TIMEOUT", "30.0")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a provider config dictionary."""
        return {
            "provider": self.provider,
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "api_key": self.api_key,
            "base_url": self.base_url,
            "max_retries": self.max_retries,
            "timeout": self.timeout,
            **self.provider_config,
        }

    def validate(self) -> bool:
        """Validate configuration."""
        if not self.provider or not self.model:
            return False
        if self.temperature < 0 or self.temperature > 2:
            return False
        if self.max_tokens is not None and self.max_tokens <= 0:
            return False
        if self.max_retries < 0 or self.timeout <= 0:
            return False
        return True
