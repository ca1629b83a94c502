"""Embedding providers."""

from typing import Optional

from ...interfaces.embedder import Embedder
from ...utils.config import EmbedderConfig
from ...utils.errors import ConfigurationError


def create_embedder(config: Optional[EmbedderConfig] = None) -> Embedder:
    """Create an embedder for the configured provider."""
    config = config or EmbedderConfig()
    provider = (config.provider or "openai").strip().lower()
    if provider == "openai":
        from .openai_embedder import OpenAIEmbedder
        return OpenAIEmbedder(config)
    if provider in ("sentence_transformers", "sentence-transformers", "huggingface", "local"):
        from .sentence_transformer import SentenceTransformerEmbedder
        return SentenceTransformerEmbedder(config)
    raise ConfigurationError(f"Unsupported embedder provider '{config.provider}'", component="create_embedder")


__all__ = ["create_embedder"]
