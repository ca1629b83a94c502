"""Rerankers."""

from typing import Optional

from ...interfaces.reranker import Reranker
from ...utils.config import RerankConfig
from ...utils.errors import ConfigurationError


def create_reranker(config: Optional[RerankConfig] = None) -> Optional[Reranker]:
    """Create the configured reranker, or None when reranking is disabled."""
    if config is None or not config.enabled:
        return None
    provider = (config.provider or "cross_encoder").strip().lower()
    if provider in ("cross_encoder", "cross-encoder", "sentence_transformers"):
        from .cross_encoder import CrossEncoderReranker
        return CrossEncoderReranker(config)
    raise ConfigurationError(f"Unsupported reranker provider '{config.provider}'", component="create_reranker")


__all__ = ["create_reranker"]
