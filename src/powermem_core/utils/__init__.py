"""Utility functions for powermem_core."""

from .config import (
    EmbedderConfig,
    GraphStoreConfig,
    IntelligentMemoryConfig,
    MemoryConfig,
    RerankConfig,
    SubStoreConfig,
    VectorStoreConfig,
)
from .errors import ConfigurationError, PowermemError, ValidationError
from .ids import SnowflakeIdGenerator
from .text import md5_hex, normalize_input, parse_json_object_loose, parse_messages_for_facts
from .vector_math import BM25Okapi, cosine_similarity, tokenize

__all__ = [
    # Configuration
    "EmbedderConfig",
    "GraphStoreConfig",
    "IntelligentMemoryConfig",
    "MemoryConfig",
    "RerankConfig",
    "SubStoreConfig",
    "VectorStoreConfig",
    # Errors
    "ConfigurationError",
    "PowermemError",
    "ValidationError",
    # Identity and text
    "SnowflakeIdGenerator",
    "md5_hex",
    "normalize_input",
    "parse_json_object_loose",
    "parse_messages_for_facts",
    # Scoring
    "BM25Okapi",
    "cosine_similarity",
    "tokenize",
]
