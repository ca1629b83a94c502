"""Interfaces module for powermem_core.

Contracts for the collaborators the memory engine consumes: vector stores,
embedders, rerankers and graph stores.
"""

from .embedder import ACTION_ADD, ACTION_SEARCH, ACTION_UPDATE, Embedder
from .graph_store import GraphStore
from .reranker import Reranker, RerankResult
from .vector_store import HybridSearchCapable, StorageError, VectorStoreInterface, supports_hybrid_search

__all__ = [
    "ACTION_ADD",
    "ACTION_SEARCH",
    "ACTION_UPDATE",
    "Embedder",
    "GraphStore",
    "HybridSearchCapable",
    "Reranker",
    "RerankResult",
    "StorageError",
    "VectorStoreInterface",
    "supports_hybrid_search",
]
