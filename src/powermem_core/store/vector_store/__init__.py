"""Vector store implementations."""

from .base import VectorStore
from .pgvector_store import PGVectorStore
from .sqlite_store import SQLiteVectorStore

__all__ = ["VectorStore", "SQLiteVectorStore", "PGVectorStore"]
