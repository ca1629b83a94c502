"""Database schema definitions for the networked memory store."""

from .base import BaseSchema, ColumnDefinition, IndexDefinition
from .memory import HistorySchema, MemoriesSchema

__all__ = [
    "BaseSchema",
    "ColumnDefinition",
    "IndexDefinition",
    "HistorySchema",
    "MemoriesSchema",
]
