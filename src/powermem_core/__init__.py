"""Persistent memory layer for AI agents."""

from .memory import Memory
from .utils.config import MemoryConfig
from .utils.errors import ConfigurationError, PowermemError, ValidationError
from .interfaces.vector_store import StorageError

__all__ = [
    "Memory",
    "MemoryConfig",
    "ConfigurationError",
    "PowermemError",
    "StorageError",
    "ValidationError",
]
