"""Storage layer: vector/graph stores, filters, fusion and adapters."""

from .adapter import StorageAdapter
from .factory import GraphStoreFactory, VectorStoreFactory
from .sub_adapter import SubStorageAdapter

__all__ = [
    "StorageAdapter",
    "SubStorageAdapter",
    "VectorStoreFactory",
    "GraphStoreFactory",
]
