"""Graph store implementations."""

from .memory_store import InMemoryGraphStore, Triple, extract_triples

__all__ = ["InMemoryGraphStore", "Triple", "extract_triples"]
