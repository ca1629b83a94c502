"""Memory orchestration for powermem_core.

This module provides the public :class:`Memory` API that drives fact
extraction, candidate retrieval, merge decisions and lifecycle hooks.
"""

from .memory import EVENT_ADD, EVENT_DELETE, EVENT_NONE, EVENT_UPDATE, Memory

__all__ = [
    "Memory",
    "EVENT_ADD",
    "EVENT_UPDATE",
    "EVENT_DELETE",
    "EVENT_NONE",
]
