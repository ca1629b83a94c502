"""Data models for powermem_core."""

from .memory import HistoryEntry, MemoryRecord, OutputData, PROMOTED_COLUMNS, RESERVED_PAYLOAD_KEYS

__all__ = [
    "HistoryEntry",
    "MemoryRecord",
    "OutputData",
    "PROMOTED_COLUMNS",
    "RESERVED_PAYLOAD_KEYS",
]
