"""Core memory data types."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..utils.text import parse_iso, to_iso

# Top-level payload keys owned by the record itself; anything else is an attribute.
RESERVED_PAYLOAD_KEYS = frozenset({
    "data",
    "fulltext_content",
    "user_id",
    "agent_id",
    "run_id",
    "hash",
    "category",
    "scope",
    "created_at",
    "updated_at",
    "last_accessed_at",
    "metadata",
})

# Columns promoted out of the payload by the networked backend.
PROMOTED_COLUMNS = ("user_id", "agent_id", "run_id", "hash", "category", "created_at", "updated_at")


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


@dataclass
class MemoryRecord:
    """A single stored memory.

    ``metadata`` holds caller-supplied keys; ``attributes`` holds system-derived
    fields such as intelligence bookkeeping or fusion debug info.
    """
    id: Optional[str] = None
    content: str = ""
    user_id: Optional[str] = None
    agent_id: Optional[str] = None
    run_id: Optional[str] = None
    hash: Optional[str] = None
    category: Optional[str] = None
    scope: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    attributes: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON payload shape shared by all backends."""
        payload: Dict[str, Any] = {
            "data": self.content or "",
            "fulltext_content": self.content or "",
            "user_id": self.user_id,
            "agent_id": self.agent_id,
            "run_id": self.run_id,
            "hash": self.hash,
            "category": self.category,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "last_accessed_at": to_iso(self.last_accessed_at),
            "metadata": dict(self.metadata or {}),
        }
        if self.scope is not None:
            payload["scope"] = self.scope
        for key, value in (self.attributes or {}).items():
            if not key or key in payload or key == "metadata":
                continue
            payload[key] = value
        return payload

    @classmethod
    def from_payload(cls, memory_id: Any, payload: Optional[Dict[str, Any]]) -> "MemoryRecord":
        """Rebuild a record from a stored payload."""
        record = cls(id=None if memory_id is None else str(memory_id))
        if not payload:
            return record
        record.content = payload.get("data") or ""
        record.user_id = _blank_to_none(payload.get("user_id"))
        record.agent_id = _blank_to_none(payload.get("agent_id"))
        record.run_id = _blank_to_none(payload.get("run_id"))
        record.hash = _blank_to_none(payload.get("hash"))
        record.category = _blank_to_none(payload.get("category"))
        record.scope = _blank_to_none(payload.get("scope"))
        meta = payload.get("metadata")
        record.metadata = {str(k): v for k, v in meta.items()} if isinstance(meta, dict) else {}
        record.created_at = parse_iso(payload.get("created_at"))
        record.updated_at = parse_iso(payload.get("updated_at"))
        record.last_accessed_at = parse_iso(payload.get("last_accessed_at"))
        record.attributes = {
            k: v for k, v in payload.items() if k is not None and k not in RESERVED_PAYLOAD_KEYS
        }
        return record

    def copy(self) -> "MemoryRecord":
        return copy.deepcopy(self)


@dataclass
class OutputData:
    """A search candidate: a record plus a backend-relative score."""
    record: MemoryRecord
    score: float = 0.0

    @property
    def id(self) -> Optional[str]:
        return self.record.id if self.record else None


@dataclass
class HistoryEntry:
    """One row of the append-only audit trail."""
    id: str
    memory_id: str
    old_memory: Optional[str]
    new_memory: Optional[str]
    event: str
    created_at: int
    updated_at: int
    is_deleted: bool = False
    actor_id: Optional[str] = None
    role: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "memory_id": self.memory_id,
            "old_memory": self.old_memory,
            "new_memory": self.new_memory,
            "event": self.event,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "is_deleted": self.is_deleted,
            "actor_id": self.actor_id,
            "role": self.role,
        }

