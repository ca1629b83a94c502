"""Lifecycle hooks run by the orchestrator on add, get and search.

Hooks never touch storage. They return a :class:`HookResult` describing the
field patches and deletions to apply, and the orchestrator applies them after
the hook returns.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from ..models.memory import MemoryRecord
from ..utils.config import IntelligentMemoryConfig
from ..utils.text import to_iso, utc_now
from .ebbinghaus import MEMORY_LONG_TERM, MEMORY_SHORT_TERM, MEMORY_WORKING, EbbinghausAlgorithm
from .importance import DEFAULT_IMPORTANCE, ImportanceEvaluator

REPROCESS_EVERY = 5

_PROMOTIONS = {MEMORY_WORKING: MEMORY_SHORT_TERM, MEMORY_SHORT_TERM: MEMORY_LONG_TERM}


@dataclass
class HookResult:
    """Deferred side effects requested by a hook."""
    updates: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.updates and not self.deletes

    def merge(self, other: "HookResult") -> None:
        self.updates.extend(other.updates)
        self.deletes.extend(other.deletes)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class IntelligentMemoryPlugin(ABC):
    """Contract for lifecycle plugins."""

    @property
    @abstractmethod
    def enabled(self) -> bool:
        pass

    @abstractmethod
    def on_add(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Extra attributes to persist with a new memory."""
        pass

    @abstractmethod
    def on_get(self, record: MemoryRecord, now: Optional[datetime] = None) -> HookResult:
        pass

    @abstractmethod
    def on_search(self, records: List[MemoryRecord], now: Optional[datetime] = None) -> HookResult:
        pass


class EbbinghausIntelligencePlugin(IntelligentMemoryPlugin):
    """Forgetting-curve lifecycle: promote, forget, archive and reprocess on access."""

    def __init__(self, config: Optional[IntelligentMemoryConfig] = None):
        self.config = config or IntelligentMemoryConfig()
        self.algorithm = EbbinghausAlgorithm(self.config)
        self.importance = ImportanceEvaluator()

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled)

    def on_add(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.enabled:
            return {}
        score = self.importance.evaluate(content, metadata)
        memory_type = self.algorithm.classify(score)
        block = self.algorithm.process_memory_metadata(score, memory_type)
        return {
            "importance_score": score,
            "memory_type": memory_type,
            "access_count": 0,
            "intelligence": block["intelligence"],
            "memory_management": block["memory_management"],
            "processing_applied": True,
        }

    def _evaluate(self, record: MemoryRecord, now: datetime) -> Tuple[Optional[Dict[str, Any]], bool]:
        """Return (field patch, forget) for one accessed record."""
        attributes = record.attributes or {}
        previous_count = _as_int(attributes.get("access_count"), 0)
        access_count = previous_count + 1
        importance = _as_float(attributes.get("importance_score"), DEFAULT_IMPORTANCE)
        memory_type = attributes.get("memory_type") or None

        if self.algorithm.should_forget(record.created_at, previous_count, now):
            return None, True

        updates: Dict[str, Any] = {"access_count": access_count, "updated_at": to_iso(now)}

        if self.algorithm.should_promote(record.created_at, previous_count, importance, now):
            promoted = _PROMOTIONS.get(memory_type)
            if promoted:
                updates["memory_type"] = promoted

        if self.algorithm.should_archive(record.created_at, importance, now):
            metadata = dict(record.metadata or {})
            metadata["archived"] = True
            updates["metadata"] = metadata

        next_type = updates.get("memory_type", memory_type)
        if (next_type and memory_type and next_type != memory_type) or access_count % REPROCESS_EVERY == 0:
            block = self.algorithm.process_memory_metadata(importance, next_type, now)
            updates["intelligence"] = block["intelligence"]
            updates["memory_management"] = block["memory_management"]
            updates["last_reprocessed_at"] = to_iso(now)
            updates["processing_applied"] = True

        return updates, False

    def on_get(self, record: MemoryRecord, now: Optional[datetime] = None) -> HookResult:
        result = HookResult()
        if not self.enabled or record is None or not record.id:
            return result
        updates, forget = self._evaluate(record, now or utc_now())
        if forget:
            logger.debug(f"EbbinghausIntelligencePlugin: Memory {record.id} decayed, forgetting it")
            result.deletes.append(record.id)
        elif updates:
            result.updates.append((record.id, updates))
        return result

    def on_search(self, records: List[MemoryRecord], now: Optional[datetime] = None) -> HookResult:
        result = HookResult()
        if not self.enabled or not records:
            return result
        now = now or utc_now()
        for record in records:
            if record is None or not record.id:
                continue
            updates, forget = self._evaluate(record, now)
            if forget:
                logger.debug(f"EbbinghausIntelligencePlugin: Memory {record.id} decayed, forgetting it")
                result.deletes.append(record.id)
                continue
            if updates:
                result.updates.append((record.id, self._enhance_for_search(record, updates, now)))
        return result

    @staticmethod
    def _enhance_for_search(record: MemoryRecord, updates: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        enhanced = dict(updates)
        metadata = dict(updates.get("metadata") or record.metadata or {})
        metadata["last_searched_at"] = to_iso(now)
        metadata["search_count"] = _as_int(metadata.get("search_count"), 0) + 1
        enhanced["metadata"] = metadata

        attributes = record.attributes or {}
        if "search_relevance_score" not in attributes:
            access = _as_int(attributes.get("access_count"), 0)
            importance = _as_float(attributes.get("importance_score"), DEFAULT_IMPORTANCE)
            enhanced["search_relevance_score"] = min(1.0, access * 0.1 + importance * 0.5)
        return enhanced
