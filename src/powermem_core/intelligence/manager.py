"""Post-processing of search candidates with the forgetting curve."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.memory import MemoryRecord, OutputData
from ..utils.config import IntelligentMemoryConfig
from ..utils.text import to_iso, utc_now
from .ebbinghaus import EbbinghausAlgorithm


def record_metadata_view(record: MemoryRecord) -> Dict[str, Any]:
    """Caller-facing metadata: the user map plus category and scope."""
    metadata = dict(record.metadata or {})
    if record.category:
        metadata["category"] = record.category
    if record.scope:
        metadata["scope"] = record.scope
    return metadata


def attach_attributes(result: Dict[str, Any], record: MemoryRecord) -> Dict[str, Any]:
    """Expose system attributes as top-level result keys without shadowing result fields."""
    for key, value in (record.attributes or {}).items():
        if key and str(key).strip():
            result.setdefault(key, value)
    return result


def record_to_result(record: MemoryRecord, score: Optional[float] = None) -> Dict[str, Any]:
    result = {
        "id": record.id,
        "memory": record.content,
        "metadata": record_metadata_view(record),
        "user_id": record.user_id,
        "agent_id": record.agent_id,
        "run_id": record.run_id,
        "hash": record.hash,
        "created_at": to_iso(record.created_at),
        "updated_at": to_iso(record.updated_at),
    }
    if score is not None:
        result["score"] = score
    return attach_attributes(result, record)


class IntelligenceManager:
    """Applies decay to retrieval scores and shapes results for callers."""

    def __init__(self, config: Optional[IntelligentMemoryConfig] = None):
        self.config = config or IntelligentMemoryConfig()
        self.algorithm = EbbinghausAlgorithm(self.config)

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled and self.config.decay_enabled)

    def post_process(self, candidates: List[OutputData], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Decay-adjust scores by creation time and sort descending.

        Ties keep their retrieval order.
        """
        now = now or utc_now()
        results = []
        for candidate in candidates or []:
            if candidate is None or candidate.record is None:
                continue
            score = candidate.score
            if self.enabled:
                score = self.algorithm.apply_to_score(score, candidate.record.created_at, now)
            results.append(record_to_result(candidate.record, score))
        results.sort(key=lambda item: item["score"], reverse=True)
        return results
