"""Score fusion strategies for hybrid (vector + lexical) search."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..models.memory import OutputData, MemoryRecord

FUSION_INFO_KEY = "_fusion_info"
DEFAULT_RRF_K = 60
DEFAULT_WEIGHT = 0.5


def _positive_or(value: Optional[float], default: float) -> float:
    return value if value is not None and value > 0 else default


def build_fusion_info(
    method: str,
    vector_weight: float,
    fts_weight: float,
    fusion_score: float,
    rrf_k: Optional[int] = None,
    vector_rank: Optional[int] = None,
    fts_rank: Optional[int] = None,
    vector_score: Optional[float] = None,
    fts_score: Optional[float] = None,
    vector_score_norm: Optional[float] = None,
    fts_score_norm: Optional[float] = None,
) -> Dict[str, Any]:
    """Debug annotation describing how a fused score was produced."""
    info: Dict[str, Any] = {
        "fusion_method": method,
        "vector_weight": vector_weight,
        "fts_weight": fts_weight,
    }
    optional = {
        "rrf_k": rrf_k,
        "vector_rank": vector_rank,
        "fts_rank": fts_rank,
        "vector_score": vector_score,
        "fts_score": fts_score,
        "vector_score_norm": vector_score_norm,
        "fts_score_norm": fts_score_norm,
    }
    info.update({k: v for k, v in optional.items() if v is not None})
    info["fusion_score"] = fusion_score
    return info


def attach_fusion_info(record: MemoryRecord, info: Dict[str, Any]) -> None:
    if record is None or not info:
        return
    if record.attributes is None:
        record.attributes = {}
    record.attributes[FUSION_INFO_KEY] = info


@dataclass
class _Entry:
    data: OutputData
    score: float = 0.0
    vector_rank: Optional[int] = None
    fts_rank: Optional[int] = None
    vector_score: Optional[float] = None
    fts_score: Optional[float] = None


class FusionStrategy(ABC):
    """Combine two independently ranked candidate lists into one."""

    name = "base"

    def __init__(self, vector_weight: float = DEFAULT_WEIGHT, fts_weight: float = DEFAULT_WEIGHT):
        self.vector_weight = _positive_or(vector_weight, DEFAULT_WEIGHT)
        self.fts_weight = _positive_or(fts_weight, DEFAULT_WEIGHT)

    @abstractmethod
    def fuse(
        self,
        vector_results: Optional[List[OutputData]],
        fts_results: Optional[List[OutputData]],
        limit: int,
    ) -> List[OutputData]:
        """Return fused candidates sorted by score descending, truncated to ``limit``."""
        pass

    @staticmethod
    def _valid(results: Optional[List[OutputData]]) -> List[OutputData]:
        return [r for r in (results or []) if r is not None and r.record is not None and r.record.id is not None]

    @staticmethod
    def _finish(fused: List[OutputData], limit: int) -> List[OutputData]:
        # sorted() is stable, so equal scores keep first-seen order
        ordered = sorted(fused, key=lambda d: d.score, reverse=True)
        return ordered[:limit] if limit and limit > 0 else ordered


class ReciprocalRankFusion(FusionStrategy):
    """score = sum over sources of weight / (k + rank)."""

    name = "rrf"

    def __init__(self, k: int = DEFAULT_RRF_K, vector_weight: float = DEFAULT_WEIGHT,
                 fts_weight: float = DEFAULT_WEIGHT):
        super().__init__(vector_weight, fts_weight)
        self.k = k if k and k > 0 else DEFAULT_RRF_K

    def fuse(self, vector_results, fts_results, limit):
        entries: Dict[str, _Entry] = {}

        for rank, item in enumerate(self._valid(vector_results), start=1):
            entry = entries.setdefault(item.record.id, _Entry(data=item))
            entry.score += self.vector_weight / (self.k + rank)
            if entry.vector_rank is None:
                entry.vector_rank = rank
                entry.vector_score = item.score

        for rank, item in enumerate(self._valid(fts_results), start=1):
            entry = entries.setdefault(item.record.id, _Entry(data=item))
            entry.score += self.fts_weight / (self.k + rank)
            if entry.fts_rank is None:
                entry.fts_rank = rank
                entry.fts_score = item.score

        fused = []
        for entry in entries.values():
            record = entry.data.record
            attach_fusion_info(record, build_fusion_info(
                self.name, self.vector_weight, self.fts_weight, entry.score,
                rrf_k=self.k,
                vector_rank=entry.vector_rank,
                fts_rank=entry.fts_rank,
                vector_score=entry.vector_score,
                fts_score=entry.fts_score,
            ))
            fused.append(OutputData(record=record, score=entry.score))
        return self._finish(fused, limit)


class WeightedFusion(FusionStrategy):
    """Min-max normalize each source, then combine with weights."""

    name = "weighted"

    def fuse(self, vector_results, fts_results, limit):
        entries: Dict[str, _Entry] = {}
        for item in self._valid(vector_results):
            entries.setdefault(item.record.id, _Entry(data=item)).vector_score = item.score
        for item in self._valid(fts_results):
            entries.setdefault(item.record.id, _Entry(data=item)).fts_score = item.score

        vector_scores = [e.vector_score or 0.0 for e in entries.values()]
        fts_scores = [e.fts_score or 0.0 for e in entries.values()]
        v_min, v_max = (min(vector_scores), max(vector_scores)) if vector_scores else (0.0, 0.0)
        t_min, t_max = (min(fts_scores), max(fts_scores)) if fts_scores else (0.0, 0.0)
        v_range = v_max - v_min
        t_range = t_max - t_min

        fused = []
        for entry in entries.values():
            v_raw = entry.vector_score or 0.0
            t_raw = entry.fts_score or 0.0
            v_norm = (v_raw - v_min) / v_range if v_range > 0 else 1.0
            t_norm = (t_raw - t_min) / t_range if t_range > 0 else 1.0
            score = self.vector_weight * v_norm + self.fts_weight * t_norm
            record = entry.data.record
            attach_fusion_info(record, build_fusion_info(
                self.name, self.vector_weight, self.fts_weight, score,
                vector_score=v_raw,
                fts_score=t_raw,
                vector_score_norm=v_norm,
                fts_score_norm=t_norm,
            ))
            fused.append(OutputData(record=record, score=score))
        return self._finish(fused, limit)


def create_fusion_strategy(
    method: Optional[str] = "rrf",
    rrf_k: int = DEFAULT_RRF_K,
    vector_weight: float = DEFAULT_WEIGHT,
    fts_weight: float = DEFAULT_WEIGHT,
) -> FusionStrategy:
    """Create a fusion strategy by name; anything but 'weighted' means RRF."""
    if (method or "rrf").strip().lower() == "weighted":
        return WeightedFusion(vector_weight=vector_weight, fts_weight=fts_weight)
    return ReciprocalRankFusion(k=rrf_k, vector_weight=vector_weight, fts_weight=fts_weight)
