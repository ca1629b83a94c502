"""Reranker contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class RerankResult:
    """Position of a document in the input list and its relevance score."""
    index: int
    score: float


class Reranker(ABC):
    """Re-scores candidate documents against a query."""

    @abstractmethod
    async def rerank(self, query: str, documents: List[str], top_n: Optional[int] = None) -> List[RerankResult]:
        """Return results sorted by score descending, truncated to ``top_n``."""
        pass
