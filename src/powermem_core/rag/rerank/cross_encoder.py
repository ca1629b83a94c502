"""Cross-encoder reranker."""

import asyncio
from typing import Any, List, Optional

from loguru import logger
from sentence_transformers import CrossEncoder

from ...interfaces.reranker import Reranker, RerankResult
from ...utils.config import RerankConfig


class CrossEncoderReranker(Reranker):
    """Scores (query, document) pairs with a sentence-transformers CrossEncoder."""

    def __init__(self, config: Optional[RerankConfig] = None, existing_model: Any = None):
        self.config = config or RerankConfig(enabled=True)
        if existing_model is not None:
            self.model = existing_model
        else:
            logger.info(f"CrossEncoderReranker: Loading model {self.config.model}")
            self.model = CrossEncoder(self.config.model)

    async def rerank(self, query: str, documents: List[str], top_n: Optional[int] = None) -> List[RerankResult]:
        if not query or not documents:
            return []
        pairs = [(query, document or "") for document in documents]
        scores = await asyncio.to_thread(self.model.predict, pairs)
        ranked = sorted(
            (RerankResult(index=i, score=float(score)) for i, score in enumerate(scores)),
            key=lambda item: item.score,
            reverse=True,
        )
        limit = top_n or self.config.top_n
        return ranked[:limit] if limit and limit > 0 else ranked
