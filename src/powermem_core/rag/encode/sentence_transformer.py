"""Local sentence-transformers embedder."""

import asyncio
from collections import OrderedDict
from typing import Any, List, Optional

import numpy as np
from loguru import logger
from sentence_transformers import SentenceTransformer

from ...interfaces.embedder import ACTION_SEARCH, Embedder
from ...utils.config import EmbedderConfig


class SentenceTransformerEmbedder(Embedder):
    """Embedder backed by a sentence-transformers model.

    Query and passage prefixes are applied by action so asymmetric models
    (e5, bge, nomic) embed searches differently from stored documents.
    """

    def __init__(self, config: Optional[EmbedderConfig] = None, existing_model: Any = None,
                 cache_size: int = 10000):
        """Initialize the embedder.

        Args:
            config: Embedder configuration; ``model`` names the checkpoint
            existing_model: An already loaded SentenceTransformer to reuse
            cache_size: Number of embeddings kept in the LRU cache
        """
        self.config = config or EmbedderConfig(provider="sentence_transformers", model="all-MiniLM-L6-v2")
        self.model_name = self.config.model.replace("sentence-transformers/", "")

        if existing_model is not None:
            self.model = existing_model
            logger.info(f"SentenceTransformerEmbedder: Using existing model: {type(existing_model)}")
        else:
            logger.info(f"SentenceTransformerEmbedder: Loading embedding model: {self.model_name}")
            self.model = SentenceTransformer(self.model_name, trust_remote_code=False)

        self._dimension = self.config.embedding_dims
        if self._dimension is None and hasattr(self.model, "get_sentence_embedding_dimension"):
            self._dimension = self.model.get_sentence_embedding_dimension()

        self.cache_size = cache_size
        self._cache: "OrderedDict[str, List[float]]" = OrderedDict()

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def _prefixed(self, text: str, action: Optional[str]) -> str:
        prefix = self.config.query_prefix if action == ACTION_SEARCH else self.config.passage_prefix
        return f"{prefix}{text}" if prefix else text

    def _cache_get(self, key: str) -> Optional[List[float]]:
        value = self._cache.get(key)
        if value is not None:
            self._cache.move_to_end(key)
        return value

    def _cache_set(self, key: str, value: List[float]) -> None:
        self._cache[key] = value
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    async def embed(self, text: str, action: Optional[str] = None) -> List[float]:
        prefixed = self._prefixed(text or "", action)
        cached = self._cache_get(prefixed)
        if cached is not None:
            return cached
        embedding = await asyncio.to_thread(self.model.encode, prefixed, convert_to_numpy=True)
        vector = np.asarray(embedding, dtype=float).tolist()
        self._cache_set(prefixed, vector)
        return vector

    async def embed_batch(self, texts: List[str], action: Optional[str] = None) -> List[List[float]]:
        prefixed = [self._prefixed(text or "", action) for text in texts]
        results: List[Optional[List[float]]] = [self._cache_get(text) for text in prefixed]
        missing = [i for i, value in enumerate(results) if value is None]
        if missing:
            embeddings = await asyncio.to_thread(
                self.model.encode, [prefixed[i] for i in missing], convert_to_numpy=True
            )
            for index, embedding in zip(missing, embeddings):
                vector = np.asarray(embedding, dtype=float).tolist()
                self._cache_set(prefixed[index], vector)
                results[index] = vector
        return results
