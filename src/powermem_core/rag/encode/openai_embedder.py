"""OpenAI-compatible embeddings endpoint."""

import os
from typing import List, Optional

from loguru import logger
from openai import AsyncOpenAI

from ...interfaces.embedder import Embedder
from ...utils.config import EmbedderConfig
from ...utils.errors import ConfigurationError


class OpenAIEmbedder(Embedder):
    """Embedder using ``AsyncOpenAI.embeddings``."""

    def __init__(self, config: Optional[EmbedderConfig] = None, client: Optional[AsyncOpenAI] = None):
        self.config = config or EmbedderConfig()
        if client is None:
            api_key = self.config.api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ConfigurationError("OpenAI embedder requires an API key", component="OpenAIEmbedder")
            client = AsyncOpenAI(api_key=api_key, base_url=self.config.base_url, timeout=self.config.timeout)
        self.client = client
        logger.info(f"OpenAIEmbedder: Using model {self.config.model}")

    @property
    def dimension(self) -> Optional[int]:
        return self.config.embedding_dims

    def _request_kwargs(self):
        kwargs = {"model": self.config.model}
        if self.config.embedding_dims:
            kwargs["dimensions"] = self.config.embedding_dims
        return kwargs

    async def embed(self, text: str, action: Optional[str] = None) -> List[float]:
        text = (text or "").replace("\n", " ")
        response = await self.client.embeddings.create(input=[text], **self._request_kwargs())
        return list(response.data[0].embedding)

    async def embed_batch(self, texts: List[str], action: Optional[str] = None) -> List[List[float]]:
        if not texts:
            return []
        cleaned = [(text or "").replace("\n", " ") for text in texts]
        response = await self.client.embeddings.create(input=cleaned, **self._request_kwargs())
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]
