"""Embedding provider contract."""

from abc import ABC, abstractmethod
from typing import List, Optional

# Action hints passed to embedders; asymmetric models embed queries differently.
ACTION_ADD = "add"
ACTION_SEARCH = "search"
ACTION_UPDATE = "update"


class Embedder(ABC):
    """Turns text into fixed-length vectors."""

    @property
    @abstractmethod
    def dimension(self) -> Optional[int]:
        """Embedding dimensionality, or None if not known until first call."""
        pass

    @abstractmethod
    async def embed(self, text: str, action: Optional[str] = None) -> List[float]:
        """Embed a single text."""
        pass

    async def embed_batch(self, texts: List[str], action: Optional[str] = None) -> List[List[float]]:
        """Embed several texts. Default implementation embeds one at a time."""
        return [await self.embed(text, action) for text in texts]
