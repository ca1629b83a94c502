"""Graph store contract for relation extraction and retrieval."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class GraphStore(ABC):
    """Stores (source, relationship, destination) triples per scope."""

    @abstractmethod
    async def add(self, data: str, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Extract relations from text.

        Returns:
            ``{"deleted_entities": [...], "added_entities": [{"source", "relationship", "target"}]}``
        """
        pass

    @abstractmethod
    async def search(
        self, query: str, filters: Optional[Dict[str, Any]] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Return relations relevant to the query as ``{"source", "relationship", "destination"}``."""
        pass

    @abstractmethod
    async def get_all(self, filters: Optional[Dict[str, Any]] = None, limit: int = 100) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def delete_all(self, filters: Optional[Dict[str, Any]] = None) -> None:
        pass

    @abstractmethod
    async def reset(self) -> None:
        pass
