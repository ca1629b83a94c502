"""Vector store contract shared by every storage backend.

Backends own their physical schema, CRUD, similarity search and the audit
history table. Every scope-bearing operation returns empty/False rather than
leaking a record that fails the owner/agent check.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..models.memory import HistoryEntry, MemoryRecord, OutputData


class StorageError(Exception):
    """Exception raised for storage backend failures on the primary path."""

    def __init__(self, message: str, store_type: str = "unknown", operation: str = "unknown"):
        super().__init__(message)
        self.store_type = store_type
        self.operation = operation


class VectorStoreInterface(ABC):
    """Swappable persistence + similarity search backend."""

    @abstractmethod
    async def initialize(self) -> bool:
        """Create or migrate the physical schema.

        Returns:
            True if the store is ready

        Raises:
            ConfigurationError: On an embedding dimension conflict
        """
        pass

    async def ensure_initialized(self) -> bool:
        """Initialize once before first use; stores may guard this against concurrent callers."""
        return await self.initialize()

    @abstractmethod
    async def upsert(self, record: MemoryRecord, embedding: Sequence[float]) -> None:
        """Insert or replace a record together with its embedding.

        The stored ``created_at`` of an existing row is preserved.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(
        self,
        memory_id: str,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
    ) -> Optional[MemoryRecord]:
        """Fetch a record by id, or None when absent or out of scope."""
        pass

    @abstractmethod
    async def delete(
        self,
        memory_id: str,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
    ) -> bool:
        """Delete a record by id.

        Returns:
            True if a record was deleted, False if absent or out of scope
        """
        pass

    @abstractmethod
    async def delete_all(
        self,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> int:
        """Delete every record in the scope and return how many were removed."""
        pass

    @abstractmethod
    async def list(
        self,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> List[MemoryRecord]:
        """List records in the scope ordered by id."""
        pass

    @abstractmethod
    async def search(
        self,
        query_embedding: Sequence[float],
        top_k: int = 5,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[OutputData]:
        """Similarity search; scores are higher-is-better, sorted descending."""
        pass

    @abstractmethod
    async def update_payload_fields(self, memory_id: str, fields: Dict[str, Any]) -> bool:
        """Merge fields into the stored payload without touching the vector."""
        pass

    @abstractmethod
    async def history(self, memory_id: str) -> List[HistoryEntry]:
        """Return the audit trail for a memory, oldest first."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class HybridSearchCapable(ABC):
    """Optional capability: native vector + lexical fused search."""

    @abstractmethod
    async def search_hybrid(
        self,
        query_text: str,
        query_embedding: Sequence[float],
        top_k: int = 5,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[OutputData]:
        """Fuse vector and lexical candidates.

        Falls back to plain vector search when no query text is supplied or no
        lexical index is available.
        """
        pass


def supports_hybrid_search(store: Any) -> bool:
    return isinstance(store, HybridSearchCapable)
