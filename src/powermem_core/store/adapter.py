"""Storage adapter between the memory orchestrator and a vector store.

The adapter owns identity generation, content hashing, timestamps and payload
shaping; the vector store only persists what it is given.
"""

from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from ..interfaces.embedder import ACTION_ADD, ACTION_UPDATE, Embedder
from ..interfaces.vector_store import VectorStoreInterface, supports_hybrid_search
from ..models.memory import HistoryEntry, MemoryRecord, OutputData
from ..utils.errors import ValidationError
from ..utils.ids import SnowflakeIdGenerator
from ..utils.text import md5_hex, to_iso, utc_now


def split_category(metadata: Optional[Dict[str, Any]]) -> Tuple[Dict[str, Any], Optional[str]]:
    """Promote a non-blank ``category`` out of user metadata."""
    safe = dict(metadata or {})
    category = safe.get("category")
    if category is not None and str(category).strip():
        safe.pop("category")
        return safe, str(category)
    return safe, None


class StorageAdapter:
    """Logical CRUD over one vector store and one embedder."""

    def __init__(
        self,
        vector_store: VectorStoreInterface,
        embedder: Embedder,
        id_generator: Optional[SnowflakeIdGenerator] = None,
    ):
        self.vector_store = vector_store
        self.embedder = embedder
        self.id_generator = id_generator or SnowflakeIdGenerator()

    # Routing hooks, overridden by SubStorageAdapter

    def _write_target(self, metadata: Optional[Dict[str, Any]]) -> Tuple[VectorStoreInterface, Embedder]:
        return self.vector_store, self.embedder

    def _search_target(self, filters: Optional[Dict[str, Any]]) -> Tuple[VectorStoreInterface, Embedder]:
        return self.vector_store, self.embedder

    def _id_lookup_order(self) -> List[Tuple[VectorStoreInterface, Embedder]]:
        return [(self.vector_store, self.embedder)]

    async def _locate(self, memory_id: str, user_id: Optional[str] = None, agent_id: Optional[str] = None
                      ) -> Optional[Tuple[VectorStoreInterface, Embedder, MemoryRecord]]:
        """Find the store holding a memory, probing stores in lookup order."""
        for store, embedder in self._id_lookup_order():
            record = await store.get(memory_id, user_id, agent_id)
            if record is not None:
                return store, embedder, record
        return None

    # Operations

    async def embed(self, text: str, action: str, context: Optional[Dict[str, Any]] = None) -> List[float]:
        """Embed text with the embedder of the store the context routes to."""
        _, embedder = self._search_target(context)
        return await embedder.embed(text, action)

    async def add_memory(
        self,
        content: str,
        user_id: str,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        attributes: Optional[Dict[str, Any]] = None,
        scope: Optional[str] = None,
        memory_type: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> MemoryRecord:
        """Create and persist a new memory.

        Routing sees the request filters merged with the record metadata.

        Raises:
            ValidationError: If content or user_id is blank
        """
        if not content or not content.strip():
            raise ValidationError("Cannot store empty content")
        if not user_id or not str(user_id).strip():
            raise ValidationError("user_id is required")

        routing = dict(filters or {})
        routing.update(metadata or {})
        store, embedder = self._write_target(routing)
        safe_metadata, category = split_category(metadata)
        attrs = dict(attributes or {})
        if memory_type and memory_type.strip():
            attrs["memory_type"] = memory_type

        now = utc_now()
        record = MemoryRecord(
            id=self.id_generator.next_id(),
            content=content,
            user_id=user_id,
            agent_id=agent_id,
            run_id=run_id,
            hash=md5_hex(content),
            category=category,
            scope=scope if scope and scope.strip() else None,
            metadata=safe_metadata,
            attributes=attrs,
            created_at=now,
            updated_at=now,
            last_accessed_at=now,
        )
        embedding = await embedder.embed(content, ACTION_ADD)
        await store.upsert(record, embedding)
        logger.debug(f"StorageAdapter: Added memory {record.id}")
        return record

    async def search_memories(
        self,
        query_embedding: List[float],
        limit: int = 5,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        query_text: Optional[str] = None,
        routing: Optional[Dict[str, Any]] = None,
    ) -> List[OutputData]:
        """Search the routed store; ``routing`` overrides ``filters`` for picking the store only."""
        store, _ = self._search_target(filters if routing is None else routing)
        if query_text and supports_hybrid_search(store):
            return await store.search_hybrid(query_text, query_embedding, limit, user_id, agent_id, run_id, filters)
        return await store.search(query_embedding, limit, user_id, agent_id, run_id, filters)

    async def get_memory(self, memory_id: str, user_id: Optional[str] = None,
                         agent_id: Optional[str] = None) -> Optional[MemoryRecord]:
        hit = await self._locate(memory_id, user_id, agent_id)
        return hit[2] if hit else None

    async def update_memory(
        self,
        memory_id: str,
        content: Optional[str] = None,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[MemoryRecord]:
        """Update content and/or metadata; re-embeds only when content changed.

        Returns:
            The updated record, or None if it does not exist in scope
        """
        hit = await self._locate(memory_id, user_id, agent_id)
        if hit is None:
            return None
        store, embedder, existing = hit

        now = utc_now()
        content_changed = bool(content and content.strip()) and content != existing.content
        if metadata is not None:
            existing.metadata, category = split_category(metadata)
            if category is not None:
                existing.category = category
        existing.updated_at = now

        if content_changed:
            existing.content = content
            existing.hash = md5_hex(content)
            embedding = await embedder.embed(content, ACTION_UPDATE)
            await store.upsert(existing, embedding)
            return existing

        fields: Dict[str, Any] = {"updated_at": to_iso(now)}
        if metadata is not None:
            fields["metadata"] = existing.metadata
            fields["category"] = existing.category
        await store.update_payload_fields(existing.id, fields)
        return existing

    async def update_payload_fields(self, memory_id: str, fields: Dict[str, Any]) -> bool:
        """Patch stored payload fields without re-embedding."""
        if not memory_id or not str(memory_id).strip() or not fields:
            return False
        hit = await self._locate(memory_id)
        if hit is None:
            return False
        return await hit[0].update_payload_fields(memory_id, fields)

    async def delete_memory(self, memory_id: str, user_id: Optional[str] = None,
                            agent_id: Optional[str] = None) -> bool:
        for store, _ in self._id_lookup_order():
            if await store.delete(memory_id, user_id, agent_id):
                return True
        return False

    async def get_all_memories(self, user_id: Optional[str] = None, agent_id: Optional[str] = None,
                               run_id: Optional[str] = None, limit: int = 100,
                               offset: int = 0) -> List[MemoryRecord]:
        return await self.vector_store.list(user_id, agent_id, run_id, offset, limit)

    async def clear_memories(self, user_id: Optional[str] = None, agent_id: Optional[str] = None,
                             run_id: Optional[str] = None) -> int:
        return await self.vector_store.delete_all(user_id, agent_id, run_id)

    async def history(self, memory_id: str) -> List[HistoryEntry]:
        for store, _ in self._id_lookup_order():
            entries = await store.history(memory_id)
            if entries:
                return entries
        return []

    async def close(self) -> None:
        for store, _ in self._id_lookup_order():
            await store.close()
