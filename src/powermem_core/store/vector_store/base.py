"""Base vector store shared by all backends.

Backends implement a handful of storage primitives; this class layers the
behaviour every backend must share on top of them: scope checks, created_at
preservation, audit history, payload patching, access stamping, dimension
enforcement and uniform error wrapping.
"""

import asyncio
import time
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from ...interfaces.vector_store import StorageError, VectorStoreInterface
from ...models.memory import HistoryEntry, MemoryRecord, OutputData
from ...utils.config import VectorStoreConfig
from ...utils.errors import ConfigurationError
from ...utils.ids import SnowflakeIdGenerator
from ...utils.text import parse_iso, to_iso, utc_now

EVENT_ADD = "ADD"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
HISTORY_ROLE = "sdk"


def parse_memory_id(memory_id: Any) -> Optional[int]:
    """Convert an id string to the integer primary key, or None if not numeric."""
    if memory_id is None:
        return None
    try:
        return int(str(memory_id).strip())
    except ValueError:
        return None


def scope_matches(record: MemoryRecord, user_id: Optional[str] = None, agent_id: Optional[str] = None) -> bool:
    if user_id and user_id.strip() and record.user_id != user_id:
        return False
    if agent_id and agent_id.strip() and record.agent_id != agent_id:
        return False
    return True


def merge_payload_fields(payload: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Merge a field patch into a stored payload.

    ``metadata`` is replaced wholesale when given a mapping; ``updated_at`` is
    stamped unless the patch sets it.
    """
    merged = dict(payload)
    for key, value in fields.items():
        if not key or not str(key).strip():
            continue
        if key == "metadata" and not isinstance(value, dict):
            continue
        merged[key] = value
    if "updated_at" not in fields:
        merged["updated_at"] = to_iso(utc_now())
    if "data" in fields and "fulltext_content" not in fields:
        merged["fulltext_content"] = fields["data"]
    return merged


class VectorStore(VectorStoreInterface):
    """Base class for vector store implementations."""

    store_type = "vector"

    def __init__(self, config: Optional[VectorStoreConfig] = None,
                 id_generator: Optional[SnowflakeIdGenerator] = None):
        """Initialize the vector store.

        Args:
            config: Store configuration
            id_generator: Generator for history row ids; one per process
        """
        self.config = config or VectorStoreConfig()
        self.table_name = self.config.collection_name or "memories"
        self.id_generator = id_generator or SnowflakeIdGenerator()
        self.embedding_dims: Optional[int] = self.config.embedding_model_dims
        self.initialized = False
        self._lock = asyncio.Lock()

        self.metrics = {
            "upsert_count": 0,
            "get_count": 0,
            "delete_count": 0,
            "search_count": 0,
            "upsert_time": 0.0,
            "search_time": 0.0,
        }

    async def ensure_initialized(self) -> bool:
        """Ensure the store is initialized."""
        if self.initialized:
            return True
        async with self._lock:
            if not self.initialized:
                self.initialized = await self.initialize()
            return self.initialized

    def _storage_error(self, operation: str, error: Exception) -> StorageError:
        logger.error(f"{self.__class__.__name__}: {operation} failed: {error}")
        return StorageError(f"Failed to {operation}: {error}", store_type=self.store_type, operation=operation)

    def _check_dimension(self, embedding: Sequence[float]) -> None:
        size = len(embedding)
        if self.embedding_dims is None:
            self.embedding_dims = size
            return
        if size != self.embedding_dims:
            raise ConfigurationError(
                f"Embedding dimension {size} does not match {self.embedding_dims} "
                f"configured for collection '{self.table_name}'",
                component=self.__class__.__name__,
            )

    # Primitives implemented by each backend

    @abstractmethod
    async def _read_payload(self, key: int) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def _write_record(self, key: int, vector: List[float], payload: Dict[str, Any]) -> None:
        """Insert or update a row using the backend's native upsert."""
        pass

    @abstractmethod
    async def _write_payload(self, key: int, payload: Dict[str, Any]) -> bool:
        pass

    @abstractmethod
    async def _delete_row(self, key: int) -> bool:
        pass

    @abstractmethod
    async def _delete_scope(self, user_id: Optional[str], agent_id: Optional[str], run_id: Optional[str]) -> int:
        pass

    @abstractmethod
    async def _list_rows(self, user_id: Optional[str], agent_id: Optional[str], run_id: Optional[str],
                         offset: int, limit: int) -> List[MemoryRecord]:
        pass

    @abstractmethod
    async def _vector_search(self, query_embedding: Sequence[float], top_k: int, user_id: Optional[str],
                             agent_id: Optional[str], run_id: Optional[str],
                             filters: Optional[Dict[str, Any]]) -> List[OutputData]:
        pass

    @abstractmethod
    async def _append_history(self, entry: HistoryEntry) -> None:
        pass

    @abstractmethod
    async def _read_history(self, memory_id: str) -> List[HistoryEntry]:
        pass

    # Contract

    async def upsert(self, record: MemoryRecord, embedding: Sequence[float]) -> None:
        key = parse_memory_id(record.id)
        if key is None:
            raise StorageError(f"Invalid memory id: {record.id!r}", store_type=self.store_type, operation="upsert")
        await self.ensure_initialized()
        self._check_dimension(embedding)

        start_time = time.time()
        try:
            previous = await self._read_payload(key)
            if previous is not None:
                stored_created = parse_iso(previous.get("created_at"))
                if stored_created is not None:
                    record.created_at = stored_created
            now = utc_now()
            if record.created_at is None:
                record.created_at = now
            if record.updated_at is None or record.updated_at < record.created_at:
                record.updated_at = max(now, record.created_at)

            await self._write_record(key, [float(x) for x in embedding], record.to_payload())
            await self._write_history(
                record.id,
                old_memory=previous.get("data") if previous else None,
                new_memory=record.content,
                event=EVENT_UPDATE if previous is not None else EVENT_ADD,
                record=record,
            )
            self.metrics["upsert_count"] += 1
            self.metrics["upsert_time"] += time.time() - start_time
        except (StorageError, ConfigurationError):
            raise
        except Exception as e:
            raise self._storage_error("upsert", e)

    async def get(self, memory_id: str, user_id: Optional[str] = None,
                  agent_id: Optional[str] = None) -> Optional[MemoryRecord]:
        key = parse_memory_id(memory_id)
        if key is None:
            return None
        await self.ensure_initialized()
        try:
            payload = await self._read_payload(key)
        except Exception as e:
            raise self._storage_error("get", e)
        self.metrics["get_count"] += 1
        if payload is None:
            return None
        record = MemoryRecord.from_payload(key, payload)
        return record if scope_matches(record, user_id, agent_id) else None

    async def delete(self, memory_id: str, user_id: Optional[str] = None,
                     agent_id: Optional[str] = None) -> bool:
        record = await self.get(memory_id, user_id, agent_id)
        if record is None:
            return False
        try:
            deleted = await self._delete_row(int(record.id))
        except Exception as e:
            raise self._storage_error("delete", e)
        if deleted:
            self.metrics["delete_count"] += 1
            await self._write_history(record.id, old_memory=record.content, new_memory=None,
                                      event=EVENT_DELETE, record=record, is_deleted=True)
        return deleted

    async def delete_all(self, user_id: Optional[str] = None, agent_id: Optional[str] = None,
                         run_id: Optional[str] = None) -> int:
        await self.ensure_initialized()
        try:
            count = await self._delete_scope(user_id, agent_id, run_id)
        except Exception as e:
            raise self._storage_error("delete_all", e)
        logger.info(f"{self.__class__.__name__}: Deleted {count} memories from {self.table_name}")
        return count

    async def list(self, user_id: Optional[str] = None, agent_id: Optional[str] = None,
                   run_id: Optional[str] = None, offset: int = 0, limit: int = 100) -> List[MemoryRecord]:
        await self.ensure_initialized()
        try:
            return await self._list_rows(user_id, agent_id, run_id, max(0, offset), max(0, limit))
        except Exception as e:
            raise self._storage_error("list", e)

    async def search(self, query_embedding: Sequence[float], top_k: int = 5, user_id: Optional[str] = None,
                     agent_id: Optional[str] = None, run_id: Optional[str] = None,
                     filters: Optional[Dict[str, Any]] = None) -> List[OutputData]:
        await self.ensure_initialized()
        k = top_k if top_k and top_k > 0 else 5
        start_time = time.time()
        try:
            results = await self._vector_search(query_embedding, k, user_id, agent_id, run_id, filters)
        except Exception as e:
            raise self._storage_error("search", e)
        self.metrics["search_count"] += 1
        self.metrics["search_time"] += time.time() - start_time
        await self._touch(results)
        return results

    async def update_payload_fields(self, memory_id: str, fields: Dict[str, Any]) -> bool:
        key = parse_memory_id(memory_id)
        if key is None or not fields:
            return False
        await self.ensure_initialized()
        try:
            payload = await self._read_payload(key)
            if payload is None:
                return False
            return await self._write_payload(key, merge_payload_fields(payload, fields))
        except Exception as e:
            raise self._storage_error("update_payload_fields", e)

    async def history(self, memory_id: str) -> List[HistoryEntry]:
        await self.ensure_initialized()
        try:
            return await self._read_history(str(memory_id))
        except Exception as e:
            raise self._storage_error("history", e)

    # Shared helpers

    async def _touch(self, results: List[OutputData]) -> None:
        """Stamp last_accessed_at on returned rows; failures are logged only."""
        now = utc_now()
        for item in results:
            if item is None or item.record is None or item.record.id is None:
                continue
            item.record.last_accessed_at = now
            key = parse_memory_id(item.record.id)
            try:
                payload = await self._read_payload(key)
                if payload is not None:
                    payload["last_accessed_at"] = to_iso(now)
                    await self._write_payload(key, payload)
            except Exception as e:
                logger.warning(f"{self.__class__.__name__}: Failed to stamp last_accessed_at for {item.record.id}: {e}")

    async def _write_history(self, memory_id: str, old_memory: Optional[str], new_memory: Optional[str],
                             event: str, record: Optional[MemoryRecord] = None, is_deleted: bool = False) -> None:
        now_ms = int(time.time() * 1000)
        actor = None
        if record is not None:
            actor = record.agent_id if record.agent_id else record.user_id
        entry = HistoryEntry(
            id=self.id_generator.next_id(),
            memory_id=str(memory_id),
            old_memory=old_memory,
            new_memory=new_memory,
            event=event,
            created_at=now_ms,
            updated_at=now_ms,
            is_deleted=is_deleted,
            actor_id=actor,
            role=HISTORY_ROLE,
        )
        try:
            await self._append_history(entry)
        except Exception as e:
            logger.warning(f"{self.__class__.__name__}: Failed to write {event} history for {memory_id}: {e}")
