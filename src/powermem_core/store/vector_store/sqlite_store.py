"""Embedded SQLite vector store.

Rows are kept as ``(id, vector JSON, payload JSON)``; similarity is computed
in-process. Tables written by older releases (content/embedding columns) are
copied forward into the current layout on first use.
"""

import asyncio
import json
import os
import sqlite3
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ...interfaces.vector_store import HybridSearchCapable
from ...models.memory import HistoryEntry, MemoryRecord, OutputData
from ...utils.config import VectorStoreConfig
from ...utils.ids import SnowflakeIdGenerator
from ...utils.text import md5_hex, parse_iso, to_iso
from ...utils.vector_math import BM25Okapi, cosine_similarity, tokenize
from ..filters import FilterCompiler, SQLiteDialect
from ..fusion import create_fusion_strategy
from .base import VectorStore

HISTORY_TABLE = "history"
LEGACY_COLUMNS = ("user_id", "agent_id", "run_id", "metadata", "created_at", "updated_at", "last_accessed_at")


def decode_legacy_embedding(raw: Optional[str]) -> List[float]:
    """Parse a comma separated embedding; unparseable entries become 0.0."""
    if not raw or not str(raw).strip():
        return []
    values = []
    for part in str(raw).split(","):
        try:
            values.append(float(part.strip()))
        except ValueError:
            values.append(0.0)
    return values


def decode_legacy_metadata(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``k=v;k2=v2`` metadata strings."""
    result: Dict[str, str] = {}
    if not raw or not str(raw).strip():
        return result
    for pair in str(raw).split(";"):
        key, sep, value = pair.partition("=")
        if sep and key.strip():
            result[key.strip()] = value.strip()
    return result


def _legacy_timestamp(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        return to_iso(datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc))
    except (TypeError, ValueError, OverflowError, OSError):
        return to_iso(parse_iso(value))


class SQLiteVectorStore(VectorStore, HybridSearchCapable):
    """SQLite-backed vector store with optional in-process BM25 hybrid search."""

    store_type = "sqlite"

    def __init__(self, config: Optional[VectorStoreConfig] = None,
                 id_generator: Optional[SnowflakeIdGenerator] = None):
        super().__init__(config, id_generator)
        self.database_path = self.config.database_path or ":memory:"
        self.hybrid_enabled = bool(self.config.hybrid_search)
        self.fusion = create_fusion_strategy(
            self.config.fusion_method,
            rrf_k=self.config.rrf_k,
            vector_weight=self.config.vector_weight,
            fts_weight=self.config.fts_weight,
        )
        self.compiler = FilterCompiler(SQLiteDialect())
        self.conn: Optional[sqlite3.Connection] = None
        self._db_lock = threading.Lock()

        logger.info(f"SQLiteVectorStore: Configured for {self.database_path} (table {self.table_name})")

    # Connection handling

    def _connect(self) -> sqlite3.Connection:
        if self.database_path != ":memory:":
            directory = os.path.dirname(os.path.abspath(self.database_path))
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(
            self.database_path,
            timeout=float(self.config.timeout_seconds),
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        if self.config.enable_wal and self.database_path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    async def _run(self, func, *args):
        """Run a blocking database call off the event loop, one at a time."""
        def locked():
            with self._db_lock:
                return func(*args)
        return await asyncio.to_thread(locked)

    async def initialize(self) -> bool:
        if self.conn is None:
            self.conn = await asyncio.to_thread(self._connect)
        await self._run(self._ensure_schema)
        logger.info(f"SQLiteVectorStore: Table {self.table_name} ready")
        return True

    async def close(self) -> None:
        if self.conn is not None:
            await self._run(self.conn.close)
            self.conn = None
            self.initialized = False

    # Schema and migration

    def _table_columns(self, table: str) -> List[str]:
        rows = self.conn.execute(f"PRAGMA table_info({table})").fetchall()
        return [row["name"] for row in rows]

    def _create_table_sql(self, table: str) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {table} ("
            "id INTEGER PRIMARY KEY, "
            "vector TEXT, "
            "payload TEXT, "
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
        )

    def _ensure_schema(self) -> None:
        columns = self._table_columns(self.table_name)
        if not columns:
            self.conn.execute(self._create_table_sql(self.table_name))
        elif "vector" not in columns or "payload" not in columns:
            if "content" in columns and "embedding" in columns:
                self._migrate_legacy_table(columns)
            else:
                self._set_aside_unknown_table()

        self.conn.execute(
            f"CREATE TABLE IF NOT EXISTS {HISTORY_TABLE} ("
            "id TEXT PRIMARY KEY, "
            "memory_id TEXT, "
            "old_memory TEXT, "
            "new_memory TEXT, "
            "event TEXT, "
            "created_at INTEGER, "
            "updated_at INTEGER, "
            "is_deleted INTEGER DEFAULT 0, "
            "actor_id TEXT, "
            "role TEXT)"
        )
        self.conn.execute(f"CREATE INDEX IF NOT EXISTS idx_history_memory_id ON {HISTORY_TABLE}(memory_id)")

    def _set_aside_unknown_table(self) -> None:
        """Keep an unrecognised table under a new name and start a fresh one."""
        backup = f"{self.table_name}_unknown_{int(time.time() * 1000)}"
        logger.warning(f"SQLiteVectorStore: Unrecognised layout for {self.table_name}, renaming it to {backup}")
        self.conn.execute("BEGIN")
        try:
            self.conn.execute(f"ALTER TABLE {self.table_name} RENAME TO {backup}")
            self.conn.execute(self._create_table_sql(self.table_name))
            self.conn.execute("COMMIT")
        except sqlite3.Error:
            self.conn.execute("ROLLBACK")
            raise

    def _migrate_legacy_table(self, columns: List[str]) -> None:
        """Copy a legacy table into the current layout and swap it in atomically."""
        target = f"{self.table_name}_v2"
        selected = ["id", "content", "embedding"] + [c for c in LEGACY_COLUMNS if c in columns]
        logger.info(f"SQLiteVectorStore: Migrating legacy table {self.table_name} to current layout")

        self.conn.execute("BEGIN")
        try:
            self.conn.execute(f"DROP TABLE IF EXISTS {target}")
            self.conn.execute(self._create_table_sql(target))
            rows = self.conn.execute(f"SELECT {', '.join(selected)} FROM {self.table_name}").fetchall()
            migrated = 0
            for row in rows:
                key, vector, payload = self._legacy_row_to_current(dict(zip(selected, row)))
                self.conn.execute(
                    f"INSERT INTO {target} (id, vector, payload) VALUES (?, ?, ?)",
                    (key, json.dumps(vector), json.dumps(payload)),
                )
                migrated += 1
            self.conn.execute(f"DROP TABLE {self.table_name}")
            self.conn.execute(f"ALTER TABLE {target} RENAME TO {self.table_name}")
            self.conn.execute("COMMIT")
        except sqlite3.Error:
            self.conn.execute("ROLLBACK")
            logger.error(f"SQLiteVectorStore: Legacy migration of {self.table_name} failed, table left untouched")
            raise
        logger.info(f"SQLiteVectorStore: Migrated {migrated} rows into {self.table_name}")

    def _legacy_row_to_current(self, row: Dict[str, Any]) -> Tuple[int, List[float], Dict[str, Any]]:
        try:
            key = int(row.get("id"))
        except (TypeError, ValueError):
            key = int(self.id_generator.next_id())
        content = row.get("content") or ""
        payload = {
            "data": content,
            "fulltext_content": content,
            "user_id": row.get("user_id"),
            "agent_id": row.get("agent_id"),
            "run_id": row.get("run_id"),
            "hash": md5_hex(content),
            "category": None,
            "created_at": _legacy_timestamp(row.get("created_at")),
            "updated_at": _legacy_timestamp(row.get("updated_at")),
            "last_accessed_at": _legacy_timestamp(row.get("last_accessed_at")),
            "metadata": decode_legacy_metadata(row.get("metadata")),
        }
        return key, decode_legacy_embedding(row.get("embedding")), payload

    # Primitives

    def _select_payload(self, key: int) -> Optional[Dict[str, Any]]:
        row = self.conn.execute(f"SELECT payload FROM {self.table_name} WHERE id = ?", (key,)).fetchone()
        if row is None:
            return None
        return json.loads(row["payload"]) if row["payload"] else {}

    async def _read_payload(self, key: int) -> Optional[Dict[str, Any]]:
        return await self._run(self._select_payload, key)

    async def _write_record(self, key: int, vector: List[float], payload: Dict[str, Any]) -> None:
        sql = (
            f"INSERT INTO {self.table_name} (id, vector, payload) VALUES (?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET vector = excluded.vector, payload = excluded.payload"
        )
        await self._run(self.conn.execute, sql, (key, json.dumps(vector), json.dumps(payload)))

    async def _write_payload(self, key: int, payload: Dict[str, Any]) -> bool:
        sql = f"UPDATE {self.table_name} SET payload = ? WHERE id = ?"
        cursor = await self._run(self.conn.execute, sql, (json.dumps(payload), key))
        return cursor.rowcount > 0

    async def _delete_row(self, key: int) -> bool:
        cursor = await self._run(self.conn.execute, f"DELETE FROM {self.table_name} WHERE id = ?", (key,))
        return cursor.rowcount > 0

    async def _delete_scope(self, user_id, agent_id, run_id) -> int:
        compiled = self.compiler.compile(None, user_id, agent_id, run_id)
        sql = f"DELETE FROM {self.table_name} WHERE 1=1{compiled.where_sql()}"
        cursor = await self._run(self.conn.execute, sql, tuple(compiled.params))
        return max(cursor.rowcount, 0)

    async def _list_rows(self, user_id, agent_id, run_id, offset: int, limit: int) -> List[MemoryRecord]:
        compiled = self.compiler.compile(None, user_id, agent_id, run_id)
        sql = (
            f"SELECT id, payload FROM {self.table_name} WHERE 1=1{compiled.where_sql()} "
            "ORDER BY id LIMIT ? OFFSET ?"
        )

        def query():
            return self.conn.execute(sql, tuple(compiled.params) + (limit, offset)).fetchall()

        rows = await self._run(query)
        return [MemoryRecord.from_payload(row["id"], json.loads(row["payload"] or "{}")) for row in rows]

    async def _candidate_rows(self, user_id, agent_id, run_id, filters) -> List[Tuple[MemoryRecord, List[float]]]:
        compiled = self.compiler.compile(filters, user_id, agent_id, run_id)
        sql = f"SELECT id, vector, payload FROM {self.table_name} WHERE 1=1{compiled.where_sql()}"

        def query():
            return self.conn.execute(sql, tuple(compiled.params)).fetchall()

        rows = await self._run(query)
        candidates = []
        for row in rows:
            record = MemoryRecord.from_payload(row["id"], json.loads(row["payload"] or "{}"))
            vector = json.loads(row["vector"]) if row["vector"] else []
            candidates.append((record, vector))
        return candidates

    @staticmethod
    def _rank_by_vector(candidates, query_embedding: Sequence[float], limit: int) -> List[OutputData]:
        scored = [
            OutputData(record=record, score=cosine_similarity(query_embedding, vector))
            for record, vector in candidates
        ]
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[:limit]

    @staticmethod
    def _rank_by_keywords(candidates, query_text: str, limit: int) -> List[OutputData]:
        bm25 = BM25Okapi([tokenize(record.content) for record, _ in candidates])
        scores = bm25.get_scores(tokenize(query_text))
        lexical = [
            OutputData(record=record.copy(), score=float(score))
            for (record, _), score in zip(candidates, scores)
            if score > 0
        ]
        lexical.sort(key=lambda item: item.score, reverse=True)
        return lexical[:limit]

    async def _vector_search(self, query_embedding, top_k, user_id, agent_id, run_id, filters) -> List[OutputData]:
        candidates = await self._candidate_rows(user_id, agent_id, run_id, filters)
        return self._rank_by_vector(candidates, query_embedding, top_k)

    async def search_hybrid(self, query_text: str, query_embedding: Sequence[float], top_k: int = 5,
                            user_id: Optional[str] = None, agent_id: Optional[str] = None,
                            run_id: Optional[str] = None,
                            filters: Optional[Dict[str, Any]] = None) -> List[OutputData]:
        if not self.hybrid_enabled or not query_text or not query_text.strip():
            return await self.search(query_embedding, top_k, user_id, agent_id, run_id, filters)

        await self.ensure_initialized()
        k = top_k if top_k and top_k > 0 else 5
        candidate_k = k * 2
        try:
            candidates = await self._candidate_rows(user_id, agent_id, run_id, filters)
        except Exception as e:
            raise self._storage_error("search_hybrid", e)

        vector_results = self._rank_by_vector(candidates, query_embedding, candidate_k)
        try:
            lexical = self._rank_by_keywords(candidates, query_text, candidate_k)
        except Exception as e:
            logger.warning(f"SQLiteVectorStore: Keyword branch of hybrid search failed: {e}")
            lexical = []

        fused = self.fusion.fuse(vector_results, lexical, k)
        self.metrics["search_count"] += 1
        await self._touch(fused)
        return fused

    async def _append_history(self, entry: HistoryEntry) -> None:
        sql = (
            f"INSERT INTO {HISTORY_TABLE} (id, memory_id, old_memory, new_memory, event, "
            "created_at, updated_at, is_deleted, actor_id, role) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
        )
        params = (
            entry.id, entry.memory_id, entry.old_memory, entry.new_memory, entry.event,
            entry.created_at, entry.updated_at, 1 if entry.is_deleted else 0, entry.actor_id, entry.role,
        )
        await self._run(self.conn.execute, sql, params)

    async def _read_history(self, memory_id: str) -> List[HistoryEntry]:
        sql = (
            f"SELECT id, memory_id, old_memory, new_memory, event, created_at, updated_at, "
            f"is_deleted, actor_id, role FROM {HISTORY_TABLE} WHERE memory_id = ? "
            "ORDER BY created_at ASC, CAST(id AS INTEGER) ASC"
        )

        def query():
            return self.conn.execute(sql, (memory_id,)).fetchall()

        rows = await self._run(query)
        return [
            HistoryEntry(
                id=row["id"],
                memory_id=row["memory_id"],
                old_memory=row["old_memory"],
                new_memory=row["new_memory"],
                event=row["event"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
                is_deleted=bool(row["is_deleted"]),
                actor_id=row["actor_id"],
                role=row["role"],
            )
            for row in rows
        ]
