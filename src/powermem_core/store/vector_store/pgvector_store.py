"""PostgreSQL + pgvector store.

Same logical layout as the embedded store (id, vector, payload) with the
scope/hash/category/timestamp fields promoted to columns for predicate
pushdown, a native ``vector(dims)`` column when the extension is present and
a ``fulltext_content`` column for lexical search.
"""

import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import psycopg
from loguru import logger
from pgvector.psycopg import register_vector_async
from psycopg.conninfo import make_conninfo
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from ...interfaces.vector_store import HybridSearchCapable, StorageError
from ...models.memory import PROMOTED_COLUMNS, HistoryEntry, MemoryRecord, OutputData
from ...models.schema import HistorySchema, MemoriesSchema
from ...utils.config import VectorStoreConfig
from ...utils.errors import ConfigurationError
from ...utils.ids import SnowflakeIdGenerator
from ...utils.vector_math import cosine_similarity
from ..filters import FilterCompiler, PostgresDialect
from ..fusion import create_fusion_strategy
from .base import VectorStore

HISTORY_TABLE = "history"

# metric -> (distance operator, index operator class)
METRICS = {
    "cosine": ("<=>", "vector_cosine_ops"),
    "l2": ("<->", "vector_l2_ops"),
    "inner_product": ("<#>", "vector_ip_ops"),
}
METRIC_ALIASES = {"ip": "inner_product", "dot": "inner_product", "euclidean": "l2"}

FULLTEXT_CONFIGS = ("simple", "english")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_VECTOR_TYPE = re.compile(r"vector\((\d+)\)")


def normalize_metric(metric: Optional[str]) -> str:
    name = (metric or "cosine").strip().lower()
    name = METRIC_ALIASES.get(name, name)
    return name if name in METRICS else "cosine"


def distance_to_score(metric: str, distance: Optional[float]) -> float:
    """Map a pgvector distance to a higher-is-better score."""
    if distance is None:
        return 0.0
    if metric == "inner_product":
        # <#> returns the negative inner product
        return -float(distance)
    return 1.0 / (1.0 + float(distance))


def parse_vector_dims(type_name: Optional[str]) -> Optional[int]:
    if not type_name:
        return None
    match = _VECTOR_TYPE.search(type_name)
    return int(match.group(1)) if match else None


def fulltext_ladder(configured: Optional[str]) -> List[Optional[str]]:
    """Text search configurations to try for the lexical index, in order."""
    ladder: List[Optional[str]] = [None]
    if configured and _IDENTIFIER.match(configured):
        ladder.append(configured)
    for name in FULLTEXT_CONFIGS:
        if name not in ladder:
            ladder.append(name)
    return ladder


def tsvector_expr(config_name: Optional[str]) -> str:
    if config_name is None:
        return "to_tsvector(fulltext_content)"
    return f"to_tsvector('{config_name}'::regconfig, fulltext_content)"


def tsquery_expr(config_name: Optional[str]) -> str:
    if config_name is None:
        return "plainto_tsquery(%s)"
    return f"plainto_tsquery('{config_name}'::regconfig, %s)"


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PGVectorStore(VectorStore, HybridSearchCapable):
    """Vector store backed by PostgreSQL with the pgvector extension."""

    store_type = "pgvector"

    def __init__(
        self,
        config: Optional[VectorStoreConfig] = None,
        id_generator: Optional[SnowflakeIdGenerator] = None,
        pool: Optional[AsyncConnectionPool] = None,
    ):
        """Initialize the store.

        Args:
            config: Store configuration
            id_generator: Generator for history row ids
            pool: Existing connection pool; one is created on initialize otherwise
        """
        super().__init__(config, id_generator)
        self.pool = pool
        self._owns_pool = pool is None
        self.metric = normalize_metric(self.config.metric_type)
        self.hybrid_enabled = self.config.hybrid_search is not False
        self.fusion = create_fusion_strategy(
            self.config.fusion_method,
            rrf_k=self.config.rrf_k,
            vector_weight=self.config.vector_weight,
            fts_weight=self.config.fts_weight,
        )
        self.schema = MemoriesSchema(self.table_name)
        self.history_schema = HistorySchema(HISTORY_TABLE)
        self.compiler = FilterCompiler(PostgresDialect(promoted_columns=PROMOTED_COLUMNS))

        self.vector_extension = False
        self.native_vector = False
        self.fulltext_config: Optional[str] = None
        self.fulltext_indexed = False

        self.conninfo = make_conninfo(
            host=self.config.host,
            port=self.config.port,
            dbname=self.config.database,
            user=self.config.user,
            password=self.config.password,
            connect_timeout=self.config.timeout_seconds,
        )

    # Connection handling

    async def _configure_connection(self, conn) -> None:
        """Register vector types on each new pooled connection."""
        if not self.vector_extension:
            return
        try:
            await register_vector_async(conn)
        except Exception as e:
            logger.warning(f"PGVectorStore: pgvector registration failed, continuing anyway: {e}")

    async def _check_vector_extension(self) -> bool:
        """Make sure the vector extension exists; failure disables native vectors."""
        try:
            async with await psycopg.AsyncConnection.connect(self.conninfo, autocommit=True) as conn:
                await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
                cur = await conn.execute("SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'vector')")
                row = await cur.fetchone()
                return bool(row and row[0])
        except psycopg.OperationalError:
            raise
        except psycopg.Error as e:
            logger.warning(f"PGVectorStore: pgvector extension unavailable, using in-process distance: {e}")
            return False

    async def initialize(self) -> bool:
        logger.info(f"PGVectorStore: Initializing table {self.table_name} on {self.config.host}:{self.config.port}")
        try:
            if self.pool is None:
                self.vector_extension = await self._check_vector_extension()
                self.pool = AsyncConnectionPool(
                    self.conninfo,
                    min_size=self.config.min_pool_size,
                    max_size=self.config.max_pool_size,
                    timeout=float(self.config.timeout_seconds),
                    configure=self._configure_connection,
                    open=False,
                )
                await self.pool.open(wait=True, timeout=float(self.config.timeout_seconds))
            else:
                self.vector_extension = await self._extension_installed()
            await self._setup_schema_with_retry()
        except ConfigurationError:
            raise
        except psycopg.Error as e:
            raise self._storage_error("initialize", e)

        logger.info(
            f"PGVectorStore: Table {self.table_name} ready "
            f"(native_vector={self.native_vector}, fulltext={self.fulltext_indexed})"
        )
        return True

    async def close(self) -> None:
        if self.pool is not None and self._owns_pool:
            await self.pool.close()
            self.pool = None
        self.initialized = False

    async def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[Tuple]:
        async with self.pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(sql, params)
                return await cur.fetchall()

    async def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[Tuple]:
        async with self.pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(sql, params)
                return await cur.fetchone()

    async def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        async with self.pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(sql, params)
                return cur.rowcount

    async def _try_ddl(self, sql: str, what: str) -> bool:
        """Run optional DDL in its own transaction; failures are logged only."""
        try:
            await self._execute(sql)
            return True
        except psycopg.Error as e:
            logger.warning(f"PGVectorStore: Could not create {what}: {e}")
            return False

    # Schema

    async def _extension_installed(self) -> bool:
        row = await self._fetchone("SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'vector')")
        return bool(row and row[0])

    async def _setup_schema_with_retry(self) -> None:
        """Set up the schema, tolerating concurrent initializers."""
        max_retries = 3
        retry_delay = 0.5

        for attempt in range(max_retries):
            try:
                await self._setup_schema()
                return
            except psycopg.Error as e:
                error_msg = str(e).lower()
                if "tuple concurrently updated" in error_msg or "already exists" in error_msg:
                    if attempt < max_retries - 1:
                        logger.warning(
                            f"PGVectorStore: Concurrent schema operation detected "
                            f"(attempt {attempt + 1}/{max_retries}), retrying in {retry_delay}s..."
                        )
                        await asyncio.sleep(retry_delay)
                        retry_delay *= 2
                        continue
                    logger.warning("PGVectorStore: Schema already set up by a concurrent initializer")
                    return
                raise

    async def _existing_columns(self, table: str) -> List[str]:
        rows = await self._fetchall(
            "SELECT column_name FROM information_schema.columns WHERE table_name = %s",
            (table,),
        )
        return [row[0] for row in rows]

    async def _setup_schema(self) -> None:
        await self._execute(self.schema.generate_create_table_sql())
        existing = await self._existing_columns(self.table_name)
        for statement in self.schema.generate_add_column_sql(existing):
            await self._try_ddl(statement, "missing column")

        present = {name.lower() for name in await self._existing_columns(self.table_name)}
        missing = [name for name in self.schema.required_columns if name.lower() not in present]
        if missing:
            raise StorageError(
                f"Table {self.table_name} is missing required columns {missing}",
                store_type=self.store_type,
                operation="initialize",
            )

        for statement in self.schema.generate_indexes_sql():
            await self._try_ddl(statement, "scope index")

        await self._execute(self.history_schema.generate_create_table_sql())
        for statement in self.history_schema.generate_indexes_sql():
            await self._try_ddl(statement, "history index")

        await self._check_vector_dims()
        if self.embedding_dims:
            await self._ensure_vector_column(self.embedding_dims)
        if self.hybrid_enabled:
            await self._ensure_fulltext_index()

    async def _fetch_vector_dims(self) -> Optional[int]:
        row = await self._fetchone(
            "SELECT format_type(a.atttypid, a.atttypmod) FROM pg_attribute a "
            "JOIN pg_class c ON a.attrelid = c.oid "
            "WHERE c.relname = %s AND a.attname = 'embedding' AND NOT a.attisdropped",
            (self.table_name,),
        )
        return parse_vector_dims(row[0]) if row else None

    async def _check_vector_dims(self) -> None:
        """Fail on a dimension conflict between the stored column and the config."""
        stored = await self._fetch_vector_dims()
        if stored is None:
            return
        if self.embedding_dims is None:
            self.embedding_dims = stored
            return
        if stored != self.embedding_dims:
            raise ConfigurationError(
                f"Table {self.table_name} stores vector({stored}) but {self.embedding_dims} "
                f"dimensions are configured",
                component="PGVectorStore",
            )

    def vector_index_sql(self) -> str:
        _, opclass = METRICS[self.metric]
        name = f"{self.table_name}_{self.config.vector_index_name}"
        if (self.config.index_type or "").upper() == "IVFFLAT":
            return (
                f"CREATE INDEX IF NOT EXISTS {name} ON {self.table_name} "
                f"USING ivfflat (embedding {opclass}) WITH (lists = 100)"
            )
        return f"CREATE INDEX IF NOT EXISTS {name} ON {self.table_name} USING hnsw (embedding {opclass})"

    async def _ensure_vector_column(self, dims: int) -> None:
        if not self.vector_extension:
            self.native_vector = False
            return
        added = await self._try_ddl(
            f"ALTER TABLE {self.table_name} ADD COLUMN IF NOT EXISTS embedding vector({int(dims)})",
            "native vector column",
        )
        self.native_vector = added
        if added:
            await self._try_ddl(self.vector_index_sql(), "vector index")

    async def _ensure_fulltext_index(self) -> None:
        """Create the GIN index, downgrading the text search configuration on failure."""
        index_name = f"{self.table_name}_fulltext_idx"
        for config_name in fulltext_ladder(self.config.fulltext_parser):
            sql = (
                f"CREATE INDEX IF NOT EXISTS {index_name} ON {self.table_name} "
                f"USING GIN ({tsvector_expr(config_name)})"
            )
            try:
                await self._execute(sql)
            except psycopg.Error as e:
                logger.debug(f"PGVectorStore: Full-text index with config {config_name!r} failed: {e}")
                continue
            self.fulltext_config = config_name
            self.fulltext_indexed = True
            logger.info(f"PGVectorStore: Full-text index ready (config {config_name!r})")
            return
        self.fulltext_indexed = False
        logger.warning(f"PGVectorStore: No full-text index for {self.table_name}, using substring scan")

    # Primitives

    async def _read_payload(self, key: int) -> Optional[Dict[str, Any]]:
        row = await self._fetchone(f"SELECT payload FROM {self.table_name} WHERE id = %s", (key,))
        if row is None:
            return None
        payload = row[0]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return payload or {}

    @staticmethod
    def _promoted_values(payload: Dict[str, Any]) -> List[Any]:
        return [payload.get(column) for column in PROMOTED_COLUMNS] + [payload.get("fulltext_content")]

    def upsert_sql(self) -> str:
        columns = ["id", "vector", "payload", *PROMOTED_COLUMNS, "fulltext_content"]
        if self.native_vector:
            columns.append("embedding")
        placeholders = ", ".join(["%s"] * len(columns))
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns if c != "id")
        return (
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT (id) DO UPDATE SET {updates}"
        )

    async def _write_record(self, key: int, vector: List[float], payload: Dict[str, Any]) -> None:
        if self.vector_extension and not self.native_vector and self.embedding_dims:
            await self._ensure_vector_column(self.embedding_dims)
        params: List[Any] = [key, json.dumps(vector), Jsonb(payload)] + self._promoted_values(payload)
        if self.native_vector:
            params.append(np.asarray(vector, dtype=np.float32))
        await self._execute(self.upsert_sql(), params)

    async def _write_payload(self, key: int, payload: Dict[str, Any]) -> bool:
        assignments = ", ".join(f"{c} = %s" for c in (*PROMOTED_COLUMNS, "fulltext_content"))
        sql = f"UPDATE {self.table_name} SET payload = %s, {assignments} WHERE id = %s"
        count = await self._execute(sql, [Jsonb(payload)] + self._promoted_values(payload) + [key])
        return count > 0

    async def _delete_row(self, key: int) -> bool:
        return await self._execute(f"DELETE FROM {self.table_name} WHERE id = %s", (key,)) > 0

    async def _delete_scope(self, user_id, agent_id, run_id) -> int:
        compiled = self.compiler.compile(None, user_id, agent_id, run_id)
        count = await self._execute(f"DELETE FROM {self.table_name} WHERE 1=1{compiled.where_sql()}", compiled.params)
        return max(count, 0)

    async def _list_rows(self, user_id, agent_id, run_id, offset: int, limit: int) -> List[MemoryRecord]:
        compiled = self.compiler.compile(None, user_id, agent_id, run_id)
        sql = (
            f"SELECT id, payload FROM {self.table_name} WHERE 1=1{compiled.where_sql()} "
            "ORDER BY id LIMIT %s OFFSET %s"
        )
        rows = await self._fetchall(sql, compiled.params + [limit, offset])
        return [MemoryRecord.from_payload(row[0], row[1]) for row in rows]

    def vector_search_sql(self, where_sql: str) -> str:
        operator, _ = METRICS[self.metric]
        return (
            f"SELECT id, payload, embedding {operator} %s AS distance FROM {self.table_name} "
            f"WHERE embedding IS NOT NULL{where_sql} ORDER BY distance LIMIT %s"
        )

    async def _vector_search(self, query_embedding, top_k, user_id, agent_id, run_id, filters) -> List[OutputData]:
        compiled = self.compiler.compile(filters, user_id, agent_id, run_id)
        if self.native_vector:
            try:
                query = np.asarray(query_embedding, dtype=np.float32)
                rows = await self._fetchall(
                    self.vector_search_sql(compiled.where_sql()),
                    [query] + compiled.params + [top_k],
                )
                return [
                    OutputData(record=MemoryRecord.from_payload(row[0], row[1]),
                               score=distance_to_score(self.metric, row[2]))
                    for row in rows
                ]
            except psycopg.Error as e:
                logger.warning(f"PGVectorStore: Server-side distance failed, scanning in-process: {e}")
        return await self._scan_search(query_embedding, top_k, compiled)

    async def _scan_search(self, query_embedding, top_k, compiled) -> List[OutputData]:
        """Score every candidate row in-process."""
        rows = await self._fetchall(
            f"SELECT id, vector, payload FROM {self.table_name} WHERE 1=1{compiled.where_sql()}",
            compiled.params,
        )
        results = []
        for row in rows:
            vector = json.loads(row[1]) if row[1] else []
            results.append(OutputData(record=MemoryRecord.from_payload(row[0], row[2]),
                                      score=cosine_similarity(query_embedding, vector)))
        results.sort(key=lambda item: item.score, reverse=True)
        return results[:top_k]

    def fulltext_search_sql(self, where_sql: str) -> str:
        vector_expr = tsvector_expr(self.fulltext_config)
        query_expr = tsquery_expr(self.fulltext_config)
        return (
            f"SELECT id, payload, ts_rank({vector_expr}, {query_expr}) AS rank FROM {self.table_name} "
            f"WHERE {vector_expr} @@ {query_expr}{where_sql} ORDER BY rank DESC LIMIT %s"
        )

    async def _fulltext_search(self, query_text: str, limit: int, user_id, agent_id, run_id,
                               filters) -> List[OutputData]:
        compiled = self.compiler.compile(filters, user_id, agent_id, run_id)
        if self.fulltext_indexed:
            try:
                rows = await self._fetchall(
                    self.fulltext_search_sql(compiled.where_sql()),
                    [query_text, query_text] + compiled.params + [limit],
                )
                return [
                    OutputData(record=MemoryRecord.from_payload(row[0], row[1]), score=float(row[2] or 0.0))
                    for row in rows
                ]
            except psycopg.Error as e:
                logger.warning(f"PGVectorStore: Full-text query failed, using substring scan: {e}")

        rows = await self._fetchall(
            f"SELECT id, payload FROM {self.table_name} "
            f"WHERE fulltext_content ILIKE %s{compiled.where_sql()} ORDER BY id LIMIT %s",
            [f"%{escape_like(query_text)}%"] + compiled.params + [limit],
        )
        return [OutputData(record=MemoryRecord.from_payload(row[0], row[1]), score=1.0) for row in rows]

    async def search_hybrid(self, query_text: str, query_embedding: Sequence[float], top_k: int = 5,
                            user_id: Optional[str] = None, agent_id: Optional[str] = None,
                            run_id: Optional[str] = None,
                            filters: Optional[Dict[str, Any]] = None) -> List[OutputData]:
        if not self.hybrid_enabled or not query_text or not query_text.strip():
            return await self.search(query_embedding, top_k, user_id, agent_id, run_id, filters)

        await self.ensure_initialized()
        k = top_k if top_k and top_k > 0 else 5
        candidate_k = k * 2

        vector_results, fts_results = await asyncio.gather(
            self._vector_search(query_embedding, candidate_k, user_id, agent_id, run_id, filters),
            self._fulltext_search(query_text, candidate_k, user_id, agent_id, run_id, filters),
            return_exceptions=True,
        )
        if isinstance(vector_results, Exception):
            logger.warning(f"PGVectorStore: Vector branch of hybrid search failed: {vector_results}")
            vector_results = []
        if isinstance(fts_results, Exception):
            logger.warning(f"PGVectorStore: Full-text branch of hybrid search failed: {fts_results}")
            fts_results = []

        fused = self.fusion.fuse(vector_results, fts_results, k)
        self.metrics["search_count"] += 1
        await self._touch(fused)
        return fused

    async def _append_history(self, entry: HistoryEntry) -> None:
        await self._execute(
            f"INSERT INTO {HISTORY_TABLE} (id, memory_id, old_memory, new_memory, event, created_at, "
            "updated_at, is_deleted, actor_id, role) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)",
            (entry.id, entry.memory_id, entry.old_memory, entry.new_memory, entry.event, entry.created_at,
             entry.updated_at, 1 if entry.is_deleted else 0, entry.actor_id, entry.role),
        )

    async def _read_history(self, memory_id: str) -> List[HistoryEntry]:
        rows = await self._fetchall(
            f"SELECT id, memory_id, old_memory, new_memory, event, created_at, updated_at, is_deleted, "
            f"actor_id, role FROM {HISTORY_TABLE} WHERE memory_id = %s ORDER BY created_at, id",
            (memory_id,),
        )
        return [
            HistoryEntry(id=row[0], memory_id=row[1], old_memory=row[2], new_memory=row[3], event=row[4],
                         created_at=row[5], updated_at=row[6], is_deleted=bool(row[7]),
                         actor_id=row[8], role=row[9])
            for row in rows
        ]
