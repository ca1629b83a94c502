"""Memory orchestrator: the public add/search/get/update/delete API.

Inferred adds run a two-step model dialogue: facts are extracted from the
conversation, nearby memories are retrieved for each fact, and the model is
asked to decide per fact whether to add, update, delete or ignore. Existing
memories are shown to the model under temporary integer ids so that a
fabricated id can never address a real record.
"""

import asyncio
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from ..interfaces.embedder import ACTION_SEARCH, Embedder
from ..interfaces.graph_store import GraphStore
from ..interfaces.reranker import Reranker
from ..interfaces.vector_store import StorageError, VectorStoreInterface
from ..intelligence.manager import IntelligenceManager, attach_attributes, record_metadata_view, record_to_result
from ..intelligence.plugin import EbbinghausIntelligencePlugin, HookResult, IntelligentMemoryPlugin
from ..llm import JSON_OBJECT_FORMAT, LLMProvider, create_llm_provider
from ..llm.prompts import PromptManager
from ..models.memory import MemoryRecord, OutputData
from ..rag.encode import create_embedder
from ..rag.rerank import create_reranker
from ..store.adapter import StorageAdapter
from ..store.factory import GraphStoreFactory, VectorStoreFactory
from ..store.sub_adapter import SubStorageAdapter
from ..utils.config import MemoryConfig
from ..utils.errors import ValidationError
from ..utils.ids import SnowflakeIdGenerator
from ..utils.text import (
    message_contents,
    normalize_input,
    parse_json_object_loose,
    parse_messages_for_facts,
    to_iso,
)

MessageInput = Union[str, Dict[str, Any], List[Dict[str, Any]], None]

EVENT_ADD = "ADD"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
EVENT_NONE = "NONE"

# Unique existing memories shown to the model per inferred add
MAX_MERGE_CANDIDATES = 10
# Candidate widening factor when a reranker re-scores the retrieval
RERANK_WIDEN_FACTOR = 3


def _require_user(user_id: Optional[str]) -> None:
    if not user_id or not str(user_id).strip():
        raise ValidationError("user_id is required")


def _scope_filters(user_id: Optional[str], agent_id: Optional[str], run_id: Optional[str]) -> Dict[str, Any]:
    filters = {"user_id": user_id}
    if agent_id:
        filters["agent_id"] = agent_id
    if run_id:
        filters["run_id"] = run_id
    return filters


class Memory:
    """Persistent memory for AI agents.

    Every public operation is a coroutine. Collaborators may be injected
    directly; anything not injected is built from ``config``.
    """

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        vector_store: Optional[VectorStoreInterface] = None,
        embedder: Optional[Embedder] = None,
        llm: Optional[LLMProvider] = None,
        reranker: Optional[Reranker] = None,
        graph_store: Optional[GraphStore] = None,
        id_generator: Optional[SnowflakeIdGenerator] = None,
        plugin: Optional[IntelligentMemoryPlugin] = None,
    ):
        self.config = config or MemoryConfig()
        self.id_generator = id_generator or SnowflakeIdGenerator(
            datacenter_id=self.config.datacenter_id, worker_id=self.config.worker_id
        )

        self.embedder = embedder or create_embedder(self.config.embedder)
        self.vector_store = vector_store or VectorStoreFactory.create(self.config.vector_store, self.id_generator)
        self.reranker = reranker if reranker is not None else create_reranker(self.config.reranker)
        self.graph_store = graph_store if graph_store is not None else GraphStoreFactory.create(self.config.graph_store)
        self._llm = llm

        if self.config.sub_stores:
            self.storage = SubStorageAdapter(self.vector_store, self.embedder, self.id_generator)
            self._register_sub_stores()
        else:
            self.storage = StorageAdapter(self.vector_store, self.embedder, self.id_generator)

        self.plugin = plugin or EbbinghausIntelligencePlugin(self.config.intelligent_memory)
        self.intelligence = IntelligenceManager(self.config.intelligent_memory)
        self.prompts = PromptManager()

    @classmethod
    def from_config(cls, config: Optional[Union[MemoryConfig, Dict[str, Any]]] = None) -> "Memory":
        """Build a fully wired instance from a config object or mapping."""
        if not isinstance(config, MemoryConfig):
            config = MemoryConfig.from_dict(config)
        return cls(config=config)

    def _register_sub_stores(self) -> None:
        for sub_config in self.config.sub_stores:
            store = VectorStoreFactory.create(sub_config.vector_store, self.id_generator)
            sub_embedder = create_embedder(sub_config.embedder) if sub_config.embedder else None
            self.storage.register_sub_store(
                sub_config.name,
                sub_config.routing_filter,
                store,
                embedder=sub_embedder,
                ready=sub_config.ready,
            )

    @property
    def llm(self) -> LLMProvider:
        if self._llm is None:
            self._llm = create_llm_provider(self.config.llm)
        return self._llm

    async def initialize(self) -> None:
        """Open storage eagerly; otherwise stores initialize on first use."""
        await self.vector_store.ensure_initialized()

    async def close(self) -> None:
        await self.storage.close()

    # Add

    async def add(
        self,
        messages: MessageInput = None,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        filters: Optional[Dict[str, Any]] = None,
        infer: bool = True,
        memory_type: Optional[str] = None,
        prompt: Optional[str] = None,
        scope: Optional[str] = None,
        text: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store new memories.

        Args:
            messages: A string, one role-tagged message or a list of them
            user_id: Owner of the memories (required)
            agent_id: Optional agent scope
            run_id: Optional session scope
            metadata: Caller metadata stored with each memory; ``category`` is promoted
            filters: Extra routing context for candidate retrieval
            infer: Extract facts and merge them with existing memories via the LLM
            memory_type: Explicit memory type attribute
            prompt: Custom fact extraction prompt for this call
            scope: Optional visibility scope label
            text: Explicit content; wins over ``messages`` for non-inferred adds

        Returns:
            ``{"results": [...]}`` plus ``"relations"`` when a graph store is configured

        Raises:
            ValidationError: If user_id is blank or there is nothing to store
        """
        _require_user(user_id)
        has_messages = bool(normalize_input(None, messages).strip())

        if infer and has_messages:
            results = await self._intelligent_add(
                messages, user_id, agent_id, run_id, metadata, filters, memory_type, prompt, scope
            )
            graph_text = message_contents(messages)
        else:
            content = normalize_input(text, messages)
            if not content or not content.strip():
                raise ValidationError("Cannot store empty content")
            results = [await self._simple_add(
                content, user_id, agent_id, run_id, metadata, memory_type, scope, filters
            )]
            graph_text = text if text is not None and text.strip() else message_contents(messages)

        response: Dict[str, Any] = {"results": results}
        if self.graph_store is not None:
            response["relations"] = await self._graph_add(graph_text, _scope_filters(user_id, agent_id, run_id))
        return response

    async def _simple_add(self, content, user_id, agent_id, run_id, metadata, memory_type, scope,
                          filters=None) -> Dict[str, Any]:
        attributes = self.plugin.on_add(content, metadata)
        record = await self.storage.add_memory(
            content, user_id, agent_id, run_id, metadata, attributes, scope, memory_type, filters
        )
        return self._event_result(record, EVENT_ADD)

    async def _intelligent_add(self, messages, user_id, agent_id, run_id, metadata, filters,
                               memory_type, prompt, scope) -> List[Dict[str, Any]]:
        facts = await self._extract_facts(messages, prompt)
        if not facts:
            logger.debug("Memory: No facts extracted, nothing to add")
            return []

        context = dict(filters or {})
        context.update(metadata or {})
        candidates = await self._collect_candidates(facts, user_id, agent_id, run_id, filters, context)

        # Temporary ids hide real identifiers from the model
        temp_to_real: Dict[str, str] = {}
        old_memory = []
        for index, record in enumerate(candidates):
            temp_to_real[str(index)] = record.id
            old_memory.append({"id": str(index), "text": record.content})

        decisions = await self._decide_actions(old_memory, facts)

        results: List[Dict[str, Any]] = []
        counts = {EVENT_ADD: 0, EVENT_UPDATE: 0, EVENT_DELETE: 0, EVENT_NONE: 0}
        for decision in decisions:
            if not isinstance(decision, dict):
                continue
            event = str(decision.get("event") or EVENT_NONE).strip().upper()
            memory_text = decision.get("text")
            if event == EVENT_ADD:
                if not memory_text or not str(memory_text).strip():
                    continue
                results.append(await self._simple_add(
                    str(memory_text), user_id, agent_id, run_id, metadata, memory_type, scope, filters
                ))
            elif event == EVENT_UPDATE:
                if not memory_text or not str(memory_text).strip():
                    continue
                result = await self._apply_update(
                    temp_to_real, decision, str(memory_text), user_id, agent_id, metadata
                )
                if result is None:
                    continue
                results.append(result)
            elif event == EVENT_DELETE:
                result = await self._apply_delete(temp_to_real, decision, user_id, agent_id)
                if result is None:
                    continue
                results.append(result)
            else:
                event = EVENT_NONE
            counts[event] += 1

        logger.debug(f"Memory: Applied merge decisions {counts}")
        return results

    async def _extract_facts(self, messages: MessageInput, prompt: Optional[str]) -> List[str]:
        system_prompt = self.prompts.fact_retrieval_prompt(prompt or self.config.custom_fact_extraction_prompt)
        conversation = parse_messages_for_facts(messages)
        raw = await self.llm.generate_response(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": f"Input:\n{conversation}"},
            ],
            response_format=JSON_OBJECT_FORMAT,
        )
        facts = parse_json_object_loose(raw).get("facts")
        if not isinstance(facts, list):
            return []
        return [str(fact) for fact in facts if fact is not None and str(fact).strip()]

    async def _collect_candidates(self, facts, user_id, agent_id, run_id, filters, context) -> List[MemoryRecord]:
        """Retrieve unique existing memories near any of the facts, first seen first.

        Only the request filters constrain candidates; ``context`` (filters plus
        metadata) picks the sub-store.
        """
        top_k = max(1, self.config.infer_top_k)
        fetch = max(top_k, top_k * RERANK_WIDEN_FACTOR) if self.reranker is not None else top_k

        unique: Dict[str, MemoryRecord] = {}
        for fact in facts:
            if len(unique) >= MAX_MERGE_CANDIDATES:
                break
            embedding = await self.storage.embed(fact, ACTION_SEARCH, context)
            hits = await self.storage.search_memories(
                embedding, fetch, user_id, agent_id, run_id, filters or None,
                query_text=fact, routing=context or None,
            )
            hits = await self._apply_rerank(fact, hits, top_k)
            for hit in hits:
                if len(unique) >= MAX_MERGE_CANDIDATES:
                    break
                if hit.id and hit.id not in unique:
                    unique[hit.id] = hit.record
        return list(unique.values())

    async def _decide_actions(self, old_memory: List[Dict[str, Any]], facts: List[str]) -> List[Dict[str, Any]]:
        prompt = self.prompts.memory_update_prompt(old_memory, facts, self.config.custom_update_memory_prompt)
        raw = await self.llm.generate_response(
            [{"role": "user", "content": prompt}],
            response_format=JSON_OBJECT_FORMAT,
        )
        decisions = parse_json_object_loose(raw).get("memory")
        if not isinstance(decisions, list):
            logger.warning("Memory: Merge response carried no decision list")
            return []
        return decisions

    async def _resolve_existing(self, temp_to_real: Dict[str, str], decision: Dict[str, Any],
                                user_id: str, agent_id: Optional[str]) -> Optional[MemoryRecord]:
        """Map a model-provided id to a record that still exists in scope, else None."""
        raw_id = decision.get("id")
        if raw_id is None or not str(raw_id).strip():
            return None
        real_id = temp_to_real.get(str(raw_id).strip(), str(raw_id).strip())
        record = await self.storage.get_memory(real_id, user_id, agent_id)
        if record is None:
            logger.warning(f"Memory: Ignoring {decision.get('event')} for unknown memory id {raw_id}")
        return record

    async def _apply_update(self, temp_to_real, decision, memory_text, user_id, agent_id,
                            metadata) -> Optional[Dict[str, Any]]:
        existing = await self._resolve_existing(temp_to_real, decision, user_id, agent_id)
        if existing is None:
            return None
        previous = existing.content

        refreshed = self.plugin.on_add(memory_text, metadata)
        if refreshed:
            await self.storage.update_payload_fields(existing.id, refreshed)

        updated = await self.storage.update_memory(existing.id, memory_text, user_id, agent_id, metadata)
        if updated is None:
            return None
        result = self._event_result(updated, EVENT_UPDATE)
        result["previous_memory"] = decision.get("old_memory") or previous
        return result

    async def _apply_delete(self, temp_to_real, decision, user_id, agent_id) -> Optional[Dict[str, Any]]:
        existing = await self._resolve_existing(temp_to_real, decision, user_id, agent_id)
        if existing is None:
            return None
        if not await self.storage.delete_memory(existing.id, user_id, agent_id):
            return None
        return self._event_result(existing, EVENT_DELETE)

    @staticmethod
    def _event_result(record: MemoryRecord, event: str) -> Dict[str, Any]:
        result = {
            "id": record.id,
            "memory": record.content,
            "event": event,
            "user_id": record.user_id,
            "agent_id": record.agent_id,
            "run_id": record.run_id,
            "metadata": record_metadata_view(record),
            "created_at": to_iso(record.created_at),
        }
        return attach_attributes(result, record)

    # Search

    async def search(
        self,
        query: str,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
        limit: int = 5,
        filters: Optional[Dict[str, Any]] = None,
        threshold: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Search memories by meaning (and by keywords on hybrid backends).

        Args:
            query: Query text
            user_id: Owner scope (required)
            agent_id: Optional agent scope
            run_id: Optional session scope
            limit: Maximum number of results
            filters: Metadata filter expression; also used for sub-store routing
            threshold: Drop results scoring below this value

        Returns:
            ``{"results": [...]}`` sorted by score descending, plus ``"relations"``
            when a graph store is configured

        Raises:
            ValidationError: If query or user_id is blank
        """
        if not query or not query.strip():
            raise ValidationError("query is required")
        _require_user(user_id)
        limit = limit if limit and limit > 0 else 5

        if self.graph_store is not None:
            memories, relations = await asyncio.gather(
                self._search_vector_store(query, user_id, agent_id, run_id, limit, filters, threshold),
                self._graph_search(query, _scope_filters(user_id, agent_id, run_id), limit),
            )
            return {"results": memories, "relations": relations}
        memories = await self._search_vector_store(query, user_id, agent_id, run_id, limit, filters, threshold)
        return {"results": memories}

    async def _search_vector_store(self, query, user_id, agent_id, run_id, limit, filters,
                                   threshold) -> List[Dict[str, Any]]:
        fetch = max(limit, limit * RERANK_WIDEN_FACTOR) if self.reranker is not None else limit
        embedding = await self.storage.embed(query, ACTION_SEARCH, filters)
        hits = await self.storage.search_memories(
            embedding, fetch, user_id, agent_id, run_id, filters, query_text=query
        )
        hits = await self._apply_rerank(query, hits, limit)

        hook = self.plugin.on_search([hit.record for hit in hits])
        forgotten = await self._apply_hook_result(hook, user_id, agent_id)
        if forgotten:
            hits = [hit for hit in hits if hit.id not in forgotten]

        results = self.intelligence.post_process(hits)
        if threshold is not None:
            results = [item for item in results if item.get("score") is not None and item["score"] >= threshold]
        return results[:limit]

    async def _apply_rerank(self, query: str, hits: List[OutputData], limit: int) -> List[OutputData]:
        """Re-score hits with the reranker, keeping the retrieval score as ``_fusion_score``."""
        if self.reranker is None or not hits:
            return hits[:limit]
        top_n = limit
        configured = self.config.reranker.top_n
        if configured and configured > 0:
            top_n = min(limit, configured)

        ranked = await self.reranker.rerank(query, [hit.record.content for hit in hits], top_n)
        reranked = []
        for item in ranked:
            if item.index < 0 or item.index >= len(hits):
                continue
            hit = hits[item.index]
            record = hit.record.copy()
            record.attributes["_fusion_score"] = hit.score
            record.attributes["_rerank_score"] = item.score
            reranked.append(OutputData(record=record, score=item.score))
        return reranked

    async def _apply_hook_result(self, hook: HookResult, user_id: Optional[str],
                                 agent_id: Optional[str]) -> List[str]:
        """Apply lifecycle patches and deletions; returns the ids actually deleted."""
        if hook is None or hook.empty:
            return []
        deleted = []
        for memory_id, fields in hook.updates:
            try:
                await self.storage.update_payload_fields(memory_id, fields)
            except StorageError as e:
                logger.warning(f"Memory: Failed to apply lifecycle update to {memory_id}: {e}")
        for memory_id in hook.deletes:
            try:
                if await self.storage.delete_memory(memory_id, user_id, agent_id):
                    deleted.append(memory_id)
            except StorageError as e:
                logger.warning(f"Memory: Failed to forget memory {memory_id}: {e}")
        return deleted

    # Id-addressed operations

    async def get(self, memory_id: str, user_id: Optional[str] = None,
                  agent_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Fetch one memory; returns None when absent, out of scope or just forgotten."""
        _require_user(user_id)
        if not memory_id or not str(memory_id).strip():
            return None
        record = await self.storage.get_memory(memory_id, user_id, agent_id)
        if record is None:
            return None
        forgotten = await self._apply_hook_result(self.plugin.on_get(record), user_id, agent_id)
        if record.id in forgotten:
            return None
        return record_to_result(record)

    async def update(
        self,
        memory_id: str,
        content: Optional[str] = None,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Change content and/or metadata of an existing memory.

        Raises:
            ValidationError: If user_id is blank or neither content nor metadata is given
        """
        _require_user(user_id)
        if (content is None or not content.strip()) and metadata is None:
            raise ValidationError("Nothing to update: provide content or metadata")
        record = await self.storage.update_memory(memory_id, content, user_id, agent_id, metadata)
        return record_to_result(record) if record else None

    async def delete(self, memory_id: str, user_id: Optional[str] = None, agent_id: Optional[str] = None) -> bool:
        _require_user(user_id)
        if not memory_id or not str(memory_id).strip():
            return False
        return await self.storage.delete_memory(memory_id, user_id, agent_id)

    async def history(self, memory_id: str) -> List[Dict[str, Any]]:
        """Audit trail of a memory, oldest first."""
        entries = await self.storage.history(memory_id)
        return [entry.to_dict() for entry in entries]

    # Scope-wide operations

    async def get_all(
        self,
        user_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """List memories of the main store in id order."""
        _require_user(user_id)
        records = await self.storage.get_all_memories(user_id, agent_id, run_id, limit, offset)
        response: Dict[str, Any] = {"results": [record_to_result(record) for record in records]}
        if self.graph_store is not None:
            response["relations"] = await self._graph_call(
                "get_all", self.graph_store.get_all(_scope_filters(user_id, agent_id, run_id), limit)
            )
        return response

    async def delete_all(self, user_id: Optional[str] = None, agent_id: Optional[str] = None,
                         run_id: Optional[str] = None) -> int:
        """Delete every main-store memory in the scope; returns the count removed."""
        _require_user(user_id)
        deleted = await self.storage.clear_memories(user_id, agent_id, run_id)
        if self.graph_store is not None:
            await self._graph_call("delete_all", self.graph_store.delete_all(_scope_filters(user_id, agent_id, run_id)))
        logger.info(f"Memory: Deleted {deleted} memories for user {user_id}")
        return deleted

    async def reset(self) -> int:
        """Drop every memory in the main store regardless of scope."""
        deleted = await self.storage.clear_memories()
        if self.graph_store is not None:
            await self._graph_call("reset", self.graph_store.reset())
        logger.info(f"Memory: Reset removed {deleted} memories")
        return deleted

    # Graph store, isolated from the memory path

    async def _graph_call(self, operation: str, awaitable) -> Any:
        try:
            return await awaitable
        except Exception as e:
            logger.warning(f"Memory: Graph store {operation} failed: {e}")
            return None

    async def _graph_add(self, text: str, filters: Dict[str, Any]) -> Dict[str, Any]:
        if not text or not text.strip():
            return {"deleted_entities": [], "added_entities": []}
        result = await self._graph_call("add", self.graph_store.add(text, filters))
        return result or {"deleted_entities": [], "added_entities": []}

    async def _graph_search(self, query: str, filters: Dict[str, Any], limit: int) -> List[Dict[str, Any]]:
        result = await self._graph_call("search", self.graph_store.search(query, filters, limit))
        return result or []

    def __repr__(self) -> str:
        return (
            f"Memory(store={type(self.vector_store).__name__}, "
            f"embedder={type(self.embedder).__name__}, "
            f"reranker={type(self.reranker).__name__ if self.reranker else None})"
        )

