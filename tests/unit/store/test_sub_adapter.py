"""Tests for routing across named sub-stores."""

import pytest

from powermem_core.store.sub_adapter import SubStorageAdapter, routing_filter_matches
from powermem_core.store.vector_store.sqlite_store import SQLiteVectorStore
from powermem_core.utils.config import VectorStoreConfig
from tests.mocks.embedder import HashingEmbedder


def memory_store(id_generator, name):
    return SQLiteVectorStore(VectorStoreConfig(database_path=":memory:", collection_name=name), id_generator)


@pytest.fixture
def main_store(id_generator):
    return memory_store(id_generator, "main_memories")


@pytest.fixture
def work_store(id_generator):
    return memory_store(id_generator, "work_memories")


@pytest.fixture
def adapter(main_store, work_store, embedder, id_generator):
    adapter = SubStorageAdapter(main_store, embedder, id_generator)
    adapter.register_sub_store("work", {"category": "work"}, work_store)
    return adapter


class TestRoutingFilterMatches:
    def test_all_pairs_must_match(self):
        assert routing_filter_matches({"category": "work", "team": "a"}, {"category": "work", "team": "a", "x": 1})
        assert not routing_filter_matches({"category": "work", "team": "a"}, {"category": "work"})

    def test_keys_are_case_insensitive_values_compared_as_strings(self):
        assert routing_filter_matches({"Priority": 1}, {"priority": "1"})

    def test_empty_filter_or_context_never_matches(self):
        assert not routing_filter_matches({}, {"category": "work"})
        assert not routing_filter_matches({"category": "work"}, None)

    def test_null_expected_value(self):
        assert routing_filter_matches({"team": None}, {"team": None})
        assert not routing_filter_matches({"team": None}, {"team": "a"})


class TestSubStorageAdapter:
    def test_registration(self, adapter, work_store):
        adapter.register_sub_store("  ", {"x": 1}, work_store)
        assert adapter.list_sub_stores() == ["work"]
        assert adapter.is_sub_store_ready("work")
        assert adapter.get_target_store_name({"category": "work"}) == "work"
        assert adapter.get_target_store_name({"category": "home"}) is None

    def test_first_registered_match_wins(self, adapter, id_generator):
        adapter.register_sub_store("work-too", {"category": "work"}, memory_store(id_generator, "other"))
        assert adapter.route({"category": "work"}).name == "work"

    @pytest.mark.asyncio
    async def test_matching_write_lands_in_sub_store(self, adapter, main_store, work_store):
        record = await adapter.add_memory("Quarterly report due Friday", "alice", metadata={"category": "work"})

        assert await work_store.get(record.id) is not None
        assert await main_store.get(record.id) is None
        # Listing covers the main store only
        assert await adapter.get_all_memories("alice") == []
        # Id lookups probe the sub-stores
        assert (await adapter.get_memory(record.id, "alice")).content == "Quarterly report due Friday"

    @pytest.mark.asyncio
    async def test_request_filters_route_writes(self, adapter, main_store, work_store):
        record = await adapter.add_memory("Standup moved to ten", "alice", filters={"category": "work"})

        assert await work_store.get(record.id) is not None
        assert await main_store.get(record.id) is None
        assert record.category is None

    @pytest.mark.asyncio
    async def test_search_routes_on_filters(self, adapter, embedder):
        work = await adapter.add_memory("Quarterly report due Friday", "alice", metadata={"category": "work"})
        await adapter.add_memory("Quarterly report for the book club", "alice")

        query = await embedder.embed("quarterly report")
        routed = await adapter.search_memories(query, 5, user_id="alice", filters={"category": "work"})
        assert [r.id for r in routed] == [work.id]

        unrouted = await adapter.search_memories(query, 5, user_id="alice")
        assert work.id not in [r.id for r in unrouted]

    @pytest.mark.asyncio
    async def test_routing_context_picks_store_without_filtering(self, adapter, embedder):
        work = await adapter.add_memory("Quarterly report due Friday", "alice",
                                        metadata={"category": "work", "turn": 1})

        query = await embedder.embed("quarterly report")
        hits = await adapter.search_memories(
            query, 5, user_id="alice", routing={"category": "work", "turn": 2}
        )

        assert [r.id for r in hits] == [work.id]

    @pytest.mark.asyncio
    async def test_update_and_delete_reach_sub_store(self, adapter, work_store):
        record = await adapter.add_memory("Standup at nine", "alice", metadata={"category": "work"})

        updated = await adapter.update_memory(record.id, "Standup at ten", "alice")
        assert updated.content == "Standup at ten"
        assert (await work_store.get(record.id)).content == "Standup at ten"

        assert await adapter.delete_memory(record.id, "alice") is True
        assert await work_store.get(record.id) is None

    @pytest.mark.asyncio
    async def test_not_ready_sub_store_is_skipped_for_writes_but_still_readable(
            self, adapter, main_store, work_store):
        before = await adapter.add_memory("Standup at nine", "alice", metadata={"category": "work"})

        adapter.set_sub_store_ready("work", False)
        assert not adapter.is_sub_store_ready("work")
        after = await adapter.add_memory("Retro on Thursday", "alice", metadata={"category": "work"})

        assert await main_store.get(after.id) is not None
        assert await work_store.get(after.id) is None
        assert (await adapter.get_memory(before.id, "alice")).content == "Standup at nine"

    @pytest.mark.asyncio
    async def test_sub_store_embedder_is_used(self, main_store, embedder, id_generator):
        sub_embedder = HashingEmbedder(dims=32)
        adapter = SubStorageAdapter(main_store, embedder, id_generator)
        adapter.register_sub_store("notes", {"kind": "note"}, memory_store(id_generator, "notes"), sub_embedder)

        await adapter.add_memory("Buy milk", "alice", metadata={"kind": "note"})

        assert sub_embedder.calls == [("Buy milk", "add")]
        assert embedder.calls == []
