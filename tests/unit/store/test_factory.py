"""Tests for store factories."""

import pytest

from powermem_core.store.factory import GraphStoreFactory, VectorStoreFactory
from powermem_core.store.graph_store.memory_store import InMemoryGraphStore
from powermem_core.store.vector_store.pgvector_store import PGVectorStore
from powermem_core.store.vector_store.sqlite_store import SQLiteVectorStore
from powermem_core.utils.config import GraphStoreConfig, VectorStoreConfig
from powermem_core.utils.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clear_factory_cache():
    VectorStoreFactory.clear_cache()
    yield
    VectorStoreFactory.clear_cache()


class TestVectorStoreFactory:
    """Provider resolution and instance sharing."""

    def test_default_is_sqlite(self):
        store = VectorStoreFactory.create(VectorStoreConfig(database_path=":memory:"))
        assert isinstance(store, SQLiteVectorStore)

    @pytest.mark.parametrize("provider", ["pgvector", "Postgres", " postgresql "])
    def test_postgres_aliases(self, provider):
        store = VectorStoreFactory.create(VectorStoreConfig(provider=provider))
        assert isinstance(store, PGVectorStore)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError) as exc_info:
            VectorStoreFactory.create(VectorStoreConfig(provider="faiss"))
        assert "faiss" in str(exc_info.value)

    def test_instances_are_fresh_by_default(self):
        config = VectorStoreConfig(database_path=":memory:")
        assert VectorStoreFactory.create(config) is not VectorStoreFactory.create(config)

    def test_shared_instances_are_reused_per_location(self):
        config = VectorStoreConfig(database_path=":memory:", collection_name="a")
        other = VectorStoreConfig(database_path=":memory:", collection_name="b")

        first = VectorStoreFactory.create(config, shared=True)

        assert VectorStoreFactory.create(config, shared=True) is first
        assert VectorStoreFactory.create(other, shared=True) is not first

    def test_stable_key_ignores_none(self):
        key = VectorStoreFactory._generate_stable_key(b=2, a=1, c=None)
        assert key == "a=1|||b=2"


class TestGraphStoreFactory:
    def test_disabled_returns_none(self):
        assert GraphStoreFactory.create(None) is None
        assert GraphStoreFactory.create(GraphStoreConfig(enabled=False)) is None

    def test_memory_provider(self):
        store = GraphStoreFactory.create(GraphStoreConfig(enabled=True, provider="In-Memory"))
        assert isinstance(store, InMemoryGraphStore)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            GraphStoreFactory.create(GraphStoreConfig(enabled=True, provider="neo4j"))
