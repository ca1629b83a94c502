"""Tests for MemoryConfig loading from dicts, YAML and the environment."""

import os

import pytest
from omegaconf import OmegaConf

from powermem_core.utils.config import MemoryConfig, SubStoreConfig, VectorStoreConfig
from powermem_core.utils.errors import ConfigurationError


class TestMemoryConfigDefaults:
    def test_defaults(self):
        config = MemoryConfig()
        assert config.vector_store.provider == "sqlite"
        assert config.vector_store.database_path == "./data/powermem.db"
        assert config.vector_store.collection_name == "memories"
        assert config.vector_store.metric_type == "cosine"
        assert config.vector_store.rrf_k == 60
        assert config.vector_store.vector_weight == 0.5
        assert config.intelligent_memory.decay_rate == 0.1
        assert config.intelligent_memory.working_threshold == 0.3
        assert config.reranker.enabled is False
        assert config.graph_store.enabled is False
        assert config.sub_stores == []


class TestMemoryConfigFromDict:
    def test_partial_dict_merges_over_defaults(self):
        config = MemoryConfig.from_dict({
            "vector_store": {"provider": "pgvector", "host": "db", "embedding_model_dims": 8},
            "intelligent_memory": {"decay_rate": 0.5},
        })
        assert isinstance(config, MemoryConfig)
        assert isinstance(config.vector_store, VectorStoreConfig)
        assert config.vector_store.provider == "pgvector"
        assert config.vector_store.host == "db"
        assert config.vector_store.port == 5432
        assert config.intelligent_memory.decay_rate == 0.5

    def test_accepts_dictconfig(self):
        config = MemoryConfig.from_dict(OmegaConf.create({"infer_top_k": 7}))
        assert config.infer_top_k == 7

    def test_sub_stores(self):
        config = MemoryConfig.from_dict({
            "sub_stores": [{"name": "work", "routing_filter": {"category": "work"}}],
        })
        assert len(config.sub_stores) == 1
        assert isinstance(config.sub_stores[0], SubStoreConfig)
        assert config.sub_stores[0].routing_filter == {"category": "work"}
        assert config.sub_stores[0].ready is True

    def test_unknown_key_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            MemoryConfig.from_dict({"vector_store": {"no_such_option": 1}})

    def test_wrong_type_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            MemoryConfig.from_dict({"infer_top_k": "many"})

    def test_to_dict_round_trip(self):
        config = MemoryConfig.from_dict({"vector_store": {"collection_name": "notes"}})
        again = MemoryConfig.from_dict(config.to_dict())
        assert again.vector_store.collection_name == "notes"


class TestMemoryConfigFromFiles:
    def test_from_yaml(self, temp_dir):
        path = temp_dir / "memory.yaml"
        path.write_text(
            "vector_store:\n"
            "  provider: sqlite\n"
            "  database_path: /tmp/x.db\n"
            "reranker:\n"
            "  enabled: true\n"
            "  top_n: 3\n"
        )
        config = MemoryConfig.from_yaml(str(path))
        assert config.vector_store.database_path == "/tmp/x.db"
        assert config.reranker.enabled is True
        assert config.reranker.top_n == 3

    def test_from_env(self, temp_dir, monkeypatch):
        for name in ("POWERMEM_VECTOR_STORE", "POSTGRES_HOST", "POWERMEM_EMBEDDING_DIMS",
                     "POWERMEM_HYBRID_SEARCH", "POWERMEM_DECAY_RATE"):
            monkeypatch.delenv(name, raising=False)
        env_file = temp_dir / ".env"
        env_file.write_text(
            "POWERMEM_VECTOR_STORE=pgvector\n"
            "POSTGRES_HOST=pg.internal\n"
            "POWERMEM_EMBEDDING_DIMS=384\n"
            "POWERMEM_HYBRID_SEARCH=false\n"
        )
        monkeypatch.setenv("POWERMEM_DECAY_RATE", "0.2")

        try:
            config = MemoryConfig.from_env(dotenv_path=str(env_file))
        finally:
            for name in ("POWERMEM_VECTOR_STORE", "POSTGRES_HOST", "POWERMEM_EMBEDDING_DIMS", "POWERMEM_HYBRID_SEARCH"):
                os.environ.pop(name, None)

        assert config.vector_store.provider == "pgvector"
        assert config.vector_store.host == "pg.internal"
        assert config.vector_store.embedding_model_dims == 384
        assert config.embedder.embedding_dims == 384
        assert config.vector_store.hybrid_search is False
        assert config.intelligent_memory.decay_rate == 0.2
