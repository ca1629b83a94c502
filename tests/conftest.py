"""Pytest configuration and shared fixtures for powermem_core tests."""

import os
import shutil
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from powermem_core.memory import Memory  # noqa: E402
from powermem_core.models.memory import MemoryRecord  # noqa: E402
from powermem_core.store.vector_store.sqlite_store import SQLiteVectorStore  # noqa: E402
from powermem_core.utils.config import (  # noqa: E402
    IntelligentMemoryConfig,
    MemoryConfig,
    VectorStoreConfig,
)
from powermem_core.utils.ids import SnowflakeIdGenerator  # noqa: E402
from tests.mocks.embedder import HashingEmbedder  # noqa: E402
from tests.mocks.llm.mock_provider import ScriptedProvider  # noqa: E402


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def id_generator():
    return SnowflakeIdGenerator()


@pytest.fixture
def embedder():
    return HashingEmbedder(dims=64)


@pytest.fixture
def scripted_llm():
    return ScriptedProvider()


@pytest.fixture
def sqlite_config():
    return VectorStoreConfig(provider="sqlite", database_path=":memory:", collection_name="memories")


@pytest.fixture
def sqlite_store(sqlite_config, id_generator):
    """In-memory SQLite store; initialized lazily on first use."""
    return SQLiteVectorStore(sqlite_config, id_generator)


@pytest.fixture
def memory_config(sqlite_config):
    return MemoryConfig(vector_store=sqlite_config, intelligent_memory=IntelligentMemoryConfig())


@pytest.fixture
def memory(memory_config, sqlite_store, embedder, scripted_llm, id_generator):
    """Memory wired to an in-memory SQLite store, hashing embedder and scripted LLM."""
    return Memory(
        config=memory_config,
        vector_store=sqlite_store,
        embedder=embedder,
        llm=scripted_llm,
        id_generator=id_generator,
    )


@pytest.fixture
def make_record(id_generator):
    """Factory for MemoryRecord instances with sensible defaults."""
    def _make(content="User likes green tea", user_id="alice", **kwargs):
        now = kwargs.pop("now", datetime.now(timezone.utc))
        return MemoryRecord(
            id=kwargs.pop("id", id_generator.next_id()),
            content=content,
            user_id=user_id,
            created_at=kwargs.pop("created_at", now),
            updated_at=kwargs.pop("updated_at", now),
            **kwargs,
        )
    return _make


@pytest.fixture
def hours_ago():
    """Return a UTC datetime the given number of hours in the past."""
    def _ago(hours: float) -> datetime:
        return datetime.now(timezone.utc) - timedelta(hours=hours)
    return _ago
