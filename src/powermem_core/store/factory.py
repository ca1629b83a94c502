"""Store factories keyed on provider strings."""

from typing import Dict, Optional

from loguru import logger

from ..interfaces.graph_store import GraphStore
from ..utils.config import GraphStoreConfig, VectorStoreConfig
from ..utils.errors import ConfigurationError
from ..utils.ids import SnowflakeIdGenerator
from .graph_store.memory_store import InMemoryGraphStore
from .vector_store.base import VectorStore
from .vector_store.pgvector_store import PGVectorStore
from .vector_store.sqlite_store import SQLiteVectorStore

VECTOR_STORE_PROVIDERS = {
    "sqlite": SQLiteVectorStore,
    "pgvector": PGVectorStore,
    "postgres": PGVectorStore,
    "postgresql": PGVectorStore,
}

GRAPH_STORE_PROVIDERS = {
    "memory": InMemoryGraphStore,
    "inmemory": InMemoryGraphStore,
    "in-memory": InMemoryGraphStore,
}


class VectorStoreFactory:
    """Factory for vector store instances."""

    # Shared instances, only populated when callers ask for sharing
    _instances: Dict[str, VectorStore] = {}

    @classmethod
    def _generate_stable_key(cls, **kwargs) -> str:
        """Generate a stable cache key from the parameters that identify a store."""
        key_parts = []
        for param_name in sorted(kwargs.keys()):
            value = kwargs.get(param_name)
            if value is not None:
                key_parts.append(f"{param_name}={value}")
        return "|||".join(key_parts)

    @classmethod
    def create(
        cls,
        config: Optional[VectorStoreConfig] = None,
        id_generator: Optional[SnowflakeIdGenerator] = None,
        shared: bool = False,
    ) -> VectorStore:
        """Create a vector store for the configured provider.

        Args:
            config: Store configuration
            id_generator: Process-wide id generator
            shared: Reuse an existing instance with the same location

        Raises:
            ConfigurationError: If the provider is unknown
        """
        config = config or VectorStoreConfig()
        provider = (config.provider or "sqlite").strip().lower()
        store_class = VECTOR_STORE_PROVIDERS.get(provider)
        if store_class is None:
            raise ConfigurationError(
                f"Unsupported vector store provider '{config.provider}'. "
                f"Supported: {sorted(VECTOR_STORE_PROVIDERS)}",
                component="VectorStoreFactory",
            )

        stable_key = cls._generate_stable_key(
            provider=store_class.__name__,
            database_path=config.database_path if store_class is SQLiteVectorStore else None,
            host=config.host if store_class is PGVectorStore else None,
            port=config.port if store_class is PGVectorStore else None,
            database=config.database if store_class is PGVectorStore else None,
            collection=config.collection_name,
        )
        if shared and stable_key in cls._instances:
            logger.debug(f"VectorStoreFactory: Reusing store for {stable_key}")
            return cls._instances[stable_key]

        store = store_class(config, id_generator)
        logger.info(f"VectorStoreFactory: Created {store_class.__name__} for collection {config.collection_name}")
        if shared:
            cls._instances[stable_key] = store
        return store

    @classmethod
    def clear_cache(cls) -> None:
        cls._instances.clear()


class GraphStoreFactory:
    """Factory for graph store instances."""

    @classmethod
    def create(cls, config: Optional[GraphStoreConfig] = None) -> Optional[GraphStore]:
        """Create the configured graph store, or None when disabled."""
        if config is None or not config.enabled:
            return None
        provider = (config.provider or "memory").strip().lower()
        store_class = GRAPH_STORE_PROVIDERS.get(provider)
        if store_class is None:
            raise ConfigurationError(
                f"Unsupported graph store provider '{config.provider}'",
                component="GraphStoreFactory",
            )
        return store_class()
