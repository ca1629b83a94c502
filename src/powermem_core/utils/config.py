"""Typed configuration for the memory engine.

Configs are plain dataclasses so they can be built in code, and are also
OmegaConf structured configs so they can be loaded from dicts, YAML files
or ``.env`` driven environment variables with type checking.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from loguru import logger
from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from ..llm.config import LLMConfig
from .errors import ConfigurationError


@dataclass
class VectorStoreConfig:
    """Backend selection and connection settings for one vector store."""
    provider: str = "sqlite"
    collection_name: str = "memories"
    embedding_model_dims: Optional[int] = None

    # Embedded file store
    database_path: str = "./data/powermem.db"
    enable_wal: bool = True

    # Networked store
    host: str = "localhost"
    port: int = 5432
    database: str = "powermem"
    user: Optional[str] = None
    password: Optional[str] = None
    min_pool_size: int = 1
    max_pool_size: int = 10
    metric_type: str = "cosine"
    index_type: str = "HNSW"
    vector_index_name: str = "vidx"

    # Hybrid search; None means the backend default
    hybrid_search: Optional[bool] = None
    fusion_method: str = "rrf"
    rrf_k: int = 60
    vector_weight: float = 0.5
    fts_weight: float = 0.5
    fulltext_parser: Optional[str] = None

    timeout_seconds: int = 30


@dataclass
class EmbedderConfig:
    """Embedding provider settings."""
    provider: str = "openai"
    model: str = "text-embedding-3-small"
    embedding_dims: Optional[int] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 30.0
    # Prefixes for asymmetric models (e.g. e5: "query: " / "passage: ")
    query_prefix: str = ""
    passage_prefix: str = ""


@dataclass
class RerankConfig:
    """Reranker settings; disabled by default."""
    enabled: bool = False
    provider: str = "cross_encoder"
    model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"
    top_n: Optional[int] = None


@dataclass
class IntelligentMemoryConfig:
    """Forgetting-curve parameters."""
    enabled: bool = True
    initial_retention: float = 1.0
    decay_rate: float = 0.1
    reinforcement_factor: float = 0.3
    working_threshold: float = 0.3
    short_term_threshold: float = 0.6
    long_term_threshold: float = 0.8
    decay_enabled: bool = True


@dataclass
class GraphStoreConfig:
    """Graph store settings; disabled by default."""
    enabled: bool = False
    provider: str = "memory"


@dataclass
class SubStoreConfig:
    """A named physical store that receives records matching ``routing_filter``."""
    name: str = ""
    routing_filter: Dict[str, Any] = field(default_factory=dict)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    embedder: Optional[EmbedderConfig] = None
    ready: bool = True


@dataclass
class MemoryConfig:
    """Top-level configuration for :class:`powermem_core.memory.Memory`."""
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    embedder: EmbedderConfig = field(default_factory=EmbedderConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    reranker: RerankConfig = field(default_factory=RerankConfig)
    intelligent_memory: IntelligentMemoryConfig = field(default_factory=IntelligentMemoryConfig)
    graph_store: GraphStoreConfig = field(default_factory=GraphStoreConfig)
    sub_stores: List[SubStoreConfig] = field(default_factory=list)
    custom_fact_extraction_prompt: Optional[str] = None
    custom_update_memory_prompt: Optional[str] = None
    # Candidates retrieved per extracted fact during inferred adds
    infer_top_k: int = 5
    datacenter_id: int = 0
    worker_id: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Union[Dict[str, Any], DictConfig]] = None) -> "MemoryConfig":
        """Build a config from a plain dict or DictConfig, validating types.

        Raises:
            ConfigurationError: On unknown keys or values of the wrong type
        """
        if data is None:
            return cls()
        if isinstance(data, DictConfig):
            data = OmegaConf.to_container(data, resolve=True)
        try:
            merged = OmegaConf.merge(OmegaConf.structured(cls), data)
            return OmegaConf.to_object(merged)
        except OmegaConfBaseException as e:
            raise ConfigurationError(f"Invalid memory configuration: {e}", component="config")

    @classmethod
    def from_yaml(cls, path: str) -> "MemoryConfig":
        """Load configuration from a YAML file."""
        logger.info(f"MemoryConfig: Loading configuration from {path}")
        return cls.from_dict(OmegaConf.load(path))

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "MemoryConfig":
        """Build a config from environment variables, loading ``.env`` first."""
        load_dotenv(dotenv_path=dotenv_path, override=False)

        provider = os.getenv("POWERMEM_VECTOR_STORE", "sqlite").lower()
        dims = os.getenv("POWERMEM_EMBEDDING_DIMS")
        hybrid = os.getenv("POWERMEM_HYBRID_SEARCH")

        vector_store = VectorStoreConfig(
            provider=provider,
            collection_name=os.getenv("POWERMEM_COLLECTION", "memories"),
            embedding_model_dims=int(dims) if dims else None,
            database_path=os.getenv("POWERMEM_SQLITE_PATH", "./data/powermem.db"),
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
            database=os.getenv("POSTGRES_DB", "powermem"),
            user=os.getenv("POSTGRES_USER"),
            password=os.getenv("POSTGRES_PASSWORD"),
            metric_type=os.getenv("POWERMEM_METRIC_TYPE", "cosine"),
            hybrid_search=None if hybrid is None else hybrid.lower() == "true",
            fusion_method=os.getenv("POWERMEM_FUSION_METHOD", "rrf"),
            fulltext_parser=os.getenv("POWERMEM_FULLTEXT_PARSER"),
        )
        embedder = EmbedderConfig(
            provider=os.getenv("POWERMEM_EMBEDDER_PROVIDER", "openai"),
            model=os.getenv("POWERMEM_EMBEDDER_MODEL", "text-embedding-3-small"),
            embedding_dims=int(dims) if dims else None,
            api_key=os.getenv("POWERMEM_EMBEDDER_API_KEY") or os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("POWERMEM_EMBEDDER_BASE_URL"),
        )
        intelligent = IntelligentMemoryConfig(
            enabled=os.getenv("POWERMEM_INTELLIGENT_MEMORY", "true").lower() == "true",
            decay_rate=float(os.getenv("POWERMEM_DECAY_RATE", "0.1")),
        )
        return cls(
            vector_store=vector_store,
            embedder=embedder,
            llm=LLMConfig.from_env(),
            intelligent_memory=intelligent,
        )

    def to_dict(self) -> Dict[str, Any]:
        return OmegaConf.to_container(OmegaConf.structured(self), resolve=True)
