"""Storage adapter that partitions memories across named sub-stores."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from ..interfaces.embedder import Embedder
from ..interfaces.vector_store import VectorStoreInterface
from .adapter import StorageAdapter

_MISSING = object()


@dataclass
class SubStore:
    """A physical store that owns records matching ``routing_filter``."""
    name: str
    routing_filter: Dict[str, Any]
    vector_store: VectorStoreInterface
    embedder: Optional[Embedder] = None
    ready: bool = True


def _lookup(context: Dict[str, Any], key: str) -> Any:
    """Case-insensitive key lookup; returns _MISSING when absent."""
    if key in context:
        return context[key]
    lowered = key.lower()
    for candidate, value in context.items():
        if candidate is not None and str(candidate).lower() == lowered:
            return value
    return _MISSING


def routing_filter_matches(routing_filter: Dict[str, Any], context: Optional[Dict[str, Any]]) -> bool:
    """True when every (key, value) of the routing filter is satisfied by the context."""
    if not routing_filter or not context:
        return False
    for key, expected in routing_filter.items():
        if key is None:
            continue
        actual = _lookup(context, key)
        if actual is _MISSING:
            return False
        if expected is None:
            if actual is not None:
                return False
        elif str(expected) != str(actual):
            return False
    return True


class SubStorageAdapter(StorageAdapter):
    """Routes writes and searches to sub-stores by metadata/filter rules.

    Writes route on record metadata, searches on request filters. Lookups by id
    probe the main store first and then every sub-store in registration order,
    whether or not the sub-store is currently ready. Listing and clearing only
    touch the main store.
    """

    def __init__(self, vector_store, embedder, id_generator=None):
        super().__init__(vector_store, embedder, id_generator)
        self.sub_stores: List[SubStore] = []

    def register_sub_store(
        self,
        name: str,
        routing_filter: Optional[Dict[str, Any]],
        vector_store: VectorStoreInterface,
        embedder: Optional[Embedder] = None,
        ready: bool = True,
    ) -> None:
        if not name or not name.strip() or vector_store is None:
            return
        self.sub_stores.append(SubStore(
            name=name.strip(),
            routing_filter=dict(routing_filter or {}),
            vector_store=vector_store,
            embedder=embedder,
            ready=ready,
        ))
        logger.info(f"SubStorageAdapter: Registered sub-store {name.strip()} with filter {routing_filter}")

    def list_sub_stores(self) -> List[str]:
        return [s.name for s in self.sub_stores]

    def _find(self, name: Optional[str]) -> Optional[SubStore]:
        if not name or not name.strip():
            return None
        return next((s for s in self.sub_stores if s.name == name.strip()), None)

    def is_sub_store_ready(self, name: str) -> bool:
        sub_store = self._find(name)
        return sub_store is not None and sub_store.ready

    def set_sub_store_ready(self, name: str, ready: bool) -> None:
        sub_store = self._find(name)
        if sub_store is not None:
            sub_store.ready = ready
            logger.info(f"SubStorageAdapter: Sub-store {sub_store.name} ready={ready}")

    def route(self, context: Optional[Dict[str, Any]]) -> Optional[SubStore]:
        """First ready sub-store whose routing filter matches, in registration order."""
        if not self.sub_stores or not context:
            return None
        for sub_store in self.sub_stores:
            if not sub_store.ready:
                continue
            if routing_filter_matches(sub_store.routing_filter, context):
                return sub_store
        return None

    def get_target_store_name(self, context: Optional[Dict[str, Any]]) -> Optional[str]:
        sub_store = self.route(context)
        return sub_store.name if sub_store else None

    def _resolve(self, context: Optional[Dict[str, Any]]) -> Tuple[VectorStoreInterface, Embedder]:
        sub_store = self.route(context)
        if sub_store is None:
            return self.vector_store, self.embedder
        return sub_store.vector_store, sub_store.embedder or self.embedder

    def _write_target(self, metadata):
        return self._resolve(metadata)

    def _search_target(self, filters):
        return self._resolve(filters)

    def _id_lookup_order(self):
        order = [(self.vector_store, self.embedder)]
        order.extend((s.vector_store, s.embedder or self.embedder) for s in self.sub_stores)
        return order
