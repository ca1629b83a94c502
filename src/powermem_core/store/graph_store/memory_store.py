"""In-process graph store for offline use and tests."""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from ...interfaces.graph_store import GraphStore
from ...utils.vector_math import BM25Okapi, tokenize

_ENGLISH_PREFERENCE = re.compile(r"^user\s+(likes|prefers|dislikes|loves|hates)\s+(.+)$", re.IGNORECASE)
_CHINESE_SUBJECTS = ("用户", "我")
_CHINESE_RELATIONS = ("喜欢", "偏好", "讨厌")


@dataclass(frozen=True)
class Triple:
    source: str
    relationship: str
    destination: str

    def text(self) -> str:
        return f"{self.source} {self.relationship} {self.destination}"


def scope_key(filters: Optional[Dict[str, Any]]) -> str:
    filters = filters or {}
    user_id = filters.get("user_id")
    if user_id is None or not str(user_id).strip():
        user_id = "user"
    agent_id = filters.get("agent_id") or ""
    run_id = filters.get("run_id") or ""
    return f"{user_id}|{agent_id}|{run_id}"


def extract_triples(data: str) -> List[Triple]:
    """Pull simple preference statements out of free text, one per line."""
    triples = []
    for line in re.split(r"[\r\n]+", data or ""):
        sentence = line.strip().rstrip(".。")
        if not sentence:
            continue
        triple = _parse_chinese(sentence) or _parse_english(sentence)
        if triple is not None:
            triples.append(triple)
    return triples


def _parse_english(sentence: str) -> Optional[Triple]:
    match = _ENGLISH_PREFERENCE.match(sentence)
    if not match:
        return None
    target = match.group(2).strip()
    return Triple("User", match.group(1).lower(), target) if target else None


def _parse_chinese(sentence: str) -> Optional[Triple]:
    text = sentence.replace("：", ":").replace("，", ",")
    subject = next((s for s in _CHINESE_SUBJECTS if text.startswith(s)), None)
    if subject is None:
        return None
    rest = text[len(subject):].strip()
    for relation in _CHINESE_RELATIONS:
        index = rest.find(relation)
        if index >= 0:
            target = rest[index + len(relation):].lstrip(": ").strip()
            return Triple(subject, relation, target) if target else None
    return None


class InMemoryGraphStore(GraphStore):
    """Keeps triples per (user, agent, run) scope; search ranks them with BM25."""

    def __init__(self):
        self._triples: Dict[str, List[Triple]] = {}
        self._lock = asyncio.Lock()

    async def add(self, data: str, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not data or not data.strip():
            return {"deleted_entities": [], "added_entities": []}
        triples = extract_triples(data)
        if triples:
            async with self._lock:
                self._triples.setdefault(scope_key(filters), []).extend(triples)
            logger.debug(f"InMemoryGraphStore: Added {len(triples)} relations")
        return {
            "deleted_entities": [],
            "added_entities": [
                {"source": t.source, "relationship": t.relationship, "target": t.destination} for t in triples
            ],
        }

    async def search(self, query: str, filters: Optional[Dict[str, Any]] = None,
                     limit: int = 100) -> List[Dict[str, Any]]:
        top = limit if limit and limit > 0 else 100
        triples = list(self._triples.get(scope_key(filters), []))
        if not triples:
            return []

        query_tokens = tokenize(query or "")
        if query_tokens:
            scores = BM25Okapi([tokenize(t.text()) for t in triples]).get_scores(query_tokens)
            ranked = sorted(
                (pair for pair in zip(triples, scores) if pair[1] > 0),
                key=lambda pair: pair[1],
                reverse=True,
            )
            triples = [triple for triple, _ in ranked]

        return [
            {"source": t.source, "relationship": t.relationship, "destination": t.destination}
            for t in triples[:top]
        ]

    async def get_all(self, filters: Optional[Dict[str, Any]] = None, limit: int = 100) -> List[Dict[str, Any]]:
        return await self.search("", filters, limit)

    async def delete_all(self, filters: Optional[Dict[str, Any]] = None) -> None:
        async with self._lock:
            self._triples.pop(scope_key(filters), None)

    async def reset(self) -> None:
        async with self._lock:
            self._triples.clear()
