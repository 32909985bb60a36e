"""Semantic index contract and an in-memory nearest-neighbour implementation."""

from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from typing import Any, Protocol

from rag_stream.types import IndexMatch


@dataclass(slots=True)
class IndexItem:
    """A vector to upsert, with the metadata used for filtering."""

    id: str
    values: list[float]
    metadata: dict[str, Any]


class SemanticIndex(Protocol):
    """Minimal vector index contract used by retrieval and ingestion."""

    async def query(
        self,
        vector: list[float],
        *,
        top_k: int,
        return_values: bool,
        return_metadata: str,
        namespace: str,
        filter: dict[str, Any] | None = None,
    ) -> list[IndexMatch]:
        """Return up to `top_k` matches ranked by similarity."""

    async def upsert(self, namespace: str, items: list[IndexItem]) -> None:
        """Insert or replace vectors in a namespace."""


class InMemorySemanticIndex:
    """Deterministic cosine-similarity index for tests and local runs."""

    def __init__(self) -> None:
        self._namespaces: dict[str, dict[str, IndexItem]] = {}

    async def upsert(self, namespace: str, items: list[IndexItem]) -> None:
        store = self._namespaces.setdefault(namespace, {})
        for item in items:
            store[item.id] = item

    async def query(
        self,
        vector: list[float],
        *,
        top_k: int,
        return_values: bool,
        return_metadata: str,
        namespace: str,
        filter: dict[str, Any] | None = None,
    ) -> list[IndexMatch]:
        items = [
            item
            for item in self._namespaces.get(namespace, {}).values()
            if _metadata_match(item.metadata, filter)
        ]
        ranked = sorted(
            items,
            key=lambda item: _cosine_similarity(vector, item.values),
            reverse=True,
        )
        return [
            IndexMatch(
                id=item.id,
                score=_cosine_similarity(vector, item.values),
                metadata=dict(item.metadata) if return_metadata != "none" else {},
                values=list(item.values) if return_values else None,
            )
            for item in ranked[:top_k]
        ]

    def __len__(self) -> int:
        return sum(len(store) for store in self._namespaces.values())


def _metadata_match(
    metadata: dict[str, Any], metadata_filter: dict[str, Any] | None
) -> bool:
    if not metadata_filter:
        return True
    return all(metadata.get(key) == value for key, value in metadata_filter.items())


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
