"""Chunk text stores resolving candidate ids to document text."""

from __future__ import annotations

import asyncio
from typing import Protocol

from sqlalchemy import Column, Engine, MetaData, String, Table, Text, create_engine, insert, select

from rag_stream.types import DocumentChunk, ResolvedDocument


class ChunkStore(Protocol):
    """Batched id lookup plus the insert path used by ingestion."""

    async def select_by_ids(self, ids: list[str]) -> list[ResolvedDocument]:
        """Return stored chunks whose id is in `ids`, in store order."""

    async def insert(self, chunks: list[DocumentChunk]) -> None:
        """Persist chunk text."""


class InMemoryChunkStore:
    """Chunk store keeping chunks in insertion order.

    Lookups return rows in the order they were stored, not the order the ids
    were requested, matching how a SQL `IN (...)` query behaves.
    """

    def __init__(self) -> None:
        self._chunks: dict[str, DocumentChunk] = {}

    async def insert(self, chunks: list[DocumentChunk]) -> None:
        for chunk in chunks:
            self._chunks[chunk.chunk_id] = chunk

    async def select_by_ids(self, ids: list[str]) -> list[ResolvedDocument]:
        wanted = set(ids)
        return [
            ResolvedDocument(text=chunk.text)
            for chunk_id, chunk in self._chunks.items()
            if chunk_id in wanted
        ]

    def __len__(self) -> int:
        return len(self._chunks)


metadata = MetaData()

document_chunks = Table(
    "document_chunks",
    metadata,
    Column("id", String(128), primary_key=True),
    Column("session_id", String(128), nullable=False, index=True),
    Column("document_id", String(128), nullable=False),
    Column("text", Text, nullable=False),
)


class SqlChunkStore:
    """SQLAlchemy Core chunk store; blocking calls run in a worker thread."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @classmethod
    def from_url(cls, url: str, *, create_tables: bool = True) -> "SqlChunkStore":
        engine = create_engine(url)
        if create_tables:
            metadata.create_all(engine)
        return cls(engine)

    async def select_by_ids(self, ids: list[str]) -> list[ResolvedDocument]:
        if not ids:
            return []
        return await asyncio.to_thread(self._select_by_ids, ids)

    async def insert(self, chunks: list[DocumentChunk]) -> None:
        if chunks:
            await asyncio.to_thread(self._insert, chunks)

    def _select_by_ids(self, ids: list[str]) -> list[ResolvedDocument]:
        statement = select(document_chunks.c.text).where(document_chunks.c.id.in_(ids))
        with self._engine.connect() as conn:
            return [ResolvedDocument(text=row.text) for row in conn.execute(statement)]

    def _insert(self, chunks: list[DocumentChunk]) -> None:
        rows = [
            {
                "id": chunk.chunk_id,
                "session_id": chunk.session_id,
                "document_id": chunk.document_id,
                "text": chunk.text,
            }
            for chunk in chunks
        ]
        with self._engine.begin() as conn:
            conn.execute(insert(document_chunks), rows)
