"""Session document ingestion: chunk -> embed -> index + chunk store."""

from __future__ import annotations

import uuid
from typing import Any

from loguru import logger

from rag_stream.config import RetrievalConfig
from rag_stream.ingest.chunker import ParagraphChunker
from rag_stream.ingest.embedder import Embedder
from rag_stream.retrieval.chunk_store import ChunkStore
from rag_stream.retrieval.semantic_index import IndexItem, SemanticIndex
from rag_stream.types import DocumentChunk


class IngestPipeline:
    """Attaches a document to a session so the retriever can find it.

    Vectors go to the retrieval namespace tagged with `sessionId`, which is
    the filter the fan-out retriever applies at query time.
    """

    def __init__(
        self,
        chunker: ParagraphChunker,
        embedder: Embedder,
        index: SemanticIndex,
        chunk_store: ChunkStore,
        config: RetrievalConfig | None = None,
    ) -> None:
        self._chunker = chunker
        self._embedder = embedder
        self._index = index
        self._chunk_store = chunk_store
        self._config = config or RetrievalConfig()

    async def ingest_text(
        self,
        session_id: str,
        text: str,
        *,
        document_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[DocumentChunk]:
        document_id = document_id or uuid.uuid4().hex
        pieces = self._chunker.split(text)
        if not pieces:
            raise ValueError("Document has no text to ingest")

        chunks = [
            DocumentChunk(
                chunk_id=f"{session_id}:{document_id}-chunk-{i:04d}",
                session_id=session_id,
                document_id=document_id,
                text=piece,
                token_count=len(piece.split()),
                metadata={
                    **(metadata or {}),
                    "sessionId": session_id,
                    "documentId": document_id,
                    "chunkIndex": i,
                },
            )
            for i, piece in enumerate(pieces)
        ]
        embeddings = await self._embedder.embed_documents([chunk.text for chunk in chunks])
        if len(embeddings) != len(chunks):
            raise ValueError("Embedder returned a different number of vectors than chunks")

        await self._chunk_store.insert(chunks)
        await self._index.upsert(
            self._config.namespace,
            [
                IndexItem(id=chunk.chunk_id, values=vector, metadata=chunk.metadata)
                for chunk, vector in zip(chunks, embeddings, strict=True)
            ],
        )
        logger.bind(session_id=session_id, document_id=document_id).info(
            "Ingested {} chunks", len(chunks)
        )
        return chunks
