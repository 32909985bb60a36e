"""Fan-out retriever: one concurrent embed+search branch per expanded query."""

from __future__ import annotations

import asyncio

from loguru import logger

from rag_stream.config import RetrievalConfig
from rag_stream.errors import RetrievalFailure
from rag_stream.ingest.embedder import Embedder
from rag_stream.retrieval.merge import merge_matches
from rag_stream.retrieval.semantic_index import SemanticIndex
from rag_stream.types import Candidate, IndexMatch


class FanOutRetriever:
    """Searches the session-scoped index once per query and merges the hits.

    All branches are joined with all-or-fail semantics: when any embedding or
    index call fails, the whole stage fails and no partial result is used.
    """

    def __init__(
        self,
        index: SemanticIndex,
        embedder: Embedder,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.index = index
        self.embedder = embedder
        self.config = config or RetrievalConfig()

    async def retrieve(self, queries: list[str], session_id: str) -> list[Candidate]:
        if not queries:
            raise RetrievalFailure("No queries to retrieve for")

        try:
            per_query = await asyncio.gather(
                *(self._search(query, session_id) for query in queries)
            )
        except Exception as exc:
            raise RetrievalFailure(f"Retrieval failed: {exc}") from exc

        candidates = merge_matches(list(per_query))
        logger.bind(session_id=session_id).info(
            "Retrieved {} candidates from {} matches over {} queries",
            len(candidates),
            sum(len(matches) for matches in per_query),
            len(queries),
        )
        return candidates

    async def _search(self, query: str, session_id: str) -> list[IndexMatch]:
        vector = await self.embedder.embed_query(query)
        return await self.index.query(
            vector,
            top_k=self.config.top_k,
            return_values=self.config.return_values,
            return_metadata=self.config.return_metadata,
            namespace=self.config.namespace,
            filter={"sessionId": session_id},
        )
