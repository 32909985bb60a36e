"""Resolves candidates to chunk text and formats the citable context block."""

from __future__ import annotations

from loguru import logger

from rag_stream.errors import AssemblyFailure
from rag_stream.retrieval.chunk_store import ChunkStore
from rag_stream.types import AssembledContext, ChatTurn, ResolvedDocument


class ContextAssembler:
    """Builds the `[n]: text` context block handed to the answer generator.

    Numbering follows the order in which the chunk store returns rows, which
    is not necessarily the candidate relevance order.
    """

    def __init__(self, chunk_store: ChunkStore) -> None:
        self.chunk_store = chunk_store

    async def assemble(self, candidate_ids: list[str]) -> AssembledContext:
        try:
            documents = await self.chunk_store.select_by_ids(candidate_ids)
        except Exception as exc:
            raise AssemblyFailure(f"Chunk lookup failed: {exc}") from exc

        if len(documents) < len(candidate_ids):
            logger.debug(
                "{} of {} candidates had no stored chunk",
                len(candidate_ids) - len(documents),
                len(candidate_ids),
            )
        return AssembledContext(documents=documents, block=format_context(documents))


def format_context(documents: list[ResolvedDocument]) -> str:
    return "\n\n".join(f"[{index}]: {doc.text}" for index, doc in enumerate(documents, start=1))


def context_turn(queries: list[str], block: str) -> ChatTurn:
    """Synthetic assistant turn carrying the queries and the context block."""
    return ChatTurn(
        role="assistant",
        content=(
            "The following queries were made:\n"
            + "\n".join(queries)
            + "\n\nRelevant context from attached documents:\n"
            + block
        ),
    )
