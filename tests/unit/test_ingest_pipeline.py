import pytest

from rag_stream.config import ChunkingConfig
from rag_stream.ingest.chunker import ParagraphChunker
from rag_stream.ingest.embedder import HashingEmbedder
from rag_stream.ingest.pipeline import IngestPipeline
from rag_stream.retrieval.chunk_store import InMemoryChunkStore
from rag_stream.retrieval.retriever import FanOutRetriever
from rag_stream.retrieval.semantic_index import InMemorySemanticIndex


def _pipeline() -> tuple[IngestPipeline, InMemorySemanticIndex, InMemoryChunkStore]:
    index = InMemorySemanticIndex()
    store = InMemoryChunkStore()
    pipeline = IngestPipeline(
        ParagraphChunker(ChunkingConfig(max_tokens=20, overlap_tokens=2)),
        HashingEmbedder(),
        index,
        store,
    )
    return pipeline, index, store


@pytest.mark.asyncio
async def test_ingested_chunks_are_indexed_and_stored() -> None:
    pipeline, index, store = _pipeline()

    chunks = await pipeline.ingest_text(
        "s1", "Refunds are issued within 30 days.", document_id="doc", metadata={"source": "faq"}
    )

    assert [chunk.chunk_id for chunk in chunks] == ["s1:doc-chunk-0000"]
    assert chunks[0].metadata == {
        "source": "faq",
        "sessionId": "s1",
        "documentId": "doc",
        "chunkIndex": 0,
    }
    assert len(index) == 1
    assert len(store) == 1


@pytest.mark.asyncio
async def test_retrieval_only_sees_the_requested_session() -> None:
    pipeline, index, _ = _pipeline()
    await pipeline.ingest_text("s1", "Refunds are issued within 30 days.", document_id="a")
    await pipeline.ingest_text("s2", "Refunds are never issued.", document_id="b")

    candidates = await FanOutRetriever(index, HashingEmbedder()).retrieve(["refunds issued"], "s1")

    assert [c.id for c in candidates] == ["s1:a-chunk-0000"]
    assert candidates[0].metadata["sessionId"] == "s1"


@pytest.mark.asyncio
async def test_index_ranks_by_similarity_and_honours_return_flags() -> None:
    pipeline, index, _ = _pipeline()
    await pipeline.ingest_text("s1", "shipping costs and delivery times", document_id="ship")
    await pipeline.ingest_text("s1", "refund window for returned items", document_id="refund")
    vector = await HashingEmbedder().embed_query("refund window")

    matches = await index.query(
        vector,
        top_k=1,
        return_values=False,
        return_metadata="none",
        namespace="default",
        filter={"sessionId": "s1"},
    )

    assert [m.id for m in matches] == ["s1:refund-chunk-0000"]
    assert matches[0].values is None
    assert matches[0].metadata == {}
    assert await index.query(vector, top_k=5, return_values=True, return_metadata="all", namespace="other") == []


@pytest.mark.asyncio
async def test_empty_document_is_rejected() -> None:
    pipeline, _, _ = _pipeline()

    with pytest.raises(ValueError):
        await pipeline.ingest_text("s1", "   ")
