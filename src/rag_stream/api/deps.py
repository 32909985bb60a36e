"""Capability wiring: builds the pipeline collaborators from settings."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from rag_stream.config import ChunkingConfig, ExpansionConfig, RateLimitConfig, RetrievalConfig, Settings
from rag_stream.gate.rate_gate import InMemoryRateStore, RateGate, RateStore, RedisRateStore
from rag_stream.ingest.chunker import ParagraphChunker
from rag_stream.ingest.embedder import Embedder, HashingEmbedder, LangChainEmbedder
from rag_stream.ingest.pipeline import IngestPipeline
from rag_stream.llm.fallback import DeterministicGenerator
from rag_stream.llm.generator import Generator, LangChainGenerator
from rag_stream.obs.tracing import TraceStore
from rag_stream.pipeline.assembler import ContextAssembler
from rag_stream.pipeline.expander import QueryExpander
from rag_stream.pipeline.orchestrator import StreamingOrchestrator
from rag_stream.retrieval.chunk_store import ChunkStore, InMemoryChunkStore, SqlChunkStore
from rag_stream.retrieval.retriever import FanOutRetriever
from rag_stream.retrieval.semantic_index import InMemorySemanticIndex, SemanticIndex


@dataclass(slots=True)
class PipelineServices:
    """Infrastructure handles injected into the pipeline for one process."""

    rate_store: RateStore
    generator: Generator
    embedder: Embedder
    index: SemanticIndex
    chunk_store: ChunkStore
    trace_store: TraceStore
    generator_mode: str = "custom"

    def orchestrator(
        self,
        *,
        rate_limit: RateLimitConfig | None = None,
        expansion: ExpansionConfig | None = None,
        retrieval: RetrievalConfig | None = None,
    ) -> StreamingOrchestrator:
        return StreamingOrchestrator(
            rate_gate=RateGate(self.rate_store, rate_limit),
            expander=QueryExpander(self.generator, expansion),
            retriever=FanOutRetriever(self.index, self.embedder, retrieval),
            assembler=ContextAssembler(self.chunk_store),
            generator=self.generator,
            trace_store=self.trace_store,
        )

    def ingest_pipeline(
        self,
        *,
        chunking: ChunkingConfig | None = None,
        retrieval: RetrievalConfig | None = None,
    ) -> IngestPipeline:
        return IngestPipeline(
            ParagraphChunker(chunking),
            self.embedder,
            self.index,
            self.chunk_store,
            retrieval,
        )


def in_memory_services(generator: Generator | None = None) -> PipelineServices:
    return PipelineServices(
        rate_store=InMemoryRateStore(),
        generator=generator or DeterministicGenerator(),
        embedder=HashingEmbedder(),
        index=InMemorySemanticIndex(),
        chunk_store=InMemoryChunkStore(),
        trace_store=TraceStore(),
        generator_mode="deterministic" if generator is None else "custom",
    )


def services_from_settings(settings: Settings) -> PipelineServices:
    """Use external backends where configured and in-memory ones otherwise."""

    api_keys = settings.api_keys()
    services = in_memory_services()

    if api_keys:
        services.generator = LangChainGenerator(api_keys)
        services.generator_mode = "langchain"
    if settings.openai_api_key:
        services.embedder = LangChainEmbedder.openai(
            model=settings.embedding_model, api_key=settings.openai_api_key
        )
    if settings.redis_url:
        services.rate_store = RedisRateStore.from_url(settings.redis_url)
    if settings.database_url:
        services.chunk_store = SqlChunkStore.from_url(settings.database_url)

    logger.info(
        "Pipeline services: generator={}, embedder={}, rate_store={}, chunk_store={}",
        services.generator_mode,
        type(services.embedder).__name__,
        type(services.rate_store).__name__,
        type(services.chunk_store).__name__,
    )
    return services
