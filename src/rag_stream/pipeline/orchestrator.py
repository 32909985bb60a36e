"""Streaming orchestrator driving the RAG stages over one output channel."""

from __future__ import annotations

import asyncio

from loguru import logger

from rag_stream.errors import AdmissionDenied, ExpansionFailure, GenerationFailure, PipelineError
from rag_stream.gate.rate_gate import RateGate
from rag_stream.llm.generator import Generator
from rag_stream.obs.tracing import PipelineTrace, Timer, TraceStore
from rag_stream.pipeline.assembler import ContextAssembler, context_turn
from rag_stream.pipeline.channel import OutputChannel
from rag_stream.pipeline.events import Found, Querying, Rewriting, StageError, encode_frame
from rag_stream.pipeline.expander import QueryExpander
from rag_stream.retrieval.merge import candidate_ids
from rag_stream.retrieval.retriever import FanOutRetriever
from rag_stream.types import ChatTurn, CompleteAnswer, GeneratedAnswer, StreamRequest, StreamingAnswer

SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions based on the provided context. "
    "When giving a response, always include the source of the information in the format "
    "[1], [2], [3] etc."
)


class StreamingOrchestrator:
    """Runs rate check, expansion, retrieval, assembly and answer relay.

    `open` performs admission synchronously and then hands the rest of the
    work to a background task, returning the channel immediately so the
    caller can start the streaming response. Stages run strictly in order and
    every progress frame is written before the next stage begins. Once the
    answer relay starts, the relay is the only writer on the channel.

    Background tasks are not cancelled when the client goes away; they run to
    completion or failure.
    """

    def __init__(
        self,
        *,
        rate_gate: RateGate,
        expander: QueryExpander,
        retriever: FanOutRetriever,
        assembler: ContextAssembler,
        generator: Generator,
        trace_store: TraceStore | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self.rate_gate = rate_gate
        self.expander = expander
        self.retriever = retriever
        self.assembler = assembler
        self.generator = generator
        self.trace_store = trace_store or TraceStore()
        self.system_prompt = system_prompt
        self._tasks: set[asyncio.Task[None]] = set()

    async def open(self, request: StreamRequest, client_key: str) -> OutputChannel:
        await self.admit(client_key)
        return self.start(request, client_key)

    async def admit(self, client_key: str) -> None:
        admission = await self.rate_gate.admit(client_key)
        if not admission.allowed:
            raise AdmissionDenied(client_key, admission.retry_after_seconds)

    def start(self, request: StreamRequest, client_key: str) -> OutputChannel:
        """Spawn the pipeline for an already admitted request."""
        channel = OutputChannel()
        trace = self.trace_store.start(
            session_id=request.session_id,
            client_key=client_key,
            provider=request.provider,
            model=request.model,
        )
        task = asyncio.create_task(self.run(request, channel, trace))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return channel

    async def drain(self) -> None:
        """Wait for all background pipelines started by `open`."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def run(
        self,
        request: StreamRequest,
        channel: OutputChannel,
        trace: PipelineTrace | None = None,
    ) -> None:
        trace = trace or self.trace_store.start(
            session_id=request.session_id,
            client_key="direct",
            provider=request.provider,
            model=request.model,
        )
        log = logger.bind(trace_id=trace.trace_id, session_id=request.session_id)

        with Timer() as total:
            try:
                messages = await self._prepare(request, channel, trace)
            except Exception as exc:
                stage = exc.stage if isinstance(exc, PipelineError) else "pipeline"
                log.opt(exception=exc).error("Pipeline failed while {}", stage)
                trace.outcome = "stage_failed"
                trace.failed_stage = stage
                await channel.write(encode_frame(StageError(stage=stage, detail=str(exc))))
                await channel.close()
            else:
                await self._generate(request, messages, channel, trace)

        trace.latency_ms = total.elapsed_ms
        log.info("Pipeline finished: {} in {:.0f}ms", trace.outcome, trace.latency_ms)

    async def _prepare(
        self, request: StreamRequest, channel: OutputChannel, trace: PipelineTrace
    ) -> list[ChatTurn]:
        messages = [ChatTurn(role="system", content=self.system_prompt), *request.messages]
        user_message = _latest_user_message(messages)

        await channel.write(encode_frame(Rewriting()))
        with Timer() as timer:
            queries = await self.expander.expand(user_message)
        trace.stage_latency_ms["expanding"] = timer.elapsed_ms
        trace.queries = queries
        if not queries:
            raise ExpansionFailure("Query rewriting produced no usable queries")

        await channel.write(encode_frame(Querying(queries=queries)))
        with Timer() as timer:
            candidates = await self.retriever.retrieve(queries, request.session_id)
        trace.stage_latency_ms["retrieving"] = timer.elapsed_ms
        trace.candidate_count = len(candidates)

        with Timer() as timer:
            context = await self.assembler.assemble(candidate_ids(candidates))
        trace.stage_latency_ms["assembling"] = timer.elapsed_ms
        trace.document_count = len(context.documents)

        await channel.write(encode_frame(Found(queries=queries, relevant_context=context.documents)))
        messages.append(context_turn(queries, context.block))
        return messages

    async def _generate(
        self,
        request: StreamRequest,
        messages: list[ChatTurn],
        channel: OutputChannel,
        trace: PipelineTrace,
    ) -> None:
        try:
            with Timer() as timer:
                answer = await self.generator.stream(
                    messages, model=request.model, provider=request.provider
                )
                await _relay(answer, channel)
            trace.stage_latency_ms["generating"] = timer.elapsed_ms
            trace.outcome = "completed"
        except Exception as exc:
            logger.bind(trace_id=trace.trace_id).opt(exception=exc).warning(
                "Answer generation failed"
            )
            trace.outcome = "generation_failed"
            trace.failed_stage = GenerationFailure.stage
            await channel.write(f"Error: {exc}".encode("utf-8"))
        finally:
            await channel.close()


async def _relay(answer: GeneratedAnswer, channel: OutputChannel) -> None:
    if isinstance(answer, CompleteAnswer):
        await channel.write(answer.text.encode("utf-8"))
    elif isinstance(answer, StreamingAnswer):
        async for chunk in answer.chunks:
            await channel.write(chunk)
    else:
        raise GenerationFailure(f"Unsupported generator result: {type(answer).__name__}")


def _latest_user_message(messages: list[ChatTurn]) -> str:
    for turn in reversed(messages):
        if turn.role == "user":
            return turn.content
    raise ExpansionFailure("Conversation has no user message to expand")
