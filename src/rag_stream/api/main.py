"""FastAPI entrypoint for streaming chat, session documents and traces."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rag_stream.api.deps import PipelineServices, services_from_settings
from rag_stream.config import get_settings
from rag_stream.errors import AdmissionDenied
from rag_stream.obs.logging import configure_logging
from rag_stream.types import StreamRequest

STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "content-encoding": "identity",
    "X-Accel-Buffering": "no",
}


class IngestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1)
    document_id: str | None = Field(default=None, alias="documentId")
    metadata: dict[str, Any] = Field(default_factory=dict)


def client_key(request: Request) -> str:
    """Identify the caller for rate limiting."""
    connecting_ip = request.headers.get("cf-connecting-ip")
    if connecting_ip:
        return connecting_ip.strip()
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


async def _stream_request(request: Request) -> StreamRequest:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": "JSON decode error", "input": {}}]
        ) from exc
    try:
        return StreamRequest.model_validate(payload)
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        raise RequestValidationError(
            [{**error, "loc": ("body", *error["loc"])} for error in errors]
        ) from exc


def create_app(services: PipelineServices | None = None) -> FastAPI:
    if services is None:
        settings = get_settings()
        configure_logging(settings.log_level, json=settings.log_json)
        services = services_from_settings(settings)

    orchestrator = services.orchestrator()
    ingest_pipeline = services.ingest_pipeline()
    trace_store = services.trace_store

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await orchestrator.drain()

    app = FastAPI(title="RAG Stream", version="0.1.0", lifespan=lifespan)
    app.state.services = services
    app.state.orchestrator = orchestrator

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "generator_mode": services.generator_mode,
            "trace_count": len(trace_store.list_recent(limit=1000)),
        }

    @app.post("/api/stream")
    async def stream(request: Request) -> Response:
        # Rate check runs before the body is parsed.
        key = client_key(request)
        try:
            await orchestrator.admit(key)
        except AdmissionDenied as exc:
            return PlainTextResponse(
                "Too many requests",
                status_code=429,
                headers={"Retry-After": str(exc.retry_after_seconds)},
            )
        body = await _stream_request(request)
        channel = orchestrator.start(body, key)
        return StreamingResponse(channel, headers=STREAM_HEADERS)

    @app.post("/api/sessions/{session_id}/documents")
    async def ingest(session_id: str, body: IngestRequest) -> dict[str, Any]:
        try:
            chunks = await ingest_pipeline.ingest_text(
                session_id,
                body.text,
                document_id=body.document_id,
                metadata=body.metadata,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "chunks_created": len(chunks),
            "chunk_ids": [chunk.chunk_id for chunk in chunks],
        }

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        return {"items": [asdict(record) for record in trace_store.list_recent(limit=limit)]}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return trace_store.summary()

    return app


app = create_app()
