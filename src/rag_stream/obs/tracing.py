"""Per-request pipeline traces and aggregate metrics."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(slots=True)
class PipelineTrace:
    trace_id: str
    timestamp_utc: str
    session_id: str
    client_key: str
    provider: str
    model: str
    queries: list[str] = field(default_factory=list)
    candidate_count: int = 0
    document_count: int = 0
    stage_latency_ms: dict[str, float] = field(default_factory=dict)
    outcome: str = "running"
    failed_stage: str | None = None
    latency_ms: float = 0.0


class TraceStore:
    """In-memory trace storage for API-level observability."""

    def __init__(self, *, max_records: int = 1000) -> None:
        self._records: dict[str, PipelineTrace] = {}
        self._max_records = max_records

    def start(
        self, *, session_id: str, client_key: str, provider: str, model: str
    ) -> PipelineTrace:
        trace = PipelineTrace(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            session_id=session_id,
            client_key=client_key,
            provider=provider,
            model=model,
        )
        self._records[trace.trace_id] = trace
        while len(self._records) > self._max_records:
            del self._records[next(iter(self._records))]
        return trace

    def get(self, trace_id: str) -> PipelineTrace:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[PipelineTrace]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate request counts and latency over finished traces."""
        records = list(self._records.values())
        finished = [record for record in records if record.outcome != "running"]
        latencies = sorted(record.latency_ms for record in finished)

        summary: dict[str, float | int] = {
            "total_requests": len(records),
            "completed": sum(1 for record in finished if record.outcome == "completed"),
            "stage_failures": sum(1 for record in finished if record.outcome == "stage_failed"),
            "generation_failures": sum(
                1 for record in finished if record.outcome == "generation_failed"
            ),
            "avg_latency_ms": 0.0,
            "p95_latency_ms": 0.0,
        }
        if latencies:
            p95_index = max(0, int((len(latencies) * 0.95) - 1))
            summary["avg_latency_ms"] = sum(latencies) / len(latencies)
            summary["p95_latency_ms"] = latencies[p95_index]
        return summary


class Timer:
    """Simple context timer used for stage latencies."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
