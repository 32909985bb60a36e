import json

from fastapi.testclient import TestClient

from rag_stream.api.deps import in_memory_services
from rag_stream.api.main import create_app

POLICY = (
    "Refund policy: customers may request a refund within 30 days of purchase.\n\n"
    "Cancellations made before shipping are refunded in full.\n\n"
    "Returned items must be unused and in their original packaging."
)


def _stream_body(session_id: str = "s1") -> dict:
    return {
        "provider": "groq",
        "model": "m",
        "sessionId": session_id,
        "messages": [{"role": "user", "content": "What is the refund policy?"}],
    }


def _frames(text: str) -> tuple[list[dict], str]:
    frames = []
    rest = text
    while rest.startswith("data: "):
        frame, rest = rest.split("\n\n", 1)
        frames.append(json.loads(frame[len("data: ") :]))
    return frames, rest


def test_api_ingest_stream_trace_metrics() -> None:
    client = TestClient(create_app(in_memory_services()))

    ingest_resp = client.post(
        "/api/sessions/s1/documents",
        json={"text": POLICY, "documentId": "policy", "metadata": {"source": "handbook"}},
    )
    assert ingest_resp.status_code == 200
    assert ingest_resp.json()["chunk_ids"] == ["s1:policy-chunk-0000"]

    stream_resp = client.post("/api/stream", json=_stream_body())
    assert stream_resp.status_code == 200
    assert stream_resp.headers["content-type"] == "text/event-stream"
    assert stream_resp.headers["cache-control"] == "no-cache"
    assert stream_resp.headers["content-encoding"] == "identity"

    frames, answer = _frames(stream_resp.text)
    assert [frame["message"] for frame in frames] == [
        "Rewriting message to queries...",
        "Querying vector index...",
        "Found relevant documents...",
    ]
    assert len(frames[1]["queries"]) == 4
    assert "within 30 days" in frames[2]["relevantContext"][0]["text"]
    assert answer.endswith("[1]")

    traces = client.get("/traces").json()["items"]
    assert len(traces) == 1
    assert traces[0]["outcome"] == "completed"
    assert client.get(f"/traces/{traces[0]['trace_id']}").status_code == 200
    assert client.get("/traces/missing").status_code == 404

    metrics = client.get("/metrics").json()
    assert metrics["total_requests"] == 1
    assert metrics["completed"] == 1


def test_second_request_inside_window_gets_429() -> None:
    client = TestClient(create_app(in_memory_services()))

    assert client.post("/api/stream", json=_stream_body()).status_code == 200
    rejected = client.post("/api/stream", json=_stream_body())

    assert rejected.status_code == 429
    assert rejected.text == "Too many requests"
    assert "data:" not in rejected.text


def test_rate_limit_is_keyed_by_connecting_ip() -> None:
    client = TestClient(create_app(in_memory_services()))

    first = client.post("/api/stream", json=_stream_body(), headers={"cf-connecting-ip": "10.0.0.1"})
    second = client.post("/api/stream", json=_stream_body(), headers={"cf-connecting-ip": "10.0.0.2"})

    assert (first.status_code, second.status_code) == (200, 200)


def test_session_without_documents_still_streams_an_answer() -> None:
    client = TestClient(create_app(in_memory_services()))

    frames, answer = _frames(client.post("/api/stream", json=_stream_body("empty")).text)

    assert frames[2]["relevantContext"] == []
    assert answer == "I could not find any relevant information in the attached documents."


def test_invalid_requests_are_rejected() -> None:
    client = TestClient(create_app(in_memory_services()))

    assert client.post("/api/stream", json={"provider": "groq"}).status_code == 422
    assert client.post("/api/sessions/s1/documents", json={"text": "  \n\n "}).status_code == 400
    assert client.get("/health").json()["generator_mode"] == "deterministic"


def test_malformed_bodies_still_count_against_the_rate_limit() -> None:
    client = TestClient(create_app(in_memory_services()))

    first = client.post("/api/stream", json={"provider": "groq"})
    second = client.post("/api/stream", content=b"not json", headers={"content-type": "application/json"})

    assert first.status_code == 422
    assert first.json()["detail"][0]["loc"][0] == "body"
    assert second.status_code == 429


def test_shutdown_waits_for_background_pipelines(monkeypatch) -> None:
    app = create_app(in_memory_services())
    orchestrator = app.state.orchestrator
    drained: list[int] = []
    drain = orchestrator.drain

    async def recording_drain() -> None:
        drained.append(len(orchestrator.trace_store.list_recent()))
        await drain()

    monkeypatch.setattr(orchestrator, "drain", recording_drain)
    with TestClient(app) as client:
        assert client.post("/api/stream", json=_stream_body()).status_code == 200

    assert drained == [1]
    assert orchestrator.trace_store.list_recent()[0].outcome == "completed"
