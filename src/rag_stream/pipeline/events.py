"""Progress events written to the output channel before the answer relay."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from rag_stream.types import ResolvedDocument


@dataclass(slots=True)
class Rewriting:
    def payload(self) -> dict[str, Any]:
        return {"message": "Rewriting message to queries..."}


@dataclass(slots=True)
class Querying:
    queries: list[str]

    def payload(self) -> dict[str, Any]:
        return {"message": "Querying vector index...", "queries": self.queries}


@dataclass(slots=True)
class Found:
    queries: list[str]
    relevant_context: list[ResolvedDocument]

    def payload(self) -> dict[str, Any]:
        return {
            "message": "Found relevant documents...",
            "relevantContext": [{"text": doc.text} for doc in self.relevant_context],
            "queries": self.queries,
        }


@dataclass(slots=True)
class StageError:
    """Reported when a stage before generation fails."""

    stage: str
    detail: str

    def payload(self) -> dict[str, Any]:
        return {"message": f"Error: {self.detail}", "error": self.stage}


ProgressEvent = Rewriting | Querying | Found | StageError


def encode_frame(event: ProgressEvent) -> bytes:
    """Serialize one event as a `data: <json>` event-stream frame."""
    return f"data: {json.dumps(event.payload())}\n\n".encode("utf-8")
