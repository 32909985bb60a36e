"""Shared domain models."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]


class ChatTurn(BaseModel):
    """One message of the conversation handed to the generator."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class StreamRequest(BaseModel):
    """Body of a streaming chat request."""

    model_config = ConfigDict(populate_by_name=True)

    provider: str = Field(min_length=1)
    model: str = Field(min_length=1)
    session_id: str = Field(alias="sessionId", min_length=1)
    messages: list[ChatTurn] = Field(min_length=1)


@dataclass(slots=True)
class IndexMatch:
    """A single semantic index hit."""

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)
    values: list[float] | None = None


@dataclass(slots=True)
class Candidate:
    """A deduplicated retrieval candidate, keyed by chunk id."""

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DocumentChunk:
    """A stored section of a document attached to a session."""

    chunk_id: str
    session_id: str
    document_id: str
    text: str
    token_count: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ResolvedDocument:
    """Chunk text as returned by the chunk store."""

    text: str


@dataclass(slots=True)
class AssembledContext:
    documents: list[ResolvedDocument]
    block: str


@dataclass(slots=True)
class Admission:
    allowed: bool
    retry_after_seconds: int = 0


@dataclass(slots=True)
class CompleteAnswer:
    """Generator result delivered as a single payload."""

    text: str


@dataclass(slots=True)
class StreamingAnswer:
    """Generator result delivered incrementally as raw bytes."""

    chunks: AsyncIterator[bytes]


GeneratedAnswer = CompleteAnswer | StreamingAnswer
