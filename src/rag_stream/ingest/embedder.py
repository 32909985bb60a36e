"""Embedding abstractions, a deterministic baseline and a LangChain adapter."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

from langchain_core.embeddings import Embeddings


class Embedder(ABC):
    """Embedder interface used by ingestion and the fan-out retriever."""

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many chunk texts."""

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """Embed one search query."""


class HashingEmbedder(Embedder):
    """Deterministic feature-hashing embedding without external model calls.

    Used by tests and by local runs with no embedding provider configured.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    async def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for token in text.lower().split():
            digest = blake2b(token.strip(".,;:!?\"'()").encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            vector[idx] += -1.0 if digest[4] % 2 else 1.0

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbedder(Embedder):
    """Adapts any LangChain `Embeddings` implementation to the async contract."""

    def __init__(self, embeddings: Embeddings) -> None:
        self._embeddings = embeddings

    @classmethod
    def openai(cls, *, model: str, api_key: str) -> "LangChainEmbedder":
        from langchain_openai import OpenAIEmbeddings

        return cls(OpenAIEmbeddings(model=model, api_key=api_key))

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return await self._embeddings.aembed_documents(texts)

    async def embed_query(self, text: str) -> list[float]:
        return await self._embeddings.aembed_query(text)
