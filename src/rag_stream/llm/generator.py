"""Answer generator contract and the LangChain chat-model adapter."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol

from langchain_core.language_models import BaseChatModel
from loguru import logger

from rag_stream.types import ChatTurn, GeneratedAnswer, StreamingAnswer

# OpenAI-compatible endpoints per provider; None keeps the client default.
PROVIDER_BASE_URLS: dict[str, str | None] = {
    "openai": None,
    "groq": "https://api.groq.com/openai/v1",
    "anthropic": "https://api.anthropic.com/v1/",
}


class Generator(Protocol):
    """Black-box language model capability used by the pipeline."""

    async def complete(self, messages: list[ChatTurn], *, model: str, provider: str) -> str:
        """Return the full completion text."""

    async def stream(
        self, messages: list[ChatTurn], *, model: str, provider: str
    ) -> GeneratedAnswer:
        """Return either a complete payload or an incremental byte stream."""


ChatModelFactory = Callable[[str, str, str], BaseChatModel]


def openai_compatible_chat_model(model: str, provider: str, api_key: str) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    if provider not in PROVIDER_BASE_URLS:
        raise ValueError(f"Unsupported provider: {provider}")
    return ChatOpenAI(
        model=model,
        api_key=api_key,
        base_url=PROVIDER_BASE_URLS[provider],
        temperature=0,
    )


class LangChainGenerator:
    """Generator backed by LangChain chat models, one per (provider, model)."""

    def __init__(
        self,
        api_keys: dict[str, str],
        *,
        model_factory: ChatModelFactory = openai_compatible_chat_model,
    ) -> None:
        self._api_keys = api_keys
        self._model_factory = model_factory
        self._models: dict[tuple[str, str], BaseChatModel] = {}

    async def complete(self, messages: list[ChatTurn], *, model: str, provider: str) -> str:
        chat_model = self._chat_model(model, provider)
        result = await chat_model.ainvoke(_to_messages(messages))
        return _content_text(result.content)

    async def stream(
        self, messages: list[ChatTurn], *, model: str, provider: str
    ) -> GeneratedAnswer:
        chat_model = self._chat_model(model, provider)
        logger.bind(provider=provider, model=model).debug(
            "Streaming answer over {} messages", len(messages)
        )
        return StreamingAnswer(chunks=_encode_chunks(chat_model, _to_messages(messages)))

    def _chat_model(self, model: str, provider: str) -> BaseChatModel:
        key = (provider, model)
        if key not in self._models:
            api_key = self._api_keys.get(provider)
            if not api_key:
                raise ValueError(f"No API key configured for provider: {provider}")
            self._models[key] = self._model_factory(model, provider, api_key)
        return self._models[key]


async def _encode_chunks(
    chat_model: BaseChatModel, messages: list[dict[str, str]]
) -> AsyncIterator[bytes]:
    async for chunk in chat_model.astream(messages):
        text = _content_text(chunk.content)
        if text:
            yield text.encode("utf-8")


def _to_messages(messages: list[ChatTurn]) -> list[dict[str, str]]:
    return [turn.as_message() for turn in messages]


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts)
    return str(content)
