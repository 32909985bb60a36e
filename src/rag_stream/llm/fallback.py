"""Deterministic fallback generator when no model provider is configured."""

from __future__ import annotations

import re

from rag_stream.types import ChatTurn, CompleteAnswer, GeneratedAnswer

_QUOTED_MESSAGE = re.compile(r'^User message: "(?P<message>.*)"\s*$', re.MULTILINE)
_CONTEXT_LINE = re.compile(r"^\[(?P<index>\d+)\]: (?P<body>.+)$", re.MULTILINE)
_STOPWORDS = frozenset(
    "a an and are can do does for how i in is it me my of on or the to what when where "
    "which who why with you your".split()
)


class DeterministicGenerator:
    """Generator that works offline and keeps the same contract as the LLM one.

    Completions turn the user message into keyword queries, numbered one per
    line, with the message itself first. Answers are extractive: the first
    sentences of each numbered context entry, cited as `[n]`.
    """

    def __init__(self, *, max_citations: int = 3) -> None:
        self.max_citations = max_citations

    async def complete(self, messages: list[ChatTurn], *, model: str, provider: str) -> str:
        del model, provider  # the fallback ignores model selection.
        prompt = messages[-1].content if messages else ""
        match = _QUOTED_MESSAGE.search(prompt)
        message = match.group("message") if match else prompt.strip()
        lines = [message, *_keyword_queries(message)]
        return "\n".join(f"{i}. {line}" for i, line in enumerate(lines, start=1))

    async def stream(
        self, messages: list[ChatTurn], *, model: str, provider: str
    ) -> GeneratedAnswer:
        del model, provider
        context = next(
            (turn.content for turn in reversed(messages) if turn.role == "assistant"), ""
        )
        return CompleteAnswer(text=_build_answer(context, self.max_citations))


def _keyword_queries(message: str) -> list[str]:
    terms = [
        term
        for term in re.findall(r"\w+", message.lower())
        if term not in _STOPWORDS
    ]
    if not terms:
        return []
    return [
        " ".join(terms),
        f"{' '.join(terms)} details",
        f"{' '.join(terms)} examples",
        f"{' '.join(terms)} requirements",
    ]


def _build_answer(context: str, max_citations: int) -> str:
    entries = [(m.group("index"), m.group("body").strip()) for m in _CONTEXT_LINE.finditer(context)]
    if not entries:
        return "I could not find any relevant information in the attached documents."

    lines = []
    for index, body in entries[:max_citations]:
        sentence = re.split(r"(?<=[.!?])\s+", body, maxsplit=1)[0]
        lines.append(f"{sentence} [{index}]")
    return "\n".join(lines)
