"""Query expansion: one user message into several diversified search queries."""

from __future__ import annotations

import re

from loguru import logger

from rag_stream.config import ExpansionConfig
from rag_stream.errors import ExpansionFailure
from rag_stream.llm.generator import Generator
from rag_stream.types import ChatTurn

EXPANSION_PROMPT = """Given the following user message, rewrite it into {count} distinct queries that could be used to search for relevant information. Each query should focus on different aspects or potential interpretations of the original message:

User message: "{message}"

Provide {count} queries, one per line and nothing else:"""

_NUMBERING = re.compile(r"^\s*\d+\.\s*")


class QueryExpander:
    """Rewrites a user message into up to `max_queries` search queries.

    The generator is asked for `requested_queries` lines. The first surviving
    line usually restates the original message, so it is always dropped and
    the following lines are kept.
    """

    def __init__(self, generator: Generator, config: ExpansionConfig | None = None) -> None:
        self.generator = generator
        self.config = config or ExpansionConfig()

    def build_prompt(self, message: str) -> str:
        return EXPANSION_PROMPT.format(count=self.config.requested_queries, message=message)

    async def expand(self, message: str) -> list[str]:
        prompt = self.build_prompt(message)
        try:
            raw = await self.generator.complete(
                [ChatTurn(role="user", content=prompt)],
                model=self.config.model,
                provider=self.config.provider,
            )
        except Exception as exc:
            raise ExpansionFailure(f"Query rewriting failed: {exc}") from exc

        queries = parse_queries(raw, limit=self.config.max_queries)
        logger.debug("Expanded message into {} queries", len(queries))
        return queries


def parse_queries(raw: str, *, limit: int) -> list[str]:
    """Clean generator output into at most `limit` distinct queries.

    Only the `limit` lines after the first are considered; duplicates inside
    that window are dropped rather than replaced by later lines.
    """

    lines = [_clean_line(line) for line in raw.splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        return []

    seen = {lines[0]}
    queries: list[str] = []
    for line in lines[1 : limit + 1]:
        if line in seen:
            continue
        seen.add(line)
        queries.append(line)
    return queries


def _clean_line(line: str) -> str:
    line = _NUMBERING.sub("", line.strip())
    return line.strip().strip('"').strip()
