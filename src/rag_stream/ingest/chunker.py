"""Paragraph-packing sliding-window chunker for session documents."""

from __future__ import annotations

import re

from rag_stream.config import ChunkingConfig

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


class ParagraphChunker:
    """Packs whole paragraphs into windows of at most `max_tokens` words.

    When a window is full, the next one starts with the last `overlap_tokens`
    words of the previous window so neighbouring chunks share context.
    Paragraphs longer than a window are sliced with
    `stride = max_tokens - overlap_tokens`.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def split(self, text: str) -> list[str]:
        windows: list[list[str]] = []
        current: list[str] = []

        for paragraph in self._paragraphs(text):
            words = paragraph.split()
            if len(current) + len(words) <= self.config.max_tokens:
                current.extend(words)
                continue

            if current:
                windows.append(current)
                current = self._overlap(current)

            if len(current) + len(words) <= self.config.max_tokens:
                current.extend(words)
                continue

            *full, current = self._slide(current + words)
            windows.extend(full)

        if current:
            windows.append(current)
        return [" ".join(window) for window in windows]

    def _slide(self, words: list[str]) -> list[list[str]]:
        stride = self.config.max_tokens - self.config.overlap_tokens
        windows = []
        for start in range(0, len(words), stride):
            windows.append(words[start : start + self.config.max_tokens])
            if start + self.config.max_tokens >= len(words):
                break
        return windows

    def _overlap(self, window: list[str]) -> list[str]:
        if self.config.overlap_tokens == 0:
            return []
        return list(window[-self.config.overlap_tokens :])

    @staticmethod
    def _paragraphs(text: str) -> list[str]:
        return [part.strip() for part in _PARAGRAPH_SPLIT.split(text) if part.strip()]
