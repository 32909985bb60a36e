"""Streaming retrieval-augmented generation pipeline."""

from .config import ExpansionConfig, RateLimitConfig, RetrievalConfig

__all__ = ["ExpansionConfig", "RateLimitConfig", "RetrievalConfig"]
