"""Configuration models for the streaming RAG pipeline."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimitConfig(BaseModel):
    """Per-client admission window."""

    window_seconds: int = Field(default=3, ge=1)
    ttl_seconds: int = Field(default=60, ge=1)


class ExpansionConfig(BaseModel):
    """Configures query rewriting before retrieval."""

    requested_queries: int = Field(default=5, ge=2)
    max_queries: int = Field(default=4, ge=1)
    model: str = "llama-3.1-8b-instant"
    provider: str = "groq"


class RetrievalConfig(BaseModel):
    """Configures the per-query semantic index lookups."""

    top_k: int = Field(default=5, ge=1)
    namespace: str = "default"
    return_values: bool = True
    return_metadata: Literal["all", "indexed", "none"] = "all"


class ChunkingConfig(BaseModel):
    """Configures paragraph packing for ingested documents."""

    max_tokens: int = Field(default=400, ge=20)
    overlap_tokens: int = Field(default=40, ge=0)

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError("overlap_tokens must be less than max_tokens")
        return self


class Settings(BaseSettings):
    """Process settings loaded from environment variables."""

    service_name: str = "rag-stream"
    log_level: str = "INFO"
    log_json: bool = False

    openai_api_key: str | None = None
    groq_api_key: str | None = None
    anthropic_api_key: str | None = None
    embedding_model: str = "text-embedding-3-small"

    redis_url: str | None = None
    database_url: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="RAG_STREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def api_keys(self) -> dict[str, str]:
        """Configured provider keys, keyed by provider name."""
        keys = {
            "openai": self.openai_api_key,
            "groq": self.groq_api_key,
            "anthropic": self.anthropic_api_key,
        }
        return {provider: key for provider, key in keys.items() if key}


@lru_cache
def get_settings() -> Settings:
    return Settings()
