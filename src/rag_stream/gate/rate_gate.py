"""Per-client admission control backed by a last-seen timestamp store."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

from loguru import logger
from redis.asyncio import Redis

from rag_stream.config import RateLimitConfig
from rag_stream.types import Admission


class RateStore(Protocol):
    """Key/value store with per-key expiry."""

    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when absent or expired."""

    async def put(self, key: str, value: str, *, expiration_ttl: int) -> None:
        """Store a value that expires after `expiration_ttl` seconds."""


class InMemoryRateStore:
    """Process-local rate store used for tests and single-worker deployments."""

    def __init__(self, clock: Callable[[], float] = time.time, *, sweep_interval: float = 1.0) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._last_sweep = float("-inf")
        self._records: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        record = self._records.get(key)
        if record is None:
            return None
        value, expires_at = record
        if self._clock() >= expires_at:
            del self._records[key]
            return None
        return value

    async def put(self, key: str, value: str, *, expiration_ttl: int) -> None:
        now = self._clock()
        self._evict_expired(now)
        self._records[key] = (value, now + expiration_ttl)

    def __len__(self) -> int:
        return len(self._records)

    def _evict_expired(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        expired = [key for key, (_, expires_at) in self._records.items() if expires_at <= now]
        for key in expired:
            del self._records[key]


class RedisRateStore:
    """Rate store shared across workers through Redis."""

    def __init__(self, client: Redis, *, prefix: str = "rate:") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisRateStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        value = await self._client.get(self._prefix + key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def put(self, key: str, value: str, *, expiration_ttl: int) -> None:
        await self._client.set(self._prefix + key, value, ex=expiration_ttl)


class RateGate:
    """Admits at most one request per client inside the configured window.

    The read and the write are two separate store calls, so two
    near-simultaneous requests from one client can both be admitted.
    """

    def __init__(
        self,
        store: RateStore,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.config = config or RateLimitConfig()
        self._clock = clock

    async def admit(self, client_key: str) -> Admission:
        now = int(self._clock())
        last_seen = _parse_epoch(await self.store.get(client_key), client_key)
        if last_seen is not None:
            elapsed = now - last_seen
            if elapsed < self.config.window_seconds:
                logger.bind(client_key=client_key).info(
                    "Request rejected, {}s since last admitted call", elapsed
                )
                return Admission(
                    allowed=False,
                    retry_after_seconds=self.config.window_seconds - elapsed,
                )

        await self.store.put(
            client_key, str(now), expiration_ttl=self.config.ttl_seconds
        )
        return Admission(allowed=True)


def _parse_epoch(raw: str | None, client_key: str) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.bind(client_key=client_key).warning(
            "Ignoring malformed rate record {!r}", raw
        )
        return None
