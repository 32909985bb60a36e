import pytest

from rag_stream.config import RateLimitConfig
from rag_stream.gate.rate_gate import InMemoryRateStore, RateGate, RedisRateStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _gate(clock: FakeClock) -> tuple[RateGate, InMemoryRateStore]:
    store = InMemoryRateStore(clock=clock)
    return RateGate(store, RateLimitConfig(), clock=clock), store


@pytest.mark.asyncio
async def test_second_call_inside_window_is_denied() -> None:
    clock = FakeClock()
    gate, _ = _gate(clock)

    assert (await gate.admit("1.2.3.4")).allowed
    clock.now += 2.9
    denied = await gate.admit("1.2.3.4")

    assert not denied.allowed
    assert denied.retry_after_seconds == 1


@pytest.mark.asyncio
async def test_calls_three_seconds_apart_are_admitted() -> None:
    clock = FakeClock()
    gate, _ = _gate(clock)

    assert (await gate.admit("1.2.3.4")).allowed
    clock.now += 3
    assert (await gate.admit("1.2.3.4")).allowed


@pytest.mark.asyncio
async def test_clients_are_tracked_independently() -> None:
    clock = FakeClock()
    gate, _ = _gate(clock)

    assert (await gate.admit("client-a")).allowed
    assert (await gate.admit("client-b")).allowed
    assert not (await gate.admit("client-a")).allowed


@pytest.mark.asyncio
async def test_every_admitted_call_rewrites_timestamp() -> None:
    clock = FakeClock()
    gate, store = _gate(clock)

    await gate.admit("client")
    clock.now += 10
    await gate.admit("client")

    assert await store.get("client") == str(int(clock.now))


@pytest.mark.asyncio
async def test_denied_call_does_not_refresh_record() -> None:
    clock = FakeClock()
    gate, store = _gate(clock)

    await gate.admit("client")
    first = await store.get("client")
    clock.now += 1
    await gate.admit("client")

    assert await store.get("client") == first


@pytest.mark.asyncio
async def test_record_expires_after_ttl() -> None:
    clock = FakeClock()
    store = InMemoryRateStore(clock=clock)
    await store.put("client", "123", expiration_ttl=60)

    clock.now += 59
    assert await store.get("client") == "123"
    clock.now += 1
    assert await store.get("client") is None


@pytest.mark.asyncio
async def test_malformed_record_is_treated_as_absent() -> None:
    clock = FakeClock()
    gate, store = _gate(clock)
    await store.put("client", "not-a-number", expiration_ttl=60)

    assert (await gate.admit("client")).allowed


@pytest.mark.asyncio
async def test_expired_records_of_other_clients_are_evicted() -> None:
    clock = FakeClock()
    gate, store = _gate(clock)
    for i in range(1000):
        assert (await gate.admit(f"10.0.{i // 256}.{i % 256}")).allowed

    clock.now += 3600
    assert (await gate.admit("newcomer")).allowed

    assert len(store) == 1


@pytest.mark.asyncio
async def test_live_records_survive_eviction() -> None:
    clock = FakeClock()
    gate, store = _gate(clock)
    await gate.admit("old")
    clock.now += 30
    await gate.admit("recent")

    clock.now += 31
    await gate.admit("newcomer")

    assert len(store) == 2
    assert await store.get("recent") is not None
    assert await store.get("old") is None


class RecordingRedis:
    def __init__(self, values: dict | None = None) -> None:
        self.values = dict(values or {})
        self.get_calls: list[str] = []
        self.set_calls: list[tuple[str, str, int | None]] = []

    async def get(self, name: str):
        self.get_calls.append(name)
        return self.values.get(name)

    async def set(self, name: str, value: str, ex: int | None = None) -> None:
        self.set_calls.append((name, value, ex))
        self.values[name] = value


@pytest.mark.asyncio
async def test_redis_store_sets_prefixed_key_with_expiry() -> None:
    client = RecordingRedis()
    gate = RateGate(RedisRateStore(client), RateLimitConfig(), clock=FakeClock())

    assert (await gate.admit("1.2.3.4")).allowed

    assert client.get_calls == ["rate:1.2.3.4"]
    assert client.set_calls == [("rate:1.2.3.4", "1700000000", 60)]


@pytest.mark.asyncio
async def test_redis_store_decodes_bytes_and_passes_strings_through() -> None:
    client = RecordingRedis({"rate:raw": b"1700000000", "rate:text": "1699999999"})
    store = RedisRateStore(client)

    assert await store.get("raw") == "1700000000"
    assert await store.get("text") == "1699999999"
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_redis_backed_gate_denies_inside_window() -> None:
    clock = FakeClock()
    client = RecordingRedis({"rate:1.2.3.4": b"1699999999"})
    gate = RateGate(RedisRateStore(client, prefix="rate:"), RateLimitConfig(), clock=clock)

    denied = await gate.admit("1.2.3.4")

    assert not denied.allowed
    assert denied.retry_after_seconds == 2
    assert client.set_calls == []
