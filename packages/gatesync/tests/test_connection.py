from __future__ import annotations

import logging
import types
from dataclasses import dataclass

import pytest
import redis.asyncio as redis

import gatesync.store.connection as connection_module
from gatesync.config import Settings
from gatesync.errors import PoolExhaustedError, TransportError
from gatesync.store import StoreConnection


@dataclass
class _StubClient:
    ping_error: Exception | None = None
    close_error: Exception | None = None
    closed: bool = False

    async def ping(self) -> bool:
        if self.ping_error is not None:
            raise self.ping_error
        return True

    async def aclose(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class _Factory:
    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or redis.ConnectionError("Connection refused")
        self.clients: list[_StubClient] = []

    def __call__(self) -> _StubClient:
        failing = len(self.clients) < self.failures
        client = _StubClient(ping_error=self.error if failing else None)
        self.clients.append(client)
        return client


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(connection_module, "asyncio", types.SimpleNamespace(sleep=fake_sleep))
    return recorded


@pytest.mark.asyncio
async def test_connect_retries_with_fixed_delay_then_succeeds(sleeps, caplog) -> None:
    factory = _Factory(failures=2)
    conn = StoreConnection("redis.local", 6380, retry_delay=1.0, client_factory=factory)

    with caplog.at_level(logging.WARNING, logger="gatesync.store.connection"):
        client = await conn.connect()

    assert client is factory.clients[-1]
    assert len(factory.clients) == 3
    assert all(c.closed for c in factory.clients[:2])
    assert sleeps == [1.0, 1.0]
    assert "Failed to connect to redis at redis.local:6380. Retrying 4 more times." in caplog.text
    assert "Retrying 3 more times." in caplog.text


@pytest.mark.asyncio
async def test_connect_gives_up_after_retry_budget(sleeps, caplog) -> None:
    factory = _Factory(failures=100)
    conn = StoreConnection(retries=4, client_factory=factory)

    with caplog.at_level(logging.WARNING, logger="gatesync.store.connection"):
        with pytest.raises(TransportError, match="Failed to connect to redis") as exc:
            await conn.connect()

    assert len(factory.clients) == 5
    assert len(sleeps) == 4
    assert isinstance(exc.value.cause, redis.ConnectionError)
    assert "Retrying 1 more time." in caplog.text


@pytest.mark.asyncio
async def test_authentication_failure_is_not_retried(sleeps) -> None:
    factory = _Factory(failures=100, error=redis.AuthenticationError("invalid password"))
    conn = StoreConnection(password="wrong", client_factory=factory)

    with pytest.raises(TransportError, match="Failed to authenticate"):
        await conn.connect()

    assert len(factory.clients) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_failed_acquire_frees_its_pool_slot(sleeps) -> None:
    conn = StoreConnection(retries=0, pool_size=1, client_factory=_Factory(failures=1))

    with pytest.raises(TransportError):
        await conn.acquire()
    assert conn.in_use == 0

    client = await conn.acquire()
    assert conn.in_use == 1
    await conn.release(client)


@pytest.mark.asyncio
async def test_released_session_is_reused(connection: StoreConnection) -> None:
    first = await connection.acquire()
    await first.set("k", "v")
    await connection.release(first)
    assert connection.idle_count == 1

    second = await connection.acquire()
    assert second is first
    assert await second.get("k") == "v"
    assert connection.in_use == 1
    await connection.release(second)


@pytest.mark.asyncio
async def test_pool_exhaustion_fails_fast() -> None:
    conn = StoreConnection(pool_size=2, client_factory=_Factory())
    a = await conn.acquire()
    await conn.acquire()

    with pytest.raises(PoolExhaustedError) as exc:
        await conn.acquire()
    assert isinstance(exc.value, TransportError)
    assert exc.value.pool_size == 2

    await conn.release(a)
    assert await conn.acquire() is a


@pytest.mark.asyncio
async def test_idle_sessions_expire_after_timeout() -> None:
    now = [0.0]
    factory = _Factory()
    conn = StoreConnection(idle_timeout=10.0, client_factory=factory, clock=lambda: now[0])

    stale = await conn.acquire()
    await conn.release(stale)
    now[0] = 10.5

    fresh = await conn.acquire()
    assert fresh is not stale
    assert stale.closed is True
    assert len(factory.clients) == 2


@pytest.mark.asyncio
async def test_release_after_close_closes_session() -> None:
    conn = StoreConnection(client_factory=_Factory())
    client = await conn.acquire()

    await conn.close()
    await conn.release(client)

    assert client.closed is True
    assert conn.idle_count == 0
    with pytest.raises(TransportError, match="closed"):
        await conn.acquire()


@pytest.mark.asyncio
async def test_release_failure_is_surfaced_but_session_block_completes(caplog) -> None:
    client = _StubClient(close_error=redis.ConnectionError("broken pipe"))
    conn = StoreConnection(client_factory=lambda: client)

    with caplog.at_level(logging.ERROR, logger="gatesync.store.connection"):
        async with conn.session() as session:
            assert session is client
            await conn.close()

    assert "Failed to return session to pool" in caplog.text
    assert "Failed to set keepalive" in caplog.text

    other = StoreConnection(client_factory=lambda: client)
    acquired = await other.acquire()
    await other.close()
    with pytest.raises(TransportError, match="Failed to set keepalive"):
        await other.release(acquired)


@pytest.mark.asyncio
async def test_open_dedicated_bypasses_pool() -> None:
    conn = StoreConnection(pool_size=1, client_factory=_Factory())
    await conn.acquire()

    dedicated = await conn.open_dedicated()

    assert dedicated is not None
    assert conn.in_use == 1


def test_from_settings_maps_connection_options() -> None:
    settings = Settings(
        redis_host="redis.internal",
        redis_port=6390,
        redis_password="",
        redis_timeout_ms=2500,
        connect_retries=2,
        pool_size=5,
    )

    conn = StoreConnection.from_settings(settings)

    assert conn.address == "redis.internal:6390"
    assert conn._password is None  # noqa: SLF001
    assert conn._timeout == 2.5  # noqa: SLF001
    assert conn._retries == 2  # noqa: SLF001
    assert conn._pool_size == 5  # noqa: SLF001
