"""Store sessions: bounded connect retry, optional AUTH and a reuse pool.

A session is a single-connection Redis client. Sessions are handed back to
an idle pool on release instead of being closed, and are reused until they
sit idle for longer than the idle timeout.

Pool exhaustion fails fast: once ``pool_size`` sessions are checked out,
``acquire`` raises PoolExhaustedError instead of waiting for a release.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff

from gatesync.errors import PoolExhaustedError, TransportError

if TYPE_CHECKING:
    from gatesync.config import Settings

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], Any]


class StoreConnection:
    """
    Factory and pool for store sessions.

    Example:
        connection = StoreConnection.from_settings(get_settings())
        async with connection.session() as client:
            await client.hget("apis", api_id)
        await connection.close()
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        password: str | None = None,
        *,
        db: int = 0,
        timeout: float = 5.0,
        retries: int = 4,
        retry_delay: float = 1.0,
        pool_size: int = 100,
        idle_timeout: float = 10.0,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self._password = password
        self._timeout = timeout
        self._retries = max(0, retries)
        self._retry_delay = retry_delay
        self._pool_size = max(1, pool_size)
        self._idle_timeout = idle_timeout
        self._client_factory = client_factory or self._default_client
        self._clock = clock

        self._idle: deque[tuple[Any, float]] = deque()
        self._in_use = 0
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        client_factory: ClientFactory | None = None,
    ) -> StoreConnection:
        return cls(
            settings.redis_host,
            settings.redis_port,
            settings.redis_password,
            db=settings.redis_db,
            timeout=settings.redis_timeout_seconds,
            retries=settings.connect_retries,
            retry_delay=settings.connect_retry_delay_seconds,
            pool_size=settings.pool_size,
            idle_timeout=settings.pool_idle_timeout_seconds,
            client_factory=client_factory,
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    def _default_client(self) -> redis.Redis:
        # Connection retries are handled by connect() with a fixed budget, so
        # the client's own retry layer is switched off.
        return redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self._password,
            socket_timeout=self._timeout,
            socket_connect_timeout=self._timeout,
            decode_responses=True,
            single_connection_client=True,
            retry=Retry(NoBackoff(), 0),
        )

    # =========================================================================
    # CONNECT
    # =========================================================================

    async def connect(self) -> Any:
        """
        Open a new session, retrying a fixed number of times.

        Raises:
            TransportError: If every attempt fails or authentication is rejected.
        """
        remaining = self._retries
        while True:
            client = self._client_factory()
            try:
                # First command opens the socket and runs AUTH when a
                # password is configured.
                await client.ping()
                return client
            except redis.AuthenticationError as e:
                await _close_quietly(client)
                raise TransportError("Failed to authenticate", e) from e
            except (redis.ConnectionError, redis.TimeoutError, OSError) as e:
                await _close_quietly(client)
                if remaining <= 0:
                    raise TransportError("Failed to connect to redis", e) from e
                plural = "s" if remaining != 1 else ""
                logger.warning(
                    f"Failed to connect to redis at {self.address}. "
                    f"Retrying {remaining} more time{plural}."
                )
                remaining -= 1
                await asyncio.sleep(self._retry_delay)

    # =========================================================================
    # POOL
    # =========================================================================

    async def acquire(self) -> Any:
        """Check out a pooled session, connecting a new one if none is idle."""
        if self._closed:
            raise TransportError(f"Connection to {self.address} is closed")

        now = self._clock()
        while self._idle:
            client, released_at = self._idle.pop()
            if now - released_at > self._idle_timeout:
                await _close_quietly(client)
                continue
            self._in_use += 1
            return client

        if self._in_use >= self._pool_size:
            raise PoolExhaustedError(self._pool_size)

        # Reserve the slot before awaiting so concurrent acquirers see it.
        self._in_use += 1
        try:
            return await self.connect()
        except BaseException:
            self._in_use -= 1
            raise

    async def release(self, client: Any) -> None:
        """
        Return a session to the idle pool.

        Raises:
            TransportError: If a session that cannot be pooled fails to close.
        """
        self._in_use = max(0, self._in_use - 1)
        if not self._closed and len(self._idle) < self._pool_size:
            self._idle.append((client, self._clock()))
            return
        try:
            await client.aclose()
        except (redis.RedisError, OSError) as e:
            raise TransportError("Failed to set keepalive", e) from e

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[Any]:
        """Acquire a session for the duration of the block."""
        client = await self.acquire()
        try:
            yield client
        finally:
            try:
                await self.release(client)
            except TransportError as e:
                logger.error(f"Failed to return session to pool: {e}")

    async def open_dedicated(self) -> Any:
        """Open a session outside the pool (e.g. for a long-lived subscription)."""
        if self._closed:
            raise TransportError(f"Connection to {self.address} is closed")
        return await self.connect()

    async def close(self) -> None:
        """Close idle sessions; sessions released later are closed, not pooled."""
        self._closed = True
        while self._idle:
            client, _ = self._idle.pop()
            await _close_quietly(client)


async def _close_quietly(client: Any) -> None:
    with contextlib.suppress(Exception):
        await client.aclose()
