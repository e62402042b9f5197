from __future__ import annotations

from collections.abc import AsyncIterator, Set
from dataclasses import dataclass, field
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from gatesync.errors import ReloadError
from gatesync.store import ConfigStore, StoreConnection
from gatesync.sync import LocalConfigWriter, ServingReloader


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest_asyncio.fixture
async def fake_redis(fake_server: FakeServer) -> AsyncIterator[FakeRedis]:
    client = FakeRedis(server=fake_server, decode_responses=True)
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def store(fake_redis: FakeRedis) -> ConfigStore:
    return ConfigStore(fake_redis)


@pytest_asyncio.fixture
async def connection(fake_server: FakeServer) -> AsyncIterator[StoreConnection]:
    conn = StoreConnection(
        retry_delay=0,
        client_factory=lambda: FakeRedis(server=fake_server, decode_responses=True),
    )
    try:
        yield conn
    finally:
        await conn.close()


@dataclass
class RecordingWriter(LocalConfigWriter):
    """Keeps artifacts in memory, keyed by (tenant, escaped path)."""

    artifacts: dict[tuple[str, str], str] = field(default_factory=dict)
    materialized: list[tuple[str, str]] = field(default_factory=list)
    removed: list[tuple[str, str]] = field(default_factory=list)
    pruned: list[tuple[str, str]] = field(default_factory=list)
    fail_on: str | None = None

    async def materialize(
        self,
        base_dir: str,
        tenant_id: str,
        escaped_path: str,
        payload: str,
    ) -> Path:
        if escaped_path == self.fail_on:
            raise OSError(f"disk full writing {escaped_path}")
        self.artifacts[(tenant_id, escaped_path)] = payload
        self.materialized.append((tenant_id, escaped_path))
        return Path(base_dir) / tenant_id / f"{escaped_path}.conf"

    async def remove(self, base_dir: str, tenant_id: str, escaped_path: str) -> Path:
        self.artifacts.pop((tenant_id, escaped_path), None)
        self.removed.append((tenant_id, escaped_path))
        return Path(base_dir) / tenant_id / f"{escaped_path}.conf"

    async def prune(self, base_dir: str, keep: Set[tuple[str, str]]) -> list[Path]:
        stale = sorted(set(self.artifacts) - set(keep))
        for name in stale:
            del self.artifacts[name]
        self.pruned.extend(stale)
        return [Path(base_dir) / tenant / f"{escaped}.conf" for tenant, escaped in stale]


@dataclass
class RecordingReloader(ServingReloader):
    calls: int = 0
    fail: bool = False

    async def reload(self) -> None:
        self.calls += 1
        if self.fail:
            raise ReloadError(1, "nginx: configuration test failed")


@pytest.fixture
def writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture
def reloader() -> RecordingReloader:
    return RecordingReloader()
