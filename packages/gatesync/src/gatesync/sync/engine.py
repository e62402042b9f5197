"""Reconciliation of local routing artifacts with the shared store.

On startup the engine subscribes to keyspace notifications for resource
keys, rebuilds every artifact from the store (full sync), prunes artifacts
whose keys are gone and marks the node ready. It then applies the
notifications buffered during the scan and follows new ones (incremental
sync) for the rest of the process lifetime.

Each notification re-reads the resource it names and either rewrites or
removes exactly one artifact, followed by one reload request. Reloads are
not batched, so a burst of N changes produces N reloads.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis

from gatesync.errors import FatalSyncError, GatewaySyncError, ReloadError
from gatesync.health import HealthState
from gatesync.keys import (
    ResourceKey,
    keyspace_pattern,
    parse_notification,
    parse_resource_key,
)
from gatesync.store.config_store import DEFAULT_RESOURCE_FIELD, ConfigStore
from gatesync.store.connection import StoreConnection
from gatesync.sync.reloader import CommandReloader, ServingReloader
from gatesync.sync.writer import FileConfigWriter, LocalConfigWriter

if TYPE_CHECKING:
    from gatesync.config import Settings

logger = logging.getLogger(__name__)

# Failures that leave local artifacts in an unknown state.
_SYNC_FAILURES = (GatewaySyncError, OSError, ValueError)


class EngineState(StrEnum):
    IDLE = "idle"
    FULL_SYNCING = "full_syncing"
    WATCHING = "watching"
    APPLYING = "applying"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class ReconciliationConfig:
    """Configuration for the reconciliation engine."""

    # Directory handed to the artifact writer
    conf_dir: str = "/etc/api-gateway/managed_confs/"

    # Hash field holding the resource payload
    resource_field: str = DEFAULT_RESOURCE_FIELD

    # Database index the keyspace channel is scoped to
    db: int = 0

    # Flags for CONFIG SET notify-keyspace-events ("" skips the call)
    notify_keyspace_events: str = "KEA"

    # How long one notification read blocks before looping (seconds)
    notification_timeout: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> ReconciliationConfig:
        return cls(
            conf_dir=settings.conf_dir,
            resource_field=settings.resource_field,
            db=settings.redis_db,
            notify_keyspace_events=settings.notify_keyspace_events,
            notification_timeout=settings.notification_timeout_seconds,
        )


def _decode_text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class ReconciliationEngine:
    """
    Keeps local artifacts consistent with the resources in the store.

    Example:
        engine = ReconciliationEngine(connection, FileConfigWriter(), reloader)
        await engine.start()
        # ... node serves traffic, engine.health gates readiness ...
        await engine.stop()
    """

    def __init__(
        self,
        connection: StoreConnection,
        writer: LocalConfigWriter,
        reloader: ServingReloader,
        *,
        health: HealthState | None = None,
        config: ReconciliationConfig | None = None,
    ) -> None:
        self._connection = connection
        self._writer = writer
        self._reloader = reloader
        self._health = health or HealthState()
        self._config = config or ReconciliationConfig()
        self._state = EngineState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        connection: StoreConnection,
        *,
        health: HealthState | None = None,
    ) -> ReconciliationEngine:
        """Wire the engine with the file writer and command reloader."""
        return cls(
            connection,
            FileConfigWriter(),
            CommandReloader(settings.reload_argv),
            health=health,
            config=ReconciliationConfig.from_settings(settings),
        )

    @property
    def health(self) -> HealthState:
        return self._health

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the engine task is running."""
        return self._task is not None and not self._task.done()

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Start subscription, full sync and the watch loop as a background task."""
        if self._task is not None:
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self.run())
        logger.info(
            f"Reconciliation engine started "
            f"(store={self._connection.address}, conf_dir={self._config.conf_dir})"
        )

    async def stop(self) -> None:
        """Stop the watch loop."""
        if self._task is None:
            return

        logger.info("Stopping reconciliation engine...")
        self._stop_event.set()

        try:
            await asyncio.wait_for(self._task, timeout=self._config.notification_timeout + 5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        except FatalSyncError:
            # Already logged by run().
            pass
        finally:
            self._task = None
            if self._state is not EngineState.FAILED:
                self._state = EngineState.STOPPED
            logger.info("Reconciliation engine stopped")

    async def run(self) -> None:
        """
        Subscribe, run full sync, then follow notifications until stopped.

        The subscription is opened before the full sync scans the store, so
        changes made while the scan runs are buffered on the subscriber
        session and applied once it finishes.

        Raises:
            FatalSyncError: If any phase fails. Readiness is left as it was.
        """
        try:
            client, pubsub = await self._open_subscription()
            try:
                await self.full_sync()
                await self._follow(pubsub)
            finally:
                await _close_subscription(client, pubsub)
        except FatalSyncError as e:
            self._state = EngineState.FAILED
            logger.critical(f"Reconciliation failed, node cannot stay in sync: {e}")
            raise
        except Exception:
            self._state = EngineState.FAILED
            logger.exception("Reconciliation engine crashed")
            raise

    # =========================================================================
    # FULL SYNC
    # =========================================================================

    async def full_sync(self) -> int:
        """
        Rebuild every artifact from the store and mark the node ready.

        Artifacts left under the configuration directory for keys that are no
        longer in the store are pruned before the reload.

        Returns:
            Number of artifacts written.

        Raises:
            FatalSyncError: If any read or write fails. The node stays syncing.
        """
        logger.info("Sync with redis in progress...")
        self._state = EngineState.FULL_SYNCING
        self._health.mark_syncing()

        kept: set[tuple[str, str]] = set()
        try:
            async with self._connection.session() as client:
                store = ConfigStore(client, resource_field=self._config.resource_field)
                for key in await store.get_all_resource_keys():
                    try:
                        resource = parse_resource_key(key)
                    except ValueError:
                        logger.warning(f"Skipping malformed resource key: {key}")
                        continue

                    payload = await store.get_resource(key, self._config.resource_field)
                    if payload is None:
                        # Deleted between scan and read.
                        logger.debug(f"Resource key vanished during sync: {key}")
                        await self._writer.remove(
                            self._config.conf_dir, resource.tenant_id, resource.artifact_name
                        )
                        continue

                    await self._writer.materialize(
                        self._config.conf_dir,
                        resource.tenant_id,
                        resource.artifact_name,
                        payload,
                    )
                    kept.add((resource.tenant_id, resource.artifact_name))

            await self._writer.prune(self._config.conf_dir, kept)
        except _SYNC_FAILURES as e:
            self._state = EngineState.FAILED
            raise FatalSyncError("Full sync failed", e) from e

        await self._reload()
        self._health.mark_ready()
        self._state = EngineState.IDLE
        logger.info(f"All resources synced. ({len(kept)} artifacts)")
        return len(kept)

    # =========================================================================
    # INCREMENTAL SYNC
    # =========================================================================

    async def watch(self) -> None:
        """
        Follow keyspace notifications on a dedicated session until stopped.

        Raises:
            FatalSyncError: If subscribing, reading or applying a change fails.
        """
        client, pubsub = await self._open_subscription()
        try:
            await self._follow(pubsub)
        finally:
            await _close_subscription(client, pubsub)

    async def _open_subscription(self) -> tuple[Any, Any]:
        try:
            client = await self._connection.open_dedicated()
        except GatewaySyncError as e:
            raise FatalSyncError("Failed to subscribe to redis", e) from e

        pubsub = client.pubsub()
        try:
            if self._config.notify_keyspace_events:
                await client.config_set(
                    "notify-keyspace-events", self._config.notify_keyspace_events
                )
            await pubsub.psubscribe(keyspace_pattern(self._config.db))
        except redis.RedisError as e:
            await _close_subscription(client, pubsub)
            raise FatalSyncError("Failed to subscribe to redis", e) from e

        logger.info("Subscribed to redis key changes")
        return client, pubsub

    async def _follow(self, pubsub: Any) -> None:
        self._state = EngineState.WATCHING
        logger.info("Listening for key changes...")

        while not self._stop_event.is_set():
            try:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self._config.notification_timeout,
                )
            except redis.TimeoutError:
                continue
            except redis.RedisError as e:
                raise FatalSyncError("Failed to read from redis", e) from e

            if message is None or message.get("type") != "pmessage":
                continue
            await self.apply(_decode_text(message["channel"]))

    async def apply(self, channel: str) -> None:
        """
        Bring one artifact in line with the resource a notification names.

        Raises:
            FatalSyncError: If the resource cannot be read or the artifact
                cannot be written.
        """
        try:
            resource = parse_notification(channel)
        except ValueError:
            logger.warning(f"Ignoring notification on unexpected channel: {channel}")
            return

        self._state = EngineState.APPLYING
        try:
            await self._apply(resource)
        except _SYNC_FAILURES as e:
            self._state = EngineState.FAILED
            raise FatalSyncError(f"Failed to apply change to {resource.key}", e) from e
        self._state = EngineState.WATCHING

    async def _apply(self, resource: ResourceKey) -> None:
        async with self._connection.session() as client:
            store = ConfigStore(client, resource_field=self._config.resource_field)
            payload = await store.get_resource(resource.key, self._config.resource_field)

        if payload is None:
            location = await self._writer.remove(
                self._config.conf_dir, resource.tenant_id, resource.artifact_name
            )
            await self._reload()
            logger.info(f"Redis key deleted: {resource.key}", extra={"redis_key": resource.key})
            logger.debug(f"Deleted file: {location}")
        else:
            location = await self._writer.materialize(
                self._config.conf_dir, resource.tenant_id, resource.artifact_name, payload
            )
            await self._reload()
            logger.info(f"Redis key updated: {resource.key}", extra={"redis_key": resource.key})
            logger.debug(f"Updated file: {location}")

    async def _reload(self) -> None:
        try:
            await self._reloader.reload()
        except ReloadError as e:
            # Retrying is the serving layer's call.
            logger.error(f"Failed to reload serving layer: {e}")


async def _close_subscription(client: Any, pubsub: Any) -> None:
    with contextlib.suppress(Exception):
        await pubsub.aclose()
    with contextlib.suppress(Exception):
        await client.aclose()
