"""gatesync node: health endpoints with the reconciliation engine in the background."""

import asyncio
import logging
import os
import signal
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gatesync.config import get_settings
from gatesync.health import HealthState
from gatesync.logging import configure_logging
from gatesync.routes import health_router
from gatesync.store import StoreConnection
from gatesync.sync import ReconciliationEngine

# Configure logging (supports GATESYNC_LOG_FORMAT=json for structured output).
_boot_settings = get_settings()
configure_logging(log_format=_boot_settings.log_format, debug=_boot_settings.debug)
logger = logging.getLogger(__name__)


def _shutdown_on_failure(task: asyncio.Task[None]) -> None:
    """Terminate the process when reconciliation dies so a supervisor restarts it."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.critical(f"Reconciliation engine failed, shutting down node: {exc!r}")
        os.kill(os.getpid(), signal.SIGTERM)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""

    # Startup
    logger.info("Starting gatesync node...")
    settings = get_settings()

    connection = StoreConnection.from_settings(settings)
    engine = ReconciliationEngine.from_settings(settings, connection, health=app.state.health)
    app.state.connection = connection
    app.state.engine = engine

    await engine.start()
    if engine.task is not None:
        engine.task.add_done_callback(_shutdown_on_failure)

    yield

    # Shutdown
    logger.info("Shutting down gatesync node...")
    try:
        await engine.stop()
    finally:
        await connection.close()
        logger.info("Store sessions closed")


app_settings = get_settings()
app = FastAPI(
    title="gatesync",
    description="Configuration synchronizer for API gateway nodes",
    version=app_settings.version,
    lifespan=lifespan,
)
app.state.health = HealthState()
app.include_router(health_router)


def main(host: str | None = None, port: int | None = None):
    """Run the node."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "gatesync.main:app",
        host=host or settings.host,
        port=port or settings.port,
    )


if __name__ == "__main__":
    main()
