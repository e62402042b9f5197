"""Sync command: one-shot full sync."""

import asyncio

import typer

from gatesync.cli._console import error_panel, setup_logging, success
from gatesync.config import Settings, get_settings
from gatesync.errors import FatalSyncError
from gatesync.store import StoreConnection
from gatesync.sync import ReconciliationEngine


async def _full_sync(settings: Settings) -> int:
    connection = StoreConnection.from_settings(settings)
    engine = ReconciliationEngine.from_settings(settings, connection)
    try:
        return await engine.full_sync()
    finally:
        await connection.close()


def sync(
    conf_dir: str | None = typer.Option(
        None,
        "--conf-dir",
        "-d",
        help="Artifact directory (overrides GATESYNC_CONF_DIR)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Rebuild every local artifact from the store once and reload, then exit."""
    setup_logging(verbose=verbose)

    settings = get_settings()
    if conf_dir:
        settings = settings.model_copy(update={"conf_dir": conf_dir})

    try:
        written = asyncio.run(_full_sync(settings))
    except FatalSyncError as e:
        error_panel(str(e), title="Sync failed")
        raise typer.Exit(1)

    success(f"Synced {written} resources into {settings.conf_dir}")
