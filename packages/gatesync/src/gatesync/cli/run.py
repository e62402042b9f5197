"""Run command: serve the node."""

import os

import typer

from gatesync.cli._console import info


def run(
    host: str | None = typer.Option(
        None,
        "--host",
        help="Bind address for the health endpoint (overrides GATESYNC_HOST)",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        help="Port for the health endpoint (overrides GATESYNC_PORT)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
) -> None:
    """
    Sync local artifacts from the store, then follow changes until stopped.

    Examples:
        gatesync run                  # Serve /health on GATESYNC_HOST:GATESYNC_PORT
        gatesync run --port 9000
    """
    # The node configures its own logging from settings on import.
    if verbose:
        os.environ["GATESYNC_DEBUG"] = "true"

    from gatesync.main import main as serve

    info("Starting gatesync node")
    try:
        serve(host=host, port=port)
    except KeyboardInterrupt:
        pass  # Clean exit on Ctrl+C
