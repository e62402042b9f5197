"""gatesync CLI."""

import typer

from gatesync.cli._console import console
from gatesync.cli.run import run
from gatesync.cli.sync import sync

app = typer.Typer(
    name="gatesync",
    help="Keep API gateway routing artifacts in sync with the shared store.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        from gatesync import __version__

        console.print(f"[bold]gatesync[/bold] [dim]{__version__}[/dim]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version",
    ),
) -> None:
    """Configuration synchronizer for API gateway nodes."""


# Register commands
app.command()(run)
app.command()(sync)
