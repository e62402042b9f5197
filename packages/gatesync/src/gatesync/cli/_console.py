"""Console output for the gatesync CLI."""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from gatesync.logging import QUIET_LOGGERS

# NO_COLOR standard
console = Console(
    highlight=False,
    no_color=os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes"),
)


def success(msg: str) -> None:
    console.print(f"  [green]✓[/green] {msg}")


def info(msg: str) -> None:
    console.print(f"  [dim]→[/dim] {msg}")


def error_panel(msg: str, *, title: str = "Failed") -> None:
    """Print a failure with its cause in a red panel."""
    console.print(
        Panel(
            Text(msg, style="dim"),
            title=Text(f"✗ {title}", style="red bold"),
            title_align="left",
            border_style="red dim",
            expand=False,
        )
    )


def setup_logging(verbose: bool = False) -> None:
    """Route engine logs through rich for one-shot commands."""
    handler = RichHandler(
        console=console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
