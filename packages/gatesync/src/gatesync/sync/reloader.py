"""Serving-layer reload triggers."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from gatesync.errors import ReloadError

logger = logging.getLogger(__name__)


class ServingReloader(ABC):
    """Tells the proxy engine to pick up changed artifacts."""

    @abstractmethod
    async def reload(self) -> None:
        """
        Request a reload.

        Raises:
            ReloadError: If the serving layer reports a failure.
        """


class CommandReloader(ServingReloader):
    """Reload by running a command, e.g. ``nginx -s reload``."""

    def __init__(self, argv: Sequence[str], *, timeout: float = 30.0) -> None:
        if not argv:
            raise ValueError("Reload command must not be empty")
        self._argv = list(argv)
        self._timeout = timeout

    async def reload(self) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *self._argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ReloadError(None, str(e)) from e

        try:
            output, _ = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ReloadError(None, f"timed out after {self._timeout}s") from e

        if process.returncode != 0:
            raise ReloadError(process.returncode, output.decode(errors="replace").strip())
        logger.debug(f"Reloaded serving layer: {' '.join(self._argv)}")
