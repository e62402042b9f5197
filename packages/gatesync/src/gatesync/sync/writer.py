"""Local routing artifact writers."""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Set
from pathlib import Path

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".conf"


class LocalConfigWriter(ABC):
    """Materializes and removes the serving-layer artifact of a resource."""

    @abstractmethod
    async def materialize(
        self,
        base_dir: str,
        tenant_id: str,
        escaped_path: str,
        payload: str,
    ) -> Path:
        """Write (or overwrite) the artifact and return its location."""

    @abstractmethod
    async def remove(self, base_dir: str, tenant_id: str, escaped_path: str) -> Path:
        """Remove the artifact if present and return its location."""

    @abstractmethod
    async def prune(self, base_dir: str, keep: Set[tuple[str, str]]) -> list[Path]:
        """
        Remove every artifact under ``base_dir`` not named in ``keep``.

        Args:
            keep: (tenant id, escaped path) pairs that must survive.

        Returns:
            Locations of the removed artifacts.
        """


class FileConfigWriter(LocalConfigWriter):
    """
    Store one artifact per resource at ``<base_dir>/<tenant>/<escaped path>.conf``.

    The file holds the stored resource payload as-is; turning it into proxy
    configuration is left to the serving layer's templates. Every
    ``*.conf`` file one level below ``base_dir`` is treated as managed, so
    ``prune`` may delete it.
    """

    def _resolve(self, base_dir: str, tenant_id: str, escaped_path: str) -> Path:
        root = Path(base_dir).expanduser().resolve()
        target = (root / tenant_id / f"{escaped_path}{ARTIFACT_SUFFIX}").resolve()
        if root not in target.parents:
            raise ValueError("Invalid artifact path traversal")
        return target

    async def materialize(
        self,
        base_dir: str,
        tenant_id: str,
        escaped_path: str,
        payload: str,
    ) -> Path:
        target = self._resolve(base_dir, tenant_id, escaped_path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Readers must never see a half-written artifact.
            tmp = target.with_name(f".{target.name}.tmp")
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, target)

        await asyncio.to_thread(_write)
        return target

    async def remove(self, base_dir: str, tenant_id: str, escaped_path: str) -> Path:
        target = self._resolve(base_dir, tenant_id, escaped_path)
        await asyncio.to_thread(target.unlink, missing_ok=True)
        return target

    async def prune(self, base_dir: str, keep: Set[tuple[str, str]]) -> list[Path]:
        root = Path(base_dir).expanduser().resolve()

        def _prune() -> list[Path]:
            if not root.is_dir():
                return []
            removed: list[Path] = []
            for artifact in sorted(root.glob(f"*/*{ARTIFACT_SUFFIX}")):
                name = artifact.name.removesuffix(ARTIFACT_SUFFIX)
                if (artifact.parent.name, name) in keep:
                    continue
                artifact.unlink(missing_ok=True)
                removed.append(artifact)
            return removed

        removed = await asyncio.to_thread(_prune)
        for artifact in removed:
            logger.info(f"Pruned stale artifact: {artifact}")
        return removed
