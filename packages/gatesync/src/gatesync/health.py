"""Readiness state gating traffic while the node syncs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class SyncStatus(StrEnum):
    SYNCING = "syncing"
    READY = "ready"


@dataclass(frozen=True)
class HealthReport:
    status_code: int
    status: SyncStatus
    message: str


_REPORTS = {
    SyncStatus.SYNCING: HealthReport(503, SyncStatus.SYNCING, "Status: Gateway syncing."),
    SyncStatus.READY: HealthReport(200, SyncStatus.READY, "Status: Gateway ready."),
}


class HealthState:
    """
    Single-writer readiness cell.

    The reconciliation engine is the only writer; health probes and any
    other coroutine read it. A node starts out syncing and is never ready
    before its first full sync has completed.
    """

    def __init__(self) -> None:
        self._status = SyncStatus.SYNCING

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status is SyncStatus.READY

    def mark_syncing(self) -> None:
        self._status = SyncStatus.SYNCING

    def mark_ready(self) -> None:
        self._status = SyncStatus.READY

    def probe(self) -> HealthReport:
        return _REPORTS[self._status]
