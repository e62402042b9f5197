"""Reconciliation of local artifacts with the shared store."""

from gatesync.sync.engine import EngineState, ReconciliationConfig, ReconciliationEngine
from gatesync.sync.reloader import CommandReloader, ServingReloader
from gatesync.sync.writer import FileConfigWriter, LocalConfigWriter

__all__ = [
    "CommandReloader",
    "EngineState",
    "FileConfigWriter",
    "LocalConfigWriter",
    "ReconciliationConfig",
    "ReconciliationEngine",
    "ServingReloader",
]
