"""gatesync - control-plane configuration synchronizer for API gateway nodes."""

from gatesync._version import __version__
from gatesync.errors import (
    ConflictError,
    FatalSyncError,
    GatewaySyncError,
    NotFoundError,
    PoolExhaustedError,
    ReloadError,
    StoreOperationError,
    TransportError,
)
from gatesync.health import HealthReport, HealthState, SyncStatus
from gatesync.models import Api, Operation, Resource, Tenant
from gatesync.store import ConfigStore, StoreConnection, generate_resource_obj
from gatesync.sync import (
    CommandReloader,
    FileConfigWriter,
    ReconciliationConfig,
    ReconciliationEngine,
)

__all__ = [
    "Api",
    "CommandReloader",
    "ConfigStore",
    "ConflictError",
    "FatalSyncError",
    "FileConfigWriter",
    "GatewaySyncError",
    "HealthReport",
    "HealthState",
    "NotFoundError",
    "Operation",
    "PoolExhaustedError",
    "ReconciliationConfig",
    "ReconciliationEngine",
    "ReloadError",
    "Resource",
    "StoreConnection",
    "StoreOperationError",
    "SyncStatus",
    "Tenant",
    "TransportError",
    "__version__",
    "generate_resource_obj",
]
