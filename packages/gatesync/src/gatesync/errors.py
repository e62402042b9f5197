"""Error taxonomy for the configuration synchronizer."""

from __future__ import annotations


class GatewaySyncError(Exception):
    """Base exception for gatesync errors."""

    status_code: int = 500


class TransportError(GatewaySyncError):
    """Raised when connecting, authenticating or pooling a store session fails."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class PoolExhaustedError(TransportError):
    """Raised when every pooled session is already checked out."""

    def __init__(self, pool_size: int) -> None:
        self.pool_size = pool_size
        super().__init__(f"Session pool exhausted ({pool_size} sessions in use)")


class StoreOperationError(GatewaySyncError):
    """Raised when a primitive store call fails."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation}: {cause}")


class ConflictError(GatewaySyncError):
    """Raised when a write would break a uniqueness invariant."""

    status_code = 409


class NotFoundError(GatewaySyncError):
    """Raised when deleting a record that does not exist."""

    status_code = 404


class FatalSyncError(GatewaySyncError):
    """Raised when reconciliation cannot continue from a known-good state."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ReloadError(GatewaySyncError):
    """Raised when the serving layer fails to reload."""

    def __init__(self, returncode: int | None, output: str = "") -> None:
        self.returncode = returncode
        self.output = output
        message = f"Reload failed (exit {returncode})"
        if output:
            message = f"{message}: {output}"
        super().__init__(message)
