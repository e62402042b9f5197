"""Health check routes."""

from typing import Literal

import redis.asyncio as redis
from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel

from gatesync.config import get_settings
from gatesync.errors import GatewaySyncError
from gatesync.health import HealthState, SyncStatus

router = APIRouter(tags=["health"])


class HealthStatusResponse(BaseModel):
    """Gateway sync status."""

    status: SyncStatus
    message: str
    version: str


class StoreReadiness(BaseModel):
    status: Literal["ok", "error", "skipped"]
    detail: str | None = None


class ReadinessResponse(HealthStatusResponse):
    """Sync status plus store reachability."""

    store: StoreReadiness


def get_health_state(request: Request) -> HealthState:
    return request.app.state.health


async def _check_store_readiness(request: Request) -> StoreReadiness:
    connection = getattr(request.app.state, "connection", None)
    if connection is None:
        return StoreReadiness(status="skipped", detail="Store connection not started")

    try:
        async with connection.session() as client:
            await client.ping()
    except (GatewaySyncError, redis.RedisError) as exc:
        return StoreReadiness(status="error", detail=f"Redis ping failed: {exc}")

    return StoreReadiness(status="ok")


@router.get("/health", response_model=HealthStatusResponse)
async def health_check(request: Request, response: Response) -> HealthStatusResponse:
    """
    Sync status endpoint for load balancers and traffic gating.

    Returns 503 until the node has finished its startup sync, 200 afterwards.
    """
    report = get_health_state(request).probe()
    response.status_code = report.status_code
    return HealthStatusResponse(
        status=report.status,
        message=report.message,
        version=get_settings().version,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request, response: Response) -> ReadinessResponse:
    """Strict readiness: synced and the store answers a ping."""
    report = get_health_state(request).probe()
    store = await _check_store_readiness(request)
    if report.status is not SyncStatus.READY or store.status == "error":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status=report.status,
        message=report.message,
        version=get_settings().version,
        store=store,
    )
