"""Liveness probe reporting whether the token store answers."""

import time

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from tokengate.core import check_db_connection, settings

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    token_store: str
    latency_ms: float


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Token store unreachable"}},
)
async def health_check(response: Response) -> HealthResponse:
    """Round-trip the token store.

    Every authenticated request depends on the store, so an unreachable
    store makes the whole service unhealthy (503).
    """
    started = time.perf_counter()
    reachable = await check_db_connection()
    latency_ms = round((time.perf_counter() - started) * 1000, 2)

    if not reachable:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if reachable else "unhealthy",
        version=settings.app_version,
        token_store="reachable" if reachable else "unreachable",
        latency_ms=latency_ms,
    )
