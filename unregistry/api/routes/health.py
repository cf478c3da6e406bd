"""
Liveness and readiness probes.

Mounted outside the token gate so an orchestrator can probe the
service without credentials.

- /health: the process is up
- /health/ready: both namespace directories exist and are writable
"""

import asyncio
import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...infrastructure.storage.client import StorageError
from ..dependencies import ObjectStoreDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness response."""
    status: str
    version: str


class ReadinessCheck(BaseModel):
    """One named readiness probe."""
    name: str
    status: str  # "ok" or "error"
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Overall readiness plus each probe."""
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check storage.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """
    Cheap liveness probe.

    Never touches the data directory.
    """
    return HealthResponse(status="ok", version=settings.api_version)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 200 if both namespace directories are usable.",
    responses={
        503: {
            "description": "Service not ready",
            "model": ReadinessResponse,
        }
    },
)
async def readiness_check(settings: SettingsDep, storage: ObjectStoreDep):
    """
    Can this instance store objects?

    503 when a namespace directory is unusable. A default token is
    reported but does not fail readiness.
    """
    checks: list[ReadinessCheck] = []

    try:
        await asyncio.to_thread(storage.check)
        checks.append(ReadinessCheck(name="storage", status="ok"))
    except StorageError as e:
        logger.error("Storage readiness check failed", extra={"error": str(e)})
        checks.append(ReadinessCheck(name="storage", status="error", error=str(e)))

    token_check = ReadinessCheck(name="token", status="ok")
    if settings.uses_default_token:
        token_check.error = "default token in use"
    checks.append(token_check)

    all_ok = all(check.status == "ok" for check in checks)
    response = ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        version=settings.api_version,
        checks=checks,
    )

    if not all_ok:
        logger.warning(
            "Readiness check failed",
            extra={
                "checks": [
                    {"name": c.name, "status": c.status, "error": c.error}
                    for c in checks
                ]
            }
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(),
        )

    return response
