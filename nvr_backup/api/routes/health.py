"""
Health check endpoints.

- /health: liveness, is the process running?
- /health/ready: readiness, can a backup run succeed right now?

Readiness runs the same connectivity and lifecycle checks as
`nvr-backup verify`, without the dry-run backup.
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ...verification import run_verification
from ..dependencies import LoggerDep, RunCoordinatorDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    """Individual readiness check result."""
    name: str
    status: str  # "ok" or "error"
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response with details."""
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check dependencies.",
)
async def health_check(settings: SettingsDep, coordinator: RunCoordinatorDep) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        details={
            "run_active": coordinator.running,
            "dry_run": settings.dry_run,
            "mock_mode": {
                "nvr": settings.nvr_mock_mode,
                "store": settings.store_mock_mode,
            },
        },
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Checks configuration, NVR, bucket and lifecycle policy. 503 if any fails.",
    responses={503: {"description": "Service not ready", "model": ReadinessResponse}},
)
async def readiness_check(
    response: Response,
    settings: SettingsDep,
    log: LoggerDep,
) -> ReadinessResponse:
    checks: list[ReadinessCheck] = []

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        checks.append(ReadinessCheck(
            name="configuration",
            status="error",
            error=f"Missing required fields: {', '.join(missing_fields)}",
        ))
    else:
        checks.append(ReadinessCheck(name="configuration", status="ok"))

    report = await run_verification(settings, log, include_dry_run=False)
    for check in report.checks:
        checks.append(ReadinessCheck(
            name=check.name,
            status="ok" if check.passed else "error",
            error=None if check.passed else check.detail,
        ))

    all_ok = all(check.status == "ok" for check in checks)
    if not all_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        log.warning(
            "Readiness check failed",
            extra={"checks": [c.model_dump() for c in checks if c.status != "ok"]},
        )

    return ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        version=__version__,
        checks=checks,
    )
