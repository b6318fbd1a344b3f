"""
Backup run endpoints.

Lets an external scheduler (Cloud Scheduler, a Kubernetes CronJob with
curl, ...) trigger a run over HTTP instead of starting a process. Only one
run can be active at a time.
"""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.backup.models import RunReport, from_millis
from ..dependencies import LoggerDep, RunAlreadyActiveError, RunCoordinatorDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class RunResponse(BaseModel):
    """Outcome of a backup run."""
    state: str = Field(description="Final run state")
    window_start: str = Field(description="Start of the covered window (ISO format)")
    window_end: str = Field(description="End of the covered window (ISO format)")
    clips_found: int = Field(description="Clips matching the camera filter")
    succeeded: int = Field(description="Clips uploaded")
    failed: int = Field(description="Clips that failed and will be retried next run")
    checkpoint: int = Field(description="Checkpoint after the run, ms since epoch")
    checkpoint_advanced: bool = Field(description="Whether the checkpoint moved forward")
    dry_run: bool = Field(description="Whether uploads were skipped")

    @classmethod
    def from_report(cls, report: RunReport) -> "RunResponse":
        return cls(
            state=report.state.value,
            window_start=from_millis(report.window.start_ms).isoformat(),
            window_end=from_millis(report.window.end_ms).isoformat(),
            clips_found=report.clips_found,
            succeeded=report.succeeded,
            failed=report.failed,
            checkpoint=report.checkpoint_after,
            checkpoint_advanced=report.advanced,
            dry_run=report.dry_run,
        )


@router.post(
    "",
    response_model=RunResponse,
    status_code=status.HTTP_200_OK,
    summary="Run one backup",
    responses={409: {"description": "A run is already in progress"}},
)
async def trigger_run(
    settings: SettingsDep,
    log: LoggerDep,
    coordinator: RunCoordinatorDep,
) -> RunResponse:
    """
    Run a backup and return its report.

    Fatal run errors (no clip-capable device, listing or checkpoint
    failures, missing bucket configuration) return 500 so the scheduler
    retries the whole run later.
    """
    try:
        report = await coordinator.run(settings, log)
    except RunAlreadyActiveError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        log.error("Backup run failed: %s", e, exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Backup run failed: {e}",
        )

    return RunResponse.from_report(report)


@router.get(
    "/last",
    response_model=RunResponse,
    summary="Report of the last completed run",
    responses={404: {"description": "No run has completed yet"}},
)
async def last_run(coordinator: RunCoordinatorDep) -> RunResponse:
    if coordinator.last_report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No run has completed yet")
    return RunResponse.from_report(coordinator.last_report)
