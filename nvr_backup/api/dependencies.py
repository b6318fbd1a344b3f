"""
FastAPI dependency injection.

Routes receive settings, the application logger and the run coordinator
through these dependencies, so tests can override any of them with
app.dependency_overrides.
"""

import asyncio
import logging
from typing import Annotated, Optional

from fastapi import Depends, Request

from ..config.settings import Settings, get_settings
from ..core.backup.clips import DeviceRegistry
from ..core.backup.models import RunReport
from ..factory import build_orchestrator, create_registry

logger = logging.getLogger(__name__)


class RunAlreadyActiveError(Exception):
    """Raised when a run is requested while another one is in progress."""
    pass


class RunCoordinator:
    """
    Serializes backup runs triggered over HTTP.

    Two runs against the same checkpoint must never overlap, so a second
    request is rejected instead of queued.
    """

    def __init__(self, registry: Optional[DeviceRegistry] = None) -> None:
        self._lock = asyncio.Lock()
        self._registry = registry
        self.last_report: Optional[RunReport] = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self, settings: Settings, log: logging.Logger) -> RunReport:
        if self._lock.locked():
            raise RunAlreadyActiveError("A backup run is already in progress")
        async with self._lock:
            registry = self._registry or create_registry(settings, log)
            try:
                orchestrator = build_orchestrator(settings, log, registry=registry)
                self.last_report = await orchestrator.run()
            finally:
                if self._registry is None:
                    registry.close()
            return self.last_report


def get_app_logger(request: Request) -> logging.Logger:
    return getattr(request.app.state, "logger", logger)


def get_run_coordinator(request: Request) -> RunCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        coordinator = RunCoordinator()
        request.app.state.coordinator = coordinator
    return coordinator


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

SettingsDep = Annotated[Settings, Depends(get_settings)]
LoggerDep = Annotated[logging.Logger, Depends(get_app_logger)]
RunCoordinatorDep = Annotated[RunCoordinator, Depends(get_run_coordinator)]
