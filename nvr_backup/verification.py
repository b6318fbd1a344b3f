"""
Setup verification.

Checks that a deployment can actually back up clips:
1. the NVR is reachable and exposes a clip-capable device
2. the bucket is reachable with the configured credentials
3. the bucket deletes clips after the configured retention period
4. a dry-run backup completes

Each check reports pass/fail instead of raising, so one broken dependency
doesn't hide the state of the others.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Optional

from .config.settings import Settings
from .core.backup.clips import VIDEO_CLIPS_CAPABILITY, DeviceRegistry
from .core.backup.uploader import ObjectStore
from .factory import build_orchestrator, create_registry, store_factory_for
from .infrastructure.state.checkpoint import MemoryCheckpointStore, create_checkpoint_store
from .infrastructure.storage.client import MockObjectStore

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Outcome of a single verification check."""
    name: str
    passed: bool
    detail: str = ""


@dataclass
class VerificationReport:
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return all(check.passed for check in self.checks)


async def check_registry_connection(
    registry: DeviceRegistry,
    log: Optional[logging.Logger] = None,
) -> CheckResult:
    log = log or logger
    log.info("Testing NVR connection...")
    try:
        devices = await registry.list_devices()
    except Exception as e:
        log.error("NVR connection test failed: %s", e)
        return CheckResult("registry", False, str(e))

    capable = [device for device in devices if device.supports(VIDEO_CLIPS_CAPABILITY)]
    if not capable:
        log.error("No %s device found on the NVR.", VIDEO_CLIPS_CAPABILITY)
        return CheckResult("registry", False, f"No {VIDEO_CLIPS_CAPABILITY} device found")

    log.info("Connected to the NVR and found %d %s devices.", len(capable), VIDEO_CLIPS_CAPABILITY)
    return CheckResult("registry", True, f"{len(capable)} {VIDEO_CLIPS_CAPABILITY} devices")


async def check_store_connection(
    store_factory: Callable[[], ObjectStore],
    log: Optional[logging.Logger] = None,
) -> CheckResult:
    log = log or logger
    log.info("Testing object store connection...")
    try:
        store = store_factory()
        await store.check_connection()
    except Exception as e:
        log.error("Object store connection test failed: %s", e)
        return CheckResult("storage", False, str(e))

    log.info("Connected to bucket %s", store.bucket_name)
    return CheckResult("storage", True, store.bucket_name)


async def verify_lifecycle_policy(
    store_factory: Callable[[], ObjectStore],
    retention_days: int = 7,
    log: Optional[logging.Logger] = None,
) -> CheckResult:
    """Pass iff an enabled rule deletes objects after exactly retention_days."""
    log = log or logger
    log.info("Verifying bucket lifecycle policy...")
    try:
        rules = await store_factory().get_lifecycle_rules()
    except Exception as e:
        log.error("Error verifying lifecycle policy: %s", e)
        return CheckResult("lifecycle", False, str(e))

    if not rules:
        log.warning("No lifecycle rules found on the bucket.")
        return CheckResult("lifecycle", False, "No lifecycle rules")

    for rule in rules:
        if rule.enabled and rule.action == "Delete" and rule.age_days == retention_days:
            log.info("Lifecycle policy for %d-day deletion is correctly configured.", retention_days)
            return CheckResult("lifecycle", True, f"{retention_days}-day deletion")

    log.warning("Lifecycle policy for %d-day deletion not found.", retention_days)
    return CheckResult("lifecycle", False, f"No {retention_days}-day deletion rule")


async def run_dry_run_backup(
    settings: Settings,
    log: logging.Logger,
    registry: Optional[DeviceRegistry] = None,
) -> CheckResult:
    """
    Run a full backup in dry-run mode.

    The run starts from the real checkpoint but works on an in-memory copy
    of it, and uploads go nowhere.
    """
    log.info("Starting dry-run backup...")
    try:
        start = await create_checkpoint_store(settings.state_file_path, log=log).read()
        config = dataclasses.replace(settings.to_backup_config(), dry_run=True)
        orchestrator = build_orchestrator(
            settings,
            log,
            registry=registry,
            checkpoint_store=MemoryCheckpointStore(initial=start),
            store_factory=MockObjectStore,
            config=config,
        )
        report = await orchestrator.run()
    except Exception as e:
        log.error("Dry-run backup failed: %s", e)
        return CheckResult("dry_run", False, str(e))

    log.info("Dry-run backup completed successfully.")
    return CheckResult(
        "dry_run", report.failed == 0,
        f"{report.clips_found} clips found, {report.failed} failed",
    )


async def run_verification(
    settings: Settings,
    log: logging.Logger,
    registry: Optional[DeviceRegistry] = None,
    store_factory: Optional[Callable[[], ObjectStore]] = None,
    include_dry_run: bool = True,
) -> VerificationReport:
    """
    Run every check and log the overall verdict.

    The object store is built once and shared by the connection and
    lifecycle checks. A registry created here is closed before returning;
    one passed in belongs to the caller.
    """
    log.info("Starting NVR backup verification...")
    owned_registry = None
    if registry is None:
        registry = owned_registry = create_registry(settings, log)
    store_factory = lru_cache(maxsize=None)(store_factory or store_factory_for(settings, log))

    report = VerificationReport()
    try:
        report.checks.append(await check_registry_connection(registry, log))
        report.checks.append(await check_store_connection(store_factory, log))
        report.checks.append(await verify_lifecycle_policy(store_factory, settings.retention_days, log))
        if include_dry_run:
            report.checks.append(await run_dry_run_backup(settings, log, registry))
    finally:
        if owned_registry is not None:
            owned_registry.close()

    if report.all_passed:
        log.info("All verification checks passed successfully!")
    else:
        log.error("Some verification checks failed. Please review the logs above.")
    return report
