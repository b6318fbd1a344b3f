"""
Backup orchestrator: drives one incremental backup run.

A run reads the checkpoint, lists the clips recorded since then, uploads
them with bounded concurrency and finally moves the checkpoint forward to
the end of the newest clip that made it to the object store.

Failures of a single clip are logged and counted but never stop the other
clips, and they never hold the checkpoint back: it moves to the newest end
time among the clips that were uploaded. Delivery is at-least-once per run;
re-uploading a clip is harmless because object keys are deterministic.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from .clips import ClipSource
from .models import (
    MS_PER_HOUR,
    CameraFilter,
    ClipMetadata,
    RunReport,
    RunState,
    RunWindow,
    from_millis,
    key_for,
)
from .retry import RetryPolicy
from .uploader import ObjectStore, Uploader

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_MS = 24 * MS_PER_HOUR


def now_ms() -> int:
    return int(time.time() * 1000)


class CheckpointStore(Protocol):
    """Persists the high-water mark of the last successful run."""

    async def read(self) -> int:
        """Last checkpoint in ms; now - 24h when nothing usable is stored."""
        ...

    async def write(self, timestamp_ms: int) -> None:
        """Persist a new checkpoint. Raises CheckpointWriteError on failure."""
        ...


@dataclass(frozen=True)
class BackupConfig:
    """
    Everything a run needs to know, assembled once at startup.

    The orchestrator never reads the environment itself.
    """
    camera_filter: CameraFilter = field(default_factory=CameraFilter)
    max_concurrent_uploads: int = 3
    dry_run: bool = False
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    run_timeout_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_concurrent_uploads < 1:
            raise ValueError("max_concurrent_uploads must be at least 1")
        if self.run_timeout_seconds is not None and self.run_timeout_seconds <= 0:
            raise ValueError("run_timeout_seconds must be positive")


class _Progress:
    """Run-scoped accumulator shared by the processing units."""

    def __init__(self, start_ms: int) -> None:
        self.latest_end_ms = start_ms
        self.succeeded = 0
        self.failed = 0
        self._lock = asyncio.Lock()

    async def record_success(self, clip: ClipMetadata) -> None:
        async with self._lock:
            self.succeeded += 1
            if clip.end_ms > self.latest_end_ms:
                self.latest_end_ms = clip.end_ms

    async def record_failure(self) -> None:
        async with self._lock:
            self.failed += 1


class BackupOrchestrator:
    """
    Runs backups against injected collaborators.

    The object store is created through store_factory only once there is
    something to upload, so a run without new clips never needs cloud
    credentials.
    """

    def __init__(
        self,
        config: BackupConfig,
        checkpoint_store: CheckpointStore,
        clip_source: ClipSource,
        store_factory: Callable[[], ObjectStore],
        log: Optional[logging.Logger] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._config = config
        self._checkpoints = checkpoint_store
        self._clips = clip_source
        self._store_factory = store_factory
        self._log = log or logger
        self._clock = clock
        self._uploader = Uploader(config.retry_policy, config.dry_run, self._log)
        self.state = RunState.IDLE

    def _enter(self, state: RunState) -> None:
        self.state = state
        self._log.debug("Run state -> %s", state.value, extra={"state": state.value})

    async def run(self) -> RunReport:
        """
        Execute one backup run and report what happened.

        Fatal errors (discovery, listing, store configuration, checkpoint
        write) leave the run in FAILED and propagate to the caller.
        """
        try:
            return await self._run()
        except Exception as e:
            self._enter(RunState.FAILED)
            self._log.error("Backup failed: %s", e)
            raise

    async def _run(self) -> RunReport:
        self._enter(RunState.IDLE)
        self._log.info("Starting backup at %s", from_millis(self._clock()).isoformat())

        start_ms = await self._checkpoints.read()
        window = RunWindow(start_ms=start_ms, end_ms=self._clock())
        self._enter(RunState.CHECKPOINT_READ)
        report = RunReport(
            state=self.state,
            window=window,
            checkpoint_before=start_ms,
            checkpoint_after=start_ms,
            dry_run=self._config.dry_run,
        )

        if window.is_empty:
            self._log.warning(
                "Checkpoint %s is ahead of the clock, skipping run",
                from_millis(start_ms).isoformat(),
            )
            self._enter(RunState.DONE)
            report.state = self.state
            return report

        self._enter(RunState.LISTING)
        clips = await self._clips.new_clips(window, self._config.camera_filter)

        report.clips_found = len(clips)
        if not clips:
            self._enter(RunState.NO_NEW_CLIPS)
            self._log.info("No new clips found")
            self._enter(RunState.DONE)
            report.state = self.state
            return report

        self._log.info("Found %d new clips", len(clips), extra={"clips": len(clips)})

        self._enter(RunState.PROCESSING)
        progress = await self._process_all(clips, start_ms)
        report.succeeded = progress.succeeded
        report.failed = progress.failed

        self._enter(RunState.STATE_UPDATE)
        report.checkpoint_after = await self._update_checkpoint(progress, start_ms)

        self._enter(RunState.DONE)
        report.state = self.state
        return report

    async def _process_all(self, clips: list[ClipMetadata], start_ms: int) -> _Progress:
        store = self._store_factory()
        progress = _Progress(start_ms)
        semaphore = asyncio.Semaphore(self._config.max_concurrent_uploads)

        # sorted() is stable, so clips with equal start times keep their order
        ordered = sorted(clips, key=lambda clip: clip.start_time)
        tasks = [
            asyncio.create_task(self._process_clip(clip, store, semaphore, progress))
            for clip in ordered
        ]

        _, pending = await asyncio.wait(tasks, timeout=self._config.run_timeout_seconds)
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self._log.warning(
                "Run deadline of %ss reached, cancelled %d clips",
                self._config.run_timeout_seconds, len(pending),
            )
            for _ in pending:
                await progress.record_failure()

        if progress.failed:
            self._log.warning("%d clips failed to process", progress.failed)
        return progress

    async def _process_clip(
        self,
        clip: ClipMetadata,
        store: ObjectStore,
        semaphore: asyncio.Semaphore,
        progress: _Progress,
    ) -> None:
        async with semaphore:
            key = key_for(clip)
            self._log.info("Processing clip %s for %s", clip.id, key)
            try:
                payload = await self._clips.fetch_payload(clip)
                try:
                    await self._uploader.upload(store, key, payload, clip.mime_type)
                finally:
                    payload.close()
            except Exception as e:
                self._log.error(
                    "Failed to process clip %s: %s", clip.id, e,
                    extra={"clip_id": clip.id, "key": key},
                )
                await progress.record_failure()
                return
            await progress.record_success(clip)

    async def _update_checkpoint(self, progress: _Progress, start_ms: int) -> int:
        candidate = progress.latest_end_ms
        if candidate <= start_ms:
            if progress.succeeded:
                self._log.info("Uploaded clips end before the checkpoint; state unchanged")
            else:
                self._log.warning("No successful uploads; state unchanged")
            return start_ms

        await self._checkpoints.write(candidate)
        self._log.info("Backup completed, state updated to %s", from_millis(candidate).isoformat())
        return candidate
