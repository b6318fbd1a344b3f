"""
Checkpoint persistence.

The checkpoint is a single JSON document, {"lastTimestamp": <ms>}, kept at
STATE_FILE_PATH. Reads are forgiving: a missing or unreadable file means
"start 24 hours ago". Writes go to a temporary file next to the target and
are moved into place with os.replace, so a failed write leaves the previous
checkpoint untouched.

An in-memory store backs tests, mock mode and the verification dry run.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional, Union

from ...core.backup.errors import CheckpointWriteError
from ...core.backup.orchestrator import DEFAULT_LOOKBACK_MS, now_ms

logger = logging.getLogger(__name__)


class FileCheckpointStore:
    """Checkpoint kept in a JSON file."""

    def __init__(
        self,
        path: Union[str, Path],
        log: Optional[logging.Logger] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._path = Path(path)
        self._log = log or logger
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    async def read(self) -> int:
        try:
            return await asyncio.to_thread(self._read_sync)
        except (OSError, ValueError, KeyError, TypeError) as e:
            fallback = self._clock() - DEFAULT_LOOKBACK_MS
            self._log.warning(
                "No usable state file at %s, starting from 24 hours ago: %s", self._path, e,
                extra={"path": str(self._path)},
            )
            return fallback

    def _read_sync(self) -> int:
        with open(self._path, "r", encoding="utf-8") as f:
            state = json.load(f)
        value = state["lastTimestamp"]
        # bool is an int subclass; reject it along with floats and strings
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"lastTimestamp is not an integer: {value!r}")
        return value

    async def write(self, timestamp_ms: int) -> None:
        try:
            await asyncio.to_thread(self._write_sync, timestamp_ms)
        except OSError as e:
            self._log.error(
                "Failed to write state file %s: %s", self._path, e,
                extra={"path": str(self._path)},
            )
            raise CheckpointWriteError(f"Could not write checkpoint to {self._path}: {e}") from e

    def _write_sync(self, timestamp_ms: int) -> None:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"lastTimestamp": int(timestamp_ms)}, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


class MemoryCheckpointStore:
    """
    Checkpoint held in memory.

    Starts empty (reads fall back to now - 24h) unless seeded with a value.
    """

    def __init__(
        self,
        initial: Optional[int] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.value = initial
        self.writes: list[int] = []
        self._clock = clock

    async def read(self) -> int:
        if self.value is None:
            return self._clock() - DEFAULT_LOOKBACK_MS
        return self.value

    async def write(self, timestamp_ms: int) -> None:
        self.value = timestamp_ms
        self.writes.append(timestamp_ms)


def create_checkpoint_store(
    path: Optional[Union[str, Path]] = None,
    mock_mode: bool = False,
    log: Optional[logging.Logger] = None,
):
    """File-backed store for path, or an in-memory one in mock mode."""
    if mock_mode:
        return MemoryCheckpointStore()
    if path is None:
        raise ValueError("path is required when not in mock mode")
    return FileCheckpointStore(path, log=log)
