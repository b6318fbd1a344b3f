"""
Shared fixtures for the backup tests.

Async code is driven with asyncio.run from plain test functions. Retry
policies use a recording no-op sleep so backoff never actually waits.
"""

import asyncio
import logging
from typing import BinaryIO

import pytest

from nvr_backup.core.backup.clips import VIDEO_CLIPS_CAPABILITY, Device
from nvr_backup.core.backup.retry import RetryPolicy
from nvr_backup.infrastructure.registry.client import MockClip, MockDevice, MockDeviceRegistry

HOUR_MS = 60 * 60 * 1000
BASE_MS = 1_700_000_000_000  # 2023-11-14T22:13:20Z


class RecordingSleep:
    """Stand-in for asyncio.sleep that remembers the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyStore:
    """
    Object store whose uploads fail a configurable number of times.

    failures maps object keys to remaining failures; a negative count
    fails forever.
    """

    def __init__(self, failures: dict[str, int] | None = None) -> None:
        self.failures = dict(failures or {})
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.calls: list[str] = []

    def _maybe_fail(self, key: str) -> None:
        self.calls.append(key)
        remaining = self.failures.get(key, 0)
        if remaining:
            if remaining > 0:
                self.failures[key] = remaining - 1
            raise ConnectionError(f"upload of {key} refused")

    async def upload_stream(self, key: str, stream: BinaryIO, content_type: str) -> None:
        self._maybe_fail(key)
        self.objects[key] = stream.read()
        self.content_types[key] = content_type

    async def upload_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self._maybe_fail(key)
        self.objects[key] = data
        self.content_types[key] = content_type


def raw_clip(clip_id: str, camera: str | None, start_ms: int, duration_ms: int = 30_000, **extra) -> dict:
    record = {"id": clip_id, "startTime": start_ms, "endTime": start_ms + duration_ms}
    if camera is not None:
        record["cameraName"] = camera
    record.update(extra)
    return record


def make_registry(*records: dict, stream_payloads: bool = False) -> MockDeviceRegistry:
    """Registry with one clip-capable NVR serving the given raw clips."""
    nvr = Device(id="nvr", name="NVR", capabilities=frozenset({VIDEO_CLIPS_CAPABILITY}))
    clips = [MockClip(record=record, data=f"media-{record['id']}".encode()) for record in records]
    return MockDeviceRegistry([MockDevice(device=nvr, clips=clips)], stream_payloads=stream_payloads)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry_policy(sleep) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, sleep=sleep)


@pytest.fixture
def test_logger() -> logging.Logger:
    return logging.getLogger("nvr_backup.tests")
