"""
Clip source: finds the clip-capable device and lists its clips.

The registry itself lives in infrastructure. This module only knows the
DeviceRegistry protocol, so tests can hand it an in-memory registry and the
real HTTP client can be swapped without touching the pipeline.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

from .errors import NoCapableDeviceError
from .models import CameraFilter, ClipMetadata, Payload, RunWindow
from .retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

VIDEO_CLIPS_CAPABILITY = "VideoClips"


@dataclass(frozen=True)
class Device:
    """
    A registry entry.

    Capabilities are explicit tags rather than something detected on the
    device object at runtime.
    """
    id: str
    name: str = ""
    capabilities: frozenset[str] = field(default_factory=frozenset)

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities


class DeviceRegistry(Protocol):
    """Interface to the camera/NVR device registry."""

    async def list_devices(self) -> list[Device]:
        """All devices known to the registry."""
        ...

    async def query_clips(self, device: Device, start_ms: int, end_ms: int) -> list[dict[str, Any]]:
        """Raw clip records recorded within [start_ms, end_ms)."""
        ...

    async def fetch_clip(self, device: Device, clip_id: str) -> Payload:
        """Media of a single clip."""
        ...

    def close(self) -> None:
        """Release connections held by the client."""
        ...


def find_capable_device(
    devices: Iterable[Device],
    capability: str = VIDEO_CLIPS_CAPABILITY,
    log: Optional[logging.Logger] = None,
) -> Device:
    """
    Pick the device carrying the capability tag.

    Retrying won't change the device topology mid-run, so a missing
    device is a fatal NoCapableDeviceError.
    """
    log = log or logger
    capable = [device for device in devices if device.supports(capability)]
    if not capable:
        raise NoCapableDeviceError(f"No {capability} device found")
    if len(capable) > 1:
        log.debug(
            "Several %s devices found, using %s",
            capability, capable[0].name or capable[0].id,
            extra={"devices": [d.id for d in capable]},
        )
    return capable[0]


def normalize_and_filter(
    raw_clips: Iterable[dict[str, Any]],
    camera_filter: CameraFilter,
) -> list[ClipMetadata]:
    """
    Turn raw records into clips, keeping only wanted cameras.

    Pure: no I/O and no retries.
    """
    clips = (ClipMetadata.from_raw(raw) for raw in raw_clips)
    return [clip for clip in clips if camera_filter.matches(clip.camera_name)]


class ClipSource:
    """
    Lists and fetches clips from the registry.

    The device is discovered once, on first use, and reused for every
    listing and fetch of the run.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        retry_policy: Optional[RetryPolicy] = None,
        log: Optional[logging.Logger] = None,
        capability: str = VIDEO_CLIPS_CAPABILITY,
    ) -> None:
        self._registry = registry
        self._retry_policy = retry_policy or RetryPolicy()
        self._log = log or logger
        self._capability = capability
        self._device: Optional[Device] = None

    async def device(self) -> Device:
        if self._device is None:
            devices = await self._registry.list_devices()
            self._device = find_capable_device(devices, self._capability, self._log)
        return self._device

    async def list_clips(self, window: RunWindow) -> list[dict[str, Any]]:
        """Raw clip records in the window, retried on transient failure."""
        device = await self.device()
        return await with_retry(
            lambda: self._registry.query_clips(device, window.start_ms, window.end_ms),
            "getVideoClips",
            self._retry_policy,
            self._log,
        )

    async def new_clips(self, window: RunWindow, camera_filter: CameraFilter) -> list[ClipMetadata]:
        """Listed, normalized and filtered clips for the window."""
        raw_clips = await self.list_clips(window)
        clips = normalize_and_filter(raw_clips, camera_filter)
        self._log.debug(
            "Listed %d clips, %d after camera filter", len(raw_clips), len(clips),
            extra={"listed": len(raw_clips), "kept": len(clips)},
        )
        return clips

    async def fetch_payload(self, clip: ClipMetadata) -> Payload:
        """Media of a clip, retried on transient failure."""
        device = await self.device()
        return await with_retry(
            lambda: self._registry.fetch_clip(device, clip.id),
            f"getVideoClip {clip.id}",
            self._retry_policy,
            self._log,
        )
