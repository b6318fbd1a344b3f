"""
Camera/NVR device registry client.

The NVR is reached through its HTTP bridge:

    GET {host}/devices                                   -> devices
    GET {host}/devices/{id}/clips?startTime=..&endTime=..  -> raw clips
    GET {host}/devices/{id}/clips/{clip_id}/media          -> clip bytes

Devices report their interfaces, which become the explicit capability tags
the clip source matches on. Clip media is spooled into a temporary file
while downloading, which gives the upload engine a seekable stream it can
rewind between upload attempts.

Mock mode serves devices and clips from memory.
"""

import asyncio
import io
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import quote

import requests

from ...core.backup.clips import VIDEO_CLIPS_CAPABILITY, Device
from ...core.backup.errors import BackupError
from ...core.backup.models import BufferPayload, Payload, StreamPayload
from ...core.backup.orchestrator import now_ms as current_ms

logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://192.168.10.7:10443"


class RegistryError(BackupError):
    """Raised when the registry can't be reached or answers with an error."""
    pass


@dataclass
class RegistryConfig:
    """Connection parameters for the NVR."""
    host: str = DEFAULT_HOST
    username: str = ""
    password: str = ""
    allow_self_signed: bool = False
    timeout_seconds: float = 30.0
    spool_max_bytes: int = 8 * 1024 * 1024  # beyond this media spills to disk

    @property
    def base_url(self) -> str:
        return self.host.rstrip("/")


class HttpDeviceRegistry:
    """
    Registry client over the NVR's HTTP bridge.

    requests is synchronous, so calls run in worker threads.
    """

    def __init__(self, config: RegistryConfig, log: Optional[logging.Logger] = None) -> None:
        self._config = config
        self._log = log or logger
        self._session = requests.Session()
        if config.username:
            self._session.auth = (config.username, config.password)
        self._session.verify = not config.allow_self_signed
        if config.allow_self_signed:
            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _url(self, *parts: str) -> str:
        return "/".join([self._config.base_url, *(quote(part, safe="") for part in parts)])

    def _get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        try:
            response = self._session.get(url, params=params, timeout=self._config.timeout_seconds)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise RegistryError(f"Registry request {url} failed: {e}") from e
        except ValueError as e:
            raise RegistryError(f"Registry returned invalid JSON for {url}: {e}") from e

    async def list_devices(self) -> list[Device]:
        payload = await asyncio.to_thread(self._get_json, self._url("devices"))
        devices = [
            Device(
                id=str(item["id"]),
                name=item.get("name") or "",
                capabilities=frozenset(item.get("interfaces") or []),
            )
            for item in payload or []
        ]
        self._log.debug("Registry reported %d devices", len(devices))
        return devices

    async def query_clips(self, device: Device, start_ms: int, end_ms: int) -> list[dict[str, Any]]:
        payload = await asyncio.to_thread(
            self._get_json,
            self._url("devices", device.id, "clips"),
            {"startTime": start_ms, "endTime": end_ms},
        )
        if not isinstance(payload, list):
            raise RegistryError(f"Expected a list of clips, got {type(payload).__name__}")
        return payload

    async def fetch_clip(self, device: Device, clip_id: str) -> Payload:
        url = self._url("devices", device.id, "clips", clip_id, "media")
        return await asyncio.to_thread(self._download, url)

    def _download(self, url: str) -> StreamPayload:
        spool = tempfile.SpooledTemporaryFile(max_size=self._config.spool_max_bytes)
        try:
            with self._session.get(url, stream=True, timeout=self._config.timeout_seconds) as response:
                response.raise_for_status()
                response.raw.decode_content = True
                shutil.copyfileobj(response.raw, spool)
        except requests.RequestException as e:
            spool.close()
            raise RegistryError(f"Download of {url} failed: {e}") from e
        except Exception:
            spool.close()
            raise
        spool.seek(0)
        return StreamPayload(spool)

    def close(self) -> None:
        self._session.close()


# ---------------------------------------------------------------------------
# Mock Registry for Local Development
# ---------------------------------------------------------------------------

@dataclass
class MockClip:
    """A clip served by the mock registry."""
    record: dict[str, Any]
    data: bytes = b""


@dataclass
class MockDevice:
    device: Device
    clips: list[MockClip] = field(default_factory=list)


class MockDeviceRegistry:
    """
    In-memory registry.

    fetch_failures maps clip ids to how many fetches should fail before one
    succeeds; a negative count fails forever. Payloads are returned as
    buffers, or as streams when stream_payloads is set.
    """

    def __init__(
        self,
        devices: Optional[list[MockDevice]] = None,
        stream_payloads: bool = False,
    ) -> None:
        self.devices = list(devices or [])
        self.stream_payloads = stream_payloads
        self.fetch_failures: dict[str, int] = {}
        self.fetch_calls: list[str] = []
        self.query_calls: list[tuple[int, int]] = []

    @classmethod
    def with_sample_clips(cls, now_ms: int) -> "MockDeviceRegistry":
        """A single clip-capable NVR with one recent clip per camera."""
        clips = [
            MockClip(
                record={
                    "id": f"{camera}1",
                    "cameraName": camera,
                    "startTime": now_ms - offset,
                    "endTime": now_ms - offset + 30_000,
                    "mimeType": "video/mp4",
                },
                data=f"{camera} clip".encode(),
            )
            for camera, offset in (("front", 3_600_000), ("back", 2_400_000), ("side", 1_200_000))
        ]
        nvr = Device(id="nvr", name="Mock NVR", capabilities=frozenset({VIDEO_CLIPS_CAPABILITY}))
        return cls([MockDevice(device=nvr, clips=clips)])

    def _entry(self, device: Device) -> MockDevice:
        for entry in self.devices:
            if entry.device.id == device.id:
                return entry
        raise RegistryError(f"Unknown device {device.id}")

    async def list_devices(self) -> list[Device]:
        return [entry.device for entry in self.devices]

    async def query_clips(self, device: Device, start_ms: int, end_ms: int) -> list[dict[str, Any]]:
        self.query_calls.append((start_ms, end_ms))
        return [
            dict(clip.record)
            for clip in self._entry(device).clips
            if start_ms <= clip.record["startTime"] < end_ms
        ]

    async def fetch_clip(self, device: Device, clip_id: str) -> Payload:
        self.fetch_calls.append(clip_id)
        remaining = self.fetch_failures.get(clip_id, 0)
        if remaining:
            if remaining > 0:
                self.fetch_failures[clip_id] = remaining - 1
            raise RegistryError(f"Mock fetch failure for {clip_id}")
        for clip in self._entry(device).clips:
            if str(clip.record["id"]) == clip_id:
                if self.stream_payloads:
                    return StreamPayload(io.BytesIO(clip.data))
                return BufferPayload(clip.data)
        raise RegistryError(f"Unknown clip {clip_id}")

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def connect_registry(
    config: Optional[RegistryConfig] = None,
    mock_mode: bool = False,
    log: Optional[logging.Logger] = None,
    now_ms: Optional[int] = None,
):
    """
    Create the registry client.

    In mock mode the registry is seeded with sample clips recorded in the
    hour before now_ms.
    """
    if mock_mode:
        return MockDeviceRegistry.with_sample_clips(current_ms() if now_ms is None else now_ms)

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return HttpDeviceRegistry(config, log=log)
