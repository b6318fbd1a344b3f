"""
Incremental clip backup pipeline.

Contains the domain models, retry executor, clip source, upload engine and
the orchestrator that ties them together.
"""

from .clips import ClipSource, Device, DeviceRegistry, find_capable_device, normalize_and_filter
from .errors import (
    BackupError,
    CheckpointWriteError,
    ConfigurationError,
    NoCapableDeviceError,
    RetryExhaustedError,
    UploadError,
)
from .models import (
    BufferPayload,
    CameraFilter,
    ClipMetadata,
    RunReport,
    RunState,
    RunWindow,
    StreamPayload,
    key_for,
    object_key_for,
)
from .orchestrator import BackupConfig, BackupOrchestrator, CheckpointStore
from .retry import RetryPolicy, with_retry
from .uploader import ObjectStore, Uploader

__all__ = [
    "BackupConfig",
    "BackupError",
    "BackupOrchestrator",
    "BufferPayload",
    "CameraFilter",
    "CheckpointStore",
    "CheckpointWriteError",
    "ClipMetadata",
    "ClipSource",
    "ConfigurationError",
    "Device",
    "DeviceRegistry",
    "NoCapableDeviceError",
    "ObjectStore",
    "RetryExhaustedError",
    "RetryPolicy",
    "RunReport",
    "RunState",
    "RunWindow",
    "StreamPayload",
    "UploadError",
    "Uploader",
    "find_capable_device",
    "key_for",
    "normalize_and_filter",
    "object_key_for",
    "with_retry",
]
