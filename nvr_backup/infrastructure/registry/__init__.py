"""
Camera/NVR device registry integration.

Implements the DeviceRegistry protocol from core.backup.clips over the
NVR's HTTP bridge, with an in-memory mock for local development.
"""

from .client import (
    HttpDeviceRegistry,
    MockClip,
    MockDevice,
    MockDeviceRegistry,
    RegistryConfig,
    RegistryError,
    connect_registry,
)

__all__ = [
    "HttpDeviceRegistry",
    "MockClip",
    "MockDevice",
    "MockDeviceRegistry",
    "RegistryConfig",
    "RegistryError",
    "connect_registry",
]
