"""
Object storage integration for clip uploads.

Supports any S3-compatible bucket, Google Cloud Storage by default.
Includes mock mode for local development without credentials.
"""

from .client import (
    LifecycleRule,
    MockObjectStore,
    S3ObjectStore,
    StorageConfig,
    StorageConfigError,
    StorageError,
    create_object_store,
)

__all__ = [
    "LifecycleRule",
    "MockObjectStore",
    "S3ObjectStore",
    "StorageConfig",
    "StorageConfigError",
    "StorageError",
    "create_object_store",
]
