"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (and an optional .env
file) once at startup. Business logic never reads the environment: the
entry points turn Settings into the immutable BackupConfig, RegistryConfig
and StorageConfig objects the pipeline is built from.

Mock modes enable local runs without an NVR or a bucket.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.backup.models import CameraFilter
from ..core.backup.orchestrator import BackupConfig
from ..core.backup.retry import RetryPolicy
from ..infrastructure.registry.client import DEFAULT_HOST, RegistryConfig
from ..infrastructure.storage.client import GCS_INTEROP_ENDPOINT, StorageConfig

logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warn", "warning", "error")
DEFAULT_MAX_CONCURRENT_UPLOADS = 3


class Settings(BaseSettings):
    """
    Settings loaded from environment variables.

    Lists (camera include/exclude) are comma-separated strings.
    """

    # Checkpoint
    state_file_path: str = Field(
        default="./backup-state.json",
        description="Where the last processed timestamp is persisted"
    )

    # NVR / device registry
    nvr_host: str = Field(
        default=DEFAULT_HOST,
        description="Base URL of the NVR HTTP bridge"
    )
    nvr_user: str = Field(default="", description="NVR username")
    nvr_password: str = Field(default="", description="NVR password")
    allow_self_signed: bool = Field(
        default=False,
        description="Skip TLS verification for NVRs with self-signed certificates"
    )
    nvr_mock_mode: bool = Field(
        default=False,
        description="Serve sample clips from memory instead of a real NVR"
    )

    # Object store
    gcs_project_id: str = Field(default="", description="Cloud project owning the bucket")
    gcs_bucket_name: str = Field(default="", description="Target bucket for clips")
    gcs_keyfile_path: str = Field(
        default="",
        description=(
            "Shared-credentials file ([default] aws_access_key_id / "
            "aws_secret_access_key) holding a GCS HMAC key pair. A service-account "
            "JSON keyfile is not accepted: create an HMAC key for the service "
            "account (gsutil hmac create <sa-email>) and point this at a file "
            "containing it."
        )
    )
    store_endpoint_url: str = Field(
        default=GCS_INTEROP_ENDPOINT,
        description="S3-compatible endpoint. Defaults to the GCS interoperability API."
    )
    store_mock_mode: bool = Field(
        default=False,
        description="Keep uploads in memory instead of writing to a bucket"
    )
    retention_days: int = Field(
        default=7,
        description="Age in days after which the bucket lifecycle should delete clips"
    )

    # Run behavior
    max_concurrent_uploads: int = Field(
        default=DEFAULT_MAX_CONCURRENT_UPLOADS,
        description="Clips processed at the same time"
    )
    camera_include_list: str = Field(
        default="*",
        description="Comma-separated cameras to back up. '*' or empty backs up all."
    )
    camera_exclude_list: str = Field(
        default="",
        description="Comma-separated cameras to skip. Wins over the include list."
    )
    dry_run: bool = Field(
        default=False,
        description=(
            "List and fetch clips but upload nothing. The checkpoint still advances "
            "as if the uploads had succeeded."
        )
    )
    retry_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per listing, fetch and upload"
    )
    run_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Overall deadline for uploading a run's clips. Unset means none."
    )

    # Logging
    log_level: str = Field(
        default="info",
        description="Logging level (debug, info, warn, error)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("max_concurrent_uploads", mode="before")
    @classmethod
    def _default_invalid_concurrency(cls, value):
        """Non-numeric or non-positive widths fall back to the default."""
        try:
            width = int(value)
        except (TypeError, ValueError):
            return DEFAULT_MAX_CONCURRENT_UPLOADS
        return width if width > 0 else DEFAULT_MAX_CONCURRENT_UPLOADS

    @field_validator("run_timeout_seconds", mode="before")
    @classmethod
    def _empty_timeout_is_none(cls, value):
        if value in ("", None):
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of debug, info, warn, error (got {value!r})")
        return level

    @property
    def camera_filter(self) -> CameraFilter:
        return CameraFilter.from_lists(self.camera_include_list, self.camera_exclude_list)

    def to_backup_config(self) -> BackupConfig:
        """The immutable run configuration handed to the orchestrator."""
        return BackupConfig(
            camera_filter=self.camera_filter,
            max_concurrent_uploads=self.max_concurrent_uploads,
            dry_run=self.dry_run,
            retry_policy=RetryPolicy(max_attempts=self.retry_max_attempts),
            run_timeout_seconds=self.run_timeout_seconds,
        )

    def to_registry_config(self) -> RegistryConfig:
        return RegistryConfig(
            host=self.nvr_host,
            username=self.nvr_user,
            password=self.nvr_password,
            allow_self_signed=self.allow_self_signed,
        )

    def to_storage_config(self) -> StorageConfig:
        return StorageConfig(
            project_id=self.gcs_project_id,
            bucket_name=self.gcs_bucket_name,
            credentials_path=self.gcs_keyfile_path,
            endpoint_url=self.store_endpoint_url,
        )

    def validate_required_fields(self) -> list[str]:
        """
        Names of required settings that are missing.

        Requirements depend on the mock modes, which is why this lives
        outside Pydantic validation.
        """
        missing = []

        if not self.store_mock_mode:
            missing.extend(self.to_storage_config().missing_fields())

        if not self.nvr_mock_mode and not self.nvr_host:
            missing.append("NVR_HOST")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. Tests can call
    get_settings.cache_clear() to reload.
    """
    return Settings()
