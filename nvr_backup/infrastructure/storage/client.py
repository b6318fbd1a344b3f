"""
Object storage client for clip backups.

Talks to any S3-compatible endpoint through boto3. The default endpoint is
Google Cloud Storage's XML interoperability API, authenticated with HMAC
keys stored in a shared-credentials keyfile, so the same client serves GCS,
S3, R2 or MinIO.

Migration note: GCS_KEYFILE_PATH no longer takes a service-account JSON
keyfile. Create an HMAC key for the service account (`gsutil hmac create
<sa-email>`) and store it as a shared-credentials file:

    [default]
    aws_access_key_id = GOOG...
    aws_secret_access_key = ...

A JSON keyfile is rejected with StorageConfigError when the store is built.

Mock mode keeps objects in memory, enabling dry verification and tests
without a bucket.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

from ...core.backup.errors import BackupError, ConfigurationError

logger = logging.getLogger(__name__)

GCS_INTEROP_ENDPOINT = "https://storage.googleapis.com"


class StorageError(BackupError):
    """Raised when storage operations fail."""
    pass


class StorageConfigError(ConfigurationError):
    """Raised when the object store can't be configured."""
    pass


@dataclass
class StorageConfig:
    """
    Configuration for the target bucket.

    credentials_path points to a shared-credentials file holding the
    HMAC access key pair (aws_access_key_id / aws_secret_access_key).
    """
    project_id: str
    bucket_name: str
    credentials_path: str
    endpoint_url: str = GCS_INTEROP_ENDPOINT
    region: str = "auto"

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.project_id:
            missing.append("GCS_PROJECT_ID")
        if not self.bucket_name:
            missing.append("GCS_BUCKET_NAME")
        if not self.credentials_path:
            missing.append("GCS_KEYFILE_PATH")
        return missing


@dataclass(frozen=True)
class LifecycleRule:
    """A bucket lifecycle rule, reduced to what retention checks need."""
    action: str
    age_days: Optional[int]
    enabled: bool = True


class S3ObjectStore:
    """
    Bucket client built on boto3.

    boto3 is synchronous, so every call runs in a worker thread to keep
    concurrent uploads from blocking the event loop.
    """

    def __init__(self, config: StorageConfig, log: Optional[logging.Logger] = None) -> None:
        try:
            import boto3
            import botocore.session
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 is required for object storage. Install with: pip install boto3"
            )

        self._config = config
        self._log = log or logger

        core_session = botocore.session.Session()
        core_session.set_config_variable("credentials_file", config.credentials_path)
        session = boto3.Session(botocore_session=core_session)

        self._s3_client = session.client(
            "s3",
            endpoint_url=config.endpoint_url,
            region_name=config.region,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
            ),
        )
        # GCS scopes interop requests to a project through this header
        self._s3_client.meta.events.register("before-sign.s3", self._add_project_header)

        self._log.info(
            "Initialized object store client for bucket %s", config.bucket_name,
            extra={"bucket": config.bucket_name, "endpoint": config.endpoint_url},
        )

    @property
    def bucket_name(self) -> str:
        return self._config.bucket_name

    def _add_project_header(self, request, **kwargs) -> None:
        request.headers["x-goog-project-id"] = self._config.project_id

    async def upload_stream(self, key: str, stream: BinaryIO, content_type: str) -> None:
        """Stream an object to the bucket; returns when the upload completed."""
        try:
            await asyncio.to_thread(
                self._s3_client.upload_fileobj,
                stream,
                self._config.bucket_name,
                key,
                ExtraArgs={"ContentType": content_type, "ACL": "private"},
            )
        except Exception as e:
            raise StorageError(f"Stream upload of {key} failed: {e}") from e

    async def upload_bytes(self, key: str, data: bytes, content_type: str) -> None:
        """Write an in-memory object with private visibility."""
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self._config.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                ACL="private",
            )
        except Exception as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e

    async def check_connection(self) -> None:
        """Raise StorageError unless the bucket is reachable."""
        try:
            await asyncio.to_thread(self._s3_client.head_bucket, Bucket=self._config.bucket_name)
        except Exception as e:
            raise StorageError(f"Bucket {self._config.bucket_name} is not reachable: {e}") from e

    async def get_lifecycle_rules(self) -> list[LifecycleRule]:
        """Lifecycle rules of the bucket; empty when none are configured."""
        from botocore.exceptions import ClientError

        try:
            response = await asyncio.to_thread(
                self._s3_client.get_bucket_lifecycle_configuration,
                Bucket=self._config.bucket_name,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "NoSuchLifecycleConfiguration":
                return []
            raise StorageError(f"Could not read lifecycle rules: {e}") from e
        except Exception as e:
            raise StorageError(f"Could not read lifecycle rules: {e}") from e

        rules = []
        for rule in response.get("Rules", []):
            expiration = rule.get("Expiration") or {}
            if "Days" in expiration:
                action, age = "Delete", expiration["Days"]
            else:
                action, age = "Other", None
            rules.append(LifecycleRule(
                action=action,
                age_days=age,
                enabled=rule.get("Status", "Enabled") == "Enabled",
            ))
        return rules


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

@dataclass
class StoredObject:
    data: bytes
    content_type: str
    private: bool = True


class MockObjectStore:
    """
    In-memory bucket.

    Records every object written so tests and dry verification can see
    exactly what a run would have uploaded.
    """

    def __init__(
        self,
        bucket_name: str = "mock-bucket",
        lifecycle_rules: Optional[list[LifecycleRule]] = None,
    ) -> None:
        self.bucket_name = bucket_name
        self.objects: dict[str, StoredObject] = {}
        self.lifecycle_rules = list(lifecycle_rules or [])
        logger.info("Initialized mock object store (in-memory)")

    async def upload_stream(self, key: str, stream: BinaryIO, content_type: str) -> None:
        data = await asyncio.to_thread(stream.read)
        self.objects[key] = StoredObject(data=data, content_type=content_type)

    async def upload_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = StoredObject(data=bytes(data), content_type=content_type)

    async def check_connection(self) -> None:
        pass

    async def get_lifecycle_rules(self) -> list[LifecycleRule]:
        return list(self.lifecycle_rules)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_object_store(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
    log: Optional[logging.Logger] = None,
):
    """
    Create the object store for a run.

    Raises StorageConfigError when project, bucket or keyfile is missing,
    or when the keyfile is a service-account JSON key, before any upload
    is attempted.
    """
    if mock_mode:
        return MockObjectStore()

    if config is None:
        raise StorageConfigError("Storage configuration is required when not in mock mode")

    missing = config.missing_fields()
    if missing:
        raise StorageConfigError(f"Object store configuration missing: {', '.join(missing)}")

    _check_keyfile(config.credentials_path)
    return S3ObjectStore(config, log=log)


def _check_keyfile(path: str) -> None:
    try:
        with open(path, "r", encoding="utf-8") as f:
            head = f.read(256).lstrip()
    except OSError as e:
        raise StorageConfigError(f"Cannot read GCS_KEYFILE_PATH {path}: {e}") from e
    if head.startswith("{"):
        raise StorageConfigError(
            f"GCS_KEYFILE_PATH {path} is a service-account JSON keyfile. "
            "Create an HMAC key for the service account and point GCS_KEYFILE_PATH "
            "at a shared-credentials file holding aws_access_key_id and "
            "aws_secret_access_key."
        )
