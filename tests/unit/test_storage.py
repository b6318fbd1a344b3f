"""
Unit tests for the object store clients.

The boto3-backed store is exercised through botocore's Stubber, so no
request ever leaves the process.
"""

import io

import pytest
from botocore.stub import Stubber

from conftest import run

from nvr_backup.infrastructure.storage import (
    LifecycleRule,
    MockObjectStore,
    S3ObjectStore,
    StorageConfig,
    StorageConfigError,
    StorageError,
    create_object_store,
)


@pytest.fixture
def storage_config(tmp_path, monkeypatch):
    for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN", "AWS_PROFILE"):
        monkeypatch.delenv(name, raising=False)
    keyfile = tmp_path / "hmac-credentials"
    keyfile.write_text(
        "[default]\n"
        "aws_access_key_id = GOOGTESTKEY\n"
        "aws_secret_access_key = testsecret\n"
    )
    return StorageConfig(project_id="proj", bucket_name="clips", credentials_path=str(keyfile))


@pytest.fixture
def s3_store(storage_config):
    return S3ObjectStore(storage_config)


class TestStorageConfig:
    """Tests for StorageConfig."""

    def test_missing_fields_use_environment_names(self):
        """Missing fields are reported by their environment names."""
        config = StorageConfig(project_id="", bucket_name="clips", credentials_path="")
        assert config.missing_fields() == ["GCS_PROJECT_ID", "GCS_KEYFILE_PATH"]

    def test_complete_config_has_no_missing_fields(self, storage_config):
        """A complete config reports nothing missing."""
        assert storage_config.missing_fields() == []


class TestCreateObjectStore:
    """Tests for the object store factory."""

    def test_mock_mode(self):
        """Mock mode builds the in-memory store."""
        assert isinstance(create_object_store(mock_mode=True), MockObjectStore)

    def test_missing_config_is_rejected(self):
        """Outside mock mode a config is required."""
        with pytest.raises(StorageConfigError):
            create_object_store()

    def test_incomplete_config_names_missing_settings(self):
        """The error lists every missing setting."""
        config = StorageConfig(project_id="proj", bucket_name="", credentials_path="")

        with pytest.raises(StorageConfigError, match="GCS_BUCKET_NAME, GCS_KEYFILE_PATH"):
            create_object_store(config)

    def test_complete_config_builds_s3_store(self, storage_config):
        """An HMAC keyfile config builds the S3 store."""
        store = create_object_store(storage_config)
        assert isinstance(store, S3ObjectStore)
        assert store.bucket_name == "clips"

    def test_service_account_json_keyfile_is_rejected(self, storage_config, tmp_path):
        """A service-account JSON key fails with a pointer to HMAC keys."""
        keyfile = tmp_path / "service-account.json"
        keyfile.write_text('{"type": "service_account", "project_id": "proj"}')
        storage_config.credentials_path = str(keyfile)

        with pytest.raises(StorageConfigError, match="service-account JSON keyfile"):
            create_object_store(storage_config)

    def test_unreadable_keyfile_is_rejected(self, storage_config, tmp_path):
        """A keyfile that doesn't exist fails before any client is built."""
        storage_config.credentials_path = str(tmp_path / "missing")

        with pytest.raises(StorageConfigError, match="Cannot read GCS_KEYFILE_PATH"):
            create_object_store(storage_config)


class TestS3ObjectStore:
    """Tests for the boto3-backed store."""

    def test_upload_bytes_is_private_with_content_type(self, s3_store):
        """Objects are written private with their content type."""
        with Stubber(s3_store._s3_client) as stubber:
            stubber.add_response(
                "put_object",
                {"ETag": '"abc"'},
                {
                    "Bucket": "clips",
                    "Key": "front/2024/03/05/07-08-09.mp4",
                    "Body": b"clip",
                    "ContentType": "video/mp4",
                    "ACL": "private",
                },
            )

            run(s3_store.upload_bytes("front/2024/03/05/07-08-09.mp4", b"clip", "video/mp4"))

            stubber.assert_no_pending_responses()

    def test_upload_failure_becomes_storage_error(self, s3_store):
        """Client errors surface as StorageError."""
        with Stubber(s3_store._s3_client) as stubber:
            stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

            with pytest.raises(StorageError, match="Upload of k failed"):
                run(s3_store.upload_bytes("k", b"clip", "video/mp4"))

    def test_check_connection(self, s3_store):
        """A reachable bucket passes the connection check."""
        with Stubber(s3_store._s3_client) as stubber:
            stubber.add_response("head_bucket", {}, {"Bucket": "clips"})
            run(s3_store.check_connection())

    def test_unreachable_bucket(self, s3_store):
        """A missing bucket fails the connection check."""
        with Stubber(s3_store._s3_client) as stubber:
            stubber.add_client_error("head_bucket", service_error_code="404", http_status_code=404)

            with pytest.raises(StorageError, match="not reachable"):
                run(s3_store.check_connection())

    def test_lifecycle_rules_are_reduced(self, s3_store):
        """Lifecycle rules are reduced to action, age and status."""
        with Stubber(s3_store._s3_client) as stubber:
            stubber.add_response(
                "get_bucket_lifecycle_configuration",
                {"Rules": [
                    {"ID": "delete-old", "Status": "Enabled", "Filter": {"Prefix": ""}, "Expiration": {"Days": 7}},
                    {"ID": "paused", "Status": "Disabled", "Filter": {"Prefix": ""}, "Expiration": {"Days": 30}},
                    {
                        "ID": "archive", "Status": "Enabled", "Filter": {"Prefix": ""},
                        "Transitions": [{"Days": 1, "StorageClass": "GLACIER"}],
                    },
                ]},
                {"Bucket": "clips"},
            )

            rules = run(s3_store.get_lifecycle_rules())

        assert rules == [
            LifecycleRule(action="Delete", age_days=7, enabled=True),
            LifecycleRule(action="Delete", age_days=30, enabled=False),
            LifecycleRule(action="Other", age_days=None, enabled=True),
        ]

    def test_no_lifecycle_configuration_means_no_rules(self, s3_store):
        """A bucket without lifecycle configuration has no rules."""
        with Stubber(s3_store._s3_client) as stubber:
            stubber.add_client_error(
                "get_bucket_lifecycle_configuration",
                service_error_code="NoSuchLifecycleConfiguration",
                http_status_code=404,
            )

            assert run(s3_store.get_lifecycle_rules()) == []

    def test_lifecycle_access_denied_is_an_error(self, s3_store):
        """Other lifecycle errors are raised."""
        with Stubber(s3_store._s3_client) as stubber:
            stubber.add_client_error(
                "get_bucket_lifecycle_configuration",
                service_error_code="AccessDenied",
                http_status_code=403,
            )

            with pytest.raises(StorageError, match="lifecycle"):
                run(s3_store.get_lifecycle_rules())

    def test_project_header_is_added_before_signing(self, s3_store):
        """Requests carry the GCS project header."""
        class Request:
            headers = {}

        request = Request()
        s3_store._add_project_header(request)

        assert request.headers["x-goog-project-id"] == "proj"


class TestMockObjectStore:
    """Tests for the in-memory store."""

    def test_records_objects(self):
        """Uploaded objects are kept with their metadata."""
        store = MockObjectStore()

        run(store.upload_bytes("a.mp4", b"one", "video/mp4"))
        run(store.upload_stream("b.mov", io.BytesIO(b"two"), "video/quicktime"))

        assert store.objects["a.mp4"].data == b"one"
        assert store.objects["b.mov"].content_type == "video/quicktime"
        assert all(obj.private for obj in store.objects.values())

    def test_lifecycle_rules_are_served(self):
        """Seeded lifecycle rules are returned."""
        rule = LifecycleRule(action="Delete", age_days=7)
        assert run(MockObjectStore(lifecycle_rules=[rule]).get_lifecycle_rules()) == [rule]
