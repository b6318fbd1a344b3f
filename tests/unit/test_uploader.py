"""
Unit tests for the upload engine.
"""

import io

import pytest

from conftest import FlakyStore, run

from nvr_backup.core.backup.errors import UploadError
from nvr_backup.core.backup.models import BufferPayload, StreamPayload
from nvr_backup.core.backup.uploader import Uploader

KEY = "front/2024/03/05/07-08-09.mp4"


class OneShotStream(io.RawIOBase):
    """A readable stream that can't seek, like a network pipe."""

    def __init__(self, data: bytes) -> None:
        self._data = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def readinto(self, buffer):
        chunk = self._data.read(len(buffer))
        buffer[:len(chunk)] = chunk
        return len(chunk)


class TestUploader:
    """Tests for Uploader.upload."""

    def test_buffer_is_written_with_content_type(self, retry_policy):
        """Buffers are written with the clip's content type."""
        store = FlakyStore()

        run(Uploader(retry_policy).upload(store, KEY, BufferPayload(b"clip"), "video/mp4"))

        assert store.objects[KEY] == b"clip"
        assert store.content_types[KEY] == "video/mp4"

    def test_stream_is_piped_to_store(self, retry_policy):
        """Streams go through the store's streaming upload."""
        store = FlakyStore()

        run(Uploader(retry_policy).upload(store, KEY, StreamPayload(io.BytesIO(b"streamed")), "video/mp4"))

        assert store.objects[KEY] == b"streamed"

    def test_transient_failures_are_retried(self, retry_policy, sleep):
        """Two failed attempts are followed by a successful third."""
        store = FlakyStore(failures={KEY: 2})

        run(Uploader(retry_policy).upload(store, KEY, BufferPayload(b"clip"), "video/mp4"))

        assert len(store.calls) == 3
        assert store.objects[KEY] == b"clip"
        assert sleep.delays == [2.0, 4.0]

    def test_seekable_stream_is_rewound_between_attempts(self, retry_policy):
        """A partially consumed stream is replayed from its start."""
        class HalfReadStore(FlakyStore):
            async def upload_stream(self, key, stream, content_type):
                if not self.calls:
                    self.calls.append(key)
                    stream.read(3)
                    raise ConnectionError("connection reset")
                await super().upload_stream(key, stream, content_type)

        store = HalfReadStore()
        run(Uploader(retry_policy).upload(store, KEY, StreamPayload(io.BytesIO(b"complete")), "video/mp4"))

        assert store.objects[KEY] == b"complete"

    def test_unseekable_stream_is_not_retried(self, retry_policy):
        """A stream that can't be rewound gets a single attempt."""
        store = FlakyStore(failures={KEY: 1})

        with pytest.raises(UploadError):
            run(Uploader(retry_policy).upload(store, KEY, StreamPayload(OneShotStream(b"x")), "video/mp4"))

        assert len(store.calls) == 1

    def test_exhaustion_names_attempts_and_cause(self, retry_policy):
        """UploadError reports the attempt count and the last error."""
        store = FlakyStore(failures={KEY: -1})

        with pytest.raises(UploadError) as exc_info:
            run(Uploader(retry_policy).upload(store, KEY, BufferPayload(b"clip"), "video/mp4"))

        assert "3 attempts" in str(exc_info.value)
        assert "refused" in str(exc_info.value)
        assert len(store.calls) == 3

    def test_dry_run_writes_nothing_and_succeeds(self, retry_policy):
        """A dry run returns success without calling the store."""
        store = FlakyStore(failures={KEY: -1})

        run(Uploader(retry_policy, dry_run=True).upload(store, KEY, BufferPayload(b"clip"), "video/mp4"))

        assert store.calls == []
        assert store.objects == {}

    def test_unknown_payload_type_is_rejected(self, retry_policy):
        """Raw bytes are not a payload."""
        with pytest.raises(TypeError, match="Unsupported payload"):
            run(Uploader(retry_policy).upload(FlakyStore(), KEY, b"raw bytes", "video/mp4"))
