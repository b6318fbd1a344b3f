"""
Upload engine: writes clip media to the object store.

The engine accepts either payload variant and picks the matching store call,
so callers never need to know whether the registry handed back a stream or
a buffer. Retries share the pipeline's RetryPolicy; a dry run logs what
would have been written and returns without touching the store.
"""

import logging
from typing import BinaryIO, Optional, Protocol

from .errors import UploadError
from .models import BufferPayload, Payload, StreamPayload
from .retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    """
    Target bucket for clip uploads.

    Objects are always written with private visibility.
    """

    async def upload_stream(self, key: str, stream: BinaryIO, content_type: str) -> None:
        """Stream an object; returns once the store has the whole object."""
        ...

    async def upload_bytes(self, key: str, data: bytes, content_type: str) -> None:
        """Write an object from memory."""
        ...

    async def check_connection(self) -> None:
        """Raise unless the bucket is reachable."""
        ...

    async def get_lifecycle_rules(self) -> list:
        """Lifecycle rules configured on the bucket."""
        ...


class Uploader:
    """Uploads payloads with retry and optional dry-run."""

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        dry_run: bool = False,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._retry_policy = retry_policy or RetryPolicy()
        self._dry_run = dry_run
        self._log = log or logger

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def upload(
        self,
        store: ObjectStore,
        key: str,
        payload: Payload,
        content_type: str,
    ) -> None:
        """
        Write payload under key.

        Raises UploadError after the last failed attempt. A stream that
        can't be rewound is only tried once.
        """
        if self._dry_run:
            self._log.info("DRY RUN: Skipping upload of %s (%s)", key, content_type)
            return

        if not isinstance(payload, (StreamPayload, BufferPayload)):
            raise TypeError(f"Unsupported payload type: {type(payload).__name__}")

        async def attempt() -> None:
            if isinstance(payload, StreamPayload):
                await store.upload_stream(key, payload.stream, content_type)
            else:
                await store.upload_bytes(key, payload.data, content_type)

        def before_retry(next_attempt: int) -> bool:
            if isinstance(payload, StreamPayload):
                return payload.rewind()
            return True

        await with_retry(
            attempt,
            "Upload",
            self._retry_policy,
            self._log,
            error_cls=UploadError,
            before_retry=before_retry,
        )
        self._log.info("Uploaded %s successfully", key, extra={"key": key})
