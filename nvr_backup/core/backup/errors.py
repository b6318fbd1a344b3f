"""
Exceptions raised by the backup pipeline.

Run-level errors (discovery, listing, checkpoint persistence, configuration)
propagate to the caller. Clip-level errors are caught by the orchestrator and
counted.
"""


class BackupError(Exception):
    """Base class for backup failures."""
    pass


class ConfigurationError(BackupError):
    """Raised when required settings are missing or invalid."""
    pass


class NoCapableDeviceError(BackupError):
    """Raised when no registry device exposes the clip capability."""
    pass


class RetryExhaustedError(BackupError):
    """Raised when an operation keeps failing after every attempt."""

    def __init__(self, label: str, attempts: int, last_error: BaseException) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")


class UploadError(RetryExhaustedError):
    """Raised when a clip could not be written to the object store."""
    pass


class CheckpointWriteError(BackupError):
    """Raised when the checkpoint could not be persisted."""
    pass
