"""
Domain models for clip backup.

These models describe what a backup run works with: clips, the time window
a run covers, the media payload of a clip and the outcome of a run. Like the
rest of core, they have no dependency on the registry, the object store or
the configuration layer.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, BinaryIO, Optional, Union


DEFAULT_CAMERA_NAME = "unknown"
DEFAULT_MIME_TYPE = "video/mp4"

MS_PER_HOUR = 60 * 60 * 1000

# MIME type -> object key extension
EXTENSIONS = {
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "video/x-msvideo": "avi",
    "video/webm": "webm",
    "video/x-matroska": "mkv",
    "video/mp2t": "ts",
}


def to_millis(value: datetime) -> int:
    """Milliseconds since epoch for an aware datetime."""
    return int(value.timestamp() * 1000)


def from_millis(value: int) -> datetime:
    """UTC datetime for milliseconds since epoch."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class RunState(Enum):
    """States a backup run moves through."""
    IDLE = "idle"
    CHECKPOINT_READ = "checkpoint_read"
    LISTING = "listing"
    NO_NEW_CLIPS = "no_new_clips"
    PROCESSING = "processing"
    STATE_UPDATE = "state_update"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RunWindow:
    """
    Half-open interval [start_ms, end_ms) a run covers.

    start is the last checkpoint, end is the wall clock at run start.
    A window whose end is before its start (clock skew) is empty.
    """
    start_ms: int
    end_ms: int

    @property
    def is_empty(self) -> bool:
        return self.end_ms < self.start_ms

    def contains(self, timestamp_ms: int) -> bool:
        return self.start_ms <= timestamp_ms < self.end_ms


@dataclass(frozen=True)
class ClipMetadata:
    """
    A recorded clip, normalized from a raw device record.

    Frozen because a clip is handed to exactly one processing unit
    and nothing should change it on the way.
    """
    id: str
    camera_name: str
    start_time: datetime
    end_time: datetime
    mime_type: str = DEFAULT_MIME_TYPE

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "ClipMetadata":
        """
        Build a clip from a raw registry record.

        Raw records carry times as milliseconds since epoch. Missing
        camera names and MIME types fall back to defaults.
        """
        return cls(
            id=str(raw["id"]),
            camera_name=raw.get("cameraName") or DEFAULT_CAMERA_NAME,
            start_time=from_millis(int(raw["startTime"])),
            end_time=from_millis(int(raw["endTime"])),
            mime_type=raw.get("mimeType") or DEFAULT_MIME_TYPE,
        )

    @property
    def start_ms(self) -> int:
        return to_millis(self.start_time)

    @property
    def end_ms(self) -> int:
        return to_millis(self.end_time)

    @property
    def extension(self) -> str:
        return EXTENSIONS.get(self.mime_type.lower(), "mp4")


def object_key_for(camera_name: str, start_time: datetime, extension: str = "mp4") -> str:
    """
    Hierarchical object key: camera/YYYY/MM/DD/HH-mm-ss.ext (UTC).

    The key only depends on its arguments, so re-uploading a clip
    overwrites the same object instead of creating a duplicate.
    """
    camera = camera_name.replace("/", "_")
    utc = start_time.astimezone(timezone.utc)
    return f"{camera}/{utc:%Y/%m/%d/%H-%M-%S}.{extension}"


def key_for(clip: ClipMetadata) -> str:
    """Object key for a clip."""
    return object_key_for(clip.camera_name, clip.start_time, clip.extension)


@dataclass(frozen=True)
class CameraFilter:
    """
    Camera name include/exclude lists.

    Names are compared lower-cased. An empty include set matches every
    camera; exclude always wins over include.
    """
    include: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()

    @classmethod
    def from_lists(cls, include: str = "*", exclude: str = "") -> "CameraFilter":
        """Parse comma-separated lists; '*' or empty include means all."""
        include_set = _parse_names(include)
        if "*" in include_set:
            include_set = frozenset()
        return cls(include=include_set, exclude=_parse_names(exclude))

    def matches(self, camera_name: str) -> bool:
        name = camera_name.lower()
        if self.include and name not in self.include:
            return False
        return name not in self.exclude


def _parse_names(value: Union[str, list[str], None]) -> frozenset[str]:
    if not value:
        return frozenset()
    items = value.split(",") if isinstance(value, str) else value
    return frozenset(item.strip().lower() for item in items if item.strip())


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

@dataclass
class StreamPayload:
    """Clip media as a readable binary stream."""
    stream: BinaryIO
    _origin: Optional[int] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.stream.seekable():
            self._origin = self.stream.tell()

    def rewind(self) -> bool:
        """Seek back to where the stream started. False if it can't."""
        if self._origin is None:
            return False
        self.stream.seek(self._origin)
        return True

    def close(self) -> None:
        self.stream.close()


@dataclass(frozen=True)
class BufferPayload:
    """Clip media held in memory."""
    data: bytes

    def close(self) -> None:
        pass


Payload = Union[StreamPayload, BufferPayload]


# ---------------------------------------------------------------------------
# Run outcome
# ---------------------------------------------------------------------------

@dataclass
class RunReport:
    """What a single backup run did."""
    state: RunState
    window: RunWindow
    checkpoint_before: int
    checkpoint_after: int
    clips_found: int = 0
    succeeded: int = 0
    failed: int = 0
    dry_run: bool = False

    @property
    def advanced(self) -> bool:
        return self.checkpoint_after > self.checkpoint_before
