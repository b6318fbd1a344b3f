"""
Unit tests for device discovery, clip listing and filtering.
"""

import pytest

from conftest import BASE_MS, HOUR_MS, make_registry, raw_clip, run

from nvr_backup.core.backup.clips import (
    VIDEO_CLIPS_CAPABILITY,
    ClipSource,
    Device,
    find_capable_device,
    normalize_and_filter,
)
from nvr_backup.core.backup.errors import NoCapableDeviceError, RetryExhaustedError
from nvr_backup.core.backup.models import BufferPayload, CameraFilter, RunWindow
from nvr_backup.infrastructure.registry.client import MockDeviceRegistry, RegistryError


RAW = [
    raw_clip("front1", "front", BASE_MS + 1_000),
    raw_clip("back1", "back", BASE_MS + 2_000),
    raw_clip("side1", "side", BASE_MS + 3_000),
]


class FlakyRegistry(MockDeviceRegistry):
    """Registry whose clip queries fail a number of times first."""

    def __init__(self, base: MockDeviceRegistry, query_failures: int) -> None:
        super().__init__(base.devices)
        self.query_failures = query_failures

    async def query_clips(self, device, start_ms, end_ms):
        if self.query_failures:
            self.query_calls.append((start_ms, end_ms))
            self.query_failures -= 1
            raise RegistryError("NVR busy")
        return await super().query_clips(device, start_ms, end_ms)


class TestFindCapableDevice:
    """Tests for capability-based device discovery."""

    def test_picks_device_with_capability_tag(self):
        """The device carrying the VideoClips tag is chosen."""
        devices = [
            Device(id="cam", capabilities=frozenset({"Camera"})),
            Device(id="nvr", capabilities=frozenset({"Camera", VIDEO_CLIPS_CAPABILITY})),
        ]
        assert find_capable_device(devices).id == "nvr"

    def test_no_capable_device_is_fatal(self):
        """Without a tagged device discovery fails."""
        with pytest.raises(NoCapableDeviceError, match="No VideoClips device found"):
            find_capable_device([Device(id="cam", capabilities=frozenset({"Camera"}))])

    def test_empty_registry_is_fatal(self):
        """An empty registry has no capable device."""
        with pytest.raises(NoCapableDeviceError):
            find_capable_device([])

    def test_first_of_several_capable_devices_wins(self):
        """With several tagged devices the first one reported is used."""
        devices = [
            Device(id="a", capabilities=frozenset({VIDEO_CLIPS_CAPABILITY})),
            Device(id="b", capabilities=frozenset({VIDEO_CLIPS_CAPABILITY})),
        ]
        assert find_capable_device(devices).id == "a"


class TestNormalizeAndFilter:
    """Tests for normalizing and filtering raw clips."""

    def _names(self, include: str, exclude: str) -> list[str]:
        clips = normalize_and_filter(RAW, CameraFilter.from_lists(include, exclude))
        return [clip.camera_name for clip in clips]

    def test_include_list(self):
        """Only included cameras are kept."""
        assert self._names("front", "") == ["front"]

    def test_exclude_list(self):
        """Excluded cameras are dropped, order is preserved."""
        assert self._names("", "front") == ["back", "side"]

    def test_exclude_wins(self):
        """Exclusion beats inclusion."""
        assert self._names("front,side", "front") == ["side"]

    def test_wildcard(self):
        """The wildcard keeps every clip."""
        assert self._names("*", "") == ["front", "back", "side"]

    def test_unnamed_clips_are_filtered_as_unknown(self):
        """Clips without a camera name are filtered under 'unknown'."""
        clips = normalize_and_filter([raw_clip("x", None, BASE_MS)], CameraFilter.from_lists("*", "unknown"))
        assert clips == []


class TestClipSource:
    """Tests for listing and fetching through ClipSource."""

    def test_new_clips_lists_window_and_filters(self, retry_policy):
        """The window is queried once and the result filtered."""
        registry = make_registry(*RAW)
        source = ClipSource(registry, retry_policy)
        window = RunWindow(start_ms=BASE_MS, end_ms=BASE_MS + HOUR_MS)

        clips = run(source.new_clips(window, CameraFilter.from_lists("front,back", "")))

        assert [clip.id for clip in clips] == ["front1", "back1"]
        assert registry.query_calls == [(BASE_MS, BASE_MS + HOUR_MS)]

    def test_listing_is_retried(self, retry_policy, sleep):
        """Listing that fails twice succeeds on the third attempt."""
        registry = FlakyRegistry(make_registry(*RAW), query_failures=2)
        source = ClipSource(registry, retry_policy)

        raw = run(source.list_clips(RunWindow(BASE_MS, BASE_MS + HOUR_MS)))

        assert len(raw) == 3
        assert len(registry.query_calls) == 3
        assert sleep.delays == [2.0, 4.0]

    def test_listing_exhaustion_propagates(self, retry_policy):
        """Listing failing every attempt raises RetryExhaustedError."""
        registry = FlakyRegistry(make_registry(*RAW), query_failures=5)
        source = ClipSource(registry, retry_policy)

        with pytest.raises(RetryExhaustedError, match="getVideoClips failed after 3 attempts"):
            run(source.list_clips(RunWindow(BASE_MS, BASE_MS + HOUR_MS)))

    def test_missing_device_is_not_retried(self, retry_policy, sleep):
        """Discovery failure is raised without backoff."""
        source = ClipSource(MockDeviceRegistry([]), retry_policy)

        with pytest.raises(NoCapableDeviceError):
            run(source.list_clips(RunWindow(BASE_MS, BASE_MS + HOUR_MS)))
        assert sleep.delays == []

    def test_fetch_payload_is_retried(self, retry_policy):
        """A media fetch failing once succeeds on the second attempt."""
        registry = make_registry(*RAW)
        registry.fetch_failures["back1"] = 1
        source = ClipSource(registry, retry_policy)
        clip = normalize_and_filter(RAW, CameraFilter())[1]

        payload = run(source.fetch_payload(clip))

        assert isinstance(payload, BufferPayload)
        assert payload.data == b"media-back1"
        assert registry.fetch_calls == ["back1", "back1"]
