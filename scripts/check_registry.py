#!/usr/bin/env python3
"""
Check connectivity to the NVR and list the clips of the last hour.

Lighter than `nvr-backup verify`: it never touches the bucket or the
checkpoint, which makes it handy while setting up NVR credentials.

Usage:
    python scripts/check_registry.py [--hours 1]

Requires:
    - .env file (or environment) with NVR_HOST, NVR_USER, NVR_PASSWORD
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path so we can import the package without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from nvr_backup.config.settings import get_settings
from nvr_backup.core.backup.clips import VIDEO_CLIPS_CAPABILITY
from nvr_backup.core.backup.models import MS_PER_HOUR
from nvr_backup.core.backup.orchestrator import now_ms
from nvr_backup.factory import create_registry
from nvr_backup.logging_setup import setup_logging


async def check(hours: float) -> int:
    settings = get_settings()
    log = setup_logging(settings.log_level)
    registry = create_registry(settings, log)
    try:
        return await _check(registry, settings, log, hours)
    finally:
        registry.close()


async def _check(registry, settings, log, hours: float) -> int:
    log.info("Connecting to %s...", settings.nvr_host)
    try:
        devices = await registry.list_devices()
    except Exception as e:
        log.error("NVR connection failed: %s", e)
        return 1

    log.info("Connected, %d devices available", len(devices))
    capable = [device for device in devices if device.supports(VIDEO_CLIPS_CAPABILITY)]
    log.info("Found %d %s devices", len(capable), VIDEO_CLIPS_CAPABILITY)
    if not capable:
        return 1

    device = capable[0]
    log.info("First %s device: %s", VIDEO_CLIPS_CAPABILITY, device.name or device.id)

    end = now_ms()
    start = end - int(hours * MS_PER_HOUR)
    try:
        clips = await registry.query_clips(device, start, end)
    except Exception as e:
        log.warning("Could not list clips (permissions or NVR version?): %s", e)
        return 1

    log.info("Clips in the last %s hours: %d", hours, len(clips))
    if clips:
        log.info("Sample clip: %s", clips[0])
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--hours", type=float, default=1.0, help="How far back to list clips")
    args = parser.parse_args()
    return asyncio.run(check(args.hours))


if __name__ == "__main__":
    sys.exit(main())
