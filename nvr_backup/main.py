"""
Command line entry point.

    nvr-backup run       # one backup run, meant for cron / systemd timers
    nvr-backup verify    # connectivity, lifecycle and dry-run checks
    nvr-backup serve     # health checks and run trigger over HTTP

Exit code is 0 on success (including runs without new clips) and 1 on any
fatal error, so the scheduler can alert and retry the whole run.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from pydantic import ValidationError

from . import __version__
from .config.settings import Settings, get_settings
from .factory import build_orchestrator, create_registry
from .logging_setup import setup_logging
from .verification import run_verification


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="nvr-backup",
        description="Back up new NVR video clips to cloud object storage.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run one incremental backup")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List and fetch clips without uploading them",
    )

    verify_parser = subparsers.add_parser("verify", help="Verify NVR, bucket and lifecycle setup")
    verify_parser.add_argument(
        "--skip-dry-run",
        action="store_true",
        help="Only run connectivity and lifecycle checks",
    )

    serve_parser = subparsers.add_parser("serve", help="Serve health checks and the run trigger")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "run"
        args.dry_run = False
    return args


async def run_backup(settings: Settings, log: logging.Logger) -> int:
    registry = create_registry(settings, log)
    try:
        report = await build_orchestrator(settings, log, registry=registry).run()
    except Exception as e:
        log.error("Backup run failed: %s", e, exc_info=e)
        return 1
    finally:
        registry.close()

    log.info(
        "Run summary: %d clips found, %d uploaded, %d failed, checkpoint %s",
        report.clips_found, report.succeeded, report.failed,
        "advanced" if report.advanced else "unchanged",
    )
    return 0


async def verify(settings: Settings, log: logging.Logger, include_dry_run: bool) -> int:
    report = await run_verification(settings, log, include_dry_run=include_dry_run)
    for check in report.checks:
        log.info("%s: %s %s", check.name, "ok" if check.passed else "FAILED", check.detail)
    return 0 if report.all_passed else 1


def serve(settings: Settings, host: str, port: int) -> int:
    import uvicorn

    uvicorn.run(
        "nvr_backup.api.app:app",
        host=host,
        port=port,
        log_level="warning" if settings.log_level == "warn" else settings.log_level,
    )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging("error").error("Invalid configuration: %s", e)
        return 1

    if getattr(args, "dry_run", False):
        settings = settings.model_copy(update={"dry_run": True})

    log = setup_logging(settings.log_level)

    if args.command == "verify":
        return asyncio.run(verify(settings, log, include_dry_run=not args.skip_dry_run))
    if args.command == "serve":
        return serve(settings, args.host, args.port)
    return asyncio.run(run_backup(settings, log))


if __name__ == "__main__":
    sys.exit(main())
