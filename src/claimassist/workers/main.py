"""Worker process entry point: ``claimassist-worker --role all``."""

from __future__ import annotations

import argparse
import asyncio
import signal

import structlog

from claimassist.core.config import AppSettings
from claimassist.core.logging import configure_logging
from claimassist.workers.manager import ROLES, create_worker_manager

logger = structlog.get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run ClaimAssist queue workers")
    parser.add_argument(
        "--role",
        choices=[*ROLES, "all"],
        default="all",
        help="Which queue to consume (default: both)",
    )
    parser.add_argument(
        "--no-maintenance",
        action="store_true",
        help="Skip the cleanup, health and metrics schedule",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for in-flight jobs on shutdown",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace, settings: AppSettings) -> None:
    manager = create_worker_manager(settings)
    roles = ROLES if args.role == "all" else (args.role,)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await manager.start(roles, maintenance=not args.no_maintenance)
    await stop.wait()
    logger.info("shutdown_signal_received")
    await manager.graceful_shutdown(args.shutdown_timeout)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = AppSettings()
    configure_logging(settings.log_level, settings.json_logs)
    settings.validate_for_environment()
    asyncio.run(run(args, settings))


if __name__ == "__main__":
    main()
