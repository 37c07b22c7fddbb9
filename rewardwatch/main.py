"""Command-line entry point: scheduled catalog checks and the HTTP API."""

from __future__ import annotations

import argparse
import asyncio
import threading
from pathlib import Path
from typing import Iterable

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from rewardwatch import api
from rewardwatch.config import Settings, load_settings
from rewardwatch.logging_config import get_logger
from rewardwatch.pipeline import RewardsMonitor, build_monitor


LOGGER = get_logger(__name__)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the application."""

    parser = argparse.ArgumentParser(
        description="Watch the rewards catalog for new products and email digests."
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scheduled check and exit.",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start the HTTP API alongside the scheduler.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the YAML configuration file.",
    )
    parser.add_argument("--host", default="0.0.0.0", help="HTTP bind address (default: 0.0.0.0).")
    parser.add_argument("--port", type=int, default=8000, help="HTTP port (default: 8000).")

    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.port <= 0:
        parser.error("--port must be a positive integer")
    return args


def build_trigger(settings: Settings) -> CronTrigger | IntervalTrigger:
    """Prefer the configured cron expression, falling back to a fixed interval."""

    if settings.schedule_cron:
        try:
            return CronTrigger.from_crontab(settings.schedule_cron)
        except ValueError as exc:
            LOGGER.warning(
                "Invalid cron expression %r (%s); using %d minute interval",
                settings.schedule_cron,
                exc,
                settings.schedule_minutes,
            )
    return IntervalTrigger(minutes=settings.schedule_minutes)


def _start_api_thread(
    monitor: RewardsMonitor, host: str, port: int
) -> tuple[uvicorn.Server, threading.Thread]:
    api.app.dependency_overrides[api.get_monitor] = lambda: monitor
    config = uvicorn.Config(
        api.app,
        host=host,
        port=port,
        reload=False,
        log_config=None,
    )
    server = uvicorn.Server(config)

    def run_api() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(server.serve())
        finally:
            loop.close()

    thread = threading.Thread(target=run_api, name="api-server", daemon=True)
    thread.start()
    LOGGER.info("HTTP API listening on http://%s:%d", host, port)
    return server, thread


async def _async_main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    settings = load_settings(args.config)
    LOGGER.info(
        "Starting rewards watch | thresholds=%s recipients=%d once=%s serve=%s",
        list(settings.points_thresholds),
        len(settings.recipients),
        args.once,
        args.serve,
    )
    monitor: RewardsMonitor = build_monitor(settings)

    await asyncio.to_thread(monitor.scheduled_job)
    if args.once:
        return

    scheduler = AsyncIOScheduler()
    trigger = build_trigger(settings)
    # Sync jobs run in the scheduler's thread pool, off the event loop.
    scheduler.add_job(monitor.scheduled_job, trigger, max_instances=1, coalesce=True)
    scheduler.start()
    LOGGER.info("Scheduler started with trigger=%s", trigger)

    api_server: uvicorn.Server | None = None
    api_thread: threading.Thread | None = None
    if args.serve:
        api_server, api_thread = _start_api_thread(monitor, args.host, args.port)

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        LOGGER.info("Shutdown signal received; stopping scheduler")
    finally:
        scheduler.shutdown(wait=False)
        if api_server is not None:
            api_server.should_exit = True
        if api_thread is not None:
            api_thread.join(timeout=5)


def main() -> None:
    try:
        asyncio.run(_async_main())
    except KeyboardInterrupt:  # pragma: no cover - interactive safety
        LOGGER.info("Interrupted by user")


if __name__ == "__main__":
    main()
