"""Serve-mode orchestrator — runs the configured cron jobs with health check."""

from __future__ import annotations

import logging
import signal
import threading
import time
from typing import TYPE_CHECKING

from tickwatch.scheduler.cron_scheduler import CronScheduler
from tickwatch.scheduler.health_check import start_health_check

if TYPE_CHECKING:
    from tickwatch.config.settings import Settings

logger = logging.getLogger(__name__)


def build_scheduler(settings: Settings) -> CronScheduler:
    """Create a scheduler and register every job declared in settings.

    Raises:
        RegistrationError: If a target cannot be resolved or a schedule is
            invalid. Startup must not continue with a broken job.
    """
    # Lazy import to avoid circular deps
    from tickwatch.jobs import resolve_target

    scheduler = CronScheduler(settings.timezone, day_match=settings.cron_day_match)
    for name, job in settings.jobs.items():
        scheduler.add_job(
            resolve_target(job.target),
            cron_expr=settings.job_cron(name),
            job_id=name,
            **job.kwargs,
        )
    return scheduler


def serve(settings: Settings) -> None:
    """Start the scheduler with the configured jobs and block forever.

    This is the entry point for ``python -m tickwatch serve``.
    Registers every job, starts the health-check HTTP server, arms the
    timers, and blocks until SIGINT/SIGTERM. Registration and scheduling
    errors propagate before anything is started.
    """
    scheduler = build_scheduler(settings)

    server = None
    if settings.health_check_enabled:
        server, _ = start_health_check(
            scheduler,
            port=settings.health_check_port,
            path=settings.health_check_path,
            schedule_expr=settings.job_schedule,
        )

    try:
        scheduler.start()
    except Exception:
        if server:
            server.shutdown()
        raise

    logger.info(
        "Serve mode active — %d job(s): %s",
        len(settings.jobs),
        ", ".join(f"{name}='{settings.job_cron(name)}'" for name in settings.jobs),
    )

    # Block until signal
    stop_event = threading.Event()

    def _handle_signal(signum: int, frame: object) -> None:
        logger.info("Received signal %d, shutting down...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        while not stop_event.is_set():
            time.sleep(1)
    finally:
        scheduler.shutdown(wait=False)
        if server:
            server.shutdown()
        logger.info("Serve mode stopped")
