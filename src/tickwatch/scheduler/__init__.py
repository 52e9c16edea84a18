"""Scheduler package — cron engine, job runner, health check, serve mode."""

from tickwatch.scheduler.cron import (
    CronExpression,
    next_fire_time,
    next_fire_times,
    parse_cron,
)
from tickwatch.scheduler.cron_scheduler import (
    CronScheduler,
    Job,
    JobStatus,
    StatusSnapshot,
)
from tickwatch.scheduler.errors import (
    ParseError,
    RegistrationError,
    ScheduleError,
    SchedulerError,
)
from tickwatch.scheduler.health_check import start_health_check
from tickwatch.scheduler.runner import build_scheduler, serve

__all__ = [
    "CronExpression",
    "CronScheduler",
    "Job",
    "JobStatus",
    "ParseError",
    "RegistrationError",
    "ScheduleError",
    "SchedulerError",
    "StatusSnapshot",
    "build_scheduler",
    "next_fire_time",
    "next_fire_times",
    "parse_cron",
    "serve",
    "start_health_check",
]
