"""Cron job runner built on APScheduler v3.

APScheduler supplies the timers and the worker threads; every fire time comes
from :mod:`tickwatch.scheduler.cron`, recomputed from the current instant on
each firing. Overlap suppression and status bookkeeping live here.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, tzinfo
from types import MappingProxyType
from typing import Any, Callable, Literal, Mapping
from zoneinfo import ZoneInfo

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger

from tickwatch.scheduler.cron import (
    CronExpression,
    DayMatch,
    next_fire_time,
    parse_cron,
)
from tickwatch.scheduler.errors import ParseError, RegistrationError, ScheduleError

logger = logging.getLogger(__name__)

JobResult = Literal["success", "failure"]

_EXECUTOR = "cron-jobs"


def _isoformat(moment: datetime | None) -> str | None:
    return moment.isoformat() if moment is not None else None


@dataclass(frozen=True)
class JobStatus:
    """Point-in-time status of one job. Replaced whole, never mutated."""

    last_run_at: datetime | None = None
    last_result: JobResult | None = None
    next_run_at: datetime | None = None
    running: bool = False
    last_error: str | None = None
    run_count: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "lastRunAt": _isoformat(self.last_run_at),
            "lastResult": self.last_result,
            "nextRunAt": _isoformat(self.next_run_at),
            "running": self.running,
            "lastError": self.last_error,
            "runCount": self.run_count,
        }


@dataclass(frozen=True)
class StatusSnapshot:
    """Immutable copy of every job's status, taken at ``taken_at``."""

    taken_at: datetime
    jobs: Mapping[str, JobStatus]

    def as_dict(self) -> dict[str, dict[str, Any]]:
        """JSON-ready mapping of job name to status fields."""
        return {name: status.as_dict() for name, status in self.jobs.items()}


class Job:
    """A named unit of work bound to a cron expression.

    The status record is swapped under a per-job lock so readers always see
    a complete record.
    """

    def __init__(
        self,
        name: str,
        expression: CronExpression,
        func: Callable[..., Any],
        kwargs: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.expression = expression
        self.func = func
        self.kwargs = kwargs or {}
        self._status = JobStatus()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Job(name={self.name!r}, cron={self.expression.expression!r})"

    @property
    def status(self) -> JobStatus:
        with self._lock:
            return self._status

    def run(self) -> None:
        """Call the work function; coroutine functions run to completion."""
        outcome = self.func(**self.kwargs)
        if inspect.iscoroutine(outcome):
            asyncio.run(outcome)

    def try_begin(self) -> bool:
        """Mark the job running. False if a previous run has not finished."""
        with self._lock:
            if self._status.running:
                return False
            self._status = replace(self._status, running=True)
            return True

    def finish(
        self,
        finished_at: datetime,
        result: JobResult,
        error: str | None,
        next_run_at: datetime | None,
    ) -> JobStatus:
        with self._lock:
            self._status = replace(
                self._status,
                last_run_at=finished_at,
                last_result=result,
                last_error=error,
                next_run_at=next_run_at,
                running=False,
                run_count=self._status.run_count + 1,
            )
            return self._status

    def reschedule(self, next_run_at: datetime | None) -> JobStatus:
        with self._lock:
            self._status = replace(self._status, next_run_at=next_run_at)
            return self._status


class CronExpressionTrigger(BaseTrigger):
    """APScheduler trigger that asks the cron engine for every fire time."""

    def __init__(self, expression: CronExpression, timezone: tzinfo) -> None:
        self.expression = expression
        self.timezone = timezone

    def get_next_fire_time(
        self, previous_fire_time: datetime | None, now: datetime
    ) -> datetime | None:
        reference = now if previous_fire_time is None else max(previous_fire_time, now)
        try:
            return next_fire_time(self.expression, reference.astimezone(self.timezone))
        except ScheduleError:
            logger.exception("No further fire time for cron '%s'", self.expression)
            return None

    def __str__(self) -> str:
        return f"cron[{self.expression}]"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} ({self.expression!s}, timezone='{self.timezone}')>"


class CronScheduler:
    """Owns a fixed set of cron jobs and runs each on its own timer.

    Jobs are registered with :meth:`add_job` before :meth:`start`; the set is
    frozen afterwards. A job never overlaps itself: a firing that arrives
    while the previous run is still going is skipped.
    """

    def __init__(
        self,
        timezone: str = "UTC",
        *,
        day_match: DayMatch = "or",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._timezone = ZoneInfo(timezone)
        self._day_match = day_match
        self._clock = clock or (lambda: datetime.now(self._timezone))
        self._jobs: dict[str, Job] = {}
        self._started = False
        self._scheduler = BackgroundScheduler(timezone=timezone)

    def add_job(
        self,
        func: Callable[..., Any],
        cron_expr: str,
        job_id: str,
        **kwargs: Any,
    ) -> Job:
        """Register a function to run on a cron schedule.

        Args:
            func: Callable (or coroutine function) to execute.
            cron_expr: 5-field cron expression (e.g. "30 2 * * *").
            job_id: Unique job name.
            **kwargs: Keyword arguments passed to func on every run.

        Raises:
            RegistrationError: Duplicate name, invalid expression, or the
                scheduler has already started.
        """
        if self._started:
            raise RegistrationError(
                f"Cannot register '{job_id}': jobs are fixed once the scheduler starts"
            )
        if job_id in self._jobs:
            raise RegistrationError(f"Job '{job_id}' is already registered")
        try:
            expression = parse_cron(cron_expr, day_match=self._day_match)
        except ParseError as exc:
            raise RegistrationError(f"Job '{job_id}' has an invalid schedule: {exc}") from exc

        job = Job(job_id, expression, func, kwargs)
        self._jobs[job_id] = job
        logger.info("Registered job '%s' with cron '%s'", job_id, expression)
        return job

    def start(self) -> None:
        """Compute each job's first fire time, arm its timer and start.

        Raises:
            ScheduleError: If any job has no fire time inside the search window.
        """
        if self._started:
            raise RuntimeError("Scheduler already started")

        now = self._clock()
        first_runs = {
            name: next_fire_time(job.expression, now) for name, job in self._jobs.items()
        }

        # One worker per job plus one per job for a suppressed overlapping firing
        self._scheduler.add_executor(
            ThreadPoolExecutor(max_workers=max(1, 2 * len(self._jobs))),
            alias=_EXECUTOR,
        )
        for name, job in self._jobs.items():
            job.reschedule(first_runs[name])
            self._scheduler.add_job(
                self._fire,
                CronExpressionTrigger(job.expression, self._timezone),
                args=(name,),
                id=name,
                name=name,
                executor=_EXECUTOR,
                next_run_time=first_runs[name],
                max_instances=2,
                coalesce=True,
                misfire_grace_time=None,
            )
            logger.info("Job '%s' first run at %s", name, first_runs[name].isoformat())

        self._scheduler.start()
        self._started = True
        logger.info("Scheduler started with %d job(s)", len(self._jobs))

    def shutdown(self, wait: bool = False) -> None:
        """Stop arming timers. Running jobs are left to finish on their own."""
        self._scheduler.shutdown(wait=wait)
        logger.info("Scheduler shut down")

    @property
    def running(self) -> bool:
        """Whether the timers are currently active."""
        return self._scheduler.running

    @property
    def jobs(self) -> Mapping[str, Job]:
        return MappingProxyType(self._jobs)

    @property
    def day_match(self) -> DayMatch:
        return self._day_match

    def now(self) -> datetime:
        """Current instant in the scheduler's timezone."""
        return self._clock()

    def status(self) -> StatusSnapshot:
        """Take a consistent copy of every job's status."""
        taken_at = self._clock()
        statuses = {name: job.status for name, job in self._jobs.items()}
        return StatusSnapshot(taken_at=taken_at, jobs=MappingProxyType(statuses))

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Status of every job, ready to be rendered as JSON."""
        return self.status().as_dict()

    # ------------------------------------------------------------------
    # Timer callback
    # ------------------------------------------------------------------

    def _next_run(self, job: Job, now: datetime) -> datetime | None:
        try:
            return next_fire_time(job.expression, now)
        except ScheduleError:
            logger.exception("Job '%s' has no further fire time", job.name)
            return None

    def _fire(self, name: str) -> None:
        """Run one scheduled firing of job *name*. Never raises."""
        job = self._jobs[name]

        if not job.try_begin():
            status = job.reschedule(self._next_run(job, self._clock()))
            logger.warning(
                "Skipping '%s': previous run still in progress (next run %s)",
                name,
                _isoformat(status.next_run_at),
            )
            return

        logger.info("Cron trigger: starting '%s'", name)
        result: JobResult = "failure"
        error: str | None = None
        try:
            job.run()
            result = "success"
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.exception("Job '%s' failed", name)
        finally:
            now = self._clock()
            status = job.finish(now, result, error, self._next_run(job, now))

        logger.info(
            "Job '%s' finished with %s (next run %s)",
            name,
            result,
            _isoformat(status.next_run_at),
        )
