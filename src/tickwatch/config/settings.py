"""Pydantic-based settings loaded entirely from environment variables.

All configuration is read from ``.env`` (or real env vars). Every field has a
sensible default, so a bare process runs the built-in heartbeat job.

Usage::

    from tickwatch.config import get_settings
    settings = get_settings()

Jobs are declared as a JSON object in ``JOBS``::

    JOBS='{"refresh": {"target": "myapp.tasks:refresh", "cron": "*/5 * * * *"}}'
"""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tickwatch.scheduler.cron import next_fire_time, parse_cron
from tickwatch.scheduler.errors import SchedulerError

_CRON_FIELD_COUNT = 5


def _check_cron_format(value: str) -> str:
    """Shape check only; full parsing happens when the job is registered."""
    value = " ".join(value.split())
    if len(value.split(" ")) != _CRON_FIELD_COUNT:
        msg = f"Cron expression must have 5 fields, got '{value}'"
        raise ValueError(msg)
    return value


class JobConfig(BaseModel):
    """One recurring job: what to call and when."""

    target: str
    cron: str | None = None
    kwargs: dict[str, Any] = Field(default_factory=dict)

    @field_validator("target")
    @classmethod
    def check_target(cls, value: str) -> str:
        module, sep, attr = value.partition(":")
        if not sep or not module.strip() or not attr.strip():
            msg = f"Job target must look like 'package.module:function', got '{value}'"
            raise ValueError(msg)
        return value.strip()

    @field_validator("cron")
    @classmethod
    def check_cron(cls, value: str | None) -> str | None:
        return None if value is None else _check_cron_format(value)


def _default_jobs() -> dict[str, JobConfig]:
    return {"heartbeat": JobConfig(target="tickwatch.jobs.builtin:heartbeat")}


class Settings(BaseSettings):
    """Central configuration — every field maps to an UPPER_SNAKE env var."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        env_ignore_empty=True,
        populate_by_name=True,
    )

    # -- General ------------------------------------------------------------
    log_level: str = "INFO"
    timezone: str = "UTC"

    # -- Scheduler ----------------------------------------------------------
    job_schedule: str = "*/15 * * * *"
    cron_day_match: Literal["or", "and"] = "or"
    jobs: dict[str, JobConfig] = Field(default_factory=_default_jobs)

    # -- Health check -------------------------------------------------------
    health_check_enabled: bool = True
    health_check_port: int = Field(
        default=5000,
        validation_alias=AliasChoices("health_check_port", "port"),
    )
    health_check_path: str = "/healthcheck"

    @field_validator("job_schedule")
    @classmethod
    def check_job_schedule(cls, value: str) -> str:
        return _check_cron_format(value)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown timezone '{value}'"
            raise ValueError(msg) from exc
        return value

    @field_validator("health_check_path")
    @classmethod
    def check_health_path(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @model_validator(mode="after")
    def check_jobs(self) -> Settings:
        """Job names must be usable as identifiers in logs and JSON."""
        for name in self.jobs:
            if not name.strip():
                msg = "Job names must not be blank"
                raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def check_schedules(self) -> Settings:
        """Every expression must parse and have an upcoming fire time."""
        now = datetime.now(ZoneInfo(self.timezone))
        expressions = {self.job_schedule, *(self.job_cron(name) for name in self.jobs)}
        for expr in sorted(expressions):
            try:
                next_fire_time(parse_cron(expr, day_match=self.cron_day_match), now)
            except SchedulerError as exc:
                msg = f"Unusable cron expression '{expr}': {exc}"
                raise ValueError(msg) from exc
        return self

    def job_cron(self, name: str) -> str:
        """Effective cron expression of job *name* (falls back to JOB_SCHEDULE)."""
        return self.jobs[name].cron or self.job_schedule


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    return Settings()
