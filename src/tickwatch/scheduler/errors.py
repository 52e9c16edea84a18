"""Exception hierarchy for schedule parsing, scheduling and job registration."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for configuration-time scheduler failures."""


class ParseError(SchedulerError, ValueError):
    """A cron expression is malformed.

    Attributes:
        field: Name of the offending field (``"expression"`` for a wrong
            field count).
        reason: Human-readable description of what is wrong.
    """

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid cron {field}: {reason}")


class ScheduleError(SchedulerError):
    """A valid expression has no fire instant inside the search window."""

    def __init__(self, reason: str, expression: str = "") -> None:
        self.reason = reason
        self.expression = expression
        detail = f" for '{expression}'" if expression else ""
        super().__init__(f"Cannot schedule{detail}: {reason}")


class RegistrationError(SchedulerError):
    """A job cannot be registered (duplicate name, bad schedule, too late)."""
