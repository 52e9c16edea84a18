"""Cron expression parsing and fire-time computation.

Standard five-field syntax: ``minute hour day month day_of_week``.

Each field is a comma-separated list of items, where an item is ``*``, a
single value, a range ``a-b``, or a step ``*/n`` (also ``a-b/n`` and
``a/n``). Months accept ``jan``-``dec`` and weekdays ``sun``-``sat``;
weekday ``0`` is Sunday.

Example::

    expr = parse_cron("0 9 * * 1")
    next_fire_time(expr, datetime(2024, 1, 1, 10, 0))  # 2024-01-08 09:00
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterator, Literal

from tickwatch.scheduler.errors import ParseError, ScheduleError

DayMatch = Literal["or", "and"]

# Four years always contains a Feb 29, so any satisfiable rule fires inside it.
SEARCH_WINDOW_DAYS = 4 * 366

_ONE_MINUTE = timedelta(minutes=1)
_ONE_DAY = timedelta(days=1)

# Past this distance from the best candidate no later wall time can beat it
_DST_SLACK = timedelta(hours=3)

_MONTH_NAMES = {
    name: number
    for number, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}
_WEEKDAY_NAMES = {
    name: number
    for number, name in enumerate(("sun", "mon", "tue", "wed", "thu", "fri", "sat"))
}

# (name, min, max, aliases) in expression order
_FIELD_SPECS: tuple[tuple[str, int, int, dict[str, int]], ...] = (
    ("minute", 0, 59, {}),
    ("hour", 0, 23, {}),
    ("day", 1, 31, {}),
    ("month", 1, 12, _MONTH_NAMES),
    ("day_of_week", 0, 6, _WEEKDAY_NAMES),
)


@dataclass(frozen=True)
class CronField:
    """Accepted values of one cron field, sorted ascending."""

    name: str
    values: tuple[int, ...]
    wildcard: bool = False

    def __contains__(self, value: object) -> bool:
        return value in self.values


@dataclass(frozen=True)
class CronExpression:
    """An immutable, parsed cron rule."""

    expression: str
    minute: CronField
    hour: CronField
    day: CronField
    month: CronField
    day_of_week: CronField
    day_match: DayMatch = "or"

    @property
    def fields(self) -> tuple[CronField, ...]:
        return (self.minute, self.hour, self.day, self.month, self.day_of_week)

    def matches_day(self, day: date) -> bool:
        """Whether *day* satisfies the month, day and day-of-week fields.

        When both day fields are restricted they combine with OR (classic
        cron) unless the expression was parsed with ``day_match="and"``.
        A wildcard day field never restricts on its own.
        """
        if day.month not in self.month:
            return False
        dom_ok = day.day in self.day
        dow_ok = day.isoweekday() % 7 in self.day_of_week
        if self.day.wildcard:
            return dow_ok
        if self.day_of_week.wildcard:
            return dom_ok
        if self.day_match == "and":
            return dom_ok and dow_ok
        return dom_ok or dow_ok

    def matches(self, moment: datetime) -> bool:
        """Whether *moment* (to the minute) is a fire instant."""
        return (
            moment.minute in self.minute
            and moment.hour in self.hour
            and self.matches_day(moment.date())
        )

    def __str__(self) -> str:
        return self.expression


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _is_number(token: str) -> bool:
    # str.isdigit() alone also accepts "²" and "١"
    return token.isascii() and token.isdigit()


def _parse_value(token: str, name: str, low: int, high: int, aliases: dict[str, int]) -> int:
    token = token.strip().lower()
    if not token:
        raise ParseError(name, "missing value")
    if token in aliases:
        return aliases[token]
    if not _is_number(token):
        raise ParseError(name, f"'{token}' is not a number")
    value = int(token)
    if not low <= value <= high:
        raise ParseError(name, f"value {value} out of range {low}-{high}")
    return value


def _parse_item(item: str, name: str, low: int, high: int, aliases: dict[str, int]) -> range:
    step = 1
    base = item
    if "/" in item:
        base, step_text = item.split("/", 1)
        if not _is_number(step_text) or int(step_text) <= 0:
            raise ParseError(name, f"step must be a positive integer, got '{step_text}'")
        step = int(step_text)

    if base == "*":
        return range(low, high + 1, step)

    if "-" in base:
        start_text, end_text = base.split("-", 1)
        start = _parse_value(start_text, name, low, high, aliases)
        end = _parse_value(end_text, name, low, high, aliases)
        if start > end:
            raise ParseError(name, f"range start {start} is greater than end {end}")
        return range(start, end + 1, step)

    start = _parse_value(base, name, low, high, aliases)
    # "a/n" steps from a to the top of the field
    end = high if "/" in item else start
    return range(start, end + 1, step)


def _parse_field(
    text: str, name: str, low: int, high: int, aliases: dict[str, int]
) -> CronField:
    values: set[int] = set()
    for item in text.split(","):
        if not item:
            raise ParseError(name, f"empty list item in '{text}'")
        values.update(_parse_item(item, name, low, high, aliases))
    if not values:
        raise ParseError(name, f"no values accepted by '{text}'")
    return CronField(name=name, values=tuple(sorted(values)), wildcard=text == "*")


def parse_cron(expression: str, *, day_match: DayMatch = "or") -> CronExpression:
    """Parse a 5-field cron expression.

    Raises:
        ParseError: If the field count is wrong or any field is malformed.
            Out-of-range values are rejected, never clamped.
    """
    if day_match not in ("or", "and"):
        raise ValueError(f"day_match must be 'or' or 'and', got {day_match!r}")

    parts = expression.split()
    if len(parts) != len(_FIELD_SPECS):
        raise ParseError(
            "expression",
            f"expected {len(_FIELD_SPECS)} fields, got {len(parts)}: '{expression}'",
        )

    fields = [
        _parse_field(part, name, low, high, aliases)
        for part, (name, low, high, aliases) in zip(parts, _FIELD_SPECS)
    ]
    return CronExpression(" ".join(parts), *fields, day_match=day_match)


# ---------------------------------------------------------------------------
# Fire times
# ---------------------------------------------------------------------------


def _first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def _wall_times(expression: CronExpression, day: date, tz: tzinfo | None) -> Iterator[datetime]:
    for hour in expression.hour.values:
        for minute in expression.minute.values:
            yield datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)


def _instants(wall: datetime) -> tuple[datetime, ...]:
    """The real instants a wall-clock time denotes.

    A time inside a repeated hour (clocks going back) occurs twice. A time
    inside a skipped hour keeps ``fold=0``, which lands the same distance
    past the jump (02:30 in a skipped 02:00-03:00 becomes 03:30).
    """
    second = wall.replace(fold=1)
    if wall.utcoffset() > second.utcoffset():
        return (wall, second)
    return (wall,)


def _next_aware(expression: CronExpression, after: datetime, day: date) -> datetime | None:
    """Earliest fire instant on *day* later than *after*, compared in UTC."""
    floor = after.astimezone(timezone.utc)
    best: datetime | None = None
    for wall in _wall_times(expression, day, after.tzinfo):
        if best is not None and wall.astimezone(timezone.utc) - best > _DST_SLACK:
            break
        for candidate in _instants(wall):
            instant = candidate.astimezone(timezone.utc)
            if instant > floor and (best is None or instant < best):
                best = instant
    return None if best is None else best.astimezone(after.tzinfo)


def next_fire_time(expression: CronExpression, after: datetime) -> datetime:
    """Return the first fire instant strictly later than *after*.

    The result carries the tzinfo of *after* and has zero seconds. Days are
    walked one at a time (whole months are skipped when the month field
    rejects them), so the answer equals a minute-by-minute scan.

    For timezone-aware references, "later" means later in real time: a
    wall-clock time repeated when clocks go back can fire on both passes,
    and one skipped when clocks go forward fires just as far past the
    jump. Naive references compare wall clocks.

    Raises:
        ScheduleError: If nothing matches within ``SEARCH_WINDOW_DAYS``.
    """
    aware = after.utcoffset() is not None
    start = after.replace(second=0, microsecond=0) + _ONE_MINUTE
    day = after.date()
    last_day = day + timedelta(days=SEARCH_WINDOW_DAYS)

    while day <= last_day:
        if day.month not in expression.month:
            day = _first_of_next_month(day)
            continue
        if expression.matches_day(day):
            if aware:
                found = _next_aware(expression, after, day)
                if found is not None:
                    return found
            else:
                for candidate in _wall_times(expression, day, None):
                    if candidate >= start:
                        return candidate
        day += _ONE_DAY

    raise ScheduleError("no-match-in-window", expression.expression)


def next_fire_times(
    expression: CronExpression, after: datetime, count: int
) -> list[datetime]:
    """Return the next *count* fire instants after *after*, ascending."""
    if count < 1:
        raise ValueError(f"count must be at least 1, got {count}")
    times: list[datetime] = []
    reference = after
    for _ in range(count):
        reference = next_fire_time(expression, reference)
        times.append(reference)
    return times
