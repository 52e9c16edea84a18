"""CLI entry point — ``python -m tickwatch serve|next``."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from zoneinfo import ZoneInfo

from tickwatch.config import get_settings
from tickwatch.scheduler.errors import SchedulerError

logger = logging.getLogger("tickwatch")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tickwatch",
        description="tickwatch — in-process cron scheduler with a JSON health check.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Start long-lived scheduler (cron + health check).")

    nxt = sub.add_parser("next", help="Print the next fire instants of a cron expression.")
    nxt.add_argument("expression", help='5-field cron expression, e.g. "0 9 * * 1".')
    nxt.add_argument(
        "-n",
        "--count",
        type=int,
        default=5,
        help="Number of instants to print (default: 5).",
    )
    nxt.add_argument(
        "--from",
        dest="reference",
        default=None,
        help="ISO-8601 reference instant (default: now in the configured timezone).",
    )

    return parser


def _reference_time(reference: str | None, tz_name: str) -> datetime:
    """Parse ``--from``; naive values are taken in the configured timezone."""
    tz = ZoneInfo(tz_name)
    if reference is None:
        return datetime.now(tz)
    start = datetime.fromisoformat(reference)
    if start.tzinfo is None:
        start = start.replace(tzinfo=tz)
    return start


def _print_next(expression: str, count: int, start: datetime, day_match: str) -> int:
    from tickwatch.scheduler.cron import next_fire_times, parse_cron

    for moment in next_fire_times(parse_cron(expression, day_match=day_match), start, count):
        print(moment.isoformat())
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse CLI args and dispatch to serve mode or the ``next`` preview."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        if args.command == "next":
            if args.count < 1:
                parser.error("--count must be at least 1")
            try:
                start = _reference_time(args.reference, settings.timezone)
            except ValueError:
                parser.error(f"--from must be an ISO-8601 instant, got '{args.reference}'")
            return _print_next(
                args.expression,
                args.count,
                start,
                settings.cron_day_match,
            )

        if args.command == "serve":
            from tickwatch.scheduler.runner import serve

            serve(settings)
            return 0
    except SchedulerError as exc:
        logger.error("%s", exc)
        return 2

    return 1  # unreachable with required=True


if __name__ == "__main__":
    sys.exit(main())
