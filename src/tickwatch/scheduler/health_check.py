"""Lightweight HTTP health-check endpoint reporting scheduler status as JSON."""

from __future__ import annotations

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import TYPE_CHECKING, Any

from tickwatch import __version__
from tickwatch.scheduler.cron import next_fire_time, parse_cron
from tickwatch.scheduler.errors import SchedulerError

if TYPE_CHECKING:
    from tickwatch.scheduler.cron_scheduler import CronScheduler

logger = logging.getLogger(__name__)

TIME_PATH = "/time"

_NO_CACHE_HEADERS = (
    ("Cache-Control", "no-cache, no-store, must-revalidate"),
    ("Pragma", "no-cache"),
    ("Expires", "0"),
)


def _make_handler(
    scheduler: CronScheduler,
    health_path: str,
    schedule_expr: str | None,
) -> type[BaseHTTPRequestHandler]:
    """Create a handler class bound to the given scheduler."""

    class _HealthHandler(BaseHTTPRequestHandler):
        """Serves the health and time documents, 404 to everything else."""

        def do_GET(self) -> None:  # noqa: N802 — BaseHTTPRequestHandler convention
            path = self.path.split("?", 1)[0]
            if path == health_path:
                self._send_json(
                    {
                        "version": __version__,
                        "http": "okay",
                        "jobs": scheduler.get_status(),
                    }
                )
            elif path == TIME_PATH and schedule_expr:
                try:
                    document = _time_document(scheduler, schedule_expr)
                except SchedulerError as exc:
                    logger.error("Cannot render %s for '%s': %s", TIME_PATH, schedule_expr, exc)
                    self._send_json({"error": str(exc), "cron": schedule_expr}, status=500)
                else:
                    self._send_json(document)
            else:
                self.send_response(404)
                self.end_headers()

        def _send_json(self, payload: dict[str, Any], status: int = 200) -> None:
            body = json.dumps(payload, indent=2).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            for header, value in _NO_CACHE_HEADERS:
                self.send_header(header, value)
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: object) -> None:  # noqa: A002
            """Suppress default stderr logging — use our logger instead."""
            logger.debug("Health check: %s", format % args)

    return _HealthHandler


def _time_document(scheduler: CronScheduler, schedule_expr: str) -> dict[str, Any]:
    """Server time alongside the next fire instant of *schedule_expr*."""
    now = scheduler.now()
    expression = parse_cron(schedule_expr, day_match=scheduler.day_match)
    return {
        "serverTime": now.isoformat(),
        "nextFire": next_fire_time(expression, now).isoformat(),
        "cron": schedule_expr,
    }


def start_health_check(
    scheduler: CronScheduler,
    port: int = 5000,
    path: str = "/healthcheck",
    schedule_expr: str | None = None,
) -> tuple[HTTPServer, threading.Thread]:
    """Start a health-check HTTP server on a daemon thread.

    Args:
        scheduler: Scheduler whose job status is reported.
        port: Port to listen on (0 picks a free port).
        path: URL path for the health endpoint.
        schedule_expr: Cron expression reported by ``/time``; the route is
            disabled when omitted.

    Returns:
        Tuple of (server, thread) for shutdown control.
    """
    handler = _make_handler(scheduler, path, schedule_expr)
    server = HTTPServer(("0.0.0.0", port), handler)

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    logger.info("Health check listening on port %d at %s", server.server_address[1], path)
    return server, thread
