"""Built-in work functions usable as job targets out of the box."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


def heartbeat() -> None:
    """Log a liveness line."""
    logger.info("Heartbeat at %s", datetime.now(timezone.utc).isoformat())


def touch_file(path: str) -> None:
    """Write the current UTC time to *path* for file-based liveness probes."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(datetime.now(timezone.utc).isoformat() + "\n", encoding="utf-8")
    logger.debug("Touched %s", target)
