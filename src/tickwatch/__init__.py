"""tickwatch — in-process cron scheduler with a JSON health check."""

__version__ = "0.1.0"
