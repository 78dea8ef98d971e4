"""Centralized logging configuration."""

import logging

from config import settings

NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "urllib3",
    "plaid",
)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets root logger level from settings.LOG_LEVEL and suppresses
    noisy third-party loggers to WARNING.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def redact(value: str | None, keep: int = 8) -> str:
    """Shorten a secret-ish value (state token, session id) for log output."""
    if not value:
        return "<none>"
    if len(value) <= keep:
        return value
    return f"{value[:keep]}..."
