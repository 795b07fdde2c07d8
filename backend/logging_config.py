"""Centralized logging configuration."""

import logging

from config import settings

# Webhook and ingest outcomes are the only record of what Fasten delivered,
# so these stay at INFO even when LOG_LEVEL is raised.
PIPELINE_LOGGERS = (
    "services.webhook_service",
    "services.ehi_ingest_service",
    "api.fasten_webhook",
)

NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "keyring",
)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets the root level from settings.LOG_LEVEL, keeps the webhook/ingest
    loggers at INFO or lower, and quiets noisy third-party loggers.
    Outside development, timestamps carry the full date.
    """
    level = getattr(logging, settings.LOG_LEVEL)
    datefmt = "%H:%M:%S" if settings.ENVIRONMENT == "development" else "%Y-%m-%d %H:%M:%S"
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt=datefmt,
        level=level,
        force=True,
    )

    for name in PIPELINE_LOGGERS:
        logging.getLogger(name).setLevel(min(level, logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
