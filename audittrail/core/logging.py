"""
Logging configuration for the audit trail service
"""
import logging
import sys

from audittrail.core.config import settings


def setup_logging() -> None:
    """
    Configure Python logging based on settings.

    Sets up a console handler on the root logger with the level taken from
    settings.LOG_LEVEL and quiets noisy third-party loggers.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured: level={settings.LOG_LEVEL}, env={settings.ENV}")
