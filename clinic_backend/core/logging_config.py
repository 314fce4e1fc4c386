"""Logging configuration"""
import logging
import sys

from clinic_backend.core import config

NOISY_LOGGERS = (
    'sqlalchemy',
    'sqlalchemy.engine',
    'sqlalchemy.pool',
    'uvicorn.access',
)


def setup_logging(level: str | None = None) -> None:
    resolved_level = getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO)

    logging.basicConfig(
        level=resolved_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if resolved_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
