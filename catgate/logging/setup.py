"""Logging configuration for the gateway."""

import logging
import os
import sys
from typing import Optional

LOGGER_NAME = "catgate"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Set up logging with proper handlers and formatters.

    Args:
        level: Level name (``DEBUG``, ``INFO``...). ``CATGATE_LOG_LEVEL``
            wins over this argument; INFO is used when neither is set.
    """
    level_name = (os.getenv("CATGATE_LOG_LEVEL") or level or "INFO").upper()
    resolved = logging.getLevelName(level_name)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(resolved)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate to root so pytest's caplog and uvicorn's handlers see records
    logger.propagate = True

    return logger


# Global logger instance
logger = setup_logging()
