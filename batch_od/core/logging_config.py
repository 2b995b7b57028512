"""
Logging configuration.

Library modules obtain loggers through ``get_logger`` and never install
handlers themselves; applications call ``configure_logging`` once.

Usage:
    from batch_od.core.logging_config import configure_logging, get_logger

    configure_logging(logging.DEBUG)
    logger = get_logger(__name__)
    logger.info("Iteration 1: residual RMS 1.2e-03")
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.getLogger("batch_od").addHandler(logging.NullHandler())


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """Configure logging for an application using this package.

    Args:
        level: Logging level (e.g., logging.DEBUG, logging.INFO).
        log_file: Path to a log file. If None, logs only to stdout.
    """
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically ``get_logger(__name__)``)."""
    return logging.getLogger(name)
