"""Console logging setup for the command line entry point."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(name: str = "admin_unit_mapping", level: int = logging.INFO) -> logging.Logger:
    """Attach one stdout handler to the named logger.

    Calling it again only updates the level of the existing handlers, so a
    logger never prints the same record twice.

    Args:
        name: Logger name; the package name covers every module logger.
        level: Threshold for the logger and its handlers.

    Returns:
        The configured logger.
    """

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    else:
        for handler in logger.handlers:
            handler.setLevel(level)

    return logger
