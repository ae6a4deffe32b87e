"""Logger setup for the solidtree command line."""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "solidtree"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: int = logging.WARNING) -> logging.Logger:
    """Send ``solidtree.*`` records at ``level`` and above to stderr.

    Calling it again replaces the handler instead of adding a second one.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(handler)
    logger.debug("logging configured at %s", logging.getLevelName(level))
    return logger
