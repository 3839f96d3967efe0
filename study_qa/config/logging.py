"""Logging setup for the ``study_qa`` package.

Modules log through ``logging.getLogger(__name__)``; only the entrypoint
calls ``configure_logging`` once.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach one stdout handler to the package logger.

    Args:
        level: Level name ("DEBUG", "INFO", ...) or numeric level.

    Returns:
        The configured ``study_qa`` logger.
    """
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logger = logging.getLogger("study_qa")
    logger.setLevel(resolved)

    # Avoid adding duplicate handlers when called twice (reload, tests)
    if not any(getattr(h, "_study_qa", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._study_qa = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
        # Prevent duplicates through the root logger
        logger.propagate = False

    for h in logger.handlers:
        h.setLevel(resolved)
    return logger
