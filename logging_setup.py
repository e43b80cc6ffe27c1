"""Logging configuration for the Rekraft backend."""

import logging
import sys
from typing import Optional, Union


def setup_logging(
    level: Union[int, str] = logging.INFO,
    module_name: Optional[str] = None,
) -> logging.Logger:
    """Configure and return a logger with consistent formatting.

    Args:
        level: Logging level or level name (default INFO).
        module_name: Logger to configure; the root logger when omitted, so
            every ``logging.getLogger(__name__)`` in the app inherits it.

    Returns:
        Configured logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(module_name)

    if logger.handlers:
        return logger

    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger
