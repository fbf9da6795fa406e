"""
speechsampler.logging - Centralized logging configuration.

Every module logs through a child of the ``speechsampler`` logger, so a host
application can route or silence the whole subsystem with one handler.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("speechsampler")


def get_logger(name: str) -> logging.Logger:
    """Return a child logger, e.g. ``get_logger("extract.retry")``."""
    return logger.getChild(name)


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the speechsampler package.

    Args:
        verbose: If True, enable DEBUG level logging; otherwise WARNING level
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )
    logger.setLevel(level)
