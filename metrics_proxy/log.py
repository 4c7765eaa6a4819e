"""Process-wide logging setup for the ``metrics_proxy`` logger tree."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stream handler to the ``metrics_proxy`` logger.

    Safe to call more than once; existing handlers are replaced.
    """
    logger = logging.getLogger("metrics_proxy")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)

    # uvicorn configures the root logger separately; avoid double output.
    logger.propagate = False
    return logger
