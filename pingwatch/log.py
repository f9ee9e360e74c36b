"""Logging setup shared by the CLI, the scan loop and the web server."""
from __future__ import annotations

import logging
import sys
from typing import Union

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER = "pingwatch"


def parse_level(value: Union[str, int, None]) -> int:
    """Turn ``"debug"``, ``"INFO"``, ``10`` etc. into a logging level.

    Unknown names fall back to INFO.
    """
    if value is None:
        return logging.INFO
    if isinstance(value, int):
        return value
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: Union[str, int, None] = logging.INFO) -> None:
    """Attach a stderr handler to the ``pingwatch`` logger.

    Only the first call installs the handler; later calls just adjust the
    level, so ``serve`` and the uvicorn reloader can both call it.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(parse_level(level))
    if logger.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
