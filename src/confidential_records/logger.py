"""
Structured logging for confidential record components.

Each line is a small JSON object with a UTC timestamp. Plaintext values and
key material must never be passed to these loggers.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Optional, Union

ROOT_LOGGER = "confidential_records"

_FORMAT = json.dumps(
    {
        "ts": "%(asctime)s",
        "level": "%(levelname)s",
        "name": "%(name)s",
        "msg": "%(message)s",
    }
)


def _formatter() -> logging.Formatter:
    formatter = logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%dT%H:%M:%SZ")
    formatter.converter = time.gmtime
    return formatter


def configure_logging(
    level: Union[int, str] = logging.INFO, to_file: Optional[str] = None
) -> logging.Logger:
    """
    Attach handlers to the package root logger.

    Safe to call more than once: handlers are only added the first time,
    later calls just adjust the level.

    Args:
        level: Logging level or level name
        to_file: Optional path that mirrors stdout output

    Returns:
        The package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_formatter())
        logger.addHandler(handler)

        if to_file:
            directory = os.path.dirname(to_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(_formatter())
            logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package root logger."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
