"""Logging setup for the UPLINK client.

Modules log through ``logging.getLogger(__name__)``; this helper attaches
handlers to the package logger once, so every module shares one format.
"""

from __future__ import annotations
from typing import Dict, Optional
import logging
import logging.handlers
import pathlib

FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

# Configured loggers, so repeated calls don't duplicate handlers
_LOGGER_CACHE: Dict[str, logging.Logger] = {}


def get_logger(name: str = "uplink", level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """Return the configured package logger.

    Console handler always; rotating file ``{log_dir}/{name}.log``
    (5MB x 5 backups) when ``log_dir`` is given.
    """
    if name in _LOGGER_CACHE:
        return _LOGGER_CACHE[name]

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(FORMAT))
        logger.addHandler(console)

        if log_dir is not None:
            pathlib.Path(log_dir).mkdir(parents=True, exist_ok=True)
            fh = logging.handlers.RotatingFileHandler(
                pathlib.Path(log_dir) / f"{name}.log",
                maxBytes=5_000_000, backupCount=5, encoding="utf-8"
            )
            fh.setFormatter(logging.Formatter(FORMAT))
            logger.addHandler(fh)

    _LOGGER_CACHE[name] = logger
    return logger
