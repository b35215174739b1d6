"""Logging configuration for career-vault.

All engine modules log through children of the ``career-vault`` logger
so a single stderr handler (and an optional file handler) sees every
record.  Use :func:`get_logger` with ``__name__``::

    from career_vault.logging import get_logger

    logger = get_logger(__name__)   # → "career-vault.pipeline.audit"

Call :func:`configure_file_logging` to add a timestamped file handler
under ``data/logs/``, and :func:`set_verbosity` from the CLI to switch
between INFO and DEBUG.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

ROOT_LOGGER_NAME = "career-vault"

logger = logging.getLogger(ROOT_LOGGER_NAME)
logger.setLevel(logging.INFO)

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

handler = logging.StreamHandler(sys.stderr)
handler.setLevel(logging.INFO)
handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))
logger.addHandler(handler)

DEFAULT_LOG_DIR = "data/logs"


def get_logger(module_name: str) -> logging.Logger:
    """Return a child of the ``career-vault`` logger for *module_name*.

    The leading ``career_vault.`` package prefix is dropped so records
    read ``career-vault.vault.store`` rather than repeating the package.
    """
    suffix = module_name.removeprefix("career_vault").lstrip(".")
    if not suffix:
        return logger
    return logger.getChild(suffix)


def set_verbosity(verbose: bool) -> None:
    """Switch the root engine logger and stderr handler to DEBUG or INFO."""
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    handler.setLevel(level)


def configure_file_logging(
    log_dir: str = DEFAULT_LOG_DIR,
    *,
    level: int = logging.INFO,
) -> logging.FileHandler:
    """Add a timestamped file handler to the engine logger.

    Creates ``log_dir`` if it does not exist.  Returns the handler so
    callers (or tests) can remove it later.
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    filename = log_path / f"career-vault_{timestamp}.log"

    file_handler = logging.FileHandler(str(filename), encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))

    # The logger must pass records down to the most verbose handler
    if level < logger.level:
        logger.setLevel(level)

    logger.addHandler(file_handler)
    return file_handler


__all__ = ["configure_file_logging", "get_logger", "logger", "set_verbosity"]
