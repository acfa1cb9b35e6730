"""
Logging for the workspace provider.

Only the ``tofuworkspace`` logger hierarchy is configured, so a process that
embeds the provider keeps its own root logging. Console output goes to
stderr, leaving stdout to CLI command output. Reconcile passes and garbage
collectors run on their own threads, so every record carries the thread name
(``reconcile_0``, ``gc-tofu``, ...).
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "tofuworkspace"

CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s %(filename)s:%(lineno)d: %(message)s"

# Marks handlers installed here, so setup can be repeated without
# touching handlers someone else attached
_HANDLER_ATTR = "_tofuworkspace_handler"


def setup_logging(
    log_level: str = "INFO",
    log_file: bool = False,
    stream=None,
) -> logging.Logger:
    """
    Configure provider logging.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: If True, also log everything at DEBUG to a file
        stream: Console stream; defaults to stderr

    Returns:
        The provider's package logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in [h for h in logger.handlers if getattr(h, _HANDLER_ATTR, False)]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    _install(logger, console_handler)

    log_file_path: Optional[Path] = None
    if log_file:
        log_dir = get_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file_path = log_dir / f"tofuworkspace_{timestamp}.log"

        file_handler = logging.FileHandler(log_file_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        _install(logger, file_handler)

    logger.setLevel(logging.DEBUG if log_file else level)
    if log_file_path is not None:
        logger.info(f"Logging to file: {log_file_path}")
    return logger


def _install(logger: logging.Logger, handler: logging.Handler):
    setattr(handler, _HANDLER_ATTR, True)
    logger.addHandler(handler)


def get_log_dir() -> Path:
    """Directory of provider log files, under the XDG cache directory."""
    base = os.environ.get("XDG_CACHE_HOME", os.path.expanduser("~/.cache"))
    return Path(base) / "tofuworkspace" / "logs"
