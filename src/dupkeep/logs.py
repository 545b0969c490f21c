"""Logging setup shared by the CLI and long-running hosts."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from dupkeep.config.models import LoggingSettings

LOG_FILENAME = "dupkeep.log"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: LoggingSettings, log_dir: Path | None = None) -> logging.Logger:
    """Install console and rotating-file handlers on the ``dupkeep`` logger.

    Args:
        settings: Level and rotation settings.
        log_dir: Directory for ``dupkeep.log``; file logging is skipped when omitted.

    Returns:
        logging.Logger: The configured package logger.
    """
    logger = logging.getLogger("dupkeep")
    logger.setLevel(settings.level.upper())
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(
        RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)
    )

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILENAME,
            maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


__all__ = ["configure_logging", "LOG_FILENAME"]
