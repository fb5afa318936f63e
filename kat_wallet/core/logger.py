"""Logging configuration and utilities."""

import logging
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Rotated files kept on disk (one per day)
LOG_BACKUP_DAYS = 30


def parse_level(level_name: Union[str, int]) -> int:
    """Translate a config level name ("INFO", "debug", ...) to a logging level."""
    if isinstance(level_name, int):
        return level_name
    return getattr(logging, str(level_name).upper(), logging.INFO)


def _resolve_log_file(log_dir: str, log_filename: Optional[str]) -> Path:
    """Absolute log file path; relative directories hang off the project root."""
    directory = Path(log_dir)
    if not directory.is_absolute():
        # kat_wallet/core/logger.py -> project root
        directory = Path(__file__).parent.parent.parent / log_dir
    directory.mkdir(parents=True, exist_ok=True)

    stem = log_filename or datetime.now().strftime('%Y-%m-%d')
    return directory / f"{stem}.log"


def _daily_file_handler(log_file: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = TimedRotatingFileHandler(
        filename=str(log_file),
        when='midnight',
        interval=1,
        backupCount=LOG_BACKUP_DAYS,
        encoding='utf-8'
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logger(
    name: str = "kat_wallet",
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
    log_filename: Optional[str] = None
) -> logging.Logger:
    """
    Configure the package logger: stdout always, plus a daily rotating file.

    Module loggers (``logging.getLogger(__name__)``) live under the
    ``kat_wallet`` hierarchy and propagate to the handlers installed here.
    Calling it again replaces the previous handlers.

    Args:
        name: Logger name
        level: Logging level, numeric or a level name
        log_dir: Log directory (absolute, or relative to the project root)
        log_filename: Log file name without extension (defaults to today's date)

    Returns:
        Configured logger instance
    """
    level = parse_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    stream = logging.StreamHandler(sys.stdout)
    stream.setLevel(level)
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if log_dir:
        log_file = _resolve_log_file(log_dir, log_filename)
        logger.addHandler(_daily_file_handler(log_file, level, formatter))
        logger.info(f"Logging to file: {log_file.absolute()}")

    return logger


# Package logger with console output until main() applies the configured settings
log = setup_logger()
