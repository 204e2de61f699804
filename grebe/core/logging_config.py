#!/usr/bin/env python3
"""Logging for grebe.

All messages go through loguru. The console sink is a rich handler on stderr,
leaving stdout free for FASTQ streamed with ``--out1 -``. A run started from
the CLI additionally logs at DEBUG to a timestamped file in its output
directory; only one such file is open at a time.
"""

import contextlib
from datetime import datetime
from pathlib import Path
from typing import Literal

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
LOG_FILE_PREFIX = "grebe"

# Modules whose INFO messages reach the console at the default level
CONSOLE_INFO_MODULES = ("grebe.cli", "grebe.pipeline")

_file_handler_id: int | None = None


def _console_filter(level: LogLevel) -> dict[str, str] | None:
    if level != "INFO":
        return None
    return {**{module: "INFO" for module in CONSOLE_INFO_MODULES}, "": "WARNING"}


def _add_file_sink(path: Path, level: LogLevel, rotation: str = "10 MB", retention: str = "7 days") -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    return logger.add(
        str(path),
        format=LOG_FORMAT,
        level=level,
        rotation=rotation,
        retention=retention,
        compression="gz",
    )


def setup_logging(
    level: LogLevel = "INFO",
    log_file: str | Path | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """Replace every loguru sink with the grebe console sink.

    Args:
        level: Minimum level shown on the console. At INFO, only the CLI and
            the pipeline driver report progress; other modules show warnings.
        log_file: Optional extra log file at the same level.
        rotation: When to rotate the log file (e.g., "10 MB", "1 day").
        retention: How long to keep rotated log files.
    """
    global _file_handler_id

    logger.remove()
    _file_handler_id = None
    logger.add(
        RichHandler(console=Console(stderr=True), markup=True, show_time=False, show_level=True, show_path=False),
        format="{message}",
        level=level,
        filter=_console_filter(level),
    )
    if log_file:
        _add_file_sink(Path(log_file), level, rotation, retention)


def get_logger(name: str | None = None):
    """Return the shared logger, bound to ``name`` when given."""
    if name:
        return logger.bind(name=name)
    return logger


def get_log_path(output_dir: Path | str) -> Path:
    """Timestamped log path in ``output_dir``: grebe_YYYYMMDD_HHMMSS.log."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Path(output_dir) / f"{LOG_FILE_PREFIX}_{timestamp}.log"


def add_file_handler(log_path: Path | str, level: LogLevel = "DEBUG") -> int:
    """Log to ``log_path``, replacing the file handler of an earlier run.

    Args:
        log_path: Path to the log file; parent directories are created.
        level: Minimum log level for file logging.

    Returns:
        Handler ID of the new sink.
    """
    global _file_handler_id

    remove_file_handler()
    _file_handler_id = _add_file_sink(Path(log_path), level)
    return _file_handler_id


def remove_file_handler() -> None:
    """Close the run log file, if one is open."""
    global _file_handler_id

    if _file_handler_id is not None:
        with contextlib.suppress(ValueError):
            logger.remove(_file_handler_id)
        _file_handler_id = None
