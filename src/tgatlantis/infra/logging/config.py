from __future__ import annotations

"""
Logging Configuration Model.

Immutable description of how the logging subsystem is wired for a run:
severity threshold, console output, optional rotating log file and the
record formats of each sink.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

_LEVEL_MAP: Dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


@dataclass(frozen=True)
class LoggingConfig:
    """
    Logging subsystem settings.

    Attributes:
        level: Minimum severity level to capture.
        console: Emit records on stderr (stdout is reserved for the JSON output).
        log_file: Optional path of a rotating log file.
        max_bytes: Rollover threshold of the log file.
        backup_count: Number of rotated files kept.
        console_fmt: Format of console records.
        file_fmt: Format of file records.
        datefmt: Timestamp format of file records.
    """
    level: str = "WARNING"
    console: bool = True
    log_file: Optional[str] = None

    max_bytes: int = 2 * 1024 * 1024
    backup_count: int = 3

    console_fmt: str = "%(levelname)s | %(message)s"
    file_fmt: str = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def for_cli(cls, debug: bool = False, log_file: Optional[str] = None) -> "LoggingConfig":
        """Settings used by the command line front end."""
        return cls(level="DEBUG" if debug else "WARNING", log_file=log_file or None)
