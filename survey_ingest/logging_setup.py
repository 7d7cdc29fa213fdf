"""
Structured logging configuration.
Sets up JSON-formatted logs with optional redaction patterns.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from pythonjsonlogger import jsonlogger

from .utils import ensure_directory


class RedactingFilter(logging.Filter):
    """Filter that redacts sensitive information from logs."""

    REDACT_PATTERNS = [
        'password',
        'token',
        'secret',
        'api_key',
        'ssn',
    ]

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        super().__init__()
        self.patterns = [p.lower() for p in (patterns if patterns is not None else self.REDACT_PATTERNS)]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive fields from log record."""
        if isinstance(record.msg, str):
            message = record.getMessage().lower()
            for pattern in self.patterns:
                if pattern in message:
                    record.msg = f"[REDACTED: {pattern}]"
                    record.args = ()
                    break
        return True


def setup_logging(
    log_dir: Path,
    log_level: str = "INFO",
    json_format: bool = True,
    console_output: bool = True,
    redact_patterns: Optional[Iterable[str]] = None,
) -> Path:
    """
    Configure structured logging.

    Args:
        log_dir: Directory to write log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON-formatted logs if True
        console_output: Also output to console if True
        redact_patterns: Substrings that cause a message to be redacted

    Returns:
        Path of the log file
    """
    log_dir = ensure_directory(log_dir)
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"ingest_{timestamp}.log"

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(level)

    redact_filter = RedactingFilter(redact_patterns)
    file_handler.addFilter(redact_filter)

    if json_format:
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s',
            timestamp=True
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.addFilter(redact_filter)
        console_handler.setFormatter(logging.Formatter('%(levelname)s - %(name)s - %(message)s'))
        root_logger.addHandler(console_handler)

    root_logger.info(f"Logging initialized: {log_file}")
    return log_file


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with a given name."""
    return logging.getLogger(name)
