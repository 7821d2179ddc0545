"""Logging setup for the scanner: plain CI-friendly lines, masked secrets."""

import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, List, Optional

LOGGER_NAME = "uptycs_ci"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MASK = "****"


class SecretMaskingFormatter(logging.Formatter):
    """
    Formatter that replaces known secret values in the rendered line.

    Masking happens on the formatted text, so the record handed to other
    handlers is left as it was.
    """

    def __init__(self, fmt: str, secrets: Iterable[str] = ()):
        super().__init__(fmt, datefmt=DATE_FORMAT)
        # Longest first so a secret containing another is masked whole.
        self.secrets: List[str] = sorted({s for s in secrets if s}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        for secret in self.secrets:
            text = text.replace(secret, MASK)
        return text


class PerformanceLogger:
    """Track operation duration."""

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time = None
        self.duration = 0.0

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.debug(f"Started: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.monotonic() - self.start_time

        if exc_type is None:
            self.logger.info(f"Completed: {self.operation} ({self.duration:.2f}s)")
        else:
            self.logger.error(f"Failed: {self.operation} ({self.duration:.2f}s)")


def secret_values(*values: str) -> List[str]:
    """Secrets to mask: each value whole, plus every non-blank line of it."""
    secrets = []
    for value in values:
        if not value:
            continue
        secrets.append(value)
        secrets.extend(line.strip() for line in value.splitlines() if line.strip())
    return secrets


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    verbose: bool = False,
    secrets: Iterable[str] = (),
) -> None:
    """
    Configure the ``uptycs_ci`` logger.

    Safe to call again once the run configuration is known; previous
    handlers are closed and replaced.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path, always written at DEBUG
        verbose: Include logger names in console output
        secrets: Values never to be written to any log output
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    secrets = list(secrets)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG if log_file else numeric_level)

    if verbose:
        console_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    else:
        console_format = "%(asctime)s - %(levelname)s - %(message)s"

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(SecretMaskingFormatter(console_format, secrets))
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)

        file_format = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        file_handler.setFormatter(SecretMaskingFormatter(file_format, secrets))
        logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get logger for module."""
    if name.startswith(LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
