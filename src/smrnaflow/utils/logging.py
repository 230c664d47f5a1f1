"""Centralized logging utilities for smrnaflow.

Provides a single place to configure logging and fetch namespaced loggers.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

# Log rotation settings
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> None:
    """Configure logging for the 'smrnaflow' namespace.

    Args:
        level: Logging level for the application logger
        log_file: Optional path for log file output
        max_bytes: Maximum size per log file before rotation (default: 10MB)
        backup_count: Number of backup files to keep (default: 5)

    Notes:
        - Root logger kept at WARNING to suppress third-party noise
        - 'smrnaflow' logger uses the requested level
        - Console handler uses concise format; file handler (if any) is detailed at DEBUG
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING)

    app_logger = logging.getLogger("smrnaflow")
    app_logger.setLevel(level)
    # Avoid duplicate logs if called multiple times
    if app_logger.handlers:
        for h in list(app_logger.handlers):
            app_logger.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    app_logger.addHandler(console)

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
            app_logger.addHandler(file_handler)
        except OSError as e:
            import warnings

            warnings.warn(f"Failed to create log file {log_file}: {e}")

    app_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return a namespaced logger under 'smrnaflow' root."""
    base = logging.getLogger("smrnaflow")
    return base.getChild(name)


class LogTemplates:
    """Standard log message templates for task lifecycle and tool execution.

    Example usage:
        logger.info(LogTemplates.TASK_START.format(task="trim_galore", key="sampleA"))
    """

    # Task lifecycle messages
    TASK_START = "Starting task: {task} [{key}]"
    TASK_SUCCESS = "Completed task: {task} [{key}] in {duration:.1f}s"
    TASK_FAILURE = "Failed task: {task} [{key}] - {error}"
    TASK_CANCELLED = "Cancelled task: {task} [{key}] - {reason}"
    TASK_IGNORED = "Ignoring failure of best-effort task: {task} [{key}]"

    # Graph construction
    TASK_PRUNED = "Pruned task: {task} ({reason})"

    # File operations
    FILE_PUBLISHED = "Published {path} -> {dest}"

    # External tool execution
    TOOL_START = "Running: {command}"
    TOOL_FAILURE = "{tool} failed with exit code {returncode}"
