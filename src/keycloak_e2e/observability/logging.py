"""
Structured logging utilities for the deployment verification harness.

This module provides run ID and stage tracking, a level-tagged console
formatter for CI log scrapers, and a JSON formatter for structured log
aggregation.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TextIO

# Context variables for tracking the current run and pipeline stage
run_id: ContextVar[str] = ContextVar("run_id", default="")
current_stage: ContextVar[str] = ContextVar("current_stage", default="")

# Console tags consumed by CI log scrapers
LEVEL_TAGS = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}

LEVEL_COLORS = {
    logging.DEBUG: "\033[0;36m",
    logging.INFO: "\033[0;32m",
    logging.WARNING: "\033[1;33m",
    logging.ERROR: "\033[0;31m",
    logging.CRITICAL: "\033[0;31m",
}
RESET_COLOR = "\033[0m"

STRUCTURED_FIELDS = (
    "cluster_name",
    "namespace",
    "subject",
    "condition",
    "outcome",
    "elapsed",
    "polls",
    "command",
    "returncode",
    "url",
    "http_status",
    "error_type",
    "exit_code",
    "diagnostic_file",
)


class RunContextFilter(logging.Filter):
    """Logging filter that adds the run ID and current stage to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Add run ID and stage to the log record.

        Args:
            record: The log record to process

        Returns:
            True to allow the record to be processed
        """
        current_run_id = run_id.get()
        if not current_run_id:
            current_run_id = generate_run_id()
            run_id.set(current_run_id)

        record.run_id = current_run_id
        record.stage = current_stage.get()
        return True


class ConsoleFormatter(logging.Formatter):
    """
    Level-tagged formatter producing ``[INFO] message`` lines.

    Colors the tag when writing to a terminal. Exception tracebacks are
    appended the same way the standard formatter does.
    """

    def __init__(self, use_color: bool = False):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        tag = LEVEL_TAGS.get(record.levelno, record.levelname)
        if self.use_color:
            color = LEVEL_COLORS.get(record.levelno, "")
            prefix = f"{color}[{tag}]{RESET_COLOR}"
        else:
            prefix = f"[{tag}]"

        line = f"{prefix} {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON formatter for logs with run ID and stage support.

    Formats log records as one JSON object per line so CI systems can
    extract failure reasons without parsing free text.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as structured JSON.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted log message
        """
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": LEVEL_TAGS.get(record.levelno, record.levelname),
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", ""),
            "stage": getattr(record, "stage", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def generate_run_id() -> str:
    """
    Generate a new run ID.

    Returns:
        Short 8-character run ID
    """
    return str(uuid.uuid4())[:8]


def set_run_id(new_run_id: str) -> str:
    """Set the run ID for the current context."""
    run_id.set(new_run_id)
    return new_run_id


def set_stage(stage: str) -> str:
    """Set the pipeline stage reported on subsequent log records."""
    current_stage.set(stage)
    return stage


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = False,
    stream: TextIO | None = None,
) -> None:
    """
    Set up logging for a verification run.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Whether to emit JSON lines instead of tagged lines
        stream: Output stream, defaults to stderr
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream = stream or sys.stderr
    handler = logging.StreamHandler(stream)

    if enable_json_formatting:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        is_tty = hasattr(stream, "isatty") and stream.isatty()
        formatter = ConsoleFormatter(use_color=is_tty)

    handler.setFormatter(formatter)
    handler.addFilter(RunContextFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Set specific logger levels for third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
