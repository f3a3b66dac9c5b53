"""
Logging configuration for Pathfinder Runner.

Provides structured JSON logging with file rotation and different output formats
for development and CI environments. Every record carries the run id so that
log lines, stored results and screenshots can be correlated.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime, timezone
from typing import Optional

from .config import Config


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "run_id": getattr(record, "run_id", self.run_id),
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "metadata"):
            log_entry["metadata"] = record.metadata

        for attr in ["scenario_id", "viewport", "step_type", "duration", "status"]:
            if hasattr(record, attr):
                log_entry[attr] = getattr(record, attr)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable text."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        run_id = getattr(record, "run_id", self.run_id)

        message = f"[{timestamp}] {record.levelname:8} {record.name:28} | {record.getMessage()}"
        message += f" (run: {run_id[:8]})"

        if hasattr(record, "metadata") and record.metadata:
            metadata_str = " | ".join(f"{k}={v}" for k, v in record.metadata.items())
            message += f" | {metadata_str}"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(config: Config, run_id: str) -> logging.Logger:
    """
    Set up logging configuration based on environment and config.

    Args:
        config: Configuration object with logging settings
        run_id: Run identifier for log correlation

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, config.log_level)
    root_logger.setLevel(log_level)

    if config.log_format == "json":
        formatter = StructuredFormatter(run_id)
    else:
        formatter = TextFormatter(run_id)

    # stderr keeps stdout free for streamed events
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if not config.is_ci_mode:
        config.logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            config.get_log_file_path(),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

        if config.debug_enabled:
            debug_handler = logging.handlers.RotatingFileHandler(
                config.get_debug_log_dir() / f"debug-{run_id[:8]}.log",
                maxBytes=50 * 1024 * 1024,  # 50MB
                backupCount=3,
                encoding="utf-8",
            )
            debug_handler.setFormatter(formatter)
            debug_handler.setLevel(logging.DEBUG)
            root_logger.addHandler(debug_handler)

    logger = logging.getLogger("pathfinder.logging")
    logger.info(
        "Logging configured",
        extra={
            "metadata": {
                "run_id": run_id,
                "log_level": config.log_level,
                "log_format": config.log_format,
                "ci_mode": config.is_ci_mode,
                "debug_enabled": config.debug_enabled,
            }
        },
    )

    return root_logger


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter that merges bound context into every record."""

    def process(self, msg, kwargs):
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        for key, value in self.extra.items():
            kwargs["extra"].setdefault(key, value)
        return msg, kwargs


def get_logger(name: str, **context) -> logging.Logger:
    """
    Get a logger with optional context.

    Args:
        name: Logger name (typically module name)
        **context: Additional context to include in log records

    Returns:
        Configured logger with context
    """
    logger = logging.getLogger(name)

    if context:
        return ContextAdapter(logger, context)

    return logger


def log_performance(
    logger: logging.Logger, operation: str, duration: float, **metadata
):
    """
    Log performance metrics for operations.

    Args:
        logger: Logger instance
        operation: Name of the operation
        duration: Duration in seconds
        **metadata: Additional metadata to include
    """
    logger.info(
        f"Performance: {operation} completed in {duration:.2f}s",
        extra={"metadata": {"operation": operation, "duration": duration, **metadata}},
    )


def log_browser_call(
    logger: logging.Logger,
    action: str,
    duration: float,
    success: bool,
    **metadata,
):
    """
    Log a browser automation call for debugging and monitoring.

    Args:
        logger: Logger instance
        action: Browser action performed (navigate, click, ...)
        duration: Call duration in seconds
        success: Whether the call succeeded
        **metadata: Additional metadata
    """
    level = logging.DEBUG if success else logging.WARNING
    status = "success" if success else "failed"

    logger.log(
        level,
        f"Browser call: {action} {status} in {duration:.3f}s",
        extra={
            "metadata": {
                "action": action,
                "duration": duration,
                "success": success,
                **metadata,
            }
        },
    )
