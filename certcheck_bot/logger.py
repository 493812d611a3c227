"""
Standardized logging configuration for SSL Certificate Checker.
"""

import json
import logging
import logging.handlers
import sys
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

import psutil

from certcheck_bot.context import RuntimeContext

if TYPE_CHECKING:
    from certcheck_bot.config import Config

# Extra attributes copied into structured log lines when present on a record
STRUCTURED_FIELDS = (
    "domain",
    "threshold",
    "days_remaining",
    "not_after",
    "error_type",
    "cycle_duration",
    "alerted",
    "failed",
    "reload_event",
    "pid",
    "uptime_seconds",
    "memory_mb",
)


class ContextFilter(logging.Filter):
    """Enrich records with process id, uptime and memory from the runtime context."""

    def __init__(self, context: RuntimeContext) -> None:
        super().__init__()
        self.context = context
        self._process = psutil.Process(context.pid)

    def filter(self, record: logging.LogRecord) -> bool:
        record.pid = self.context.pid
        record.uptime_seconds = int(self.context.uptime_seconds())
        try:
            record.memory_mb = self._process.memory_info().rss // (1024 * 1024)
        except psutil.Error:
            record.memory_mb = -1
        return True


class CustomFormatter(logging.Formatter):
    """Custom formatter with colored output for console."""

    # Color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def __init__(self, use_color: bool = True) -> None:
        self.use_color = use_color
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with optional colors."""
        if self.use_color and record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            reset = self.COLORS["RESET"]
            level_name = f"{color}{record.levelname:<8}{reset}"
        else:
            level_name = f"{record.levelname:<8}"

        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        message = record.getMessage()

        if record.exc_info:
            if not message.endswith("\n"):
                message += "\n"
            message += self.formatException(record.exc_info)

        process = ""
        if hasattr(record, "pid"):
            process = (
                f"[PID:{record.pid}] [MEM:{record.memory_mb}MB] "
                f"[UPTIME:{record.uptime_seconds}s] "
            )

        return f"{timestamp} | {level_name} | {record.name:<24} | {process}{message}"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(config: "Config", context: RuntimeContext) -> None:
    """
    Setup logging configuration.

    Args:
        config: Configuration object
        context: Runtime context used to enrich every record
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.log_level))
    root_logger.handlers.clear()

    context_filter = ContextFilter(context)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, config.log_level))
    use_color = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()
    console_handler.setFormatter(CustomFormatter(use_color=use_color))
    console_handler.addFilter(context_filter)
    root_logger.addHandler(console_handler)

    log_file = config.log_file_path
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # Rotating file handler (10MB max, 5 backups)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setLevel(getattr(logging, config.log_level))
        file_handler.setFormatter(StructuredFormatter())
        file_handler.addFilter(context_filter)
        root_logger.addHandler(file_handler)

    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    app_logger = logging.getLogger("certcheck_bot")
    app_logger.info(f"Logging initialized - Level: {config.log_level}")

    if log_file:
        app_logger.info(f"Log file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(f"certcheck_bot.{name}")


def tail_log(path: Path, lines: int) -> List[str]:
    """
    Read the last lines of a log file.

    Args:
        path: Log file path
        lines: Maximum number of trailing lines to return

    Returns:
        Trailing lines without line terminators
    """
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=lines)]


def count_lines(path: Path) -> int:
    """Count lines in a log file."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return sum(1 for _ in f)


# Logging helpers for certificate checks
def log_probe_failed(logger: logging.Logger, domain: str, error: Exception) -> None:
    """Log a failed certificate probe."""
    logger.error(
        f"Failed to get certificate for {domain}: {error}",
        extra={"domain": domain, "error_type": type(error).__name__},
    )


def log_expiry_checked(
    logger: logging.Logger, domain: str, days_remaining: int, not_after: datetime
) -> None:
    """Log the result of an expiry computation."""
    logger.info(
        f"Certificate expiration check - {domain}: {days_remaining} days remaining",
        extra={
            "domain": domain,
            "days_remaining": days_remaining,
            "not_after": not_after.isoformat(),
        },
    )


def log_alert_sent(logger: logging.Logger, domain: str, threshold: int, days_remaining: int) -> None:
    """Log a delivered alert."""
    logger.info(
        f"Alert sent for {domain} (threshold {threshold} days)",
        extra={"domain": domain, "threshold": threshold, "days_remaining": days_remaining},
    )


def log_alert_suppressed(logger: logging.Logger, domain: str, threshold: int) -> None:
    """Log an alert skipped because history already records it."""
    logger.debug(
        f"Alert already sent for {domain} at threshold {threshold}, skipping",
        extra={"domain": domain, "threshold": threshold},
    )


def log_cycle_complete(
    logger: logging.Logger, duration: float, checked: int, alerted: int, failed: int
) -> None:
    """Log completion of a check cycle."""
    logger.info(
        f"Certificate check cycle completed - Duration: {duration:.2f}s, "
        f"Domains: {checked}, Alerts: {alerted}, Failures: {failed}",
        extra={"cycle_duration": duration, "alerted": alerted, "failed": failed},
    )


def log_hot_reload(logger: logging.Logger, file_path: str, event_type: str) -> None:
    """Log hot reload events."""
    logger.debug(
        f"Hot reload triggered: {event_type} ({file_path})",
        extra={"reload_event": event_type},
    )
