"""Structured logging configuration for the report scheduler.

Provides:
- JSON structured logs for file output and non-debug consoles
- Colored console output while DEBUG is enabled
- Rotating file handler (10MB max, 5 backups)
- Redaction of credentials (SMTP password, API keys, tokens)

Structured context is attached with ``extra={"context": {...}}``; the
scheduler and runner use it for schedule and execution identifiers.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import ClassVar

from app.core.config import settings


class SensitiveDataFilter(logging.Filter):
    """Redact credentials from log messages before they reach a handler.

    Examples:
        >>> logger = logging.getLogger("app")
        >>> logger.addFilter(SensitiveDataFilter())
        >>> logger.info("smtp_password=hunter2")
        # Logs: "smtp_password: [REDACTED]"
    """

    SENSITIVE_PATTERNS: ClassVar[list[str]] = [
        "smtp_password",
        "password",
        "passwd",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "bearer",
        "credential",
    ]

    _REGEXES: ClassVar[list[tuple[str, re.Pattern[str]]]] = [
        (
            pattern,
            re.compile(rf"{pattern}[:=]\s*[\"']?[^\s\"',}}]+", re.IGNORECASE),
        )
        for pattern in SENSITIVE_PATTERNS
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.redact(str(record.msg))
        if record.args:
            record.args = tuple(
                self.redact(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True

    @classmethod
    def redact(cls, text: str) -> str:
        """Replace ``key: value`` / ``key=value`` credentials with a marker."""
        for pattern, regex in cls._REGEXES:
            text = regex.sub(f"{pattern}: [REDACTED]", text)
        return text


class JSONFormatter(logging.Formatter):
    """JSON formatter for log aggregation systems.

    Format:
        {
            "timestamp": "2024-01-16T09:00:01.123Z",
            "level": "INFO",
            "logger": "app.services.reports.runner",
            "message": "Execution finished",
            "service": "Ticket Report Scheduler",
            "context": {"schedule_id": "...", "execution_id": "...", "status": "success"}
        }
    """

    def __init__(self, service_name: str, service_version: str) -> None:
        super().__init__()
        self.service_name = service_name
        self.service_version = service_version

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "version": self.service_version,
        }

        context = getattr(record, "context", None)
        if context:
            log_entry["context"] = context

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if record.levelno >= logging.ERROR:
            log_entry["source"] = {
                "function": record.funcName,
                "line": record.lineno,
                "file": record.pathname,
                "task": getattr(record, "taskName", None),
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ColoredConsoleFormatter(logging.Formatter):
    """Human-readable colored output for local development."""

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[41m",  # Red background
    }
    RESET: ClassVar[str] = "\033[0m"

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            line = f"{line} | {json.dumps(context, default=str)}"
        return f"{color}{line}{self.RESET}"


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    service_name: str | None = None,
    enable_json: bool = True,
    enable_console: bool = True,
) -> logging.Logger:
    """Configure the root logger with file and console handlers.

    Args:
        log_level: Logging level name, defaults to settings.LOG_LEVEL
        log_file: Path to log file, defaults to logs/app.log
        service_name: Service name embedded in JSON records
        enable_json: Use JSON formatting for the file handler
        enable_console: Add a stdout handler

    Returns:
        The configured root logger.
    """
    level_name = (log_level or settings.LOG_LEVEL).upper()
    level = getattr(logging, level_name, logging.INFO)
    service = service_name or settings.PROJECT_NAME

    if log_file is None:
        log_file_path = Path("logs") / "app.log"
    else:
        log_file_path = Path(log_file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handlers: list[logging.Handler] = []

    file_handler = RotatingFileHandler(
        filename=str(log_file_path),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    if enable_json:
        file_handler.setFormatter(JSONFormatter(service, settings.VERSION))
    else:
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    handlers.append(file_handler)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        if settings.DEBUG:
            console_handler.setFormatter(ColoredConsoleFormatter())
        else:
            console_handler.setFormatter(JSONFormatter(service, settings.VERSION))
        handlers.append(console_handler)

    sensitive_filter = SensitiveDataFilter() if settings.LOG_SENSITIVE_FILTER else None
    for handler in handlers:
        if sensitive_filter is not None:
            handler.addFilter(sensitive_filter)
        root.addHandler(handler)

    # APScheduler logs every interval run at INFO; keep it to warnings
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))

    root.info(
        f"Logging initialized - Level: {level_name}, File: {log_file_path}",
        extra={
            "context": {
                "log_level": level_name,
                "log_file": str(log_file_path),
                "service": service,
            }
        },
    )
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name.

    Examples:
        >>> from app.core.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Tick finished", extra={"context": {"dispatched": 3}})
    """
    return logging.getLogger(name)


__all__ = [
    "ColoredConsoleFormatter",
    "JSONFormatter",
    "SensitiveDataFilter",
    "get_logger",
    "setup_logging",
]
