"""
Centralized logging configuration for docker-roll.

Colorized console output for every phase of a rollout, with an optional
rotating file log for later inspection.
"""
# mypy: ignore-errors

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON for better parsing."""
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "slot"):
            log_obj["slot"] = record.slot
        if hasattr(record, "project"):
            log_obj["project"] = record.project

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for console and file logs."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[34m",  # Blue
        "SUCCESS": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False):
        """Initialize formatter with optional color support."""
        self.use_colors = use_colors
        super().__init__(
            fmt="[%(asctime)s] [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format with the whole line colored by level."""
        line = super().format(record)
        if self.use_colors and record.levelname in self.COLORS:
            return f"{self.COLORS[record.levelname]}{line}{self.RESET}"
        return line


def setup_logging(
    console_level: str = "INFO",
    log_dir: Optional[str] = None,
    file_level: str = "DEBUG",
    use_json: bool = False,
    use_colors: Optional[bool] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure logging for a docker-roll invocation.

    Args:
        console_level: Console logging level
        log_dir: Directory for a rotating log file, None for console only
        file_level: File logging level
        use_json: Use JSON formatting for the file log
        use_colors: Force console colors on/off, default is on for a TTY
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
    """
    if use_colors is None:
        use_colors = sys.stdout.isatty()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.getLevelName(console_level))
    console_handler.setFormatter(HumanReadableFormatter(use_colors=use_colors))
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_formatter = StructuredFormatter() if use_json else HumanReadableFormatter()
        file_handler = logging.handlers.RotatingFileHandler(
            log_path / "docker-roll.log", maxBytes=max_bytes, backupCount=backup_count
        )
        file_handler.setLevel(logging.getLevelName(file_level))
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("docker").setLevel(logging.WARNING)

    root_logger.debug(
        f"Logging initialized - Console: {console_level}, Directory: {log_dir}, JSON: {use_json}"
    )


def log_success(logger: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    """Log at the SUCCESS level."""
    logger.log(SUCCESS, message, *args, **kwargs)


def log_proxy_operation(
    operation: str,
    success: bool,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
) -> None:
    """
    Log a proxy dynamic configuration operation.

    Args:
        operation: Operation type (write, remove)
        success: Whether operation succeeded
        details: Additional operation details
        error: Error message if failed
    """
    logger = logging.getLogger("docker_roll.proxy")

    message = f"Proxy config {operation}: {'SUCCESS' if success else 'FAILED'}"
    if error:
        message += f" - {error}"
    if details:
        message += f" - {json.dumps(details)}"

    if success:
        logger.debug(message)
    else:
        logger.error(message)
