"""Structured audit logging."""

import logging
import os
import sys
from contextlib import suppress
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from structlog.types import EventDict

LOG_FILE_NAME = "aws-keychain.log"

# Matched case-insensitively against event keys at any depth.
SENSITIVE_KEYS = {
    "secret",
    "secret_access_key",
    "aws_secret_access_key",
    "password",
    "token",
    "credential",
}

_LOGGER_INSTANCE: Optional[structlog.stdlib.BoundLogger] = None
_HANDLERS: list[logging.Handler] = []


def get_log_dir(base_dir: Union[str, Path, None] = None) -> Path:
    """Get normalized log directory path.

    Args:
        base_dir: Base directory for logs. If None, uses ~/.local/log

    Returns:
        Resolved Path object for log directory
    """
    if base_dir is None:
        base_dir = Path.home() / ".local" / "log"
    return Path(base_dir).expanduser().resolve()


def create_secure_handler(
    log_path: Path, max_bytes: int, backup_count: int
) -> RotatingFileHandler:
    """Create a RotatingFileHandler readable only by owner and group."""
    os.makedirs(log_path.parent, mode=0o750, exist_ok=True)
    if not log_path.exists():
        log_path.touch(mode=0o640)
    handler = RotatingFileHandler(
        str(log_path), maxBytes=max_bytes, backupCount=backup_count
    )
    # chmod is a no-op for most bits on Windows.
    os.chmod(log_path, 0o640)
    return handler


def add_timestamp(
    _: Any, __: str, event_dict: EventDict
) -> EventDict:
    """Add ISO 8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def sanitize_keys(event_dict: dict[str, Any], sensitive_keys: set[str]) -> dict[str, Any]:
    """Return a copy with values of sensitive keys replaced by ``***``.

    Matching is case-insensitive and descends into nested dicts and lists.
    """
    lowered = {key.lower() for key in sensitive_keys}

    def _sanitize_value(key: str, value: Any) -> Any:
        if key.lower() in lowered:
            return "***"
        if isinstance(value, dict):
            return sanitize_keys(value, sensitive_keys)
        if isinstance(value, list):
            return [_sanitize_value("", item) for item in value]
        return value

    return {k: _sanitize_value(k, v) for k, v in event_dict.items()}


def sanitize_event_dict(_: Any, __: str, event_dict: EventDict) -> EventDict:
    """structlog processor masking sensitive values."""
    return sanitize_keys(dict(event_dict), SENSITIVE_KEYS)


def configure_logger(
    log_level: str = "INFO",
    max_log_size: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    base_dir: Union[str, Path, None] = None,
) -> structlog.stdlib.BoundLogger:
    """Configure structlog over stdlib logging and return a logger.

    JSON lines at ``log_level`` and above go to the rotating log file; the
    stderr handler only shows warnings and errors.
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            add_timestamp,
            sanitize_event_dict,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    log_file = get_log_dir(base_dir) / LOG_FILE_NAME
    file_handler = create_secure_handler(log_file, max_log_size, backup_count)
    file_handler.setFormatter(logging.Formatter("%(message)s"))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    for handler in (file_handler, console_handler):
        root_logger.addHandler(handler)
        _HANDLERS.append(handler)

    return structlog.get_logger("aws_keychain")


def reset_logger() -> None:
    """Close and detach our handlers and forget the configured logger.

    Handlers added by other code are left alone. Idempotent.
    """
    global _LOGGER_INSTANCE
    root_logger = logging.getLogger()
    while _HANDLERS:
        handler = _HANDLERS.pop()
        with suppress(OSError, ValueError):
            handler.close()
        root_logger.removeHandler(handler)
    structlog.reset_defaults()
    _LOGGER_INSTANCE = None


def setup_logging(
    *,
    log_level: str = "INFO",
    base_dir: Union[str, Path, None] = None,
    max_log_size: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> structlog.stdlib.BoundLogger:
    """Setup structured logging, replacing any previous configuration.

    Args:
        log_level: Log level for the log file (default: INFO)
        base_dir: Optional base directory for log files
        max_log_size: Maximum size of a log file before rotation
        backup_count: Number of rotated files to keep

    Returns:
        The configured logger instance.
    """
    global _LOGGER_INSTANCE
    reset_logger()
    _LOGGER_INSTANCE = configure_logger(
        log_level=log_level,
        max_log_size=max_log_size,
        backup_count=backup_count,
        base_dir=base_dir,
    )
    return _LOGGER_INSTANCE


def get_logger() -> structlog.stdlib.BoundLogger:
    """Get the configured logger, or a plain structlog logger if unconfigured."""
    if _LOGGER_INSTANCE is not None:
        return _LOGGER_INSTANCE
    return structlog.get_logger("aws_keychain")


def audit_event(
    *,
    event_type: str,
    user: str,
    success: bool,
    details: Optional[dict[str, Any]] = None,
    error: Optional[Exception] = None,
) -> None:
    """Log an audit event.

    Args:
        event_type: Type of event (e.g., "credential.create")
        user: Credential name or other subject of the event
        success: Whether the operation succeeded
        details: Optional event details, sanitized before logging
        error: Optional exception if operation failed
    """
    event: dict[str, Any] = {
        "event_type": str(getattr(event_type, "value", event_type)),
        "user": user,
        "success": success,
    }
    if details:
        event["details"] = sanitize_keys(details, SENSITIVE_KEYS)
    if error is not None:
        event["error"] = {"type": type(error).__name__, "message": str(error)}

    logger = get_logger().bind(**event)
    if success:
        logger.info("audit_event")
    else:
        # Failures are already reported to the user; keep them out of stderr.
        logger.info("audit_event_failed")
