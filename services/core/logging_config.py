"""
Centralized Logging Configuration for AA-OS Governance Core

Structured logging on top of stdlib logging via structlog.

Author: AA-OS Core Team
Date: 2026-02-19
"""

import logging
import sys
from typing import Any
from pathlib import Path

import structlog

import governance_config


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False
) -> None:
    """
    Configure centralized logging for the entire application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logs
        json_logs: Use JSON format for production (better parsing)
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        # Production: JSON output
        processors.append(structlog.processors.JSONRenderer())
    else:
        # Development: readable console output
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Configure standard logging to work with structlog
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> Any:
    """
    Get a logger instance.

    Usage:
        from logging_config import get_logger

        logger = get_logger(__name__)
        logger.info("session_opened", session_id=session.id, user_id=user_id)
    """
    return structlog.get_logger(name)


def log_governance_block(
    action: str,
    user_id: str | None,
    reason: str,
    **context: Any
) -> None:
    """Log a blocked mutation with structured data"""
    logger = get_logger("governance_block")
    logger.warning(
        "mutation_blocked",
        action=action,
        user_id=user_id,
        reason=reason,
        **context
    )


def log_error(
    error: Exception,
    context: dict | None = None,
    level: str = "ERROR"
) -> None:
    """Log error with full context and stack trace"""
    logger = get_logger("error_handler")
    log_func = getattr(logger, level.lower(), logger.error)

    log_data = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if context:
        log_data.update(context)

    log_func("error_occurred", **log_data, exc_info=error)


def http_request_summary(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float
) -> None:
    """Log HTTP request summary"""
    logger = get_logger("http")
    logger.info(
        "http_request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms
    )


# Auto-setup on import
setup_logging(
    level=governance_config.LOG_LEVEL,
    log_file=governance_config.LOG_FILE,
    json_logs=governance_config.LOG_JSON
)
