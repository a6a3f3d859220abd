"""
Centralized logging configuration for the portal
Console and optional rotating file handlers, plus log redaction
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
import os


def setup_logging(app_name=None, log_level=None, log_file=None):
    """
    Setup application logging with console and optional file handlers

    Module loggers (logging.getLogger(__name__)) propagate to the logger
    configured here, so the root logger is used unless app_name is given.

    Args:
        app_name: Logger to configure (None = root logger)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file (enables file logging)

    Returns:
        logging.Logger: Configured logger instance
    """

    # Determine log level from environment or parameter
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
    if log_file is None:
        log_file = os.getenv('LOG_FILE') or None

    numeric_level = getattr(logging, log_level, logging.INFO)

    logger = logging.getLogger(app_name)
    logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        fmt='[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    simple_formatter = logging.Formatter(
        fmt='[%(asctime)s] %(levelname)-8s %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(simple_formatter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            # Rotating file handler (10MB max, keep 5 backups)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(detailed_formatter)
            logger.addHandler(file_handler)

            logger.info(f"File logging enabled: {log_file}")
        except OSError as e:
            logger.error(f"Failed to setup file logging: {e}")

    if app_name:
        logger.propagate = False

    return logger


def sanitize_for_logs(value, field_name=None):
    """
    Sanitize sensitive data for logging.
    Redacts emails and tokens while keeping debug info.
    """
    if value is None:
        return None

    sensitive_fields = ['email', 'token', 'secret', 'api_key', 'authorization', 'code']

    # If field name indicates sensitive data, redact
    if field_name and any(s in field_name.lower() for s in sensitive_fields):
        if isinstance(value, str) and len(value) > 8:
            return f"{value[:4]}...{value[-4:]}"
        return "***REDACTED***"

    # If value looks like an email, redact
    if isinstance(value, str) and '@' in value:
        parts = value.split('@')
        if len(parts) == 2:
            return f"{parts[0][:2]}***@{parts[1]}"

    if isinstance(value, dict):
        return {k: sanitize_for_logs(v, k) for k, v in value.items()}

    if isinstance(value, list):
        return [sanitize_for_logs(item) for item in value]

    return value
