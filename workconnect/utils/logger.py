"""
Logging Configuration
Centralized logging setup for the payments service
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
import os
from typing import Any

LOG_DIR = 'logs'

REDACTED = '***'

# Keys whose values must never reach a log line
SENSITIVE_KEYS = frozenset({
    'authorization',
    'password',
    'consumer_key',
    'consumer_secret',
    'consumerkey',
    'consumersecret',
    'pass_key',
    'passkey',
    'securitycredential',
    'access_token',
})


def redact_secrets(data: Any) -> Any:
    """
    Return a copy of data with credential values masked

    Args:
        data: Dict, list or scalar destined for a log line

    Returns:
        Same structure with sensitive values replaced by '***'
    """
    if isinstance(data, dict):
        return {
            key: (REDACTED if str(key).lower() in SENSITIVE_KEYS and value else redact_secrets(value))
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact_secrets(item) for item in data]
    return data


def _ensure_log_dir() -> bool:
    if not os.path.exists(LOG_DIR):
        try:
            os.makedirs(LOG_DIR)
        except OSError:
            return False
    return True


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        logger.setLevel(logging.INFO)

        # Console handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)

        if _ensure_log_dir():
            file_handler = RotatingFileHandler(
                os.path.join(LOG_DIR, 'workconnect-payments.log'),
                maxBytes=10485760,  # 10MB
                backupCount=10
            )
            file_handler.setLevel(logging.INFO)

            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

        console_formatter = logging.Formatter(
            '%(levelname)s - %(name)s - %(message)s'
        )
        console_handler.setFormatter(console_formatter)

        logger.addHandler(console_handler)

    return logger


def configure_app_logging(app):
    """
    Configure logging for the Flask application

    Args:
        app: Flask application instance
    """
    app.logger.setLevel(logging.DEBUG if app.debug else logging.INFO)

    if app.testing or not _ensure_log_dir():
        return

    error_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, 'error.log'),
        maxBytes=10485760,
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s\n%(pathname)s:%(lineno)d',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    error_handler.setFormatter(error_formatter)

    app.logger.addHandler(error_handler)


class RequestLogger:
    """Middleware to log all requests"""

    def __init__(self, app=None):
        self.app = app
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize request logging"""

        @app.before_request
        def log_request():
            from flask import request
            logger = get_logger('request')
            logger.info(
                f'{request.method} {request.path} - '
                f'IP: {request.remote_addr} - '
                f'User-Agent: {request.headers.get("User-Agent", "Unknown")}'
            )

        @app.after_request
        def log_response(response):
            from flask import request
            logger = get_logger('response')
            logger.info(
                f'{request.method} {request.path} - '
                f'Status: {response.status_code} - '
                f'IP: {request.remote_addr}'
            )
            return response
