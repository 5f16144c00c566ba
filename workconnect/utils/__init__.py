"""
Utils Package
Utility functions and helpers
"""

from workconnect.utils.logger import get_logger, configure_app_logging, RequestLogger, redact_secrets
from workconnect.utils.decorators import rate_limit, log_execution_time
from workconnect.utils.validators import (
    normalize_phone_number,
    validate_phone_number,
    round_amount,
)

__all__ = [
    'get_logger',
    'configure_app_logging',
    'RequestLogger',
    'redact_secrets',
    'rate_limit',
    'log_execution_time',
    'normalize_phone_number',
    'validate_phone_number',
    'round_amount',
]
