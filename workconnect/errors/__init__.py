from workconnect.errors.exceptions import (
    AppError,
    ConfigError,
    Forbidden,
    InvalidPhoneNumber,
    JobNotFound,
    PaymentNotFound,
    TransactionNotFound,
    UpstreamError,
    ValidationError,
)

__all__= [
    'AppError',
    'ConfigError',
    'Forbidden',
    'InvalidPhoneNumber',
    'JobNotFound',
    'PaymentNotFound',
    'TransactionNotFound',
    'UpstreamError',
    'ValidationError',
]
