class AppError(Exception):
    status_code = 500
    error = "Application error"

    def __init__(self, message, status_code=None):
        super().__init__(message)
        if status_code:
            self.status_code = status_code
        self.message = message

    def to_dict(self) -> dict:
        return {'success': False, 'error': self.error, 'message': self.message}


class ValidationError(AppError):
    status_code = 400
    error = "Validation error"

class ConfigError(AppError):
    status_code = 500
    error = "Configuration error"

class InvalidPhoneNumber(ValidationError):
    error = "Invalid phone number"

class UpstreamError(AppError):
    status_code = 502
    error = "Upstream error"

    def __init__(self, message, status_code=None, kind="upstream_error"):
        super().__init__(message, status_code)
        self.kind = kind

class PaymentNotFound(AppError):
    status_code = 404
    error = "Payment not found"

class TransactionNotFound(AppError):
    status_code = 404
    error = "Transaction not found"

class JobNotFound(AppError):
    status_code = 404
    error = "Job not found"

class Forbidden(AppError):
    status_code = 403
    error = "Forbidden"
