"""
Custom Validators
Validation and normalisation for phone numbers, amounts and statuses
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from workconnect.errors import InvalidPhoneNumber, ValidationError

DEFAULT_COUNTRY_CODE = '254'
MSISDN_LENGTH = 12

TERMINAL_STATUSES = ('completed', 'failed')


def normalize_phone_number(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Normalise a phone number to the MSISDN format Daraja expects (2547XXXXXXXX)

    Non-digits are stripped. A number without the country code loses one
    leading zero and gets the code prepended.

    Args:
        phone: Phone number as typed by the user
        country_code: Country dialling code without '+'

    Returns:
        Normalised MSISDN

    Raises:
        InvalidPhoneNumber: If the result is not 12 digits starting with the country code
    """
    digits = re.sub(r'\D', '', str(phone or ''))

    if not digits.startswith(country_code):
        if digits.startswith('0'):
            digits = digits[1:]
        digits = f'{country_code}{digits}'

    if len(digits) != MSISDN_LENGTH or not digits.startswith(country_code):
        raise InvalidPhoneNumber(
            'Invalid phone number format. Must be a valid Kenyan phone number.'
        )

    return digits


def validate_phone_number(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> tuple[bool, Optional[str]]:
    """
    Validate phone number format

    Args:
        phone: Phone number to validate
        country_code: Country dialling code without '+'

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not phone:
        return False, "Phone number is required"

    try:
        normalize_phone_number(phone, country_code)
    except InvalidPhoneNumber as e:
        return False, e.message

    return True, None


def round_amount(amount: Any) -> int:
    """
    Round an amount to the whole units M-Pesa accepts (half-up)

    Args:
        amount: Amount as int, float, str or Decimal

    Returns:
        Positive integer amount

    Raises:
        ValidationError: If the amount is not numeric or rounds below 1
    """
    if isinstance(amount, bool):
        raise ValidationError(f"Amount must be a number, got {type(amount).__name__}")

    try:
        if isinstance(amount, Decimal):
            amount_decimal = amount
        elif isinstance(amount, (int, float, str)):
            amount_decimal = Decimal(str(amount))
        else:
            raise ValidationError(f"Amount must be a number, got {type(amount).__name__}")
    except InvalidOperation:
        raise ValidationError(f"Invalid amount format: {amount}")

    if not amount_decimal.is_finite():
        raise ValidationError(f"Invalid amount format: {amount}")

    rounded = int(amount_decimal.quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    if rounded < 1:
        raise ValidationError("Amount must be at least 1")

    return rounded


def validate_idempotency_key(key: str) -> tuple[bool, Optional[str]]:
    """
    Validate idempotency key format

    Args:
        key: Idempotency key to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not key:
        return False, "Idempotency key is required"

    if len(key) < 10 or len(key) > 255:
        return False, "Idempotency key must be between 10 and 255 characters"

    if not re.match(r'^[a-zA-Z0-9_-]+$', key):
        return False, "Idempotency key must contain only alphanumeric characters, hyphens, and underscores"

    return True, None
