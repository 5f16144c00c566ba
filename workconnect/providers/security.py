"""
Request signing helpers for the Daraja password scheme.

Password  = Base64(BusinessShortCode + Passkey + Timestamp)
Timestamp = YYYYMMDDHHmmss, local time
"""

import base64
from datetime import datetime
from typing import Optional

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def encode_base64(value: str) -> str:
    """Base64-encode text as UTF-8, keeping lone surrogates if UTF-8 refuses them."""
    try:
        raw = value.encode("utf-8")
    except UnicodeEncodeError:
        raw = value.encode("utf-8", "surrogatepass")
    return base64.b64encode(raw).decode("ascii")


def generate_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def generate_password(short_code: str, pass_key: str, timestamp: str) -> str:
    return encode_base64(f"{short_code}{pass_key}{timestamp}")
