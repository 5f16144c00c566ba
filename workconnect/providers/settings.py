"""
M-Pesa settings
Immutable view of the Daraja configuration, built once per application.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping

from workconnect.errors import ConfigError

# Daraja base URLs
BASE_URLS = {
    "sandbox":    "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}


@dataclass(frozen=True)
class MpesaSettings:
    consumer_key: str
    consumer_secret: str
    pass_key: str
    short_code: str = "174379"
    callback_url: str = "https://connectwork.vercel.app/api/mpesa/callback"
    environment: str = "sandbox"
    country_code: str = "254"
    request_timeout: int = 30
    poll_interval: int = 5
    poll_max_attempts: int = 10
    tolerate_persistence_errors: bool = True

    def __post_init__(self):
        if self.environment not in BASE_URLS:
            raise ConfigError(
                f"MPESA_ENVIRONMENT must be 'sandbox' or 'production', got '{self.environment}'"
            )

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "MpesaSettings":
        """Build settings from a Flask config mapping."""
        return cls(
            consumer_key=config.get("MPESA_CONSUMER_KEY") or "",
            consumer_secret=config.get("MPESA_CONSUMER_SECRET") or "",
            pass_key=config.get("MPESA_PASS_KEY") or "",
            short_code=str(config.get("MPESA_SHORT_CODE") or "174379"),
            callback_url=config.get("MPESA_CALLBACK_URL") or cls.callback_url,
            environment=str(config.get("MPESA_ENVIRONMENT") or "sandbox").lower(),
            country_code=str(config.get("MPESA_COUNTRY_CODE") or "254"),
            request_timeout=int(config.get("MPESA_REQUEST_TIMEOUT", 30)),
            poll_interval=int(config.get("MPESA_POLL_INTERVAL", 5)),
            poll_max_attempts=int(config.get("MPESA_POLL_MAX_ATTEMPTS", 10)),
            tolerate_persistence_errors=bool(config.get("MPESA_TOLERATE_PERSISTENCE_ERRORS", True)),
        )

    @property
    def base_url(self) -> str:
        return BASE_URLS[self.environment]

    def missing_credentials(self) -> List[str]:
        missing = []
        if not self.consumer_key:
            missing.append("MPESA_CONSUMER_KEY")
        if not self.consumer_secret:
            missing.append("MPESA_CONSUMER_SECRET")
        if not self.pass_key:
            missing.append("MPESA_PASS_KEY")
        return missing

    def require_credentials(self) -> None:
        """Raise ConfigError if any credential is absent."""
        missing = self.missing_credentials()
        if missing:
            raise ConfigError(f"Missing M-Pesa configuration: {', '.join(missing)}")

    def __repr__(self):
        # Credentials stay out of reprs and therefore out of logs
        return (
            f"MpesaSettings(short_code={self.short_code!r}, environment={self.environment!r}, "
            f"callback_url={self.callback_url!r}, credentials_present={not self.missing_credentials()})"
        )
