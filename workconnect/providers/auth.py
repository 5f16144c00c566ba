"""
OAuth token authority for the Daraja API.
Tokens are cached in-memory and refreshed shortly before expiry.
"""

import logging
import threading
import time
from typing import Optional

from workconnect.errors import ConfigError, UpstreamError
from workconnect.providers.gateway import MpesaGateway
from workconnect.providers.security import encode_base64
from workconnect.providers.settings import MpesaSettings

logger = logging.getLogger(__name__)

OAUTH_ENDPOINT = "/oauth/v1/generate?grant_type=client_credentials"

# Safaricom tokens expire in 3600s; cache with a 60s safety margin
TOKEN_EXPIRY_MARGIN = 60


class TokenAuthority:
    def __init__(self, settings: MpesaSettings, gateway: MpesaGateway):
        self.settings = settings
        self.gateway = gateway
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0
        self._lock = threading.Lock()

    def get_auth_token(self) -> str:
        """
        Return a valid bearer token, fetching a new one when the cache is stale.

        Raises:
            ConfigError: consumer key or secret missing
            UpstreamError: Daraja refused the request or returned no token
        """
        if not self.settings.consumer_key or not self.settings.consumer_secret:
            raise ConfigError("M-Pesa consumer key and secret are required")

        with self._lock:
            if self._access_token and time.time() < self._token_expiry:
                return self._access_token

            credentials = encode_base64(f"{self.settings.consumer_key}:{self.settings.consumer_secret}")
            result = self.gateway.call(
                OAUTH_ENDPOINT,
                method="GET",
                headers={"Authorization": f"Basic {credentials}"},
            )

            if not result["success"]:
                raise UpstreamError(
                    f"Failed to obtain M-Pesa access token: {result['message']}",
                    kind=result["error"],
                )

            data = result["data"] or {}
            token = data.get("access_token")
            if not token:
                raise UpstreamError("M-Pesa OAuth response did not include an access token")

            try:
                expires_in = int(data.get("expires_in", 3600))
            except (TypeError, ValueError):
                expires_in = 3600

            self._access_token = token
            self._token_expiry = time.time() + expires_in - TOKEN_EXPIRY_MARGIN

            logger.debug("M-Pesa access token refreshed (expires in %ds)", expires_in)
            return token

    def invalidate(self) -> None:
        with self._lock:
            self._access_token = None
            self._token_expiry = 0.0
