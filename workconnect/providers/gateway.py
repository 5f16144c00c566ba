"""
Daraja gateway
Single choke point for every HTTP call to Safaricom. Transport and provider
failures come back as structured results instead of exceptions.
"""

import logging
from typing import Any, Dict, Optional

import requests

from workconnect.providers.settings import MpesaSettings
from workconnect.utils.logger import redact_secrets

logger = logging.getLogger(__name__)

NETWORK_ERROR = "network_error"
AUTHENTICATION_ERROR = "authentication_error"
UPSTREAM_ERROR = "upstream_error"

_NETWORK_KEYWORDS = ("network", "connection", "timed out", "timeout", "unreachable", "dns")
_AUTH_KEYWORDS = ("unauthorized", "unauthorised", "forbidden", "authentication", "access token", "credentials")


def classify_error(message: str, status_code: Optional[int] = None) -> str:
    """Map a failure to network_error, authentication_error or upstream_error."""
    if status_code in (401, 403):
        return AUTHENTICATION_ERROR
    lowered = (message or "").lower()
    if any(word in lowered for word in _AUTH_KEYWORDS):
        return AUTHENTICATION_ERROR
    if any(word in lowered for word in _NETWORK_KEYWORDS):
        return NETWORK_ERROR
    return UPSTREAM_ERROR


class MpesaGateway:
    """Forwards requests to the Daraja API and normalises the outcome."""

    def __init__(self, settings: MpesaSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.base_url = settings.base_url
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def call(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Execute a request against a Daraja endpoint.

        Returns:
            {success, message, data, error, status_code}. ``error`` is None on
            success and one of the module-level error kinds otherwise.
        """
        method = method.upper()
        url = f"{self.base_url}{endpoint}"

        logger.info("M-Pesa request %s %s", method, endpoint)
        logger.debug(
            "M-Pesa request %s %s headers=%s body=%s",
            method, endpoint, redact_secrets(headers or {}), redact_secrets(body or {}),
        )

        try:
            resp = self._session.request(
                method,
                url,
                json=body,
                headers=headers,
                timeout=self.settings.request_timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.error("M-Pesa %s %s network error: %s", method, endpoint, exc)
            return self._failure(f"Network error: unable to reach M-Pesa ({exc})", NETWORK_ERROR)
        except requests.RequestException as exc:
            message = str(exc)
            logger.error("M-Pesa %s %s failed: %s", method, endpoint, message)
            return self._failure(message, classify_error(message))

        return self._handle_response(resp, method, endpoint)

    def _handle_response(self, resp: requests.Response, method: str, endpoint: str) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            data = None

        logger.info("M-Pesa response %s %s -> HTTP %s", method, endpoint, resp.status_code)
        logger.debug("M-Pesa response body %s %s: %s", method, endpoint, redact_secrets(data))

        if not isinstance(data, dict):
            message = f"Unexpected response from M-Pesa (HTTP {resp.status_code}): {resp.text[:300]}"
            kind = classify_error(message, resp.status_code)
            return self._failure(message, kind, status_code=resp.status_code)

        # Daraja sometimes returns 200 with an error in the body
        error_code = data.get("errorCode")
        error_msg = (
            data.get("errorMessage")
            or data.get("ResponseDescription")
            or data.get("ResultDesc")
            or f"HTTP {resp.status_code}"
        )

        if not resp.ok or error_code:
            kind = classify_error(error_msg, resp.status_code)
            logger.warning(
                "M-Pesa %s %s rejected (HTTP %s, code %s): %s",
                method, endpoint, resp.status_code, error_code, error_msg,
            )
            return self._failure(error_msg, kind, data=data, status_code=resp.status_code)

        return {
            "success":     True,
            "message":     data.get("ResponseDescription") or data.get("CustomerMessage") or "Request successful",
            "data":        data,
            "error":       None,
            "status_code": resp.status_code,
        }

    @staticmethod
    def _failure(
        message: str,
        kind: str,
        data: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> Dict[str, Any]:
        return {
            "success":     False,
            "message":     message,
            "data":        data,
            "error":       kind,
            "status_code": status_code,
        }
