"""
M-Pesa Payment Provider
Based on the Safaricom Daraja API.

Supported flows
---------------
STK Push (Lipa na M-Pesa Online)
    POST /mpesa/stkpush/v1/processrequest
    POST /mpesa/stkpushquery/v1/query         (status poll)

Authentication
    GET  /oauth/v1/generate?grant_type=client_credentials  (Basic auth)
    Tokens are cached in-memory and refreshed automatically on expiry.

Callback
    Safaricom POSTs the final result to the configured CallBackURL as
    {"Body": {"stkCallback": {...}}}; parse_stk_callback() flattens it.

Every call returns the gateway result dict
{success, message, data, error, status_code}; credential problems raise
ConfigError before anything goes over the wire.
"""

import logging
from typing import Any, Dict, Optional

from workconnect.errors import ConfigError, UpstreamError
from workconnect.providers.auth import TokenAuthority
from workconnect.providers.gateway import MpesaGateway
from workconnect.providers.security import generate_password, generate_timestamp
from workconnect.providers.settings import MpesaSettings

logger = logging.getLogger(__name__)

TRANSACTION_TYPE = "CustomerPayBillOnline"

# Daraja field limits
ACCOUNT_REFERENCE_MAX = 12
TRANSACTION_DESC_MAX = 13


class MPesaProvider:
    """M-Pesa (Daraja API) STK Push adapter."""

    # Daraja endpoint paths
    _EP_STK_PUSH  = "/mpesa/stkpush/v1/processrequest"
    _EP_STK_QUERY = "/mpesa/stkpushquery/v1/query"

    def __init__(
        self,
        settings: MpesaSettings,
        gateway: Optional[MpesaGateway] = None,
        token_authority: Optional[TokenAuthority] = None,
    ):
        self.settings = settings
        self.gateway = gateway or MpesaGateway(settings)
        self.token_authority = token_authority or TokenAuthority(settings, self.gateway)

    def stk_push(
        self,
        phone: str,
        amount: int,
        account_reference: str,
        transaction_desc: str,
        callback_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Initiate a Lipa na M-Pesa Online (STK Push) payment.

        Args:
            phone: Normalised MSISDN (2547XXXXXXXX), used as payer and recipient party
            amount: Whole-unit amount
            account_reference: Shown on the customer's phone (truncated to 12 chars)
            transaction_desc: Shown on the customer's phone (truncated to 13 chars)
            callback_url: Overrides the configured CallBackURL
        """
        timestamp, password = self._generate_password()

        payload = {
            "BusinessShortCode": self.settings.short_code,
            "Password":          password,
            "Timestamp":         timestamp,
            "TransactionType":   TRANSACTION_TYPE,
            "Amount":            int(amount),
            "PartyA":            phone,
            "PartyB":            self.settings.short_code,
            "PhoneNumber":       phone,
            "CallBackURL":       callback_url or self.settings.callback_url,
            "AccountReference":  account_reference[:ACCOUNT_REFERENCE_MAX],
            "TransactionDesc":   transaction_desc[:TRANSACTION_DESC_MAX],
        }

        return self._post(self._EP_STK_PUSH, payload, context="stk_push")

    def query_stk_status(self, checkout_request_id: str) -> Dict[str, Any]:
        """Query the status of an STK Push transaction using CheckoutRequestID."""
        timestamp, password = self._generate_password()
        payload = {
            "BusinessShortCode": self.settings.short_code,
            "Password":          password,
            "Timestamp":         timestamp,
            "CheckoutRequestID": checkout_request_id,
        }
        return self._post(self._EP_STK_QUERY, payload, context="stk_query")

    @staticmethod
    def parse_stk_callback(payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Flatten an STK Push callback body.

        The receipt number is read from stkCallback itself or, failing that,
        from the CallbackMetadata items.

        Raises:
            ValueError: payload has no Body.stkCallback or no CheckoutRequestID,
                or CallbackMetadata is not an object with an Item list
        """
        if not isinstance(payload, dict):
            raise ValueError("Callback payload must be a JSON object")

        body = payload.get("Body") or {}
        if not isinstance(body, dict):
            raise ValueError("Callback payload Body must be an object")

        stk = body.get("stkCallback")
        if not isinstance(stk, dict):
            raise ValueError("Callback payload is missing Body.stkCallback")

        checkout_id = stk.get("CheckoutRequestID")
        if not checkout_id:
            raise ValueError("Callback payload is missing CheckoutRequestID")

        # Extract CallbackMetadata items into a flat dict
        metadata = stk.get("CallbackMetadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError("CallbackMetadata must be an object")

        items = metadata.get("Item") or []
        if not isinstance(items, list):
            raise ValueError("CallbackMetadata.Item must be a list")

        meta: Dict[str, Any] = {}
        for item in items:
            if isinstance(item, dict):
                meta[item.get("Name", "")] = item.get("Value")

        result_code = stk.get("ResultCode")
        receipt = stk.get("MpesaReceiptNumber") or meta.get("MpesaReceiptNumber")

        return {
            "checkout_request_id":  checkout_id,
            "merchant_request_id":  stk.get("MerchantRequestID"),
            "result_code":          "" if result_code is None else str(result_code),
            "result_desc":          stk.get("ResultDesc"),
            "mpesa_receipt_number": str(receipt) if receipt else None,
            "amount":               meta.get("Amount"),
            "phone_number":         meta.get("PhoneNumber"),
            "transaction_date":     meta.get("TransactionDate"),
        }

    # Private – auth & HTTP helpers

    def _post(self, endpoint: str, payload: Dict[str, Any], context: str = "") -> Dict[str, Any]:
        """Execute an authenticated POST to a Daraja endpoint."""
        try:
            token = self.token_authority.get_auth_token()
        except UpstreamError as exc:
            logger.error("MPesa [%s] token request failed: %s", context, exc.message)
            return {
                "success":     False,
                "message":     exc.message,
                "data":        None,
                "error":       exc.kind,
                "status_code": None,
            }

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type":  "application/json",
        }
        result = self.gateway.call(endpoint, method="POST", body=payload, headers=headers)

        if result["error"] == "authentication_error":
            # Token may have been revoked early; next call fetches a fresh one
            self.token_authority.invalidate()

        return result

    def _generate_password(self):
        """Return (timestamp, password), computed immediately before submission."""
        if not self.settings.pass_key:
            raise ConfigError("M-Pesa pass key is required")
        if not self.settings.short_code:
            raise ConfigError("M-Pesa short code is required")

        timestamp = generate_timestamp()
        password = generate_password(self.settings.short_code, self.settings.pass_key, timestamp)
        return timestamp, password
