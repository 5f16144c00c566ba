"""
STK Push Service
Validates a push request, submits it to Daraja and records the pending transaction
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from workconnect.errors import ValidationError
from workconnect.extensions import db
from workconnect.models import MpesaTransaction
from workconnect.providers import get_mpesa_provider, get_mpesa_settings
from workconnect.utils.logger import get_logger
from workconnect.utils.validators import normalize_phone_number, round_amount

logger = get_logger(__name__)

DEFAULT_ACCOUNT_REFERENCE = 'WorkConnect Payment'
DEFAULT_TRANSACTION_DESC = 'Payment for services'

INITIATED_MESSAGE = 'Payment initiated successfully. Please check your phone to complete the payment.'


@dataclass
class StkPushRequest:
    """One push attempt. Not persisted; consumed by initiate_stk_push."""
    phone_number: str
    amount: Any
    account_reference: Optional[str] = None
    transaction_desc: Optional[str] = None
    callback_url: Optional[str] = None


class StkPushService:
    """Lipa na M-Pesa Online initiation"""

    @staticmethod
    def initiate_stk_push(push_request: StkPushRequest) -> Dict[str, Any]:
        """
        Send an STK Push prompt to the customer's phone

        Args:
            push_request: Phone, amount and optional reference/description/callback overrides

        Returns:
            {success, message, checkoutRequestId, data}

        Raises:
            ConfigError: Credentials are missing; nothing was sent
        """
        settings = get_mpesa_settings()

        try:
            phone = normalize_phone_number(push_request.phone_number, settings.country_code)
            amount = round_amount(push_request.amount)
        except ValidationError as e:
            logger.info(f'STK push rejected: {e.message}')
            return {
                'success': False,
                'message': e.message,
                'error': e.error,
            }

        account_reference = push_request.account_reference or DEFAULT_ACCOUNT_REFERENCE
        transaction_desc = push_request.transaction_desc or DEFAULT_TRANSACTION_DESC

        settings.require_credentials()
        provider = get_mpesa_provider()

        result = provider.stk_push(
            phone=phone,
            amount=amount,
            account_reference=account_reference,
            transaction_desc=transaction_desc,
            callback_url=push_request.callback_url,
        )

        if not result['success']:
            logger.error(f'STK push failed for {phone}: {result["message"]}')
            return {
                'success': False,
                'message': f'Failed to initiate payment: {result["message"] or "Unknown error"}',
                'error': result['error'],
            }

        data = result['data'] or {}
        checkout_request_id = data.get('CheckoutRequestID')

        if not checkout_request_id:
            logger.error('STK push accepted without a CheckoutRequestID')
            return {
                'success': False,
                'message': 'Failed to initiate payment: M-Pesa did not return a checkout request id',
                'error': 'upstream_error',
            }

        logger.info(f'STK push sent to {phone} for {amount}, checkout {checkout_request_id}')

        StkPushService._record_pending_transaction(
            checkout_request_id=checkout_request_id,
            merchant_request_id=data.get('MerchantRequestID'),
            phone=phone,
            amount=amount,
            account_reference=account_reference,
            transaction_desc=transaction_desc,
        )

        return {
            'success': True,
            'message': INITIATED_MESSAGE,
            'checkoutRequestId': checkout_request_id,
            'data': data,
        }

    @staticmethod
    def _record_pending_transaction(
            checkout_request_id: str,
            merchant_request_id: Optional[str],
            phone: str,
            amount: int,
            account_reference: str,
            transaction_desc: str
    ) -> Optional[MpesaTransaction]:
        """
        Insert the pending transaction row

        The customer already has the prompt on their phone, so a failed
        insert is logged and the push still counts as initiated.
        """
        transaction = MpesaTransaction(
            checkout_request_id=checkout_request_id,
            merchant_request_id=merchant_request_id,
            phone_number=phone,
            amount=amount,
            account_reference=account_reference,
            transaction_desc=transaction_desc,
            status='pending'
        )

        try:
            db.session.add(transaction)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to record pending transaction {checkout_request_id}: {str(e)}')
            return None

        return transaction

    @staticmethod
    def get_transaction(checkout_request_id: str) -> Optional[MpesaTransaction]:
        return MpesaTransaction.query.filter_by(checkout_request_id=checkout_request_id).first()
