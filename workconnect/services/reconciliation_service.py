"""
Reconciliation Service
Single writer of terminal payment state. Both the status poller and the
callback receiver finish here.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from workconnect.errors import ValidationError
from workconnect.extensions import db
from workconnect.models import Job, MpesaTransaction, Payment, PaymentStatus
from workconnect.providers import get_mpesa_settings
from workconnect.services.audit_service import AuditService
from workconnect.utils.logger import get_logger
from workconnect.utils.validators import TERMINAL_STATUSES
from workconnect.websockets.events import emit_payment_update

logger = get_logger(__name__)


class ReconciliationService:

    @staticmethod
    def reconcile(
            checkout_request_id: str,
            status: str,
            transaction_id: Optional[str] = None,
            result_code: Optional[str] = None,
            result_desc: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Move a pending payment to completed or failed

        Every write is conditional on the row still being pending, so
        repeated or concurrent calls for the same checkout id apply at most
        one terminal transition and the rest are no-ops.

        Args:
            checkout_request_id: Daraja CheckoutRequestID
            status: 'completed' or 'failed'
            transaction_id: M-Pesa receipt number, when known
            result_code: Daraja ResultCode
            result_desc: Daraja ResultDesc

        Returns:
            {success, message, applied} plus 'error' on failure
        """
        if status not in TERMINAL_STATUSES:
            raise ValidationError(f"Reconciliation status must be one of: {', '.join(TERMINAL_STATUSES)}")

        settings = get_mpesa_settings()
        now = datetime.now()
        event_type = f'payment.{status}'

        try:
            MpesaTransaction.query.filter_by(
                checkout_request_id=checkout_request_id,
                status=PaymentStatus.PENDING.value
            ).update({
                'status': status,
                'result_code': None if result_code is None else str(result_code),
                'result_desc': result_desc,
                'updated_at': now
            }, synchronize_session=False)

            payment = ReconciliationService._find_payment(checkout_request_id)

            if payment is None:
                db.session.commit()
                logger.warning(f'No payment found for checkout {checkout_request_id}; nothing to reconcile')
                return {
                    'success': False,
                    'error': 'not_found',
                    'message': f'Payment not found for checkout request {checkout_request_id}',
                    'applied': False
                }

            if payment.is_terminal:
                db.session.commit()
                logger.info(f'Payment {payment.id} already {payment.status}; ignoring {status}')
                return {
                    'success': True,
                    'message': f'Payment already {payment.status}',
                    'applied': False
                }

            values = {'status': status, 'updated_at': now}
            if transaction_id:
                values['mpesa_transaction_id'] = transaction_id

            updated = Payment.query.filter_by(
                id=payment.id,
                status=PaymentStatus.PENDING.value
            ).update(values, synchronize_session=False)

            if not updated:
                # Another path finalised the payment between our read and write
                db.session.commit()
                logger.info(f'Payment {payment.id} was finalised concurrently; ignoring {status}')
                return {
                    'success': True,
                    'message': 'Payment already finalised',
                    'applied': False
                }

            if status == PaymentStatus.COMPLETED.value:
                Job.query.filter_by(id=payment.job_id).update({
                    'status': 'completed',
                    'payment_status': 'paid',
                    'updated_at': now
                }, synchronize_session=False)

            AuditService.log_event(
                payment_id=payment.id,
                event_type=event_type,
                event_data={
                    'checkout_request_id': checkout_request_id,
                    'mpesa_transaction_id': transaction_id,
                    'result_code': None if result_code is None else str(result_code),
                    'result_desc': result_desc
                },
                commit=False
            )

            db.session.commit()

        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to reconcile checkout {checkout_request_id} as {status}: {str(e)}')

            if settings.tolerate_persistence_errors:
                return {
                    'success': True,
                    'error': 'persistence_error',
                    'message': f'Payment {status}; the record could not be updated and will be retried',
                    'applied': False
                }
            return {
                'success': False,
                'error': 'persistence_error',
                'message': f'Failed to update payment record: {str(e)}',
                'applied': False
            }

        logger.info(f'Payment {payment.id} reconciled as {status}')

        try:
            emit_payment_update(payment, event_type)
        except Exception as e:
            logger.warning(f'Failed to emit payment update for {payment.id}: {str(e)}')

        return {
            'success': True,
            'message': f'Payment {status}',
            'applied': True
        }

    @staticmethod
    def _find_payment(checkout_request_id: str) -> Optional[Payment]:
        return Payment.query.filter_by(mpesa_checkout_request_id=checkout_request_id).first()
