"""
Job Payment Service
Customer pays the accepted worker for an in-progress job through an STK push
"""

import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

from workconnect.errors import Forbidden, JobNotFound, ValidationError
from workconnect.extensions import db
from workconnect.models import Job, JobApplication, Payment, PaymentStatus
from workconnect.providers import get_mpesa_settings
from workconnect.services.audit_service import AuditService
from workconnect.services.stk_push_service import StkPushRequest, StkPushService
from workconnect.utils.logger import get_logger
from workconnect.utils.validators import normalize_phone_number

logger = get_logger(__name__)


def generate_payment_reference() -> str:
    """WC- followed by the low digits of the current epoch milliseconds"""
    return f'WC-{str(int(time.time() * 1000))[7:]}'


class JobPaymentService:

    @staticmethod
    def process_job_payment(
            job_id: uuid.UUID,
            worker_id: str,
            customer_id: str,
            amount: Any,
            customer_phone: str,
            worker_phone: str
    ) -> Dict[str, Any]:
        """
        Check the job can be paid, push the prompt and create the payment row

        Args:
            job_id: Job being paid for
            worker_id: Worker receiving the payment
            customer_id: Customer paying
            amount: Amount in KES; rounded to whole shillings
            customer_phone: Phone that receives the STK prompt
            worker_phone: Worker's M-Pesa number, recorded on the payment

        Returns:
            {success, message, checkoutRequestId, data: {payment, mpesa}}

        Raises:
            JobNotFound: Unknown job
            Forbidden: Job belongs to another customer or worker was not accepted
            ValidationError: Job not in progress or a phone number is invalid
        """
        settings = get_mpesa_settings()

        job = db.session.get(Job, job_id)
        if not job:
            raise JobNotFound(f'Job {job_id} not found')

        if job.customer_id != customer_id:
            raise Forbidden('You can only pay for your own jobs')

        if job.status != 'in_progress':
            raise ValidationError(f'Only jobs in progress can be paid for (job is {job.status})')

        application = JobApplication.query.filter_by(
            job_id=job_id,
            worker_id=worker_id,
            status='accepted'
        ).first()
        if not application:
            raise Forbidden('This worker has not been accepted for the job')

        customer_msisdn = normalize_phone_number(customer_phone, settings.country_code)
        worker_msisdn = normalize_phone_number(worker_phone, settings.country_code)

        reference = generate_payment_reference()

        logger.info(f'Processing M-Pesa payment for job {job_id}: customer {customer_id} -> worker {worker_id}')

        stk_response = StkPushService.initiate_stk_push(StkPushRequest(
            phone_number=customer_msisdn,
            amount=amount,
            account_reference=reference,
            transaction_desc=f'Payment for job {job_id} to worker {worker_msisdn}',
        ))

        if not stk_response['success']:
            return stk_response

        checkout_request_id = stk_response['checkoutRequestId']

        payment = Payment(
            job_id=job.id,
            customer_id=customer_id,
            worker_id=worker_id,
            amount=Decimal(str(amount)),
            payment_method=f'mpesa:+{customer_msisdn}:+{worker_msisdn}:{reference}',
            status=PaymentStatus.PENDING.value,
            payment_date=datetime.now(),
            mpesa_checkout_request_id=checkout_request_id
        )

        try:
            db.session.add(payment)
            db.session.flush()

            AuditService.log_event(
                payment_id=payment.id,
                event_type='payment.initiated',
                event_data={
                    'checkout_request_id': checkout_request_id,
                    'reference': reference,
                    'amount': float(amount)
                },
                commit=False
            )

            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to create payment record for checkout {checkout_request_id}: {str(e)}')

            if not settings.tolerate_persistence_errors:
                return {
                    'success': False,
                    'message': f'Failed to create payment record: {str(e)}',
                    'error': 'persistence_error',
                    'checkoutRequestId': checkout_request_id
                }

            return {
                'success': True,
                'message': stk_response['message'],
                'checkoutRequestId': checkout_request_id,
                'data': {
                    'payment': None,
                    'mpesa': stk_response['data']
                }
            }

        return {
            'success': True,
            'message': stk_response['message'],
            'checkoutRequestId': checkout_request_id,
            'data': {
                'payment': payment.to_dict(),
                'mpesa': stk_response['data']
            }
        }
