from flask import Blueprint, request, jsonify
from marshmallow import ValidationError

from workconnect.errors import AppError, PaymentNotFound, TransactionNotFound
from workconnect.extensions import db
from workconnect.models import Payment
from workconnect.schemas.payment_schema import (
    StkPushSchema,
    JobPaymentSchema,
    PaymentSchema,
    MpesaTransactionSchema
)
from workconnect.services.idempotency_service import idempotent
from workconnect.services.job_payment_service import JobPaymentService
from workconnect.services.status_service import StatusService, PollStateStore
from workconnect.services.stk_push_service import StkPushService
from workconnect.tasks.poll_status_task import start_polling
from workconnect.utils.decorators import rate_limit
from workconnect.utils.logger import get_logger

payments_bp = Blueprint('payments', __name__)
logger = get_logger(__name__)

stk_push_schema = StkPushSchema()
job_payment_schema = JobPaymentSchema()
payment_schema = PaymentSchema()
mpesa_transaction_schema = MpesaTransactionSchema()

# Failures caused by the caller's input rather than by Daraja or the store
CLIENT_ERRORS = ('Invalid phone number', 'Validation error')


def _failure_status(result):
    """HTTP status for an unsuccessful payment result"""
    error = result.get('error')
    if error in CLIENT_ERRORS:
        return 400
    if error == 'persistence_error':
        return 500
    return 502


@payments_bp.route('/mpesa/stk-push', methods=['POST'])
@rate_limit(max_requests=10, window_seconds=60)
def stk_push():
    """
    Send an STK push prompt

    Body:
        {
            "phone_number": "0712345678",
            "amount": 150,
            "account_reference": "WC-123456",     // optional
            "transaction_desc": "Plumbing job",   // optional
            "callback_url": "https://..."         // optional
        }
    """
    try:
        push_request = stk_push_schema.load(request.get_json(silent=True) or {})

        result = StkPushService.initiate_stk_push(push_request)

        if not result['success']:
            return jsonify(result), _failure_status(result)

        return jsonify(result), 201

    except ValidationError as e:
        return jsonify({
            'success': False,
            'error': 'Validation error',
            'details': e.messages
        }), 400

    except AppError as e:
        logger.error(f'STK push not sent: {e.message}')
        return jsonify(e.to_dict()), e.status_code


@payments_bp.route('/jobs/<uuid:job_id>/mpesa', methods=['POST'])
@rate_limit(max_requests=10, window_seconds=60)
@idempotent(ttl=86400)
def pay_for_job(job_id):
    """
    Pay the accepted worker for a job and start status polling

    Headers:
        - Idempotency-Key: unique per payment attempt

    Body:
        {
            "worker_id": "...",
            "customer_id": "...",
            "amount": 1500,
            "customer_phone": "+254712345678",
            "worker_phone": "+254798765432"
        }
    """
    try:
        data = job_payment_schema.load(request.get_json(silent=True) or {})

        result = JobPaymentService.process_job_payment(job_id=job_id, **data)

        if not result['success']:
            return jsonify(result), _failure_status(result)

        poll_state = start_polling(result['checkoutRequestId'])
        result['poll'] = poll_state

        return jsonify(result), 201

    except ValidationError as e:
        return jsonify({
            'success': False,
            'error': 'Validation error',
            'details': e.messages
        }), 400

    except AppError as e:
        return jsonify(e.to_dict()), e.status_code


@payments_bp.route('/<uuid:payment_id>', methods=['GET'])
def get_payment(payment_id):
    """
    Get payment details

    Path Parameters:
        - payment_id: Payment UUID
    """
    try:
        payment = db.session.get(Payment, payment_id)

        if not payment:
            raise PaymentNotFound(f'Payment {payment_id} not found')

        return jsonify({
            'success': True,
            'data': payment_schema.dump(payment)
        }), 200

    except AppError as e:
        return jsonify(e.to_dict()), e.status_code


@payments_bp.route('/mpesa/<checkout_id>', methods=['GET'])
def get_mpesa_transaction(checkout_id):
    """
    Get the pending-transaction record for a checkout request
    """
    try:
        transaction = StkPushService.get_transaction(checkout_id)

        if not transaction:
            raise TransactionNotFound(f'No M-Pesa transaction for checkout request {checkout_id}')

        return jsonify({
            'success': True,
            'data': mpesa_transaction_schema.dump(transaction)
        }), 200

    except AppError as e:
        return jsonify(e.to_dict()), e.status_code


@payments_bp.route('/mpesa/<checkout_id>/query', methods=['POST'])
@rate_limit(max_requests=30, window_seconds=60)
def query_mpesa_status(checkout_id):
    """
    Query Daraja once for the checkout request and reconcile a terminal answer
    """
    result = StatusService.check_transaction_status(checkout_id)
    result.pop('reconciliation', None)

    if not result['success']:
        return jsonify(result), 502

    return jsonify(result), 200


@payments_bp.route('/mpesa/<checkout_id>/poll', methods=['GET'])
def get_poll_state(checkout_id):
    """
    Progress of the background status poller
    """
    state = PollStateStore.get(checkout_id)

    if not state:
        return jsonify({
            'success': False,
            'error': 'Not found',
            'message': f'No polling in progress for checkout request {checkout_id}'
        }), 404

    return jsonify({
        'success': True,
        'data': state
    }), 200


@payments_bp.route('/mpesa/<checkout_id>/poll', methods=['DELETE'])
def cancel_polling(checkout_id):
    """
    Stop polling before the next attempt; the payment itself is left as it is
    """
    PollStateStore.cancel(checkout_id)
    logger.info(f'Polling cancelled for {checkout_id}')

    return jsonify({
        'success': True,
        'message': 'Polling cancelled'
    }), 200
