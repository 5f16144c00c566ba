"""
Status Service
One-shot STK status queries and the bounded poller built on them
"""

import json
import threading
from typing import Any, Dict, Optional

import redis

from workconnect.errors import ConfigError
from workconnect.extensions import redis_client
from workconnect.providers import get_mpesa_provider, get_mpesa_settings
from workconnect.services.reconciliation_service import ReconciliationService
from workconnect.utils.logger import get_logger
from workconnect.utils.validators import TERMINAL_STATUSES

logger = get_logger(__name__)

# Daraja answers these while the customer has not acted on the prompt yet
PENDING_RESULT_CODES = frozenset({'4999', '500.001.1001'})

COMPLETED_MESSAGE = 'Payment completed successfully.'
TIMEOUT_MESSAGE = (
    'We have not received a payment confirmation yet. '
    'Please check your phone or contact support if the amount was deducted.'
)
CANCELLED_MESSAGE = 'Payment status polling was cancelled.'


class StatusService:

    @staticmethod
    def check_transaction_status(checkout_request_id: str) -> Dict[str, Any]:
        """
        Query Daraja once for the outcome of an STK push

        A terminal answer is reconciled before returning. A still-pending
        answer leaves everything untouched.

        Returns:
            {success, status, data, message, result_code, result_desc};
            status is 'completed', 'failed', 'pending' or None when the
            query itself failed
        """
        provider = get_mpesa_provider()

        try:
            result = provider.query_stk_status(checkout_request_id)
        except ConfigError as e:
            logger.error(f'Status query for {checkout_request_id} not sent: {e.message}')
            return {
                'success': False,
                'status': None,
                'data': None,
                'message': e.message,
                'error': 'config_error'
            }

        data = result['data'] or {}

        if not result['success']:
            if str(data.get('errorCode', '')) in PENDING_RESULT_CODES:
                return StatusService._pending(data, str(data.get('errorCode')), data.get('errorMessage'))

            logger.error(f'Status query for {checkout_request_id} failed: {result["message"]}')
            return {
                'success': False,
                'status': None,
                'data': data or None,
                'message': f'Failed to check transaction status: {result["message"] or "Unknown error"}',
                'error': result['error']
            }

        result_code = '' if data.get('ResultCode') is None else str(data.get('ResultCode'))
        result_desc = data.get('ResultDesc')

        if result_code == '' or result_code in PENDING_RESULT_CODES:
            return StatusService._pending(data, result_code, result_desc)

        status = 'completed' if result_code == '0' else 'failed'
        reconciliation = ReconciliationService.reconcile(
            checkout_request_id,
            status,
            result_code=result_code,
            result_desc=result_desc
        )

        if status == 'completed':
            message = COMPLETED_MESSAGE
        else:
            message = f'Payment failed: {result_desc or "Unknown error"} (code {result_code})'

        return {
            'success': True,
            'status': status,
            'data': data,
            'message': message,
            'result_code': result_code,
            'result_desc': result_desc,
            'reconciliation': reconciliation
        }

    @staticmethod
    def _pending(data: Dict[str, Any], result_code: str, result_desc: Optional[str]) -> Dict[str, Any]:
        return {
            'success': True,
            'status': 'pending',
            'data': data,
            'message': result_desc or 'The transaction is still being processed.',
            'result_code': result_code,
            'result_desc': result_desc
        }


class PollStateStore:
    """Poll progress and cancellation flags kept in Redis for the UI"""

    TTL = 3600

    @staticmethod
    def get_key(checkout_request_id: str) -> str:
        return f'mpesa:poll:{checkout_request_id}'

    @staticmethod
    def get_cancel_key(checkout_request_id: str) -> str:
        return f'mpesa:poll:{checkout_request_id}:cancelled'

    @staticmethod
    def save(checkout_request_id: str, state: str, attempts: int, message: Optional[str] = None,
             max_attempts: Optional[int] = None):
        record = {
            'checkout_request_id': checkout_request_id,
            'state': state,
            'attempts': attempts,
            'max_attempts': max_attempts,
            'message': message
        }
        try:
            redis_client.set(PollStateStore.get_key(checkout_request_id), json.dumps(record),
                             ex=PollStateStore.TTL)
        except redis.RedisError as e:
            logger.warning(f'Failed to store poll state for {checkout_request_id}: {str(e)}')
        return record

    @staticmethod
    def get(checkout_request_id: str) -> Optional[Dict[str, Any]]:
        cached = redis_client.get(PollStateStore.get_key(checkout_request_id))
        if cached:
            return json.loads(cached)
        return None

    @staticmethod
    def cancel(checkout_request_id: str):
        redis_client.set(PollStateStore.get_cancel_key(checkout_request_id), '1', ex=PollStateStore.TTL)

    @staticmethod
    def is_cancelled(checkout_request_id: str) -> bool:
        try:
            return bool(redis_client.exists(PollStateStore.get_cancel_key(checkout_request_id)))
        except redis.RedisError as e:
            logger.warning(f'Failed to read poll cancellation for {checkout_request_id}: {str(e)}')
            return False


class StatusPoller:
    """
    Blocking poll loop: wait, query, repeat until terminal or out of attempts

    Running out of attempts is a soft timeout. The payment stays pending so
    the callback can still finalise it.
    """

    def __init__(self, interval: Optional[float] = None, max_attempts: Optional[int] = None):
        self.interval = interval
        self.max_attempts = max_attempts

    def poll(self, checkout_request_id: str, cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
        """
        Args:
            checkout_request_id: Daraja CheckoutRequestID
            cancel_event: Set it to stop before the next attempt

        Returns:
            {state, attempts, message}; state is completed, failed, timeout or cancelled
        """
        settings = get_mpesa_settings()
        interval = settings.poll_interval if self.interval is None else self.interval
        max_attempts = settings.poll_max_attempts if self.max_attempts is None else self.max_attempts
        cancel_event = cancel_event or threading.Event()

        PollStateStore.save(checkout_request_id, 'polling', 0, max_attempts=max_attempts)

        for attempt in range(1, max_attempts + 1):
            if cancel_event.wait(interval) or PollStateStore.is_cancelled(checkout_request_id):
                logger.info(f'Polling for {checkout_request_id} cancelled after {attempt - 1} attempts')
                return self._finish(checkout_request_id, 'cancelled', attempt - 1, CANCELLED_MESSAGE, max_attempts)

            result = StatusService.check_transaction_status(checkout_request_id)
            status = result.get('status')

            if status in TERMINAL_STATUSES:
                return self._finish(checkout_request_id, status, attempt, result.get('message'), max_attempts)

            PollStateStore.save(checkout_request_id, 'polling', attempt, result.get('message'), max_attempts)

        logger.info(f'Polling for {checkout_request_id} timed out after {max_attempts} attempts')
        return self._finish(checkout_request_id, 'timeout', max_attempts, TIMEOUT_MESSAGE, max_attempts)

    @staticmethod
    def _finish(checkout_request_id: str, state: str, attempts: int, message: Optional[str],
                max_attempts: int) -> Dict[str, Any]:
        PollStateStore.save(checkout_request_id, state, attempts, message, max_attempts)
        return {
            'state': state,
            'attempts': attempts,
            'message': message
        }
