"""
Callback Service
Receives M-Pesa STK callbacks, keeps each delivery and reconciles the payment
"""

import uuid
from datetime import datetime
from typing import Dict, Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from workconnect.extensions import db
from workconnect.models import WebhookEvent
from workconnect.providers import MPesaProvider
from workconnect.services.reconciliation_service import ReconciliationService
from workconnect.utils.decorators import log_execution_time
from workconnect.utils.logger import get_logger

logger = get_logger(__name__)

PROVIDER = 'mpesa'
EVENT_TYPE = 'stk_callback'


def acknowledgement(status_code: int = 200, error: Optional[str] = None) -> Dict[str, Any]:
    """Response shape Daraja expects back from the callback URL"""
    if status_code == 200:
        return {'statusCode': 200, 'body': {'ResultCode': '0', 'ResultDesc': 'Success'}}
    return {'statusCode': status_code, 'body': {'ResultCode': '1', 'ResultDesc': error or 'Internal error'}}


class CallbackService:
    """Service for handling Daraja callbacks"""

    # Maximum retry attempts for unprocessed callbacks
    MAX_RETRY_ATTEMPTS = 5

    # Retry schedule in seconds: 1min, 5min, 15min, 1hr, 6hr
    RETRY_SCHEDULE = [60, 300, 900, 3600, 21600]

    @staticmethod
    @log_execution_time
    def handle_stk_callback(payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Record and process one callback delivery

        Daraja gets a 200 once the delivery is stored, even when the payment
        could not be reconciled yet; the event then waits for a retry. Any
        other failure is still answered in Daraja's ResultCode/ResultDesc shape.

        Args:
            payload: Parsed callback JSON

        Returns:
            {statusCode, body}
        """
        try:
            try:
                parsed = MPesaProvider.parse_stk_callback(payload)
            except ValueError as e:
                logger.error(f'Malformed M-Pesa callback: {str(e)}')
                return acknowledgement(500, str(e))

            try:
                event = CallbackService.receive_callback(payload, parsed['checkout_request_id'])
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f'Failed to record M-Pesa callback {parsed["checkout_request_id"]}: {str(e)}')
                return acknowledgement(500, 'Failed to record callback')

            logger.info(
                f'M-Pesa callback for {parsed["checkout_request_id"]}: '
                f'ResultCode={parsed["result_code"]} ResultDesc={parsed["result_desc"]}'
            )

            if not CallbackService.process_event(event.id):
                logger.warning(f'Callback event {event.id} stored but not processed; it will be retried')

            return acknowledgement(200)

        except Exception as e:
            db.session.rollback()
            logger.error(f'Error handling M-Pesa callback: {str(e)}', exc_info=True)
            return acknowledgement(500, str(e))

    @staticmethod
    def receive_callback(payload: Dict[str, Any], checkout_request_id: Optional[str] = None) -> WebhookEvent:
        """Store the raw delivery"""
        event = WebhookEvent(
            provider=PROVIDER,
            event_type=EVENT_TYPE,
            checkout_request_id=checkout_request_id,
            payload=payload,
            processed=False
        )
        db.session.add(event)
        db.session.commit()
        return event

    @staticmethod
    def process_event(event_id: uuid.UUID) -> bool:
        """
        Reconcile the payment named by a stored callback

        Returns:
            True if the event is (now) processed, False otherwise
        """
        event = db.session.get(WebhookEvent, event_id)

        if not event:
            raise ValueError(f'Callback event {event_id} not found')

        if event.processed:
            return True

        try:
            parsed = MPesaProvider.parse_stk_callback(event.payload)
        except ValueError as e:
            return CallbackService._mark_failed(event, str(e))

        status = 'completed' if parsed['result_code'] == '0' else 'failed'
        result = ReconciliationService.reconcile(
            parsed['checkout_request_id'],
            status,
            transaction_id=parsed['mpesa_receipt_number'] if status == 'completed' else None,
            result_code=parsed['result_code'],
            result_desc=parsed['result_desc']
        )

        # A tolerated store failure still needs the retry
        if not result['success'] or result.get('error'):
            return CallbackService._mark_failed(event, result['message'])

        event.processed = True
        event.processed_at = datetime.now()
        event.error_message = None
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to mark callback event {event_id} processed: {str(e)}')
            return False

        return True

    @staticmethod
    def _mark_failed(event: WebhookEvent, message: str) -> bool:
        event.error_message = message
        event.retry_count = (event.retry_count or 0) + 1
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f'Failed to update callback event {event.id}: {str(e)}')
        return False

    @staticmethod
    def retry_failed_callbacks() -> int:
        """
        Retry processing of unprocessed callbacks based on the retry schedule

        Called periodically by Celery beat.
        """
        failed_events = WebhookEvent.query.filter(
            WebhookEvent.provider == PROVIDER,
            WebhookEvent.processed.is_(False),
            WebhookEvent.retry_count < CallbackService.MAX_RETRY_ATTEMPTS
        ).all()

        processed_count = 0

        for event in failed_events:
            if event.retry_count >= len(CallbackService.RETRY_SCHEDULE):
                # Use last retry interval
                retry_interval = CallbackService.RETRY_SCHEDULE[-1]
            else:
                retry_interval = CallbackService.RETRY_SCHEDULE[event.retry_count]

            time_since_creation = (datetime.now() - event.created_at).total_seconds()

            if time_since_creation >= retry_interval:
                try:
                    if CallbackService.process_event(event.id):
                        processed_count += 1
                except SQLAlchemyError as e:
                    db.session.rollback()
                    logger.error(f'Retry failed for callback event {event.id}: {str(e)}')

        return processed_count

    @staticmethod
    def get_callback_events(
            processed: Optional[bool] = None,
            checkout_request_id: Optional[str] = None,
            page: int = 1,
            per_page: int = 50
    ):
        """
        Get callback events with filters

        Returns:
            Paginated callback events
        """
        query = WebhookEvent.query.filter_by(provider=PROVIDER)

        if processed is not None:
            query = query.filter_by(processed=processed)

        if checkout_request_id:
            query = query.filter_by(checkout_request_id=checkout_request_id)

        return query.order_by(WebhookEvent.created_at.desc()).paginate(
            page=page,
            per_page=per_page,
            error_out=False
        )
