from workconnect import celery_app
from workconnect.providers import get_mpesa_settings
from workconnect.services.status_service import (
    StatusService,
    PollStateStore,
    CANCELLED_MESSAGE,
    TIMEOUT_MESSAGE,
)
from workconnect.utils.logger import get_logger
from workconnect.utils.validators import TERMINAL_STATUSES

logger = get_logger(__name__)


@celery_app.task(name='poll_transaction_status_task')
def poll_transaction_status(checkout_request_id: str, attempt: int = 1) -> dict:
    """
    Run one status query and schedule the next one

    Each attempt is a separate task run `MPESA_POLL_INTERVAL` seconds after
    the previous one, so no worker sleeps between attempts.

    Args:
        checkout_request_id: Daraja CheckoutRequestID
        attempt: 1-based attempt number

    Returns:
        Poll state record as stored in Redis
    """
    settings = get_mpesa_settings()
    max_attempts = settings.poll_max_attempts

    if PollStateStore.is_cancelled(checkout_request_id):
        logger.info(f'Polling for {checkout_request_id} cancelled before attempt {attempt}')
        return PollStateStore.save(checkout_request_id, 'cancelled', attempt - 1, CANCELLED_MESSAGE, max_attempts)

    result = StatusService.check_transaction_status(checkout_request_id)
    status = result.get('status')

    if status in TERMINAL_STATUSES:
        return PollStateStore.save(checkout_request_id, status, attempt, result.get('message'), max_attempts)

    if attempt >= max_attempts:
        logger.info(f'Polling for {checkout_request_id} timed out after {attempt} attempts')
        return PollStateStore.save(checkout_request_id, 'timeout', attempt, TIMEOUT_MESSAGE, max_attempts)

    state = PollStateStore.save(checkout_request_id, 'polling', attempt, result.get('message'), max_attempts)
    poll_transaction_status.apply_async(
        args=[checkout_request_id, attempt + 1],
        countdown=settings.poll_interval
    )
    return state


def start_polling(checkout_request_id: str):
    """Schedule the first attempt one interval from now"""
    settings = get_mpesa_settings()
    state = PollStateStore.save(checkout_request_id, 'polling', 0, None, settings.poll_max_attempts)
    poll_transaction_status.apply_async(
        args=[checkout_request_id, 1],
        countdown=settings.poll_interval
    )
    return state
