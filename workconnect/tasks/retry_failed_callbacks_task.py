from workconnect import celery_app
from workconnect.services.callback_service import CallbackService


@celery_app.task(name='retry_failed_callbacks_task')
def retry_failed_callbacks() -> int:
    """
    Retry processing of stored callbacks that could not be reconciled

    Scheduled by Celery beat every CALLBACK_RETRY_INTERVAL.
    """
    return CallbackService.retry_failed_callbacks()
