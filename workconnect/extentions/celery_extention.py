from celery import Celery
from flask import has_app_context


def create_celery(app=None):
    celery = Celery('workconnect', include=[
        'workconnect.tasks.poll_status_task',
        'workconnect.tasks.retry_failed_callbacks_task',
    ])

    if app:
        init_celery(celery, app)

    return celery


def init_celery(celery, app):
    celery.conf.update(
        broker_url=app.config["CELERY_BROKER_URL"],
        result_backend=app.config["CELERY_RESULT_BACKEND"],
        task_always_eager=app.config.get("CELERY_TASK_ALWAYS_EAGER", False),
        task_track_started=True,
        task_time_limit=5 * 60,
        beat_schedule={
            'retry-failed-mpesa-callbacks': {
                'task': 'retry_failed_callbacks_task',
                'schedule': app.config["CALLBACK_RETRY_INTERVAL"],
            },
        },
    )

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            if has_app_context():
                return super().__call__(*args, **kwargs)
            with app.app_context():
                return super().__call__(*args, **kwargs)

    celery.Task = ContextTask
