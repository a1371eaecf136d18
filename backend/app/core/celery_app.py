from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

# Create Celery app
celery_app = Celery(
    "library",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.modules.notifications.tasks",
        "app.modules.scheduler.tasks",
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.CELERY_TASK_TIME_LIMIT,
    task_soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    result_expires=settings.CELERY_RESULT_EXPIRES,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    broker_connection_retry_on_startup=True,
)

# Celery beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "borrow-reminder": {
        "task": "app.modules.scheduler.tasks.borrow_reminder_task",
        "schedule": crontab(hour=0, minute=0),
    },
    "overdue-notice": {
        "task": "app.modules.scheduler.tasks.overdue_notice_task",
        "schedule": crontab(hour=9, minute=0),
    },
    "ebook-expired": {
        "task": "app.modules.scheduler.tasks.ebook_expired_task",
        "schedule": crontab(minute=0),
    },
    "reservation-reminder": {
        "task": "app.modules.scheduler.tasks.reservation_reminder_task",
        "schedule": crontab(hour=8, minute=0),
    },
    "token-cleanup": {
        "task": "app.modules.scheduler.tasks.cleanup_tokens_task",
        "schedule": crontab(hour=3, minute=0),
    },
}
