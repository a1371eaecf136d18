from app.core.celery_app import celery_app
from app.core.database import AsyncSessionLocal
from app.modules.notifications.tasks import run_async
from app.modules.scheduler.jobs import (
    borrow_reminder_job,
    overdue_notice_job,
    ebook_expired_job,
    reservation_reminder_job,
    cleanup_tokens_job,
)


async def _run(job):
    async with AsyncSessionLocal() as db:
        return await job(db)


@celery_app.task
def borrow_reminder_task():
    """Daily loan due-date reminders (Celery beat)"""
    return run_async(_run(borrow_reminder_job))


@celery_app.task
def overdue_notice_task():
    """Daily overdue notices, first day past due and then weekly (Celery beat)"""
    return run_async(_run(overdue_notice_job))


@celery_app.task
def ebook_expired_task():
    """Hourly auto-return of expired ebook loans (Celery beat)"""
    return run_async(_run(ebook_expired_job))


@celery_app.task
def reservation_reminder_task():
    """Daily reminder for reservations about to lapse (Celery beat)"""
    return run_async(_run(reservation_reminder_job))


@celery_app.task
def cleanup_tokens_task():
    """Daily removal of expired refresh tokens and OTP codes (Celery beat)"""
    return run_async(_run(cleanup_tokens_job))
