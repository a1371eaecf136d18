import asyncio
from typing import Any, Awaitable, Dict, List

from app.core.celery_app import celery_app
from app.core.database import AsyncSessionLocal, close_db
from app.core.logging_config import logger
from app.models.notification import NotificationType
from app.services.email_service import email_service
from app.services.notification_service import notification_service


def run_async(coro: Awaitable[Any]) -> Any:
    """Run async service code from a Celery worker"""

    async def runner():
        try:
            return await coro
        finally:
            # Engine connections are bound to this loop
            await close_db()

    return asyncio.run(runner())


async def _deliver(user_ids: List[int], title: str, message: str, type: str) -> int:
    async with AsyncSessionLocal() as db:
        created = await notification_service.create_bulk_notifications(
            db, user_ids, title, message, NotificationType(type)
        )
        return len(created)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=30)
def deliver_notification_task(self, user_id: int, title: str, message: str, type: str = "SYSTEM"):
    """Persist and push one notification (Celery task)"""
    try:
        run_async(_deliver([user_id], title, message, type))
    except Exception as exc:
        logger.error(f"[Notification] Delivery to user {user_id} failed: {exc}")
        raise self.retry(exc=exc)
    return {"user_id": user_id, "status": "delivered"}


@celery_app.task(bind=True, max_retries=3, default_retry_delay=30)
def deliver_bulk_notifications_task(self, user_ids: List[int], title: str, message: str, type: str = "SYSTEM"):
    """Persist and push one notification per user (Celery task)"""
    try:
        count = run_async(_deliver(user_ids, title, message, type))
    except Exception as exc:
        logger.error(f"[Notification] Bulk delivery to {len(user_ids)} users failed: {exc}")
        raise self.retry(exc=exc)
    return {"recipients": count, "status": "delivered"}


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_email_task(self, template: str, to_email: str, context: Dict[str, Any]):
    """Send a templated email (Celery task)"""
    sent = asyncio.run(email_service.dispatch(template, to_email, context))
    if not sent and email_service.is_configured:
        raise self.retry(exc=RuntimeError(f"SMTP delivery of {template} email failed"))
    return {"to": to_email, "template": template, "sent": sent}
