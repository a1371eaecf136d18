"""
Notification Service - persistence and delivery of in-app notifications

Handles:
- Creating notifications and pushing them to open sockets
- Queueing single and bulk notifications through Celery
- Read state, listing and soft deletion
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, update
from datetime import datetime
from typing import Optional, List, Iterable, Tuple, Dict, Any

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.core.logging_config import logger
from app.models.notification import Notification, NotificationType, NotificationStatus
from app.models.user import User
from app.schemas.notification import NotificationResponse
from app.services.notification_websocket import publish_notification
from app.utils.pagination import PaginationParams, paginate


def serialize_notification(notification: Notification) -> Dict[str, Any]:
    return NotificationResponse.model_validate(notification).model_dump(mode="json")


class NotificationService:
    """Service for creating and reading notifications"""

    async def create_notification(
        self,
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
    ) -> Notification:
        """Persist a notification and push it to the user's sockets"""
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            status=NotificationStatus.UNREAD,
        )
        db.add(notification)
        await db.commit()
        await db.refresh(notification)

        logger.info(f"[Notification] Created notification {notification.id} for user {user_id}")

        try:
            await publish_notification(user_id, serialize_notification(notification))
        except Exception as e:
            # Stored notification is still visible on next fetch
            logger.error(f"[Notification] Realtime push failed for user {user_id}: {e}")

        return notification

    async def create_bulk_notifications(
        self,
        db: AsyncSession,
        user_ids: Iterable[int],
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
    ) -> List[Notification]:
        created = []
        for user_id in dict.fromkeys(user_ids):
            created.append(await self.create_notification(db, user_id, title, message, type))
        return created

    async def queue_notification(
        self,
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
    ) -> None:
        """Deliver through the task queue, or inline when the queue is disabled"""
        if settings.TASK_QUEUE_ENABLED:
            from app.modules.notifications.tasks import deliver_notification_task

            try:
                deliver_notification_task.delay(user_id, title, message, type.value)
                return
            except Exception as e:
                logger.error(f"[Notification] Failed to queue notification for user {user_id}, sending inline: {e}")

        await self.create_notification(db, user_id, title, message, type)

    async def queue_bulk_notifications(
        self,
        db: AsyncSession,
        user_ids: Iterable[int],
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
    ) -> int:
        """Queue one notification per distinct user. Returns the number of recipients."""
        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return 0

        if settings.TASK_QUEUE_ENABLED:
            from app.modules.notifications.tasks import deliver_bulk_notifications_task

            try:
                deliver_bulk_notifications_task.delay(unique_ids, title, message, type.value)
                return len(unique_ids)
            except Exception as e:
                logger.error(f"[Notification] Failed to queue bulk notification, sending inline: {e}")

        await self.create_bulk_notifications(db, unique_ids, title, message, type)
        return len(unique_ids)

    async def send_to_users(
        self,
        db: AsyncSession,
        user_ids: List[int],
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
    ) -> int:
        """Staff broadcast to specific users; every recipient must exist"""
        result = await db.execute(
            select(User.id).where(User.id.in_(user_ids), User.is_deleted == False)  # noqa: E712
        )
        found = set(result.scalars().all())
        missing = [user_id for user_id in user_ids if user_id not in found]
        if missing:
            raise NotFoundError(f"Users not found: {missing}", details={"missing_ids": missing})

        return await self.queue_bulk_notifications(db, user_ids, title, message, type)

    async def list_notifications(
        self,
        db: AsyncSession,
        user_id: int,
        params: PaginationParams,
        status: Optional[NotificationStatus] = None,
        type: Optional[NotificationType] = None,
    ) -> Tuple[List[Notification], Dict[str, int]]:
        query = select(Notification).where(
            Notification.user_id == user_id,
            Notification.is_deleted == False,  # noqa: E712
        )
        if status:
            query = query.where(Notification.status == status)
        if type:
            query = query.where(Notification.type == type)
        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(Notification.title.ilike(pattern) | Notification.message.ilike(pattern))

        query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
        return await paginate(db, query, params)

    async def get_unread_count(self, db: AsyncSession, user_id: int) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.status == NotificationStatus.UNREAD,
                Notification.is_deleted == False,  # noqa: E712
            )
        )
        return result.scalar() or 0

    async def _get_owned(self, db: AsyncSession, notification_id: int, user_id: int) -> Notification:
        result = await db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
                Notification.is_deleted == False,  # noqa: E712
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotFoundError("Notification not found")
        return notification

    async def mark_as_read(self, db: AsyncSession, notification_id: int, user_id: int) -> Notification:
        notification = await self._get_owned(db, notification_id, user_id)
        if notification.status != NotificationStatus.READ:
            notification.status = NotificationStatus.READ
            notification.read_at = datetime.utcnow()
            await db.commit()
            await db.refresh(notification)
        return notification

    async def mark_all_as_read(self, db: AsyncSession, user_id: int) -> int:
        result = await db.execute(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.status == NotificationStatus.UNREAD,
                Notification.is_deleted == False,  # noqa: E712
            )
            .values(status=NotificationStatus.READ, read_at=datetime.utcnow())
        )
        await db.commit()
        return result.rowcount or 0

    async def delete(self, db: AsyncSession, notification_id: int, user_id: int) -> None:
        notification = await self._get_owned(db, notification_id, user_id)
        notification.is_deleted = True
        await db.commit()


# Singleton instance
notification_service = NotificationService()
