from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.notification import NotificationStatus, NotificationType
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_librarian
from app.schemas.notification import NotificationCreate, NotificationResponse
from app.services.notification_service import notification_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.get("")
async def list_notifications(
    params: PaginationParams = Depends(pagination_params),
    status_filter: Optional[NotificationStatus] = Query(None, alias="status"),
    type: Optional[NotificationType] = Query(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's notifications with the unread badge count"""
    notifications, pagination = await notification_service.list_notifications(
        db, current_user.id, params, status_filter, type
    )
    return success_response({
        "notifications": [NotificationResponse.model_validate(n) for n in notifications],
        "pagination": pagination,
        "unread_count": await notification_service.get_unread_count(db, current_user.id),
    })


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_notification(
    data: NotificationCreate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Send a notification to the listed users (librarian)"""
    sent = await notification_service.send_to_users(db, data.user_ids, data.title, data.message, data.type)
    return envelope({"sent_count": sent}, message=f"Notification sent to {sent} user(s)", status_code=201)


@router.put("/read-all")
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    updated = await notification_service.mark_all_as_read(db, current_user.id)
    return success_response({"updated_count": updated}, message="All notifications marked as read")


@router.put("/{notification_id}")
async def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    notification = await notification_service.mark_as_read(
        db, parse_id(notification_id, "notification id"), current_user.id
    )
    return success_response(NotificationResponse.model_validate(notification), message="Notification marked as read")


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await notification_service.delete(db, parse_id(notification_id, "notification id"), current_user.id)
    return success_response(message="Notification deleted successfully")
