"""
Scheduled jobs

Each job takes an AsyncSession so it can run from a Celery beat task or be
called directly (tests, management shells).
"""

from datetime import date, timedelta
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging_config import logger
from app.models.borrow import BorrowRecord, BorrowBook, BorrowEbook, BorrowStatus, BorrowRequest, BorrowRequestStatus
from app.models.notification import NotificationType
from app.models.payment import Policy
from app.services.auth_service import auth_service
from app.services.email_service import queue_email
from app.services.notification_service import notification_service
from app.services.otp_service import otp_service

RESERVATION_REMINDER_TITLE = "Book Reservation Reminder"
RESERVATION_REMINDER_MESSAGE = (
    "Your book reservation is expiring in 3 days. Please come to the library to pick up "
    "your reserved books before the reservation expires."
)


async def borrow_reminder_job(db: AsyncSession) -> Dict[str, int]:
    """Remind readers of loans due in REMINDER_DAYS_BEFORE_DUE days"""
    logger.log_job_event("BorrowReminder", "started")
    due = date.today() + timedelta(days=settings.REMINDER_DAYS_BEFORE_DUE)

    result = await db.execute(
        select(BorrowRecord).where(
            BorrowRecord.status == BorrowStatus.BORROWED,
            BorrowRecord.is_deleted == False,  # noqa: E712
            BorrowRecord.actual_return_date.is_(None),
            BorrowRecord.return_date == due,
        )
    )
    records = list(result.scalars().all())

    sent = 0
    for record in records:
        titles = [b.book_item.book.title for b in record.active_books if b.book_item and b.book_item.book]
        titles += [e.book.title for e in record.active_ebooks if e.book]
        if not titles:
            continue

        quoted = ", ".join(f'"{t}"' for t in titles)
        await notification_service.queue_notification(
            db,
            record.user_id,
            "Book Return Reminder",
            f"You have books due for return in {settings.REMINDER_DAYS_BEFORE_DUE} days: {quoted}. "
            f"Please return them by {due.isoformat()} to avoid penalties.",
            NotificationType.REMINDER,
        )
        if record.user:
            await queue_email("borrow_reminder", record.user.email, {
                "user_name": record.user.full_name,
                "book_titles": titles,
                "due_date": due,
            })
        sent += 1

    logger.log_job_event("BorrowReminder", "completed", records=len(records), reminders=sent)
    return {"records": len(records), "reminders": sent}


async def overdue_notice_job(db: AsyncSession) -> Dict[str, int]:
    """
    Nudge readers holding overdue physical books: on the first day past due,
    then every OVERDUE_NOTICE_INTERVAL_DAYS days until the books come back.
    """
    logger.log_job_event("OverdueNotice", "started")
    today = date.today()

    result = await db.execute(
        select(BorrowRecord)
        .join(BorrowBook, BorrowBook.borrow_record_id == BorrowRecord.id)
        .where(
            BorrowRecord.status == BorrowStatus.BORROWED,
            BorrowRecord.is_deleted == False,  # noqa: E712
            BorrowRecord.actual_return_date.is_(None),
            BorrowRecord.return_date < today,
            BorrowBook.is_deleted == False,  # noqa: E712
        )
        .distinct()
    )
    records = list(result.scalars().all())
    late_policy = await db.get(Policy, "LATE_RETURN")

    sent = 0
    for record in records:
        days_overdue = (today - record.return_date).days
        if days_overdue != 1 and days_overdue % settings.OVERDUE_NOTICE_INTERVAL_DAYS != 0:
            continue
        titles = [b.book_item.book.title for b in record.active_books if b.book_item and b.book_item.book]
        fine = late_policy.amount * days_overdue if late_policy and not late_policy.is_deleted else None

        quoted = ", ".join(f'"{t}"' for t in titles)
        await notification_service.queue_notification(
            db,
            record.user_id,
            "Overdue Book Notice",
            f"Your borrowed books {quoted} were due on {record.return_date.isoformat()} and are "
            f"{days_overdue} day(s) overdue. Please return them as soon as possible.",
            NotificationType.REMINDER,
        )
        if record.user:
            await queue_email("loan_overdue", record.user.email, {
                "user_name": record.user.full_name,
                "book_titles": titles,
                "due_date": record.return_date,
                "days_overdue": days_overdue,
                "fine_amount": fine,
            })
        sent += 1

    logger.log_job_event("OverdueNotice", "completed", overdue=len(records), notices=sent)
    return {"overdue": len(records), "notices": sent}


async def ebook_expired_job(db: AsyncSession) -> Dict[str, int]:
    """Return ebook loans whose due date has passed"""
    logger.log_job_event("EbookExpired", "started")
    today = date.today()

    result = await db.execute(
        select(BorrowRecord.id)
        .join(BorrowEbook, BorrowEbook.borrow_record_id == BorrowRecord.id)
        .where(
            BorrowRecord.status == BorrowStatus.BORROWED,
            BorrowRecord.is_deleted == False,  # noqa: E712
            BorrowRecord.return_date < today,
            BorrowEbook.is_deleted == False,  # noqa: E712
        )
        .distinct()
    )
    record_ids: List[int] = list(result.scalars().all())

    returned = failed = 0
    for record_id in record_ids:
        try:
            record = await db.get(BorrowRecord, record_id)
            ebooks = record.active_ebooks
            titles = ", ".join(f'"{e.book.title}"' for e in ebooks if e.book)

            record.status = BorrowStatus.RETURNED
            record.actual_return_date = today
            for link in ebooks:
                link.is_deleted = True
            await db.commit()

            await notification_service.queue_notification(
                db,
                record.user_id,
                "Ebook Automatically Returned",
                f"Your borrowed ebook(s) {titles} have been automatically returned as they have expired.",
                NotificationType.SYSTEM,
            )
            returned += 1
        except Exception as e:
            await db.rollback()
            failed += 1
            logger.log_error_with_context(e, context="EbookExpired", borrow_record_id=record_id)

    logger.log_job_event("EbookExpired", "completed", returned=returned, failed=failed)
    return {"returned": returned, "failed": failed}


async def reservation_reminder_job(db: AsyncSession) -> Dict[str, int]:
    """Warn readers whose pending reservations end within RESERVATION_REMINDER_DAYS"""
    logger.log_job_event("ReservationReminder", "started")
    today = date.today()

    result = await db.execute(
        select(BorrowRequest.user_id)
        .where(
            BorrowRequest.status == BorrowRequestStatus.PENDING,
            BorrowRequest.is_deleted == False,  # noqa: E712
            BorrowRequest.end_date >= today,
            BorrowRequest.end_date <= today + timedelta(days=settings.RESERVATION_REMINDER_DAYS),
        )
        .distinct()
    )
    user_ids = list(result.scalars().all())

    recipients = 0
    if user_ids:
        recipients = await notification_service.queue_bulk_notifications(
            db, user_ids, RESERVATION_REMINDER_TITLE, RESERVATION_REMINDER_MESSAGE, NotificationType.REMINDER
        )

    logger.log_job_event("ReservationReminder", "completed", recipients=recipients)
    return {"recipients": recipients}


async def cleanup_tokens_job(db: AsyncSession) -> Dict[str, int]:
    """Drop expired refresh tokens and stale OTP codes"""
    tokens = await auth_service.cleanup_expired_refresh_tokens(db)
    otps = await otp_service.cleanup_expired_otps(db)
    logger.log_job_event("TokenCleanup", "completed", refresh_tokens=tokens, otps=otps)
    return {"refresh_tokens": tokens, "otps": otps}
