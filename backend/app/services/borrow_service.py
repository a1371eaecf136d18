"""
Borrow Service - reservations (borrow requests) and loans (borrow records)

Handles:
- Borrow request creation with availability checks and a FIFO hold queue
- Librarian approval/rejection and reader cancellation
- Loan creation from physical copies, renewal, return with violations
  and late fees, and ebook return
"""

import math
from collections import Counter
from datetime import date, timedelta
from typing import Optional, List, Tuple, Dict, Iterable

from sqlalchemy import select, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.core.logging_config import logger
from app.models.borrow import (
    BorrowRequest, BorrowRequestItem, BorrowRequestStatus,
    BorrowRecord, BorrowBook, BorrowStatus,
)
from app.models.catalog import Book, BookItem, ItemStatus, ItemCondition
from app.models.notification import NotificationType
from app.models.payment import Policy, Payment
from app.models.user import User, Role, UserStatus
from app.modules.auth.dependencies import is_staff
from app.schemas.borrow import (
    BorrowRequestCreate, BorrowRequestResponse, BorrowRecordCreate, BorrowRecordReturn,
    FulfilledRequest, ProcessedBook,
)
from app.services.email_service import queue_email
from app.services.notification_service import notification_service
from app.utils.pagination import PaginationParams, paginate

ACTIVE_REQUEST_STATUSES = (BorrowRequestStatus.PENDING, BorrowRequestStatus.APPROVED)

# condition -> (policy id, violation points)
CONDITION_VIOLATIONS = {
    ItemCondition.LOST: ("LOST_BOOK", 3),
    ItemCondition.DAMAGED: ("DAMAGED_BOOK", 2),
    ItemCondition.WORN: ("WORN_BOOK", 1),
}
POLICY_POINTS = {policy_id: points for policy_id, points in CONDITION_VIOLATIONS.values()}
DEFAULT_DAMAGE_PERCENT = {"LOST_BOOK": 100, "DAMAGED_BOOK": 100, "WORN_BOOK": 50}
LATE_RETURN_POLICY = "LATE_RETURN"

APPROVED_MESSAGE = "Borrow request approved successfully. Please visit the library to collect your books."
PENDING_MESSAGE = (
    "Borrow request registered. You are in position #{position} in the queue. "
    "We will notify you when books are available."
)


def validate_borrow_dates(start_date: date, end_date: date) -> None:
    """Shared date rules for physical and ebook borrow requests"""
    if start_date < date.today():
        raise ValidationError("Start date cannot be in the past", field="start_date")
    if end_date < start_date:
        raise ValidationError("End date must be on or after the start date", field="end_date")
    if (end_date - start_date).days > settings.MAX_BORROW_PERIOD_DAYS:
        raise ValidationError(
            f"Borrow period cannot exceed {settings.MAX_BORROW_PERIOD_DAYS} days",
            field="end_date",
        )


async def available_count(db: AsyncSession, book_id: int) -> int:
    """AVAILABLE copies of a book minus copies already reserved by APPROVED requests"""
    on_shelf = (await db.execute(
        select(func.count(BookItem.id)).where(
            BookItem.book_id == book_id,
            BookItem.status == ItemStatus.AVAILABLE,
            BookItem.is_deleted == False,  # noqa: E712
        )
    )).scalar() or 0

    reserved = (await db.execute(
        select(func.coalesce(func.sum(BorrowRequestItem.quantity), 0))
        .join(BorrowRequest, BorrowRequest.id == BorrowRequestItem.borrow_request_id)
        .where(
            BorrowRequestItem.book_id == book_id,
            BorrowRequest.status == BorrowRequestStatus.APPROVED,
            BorrowRequest.is_deleted == False,  # noqa: E712
        )
    )).scalar() or 0

    return int(on_shelf) - int(reserved)


async def queue_position(db: AsyncSession, item: BorrowRequestItem) -> int:
    """1-based FIFO position of a pending item among pending items for the same book"""
    ahead = (await db.execute(
        select(func.count(BorrowRequestItem.id))
        .join(BorrowRequest, BorrowRequest.id == BorrowRequestItem.borrow_request_id)
        .where(
            BorrowRequestItem.book_id == item.book_id,
            BorrowRequest.status == BorrowRequestStatus.PENDING,
            BorrowRequest.is_deleted == False,  # noqa: E712
            or_(
                BorrowRequestItem.created_at < item.created_at,
                and_(BorrowRequestItem.created_at == item.created_at, BorrowRequestItem.id < item.id),
            ),
        )
    )).scalar() or 0
    return int(ahead) + 1


async def process_hold_queue(db: AsyncSession, book_id: int) -> Optional[BorrowRequest]:
    """
    Promote the oldest pending request for a book to APPROVED when every one of
    its items can be covered. The caller commits and notifies.
    """
    result = await db.execute(
        select(BorrowRequest)
        .join(BorrowRequestItem, BorrowRequestItem.borrow_request_id == BorrowRequest.id)
        .where(
            BorrowRequestItem.book_id == book_id,
            BorrowRequest.status == BorrowRequestStatus.PENDING,
            BorrowRequest.is_deleted == False,  # noqa: E712
        )
        .order_by(BorrowRequestItem.created_at, BorrowRequestItem.id)
        .limit(1)
    )
    request = result.scalars().first()
    if not request:
        return None

    for item in request.items:
        if await available_count(db, item.book_id) < item.quantity:
            return None

    request.status = BorrowRequestStatus.APPROVED
    await db.flush()
    logger.info(f"[Borrow] Hold queue approved request {request.id} for book {book_id}")
    return request


async def notify_hold_approved(db: AsyncSession, requests: Iterable[BorrowRequest]) -> None:
    for request in requests:
        await notification_service.queue_notification(
            db,
            request.user_id,
            "Borrow Request Approved",
            f"Your borrow request #{request.id} has been approved. "
            "Please visit the library to collect your books.",
            NotificationType.SYSTEM,
        )
        if request.user:
            await queue_email("reservation_ready", request.user.email, {
                "user_name": request.user.full_name,
                "book_titles": [item.book.title for item in request.items if item.book],
                "pickup_deadline": request.end_date,
            })


class BorrowRequestService:
    """Service for reader reservations"""

    async def get_request(self, db: AsyncSession, request_id: int) -> BorrowRequest:
        result = await db.execute(
            select(BorrowRequest).where(BorrowRequest.id == request_id).execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if not request or request.is_deleted:
            raise NotFoundError("Borrow request not found")
        return request

    async def get_for_actor(self, db: AsyncSession, request_id: int, actor: User) -> BorrowRequest:
        request = await self.get_request(db, request_id)
        if request.user_id != actor.id and not is_staff(actor):
            raise ForbiddenError("You do not have access to this borrow request")
        return request

    async def to_response(self, db: AsyncSession, request: BorrowRequest) -> BorrowRequestResponse:
        response = BorrowRequestResponse.model_validate(request)
        if request.status != BorrowRequestStatus.PENDING:
            return response
        items = []
        for item, item_response in zip(request.items, response.items):
            items.append(item_response.model_copy(update={"queue_position": await queue_position(db, item)}))
        return response.model_copy(update={"items": items})

    async def to_responses(self, db: AsyncSession, requests: List[BorrowRequest]) -> List[BorrowRequestResponse]:
        return [await self.to_response(db, r) for r in requests]

    async def has_active_request(self, db: AsyncSession, user_id: int, book_id: int) -> bool:
        result = await db.execute(
            select(BorrowRequest.id)
            .join(BorrowRequestItem, BorrowRequestItem.borrow_request_id == BorrowRequest.id)
            .where(
                BorrowRequest.user_id == user_id,
                BorrowRequestItem.book_id == book_id,
                BorrowRequest.status.in_(ACTIVE_REQUEST_STATUSES),
                BorrowRequest.is_deleted == False,  # noqa: E712
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def create_request(
        self, db: AsyncSession, user: User, data: BorrowRequestCreate
    ) -> Tuple[BorrowRequest, Optional[int], str]:
        """
        Register a reservation.

        Returns:
            (request, queue position when pending, user-facing message)
        """
        if len(data.items) != 1:
            raise ValidationError("Only one book per borrow request is allowed", field="items")
        validate_borrow_dates(data.start_date, data.end_date)

        item_in = data.items[0]
        book = await db.get(Book, item_in.book_id)
        if not book or book.is_deleted:
            raise NotFoundError("Book not found")

        if await self.has_active_request(db, user.id, book.id):
            raise ConflictError(
                "You already have a pending or approved request for this book",
                code="DUPLICATE_REQUEST",
            )

        available = await available_count(db, book.id)
        status = BorrowRequestStatus.APPROVED if available >= item_in.quantity else BorrowRequestStatus.PENDING

        request = BorrowRequest(
            user_id=user.id,
            start_date=data.start_date,
            end_date=data.end_date,
            status=status,
        )
        request.items = [BorrowRequestItem(
            book_id=book.id,
            quantity=item_in.quantity,
            start_date=item_in.start_date or data.start_date,
            end_date=item_in.end_date or data.end_date,
        )]
        db.add(request)
        await db.commit()

        request = await self.get_request(db, request.id)
        position = None
        if status == BorrowRequestStatus.APPROVED:
            message = APPROVED_MESSAGE
        else:
            position = await queue_position(db, request.items[0])
            message = PENDING_MESSAGE.format(position=position)
            await queue_email("reservation_confirmation", user.email, {
                "user_name": user.full_name,
                "book_title": book.title,
                "start_date": request.start_date,
                "queue_position": position,
            })

        logger.info(
            f"[Borrow] Request {request.id} by user {user.id} for book {book.id} -> {status.value}"
            + (f" (queue #{position})" if position else "")
        )
        return request, position, message

    async def list_mine(
        self,
        db: AsyncSession,
        user_id: int,
        params: PaginationParams,
        status: Optional[BorrowRequestStatus] = None,
    ) -> Tuple[List[BorrowRequest], Dict[str, int]]:
        query = select(BorrowRequest).where(
            BorrowRequest.user_id == user_id,
            BorrowRequest.is_deleted == False,  # noqa: E712
        )
        if status:
            query = query.where(BorrowRequest.status == status)
        return await paginate(db, query.order_by(BorrowRequest.created_at.desc(), BorrowRequest.id.desc()), params)

    async def list_all(
        self,
        db: AsyncSession,
        params: PaginationParams,
        status: Optional[BorrowRequestStatus] = None,
        user_id: Optional[int] = None,
    ) -> Tuple[List[BorrowRequest], Dict[str, int]]:
        query = select(BorrowRequest).where(BorrowRequest.is_deleted == False)  # noqa: E712
        if status:
            query = query.where(BorrowRequest.status == status)
        if user_id:
            query = query.where(BorrowRequest.user_id == user_id)
        if params.search:
            pattern = f"%{params.search}%"
            matching_users = select(User.id).where(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))
            matching_books = (
                select(BorrowRequestItem.borrow_request_id)
                .join(Book, Book.id == BorrowRequestItem.book_id)
                .where(Book.title.ilike(pattern))
            )
            query = query.where(or_(
                BorrowRequest.user_id.in_(matching_users),
                BorrowRequest.id.in_(matching_books),
            ))
        return await paginate(db, query.order_by(BorrowRequest.created_at.desc(), BorrowRequest.id.desc()), params)

    async def manage(
        self, db: AsyncSession, request_id: int, status: BorrowRequestStatus, actor: User
    ) -> BorrowRequest:
        """Librarian approval or rejection"""
        request = await self.get_request(db, request_id)
        previous = request.status

        if status == BorrowRequestStatus.APPROVED:
            if previous != BorrowRequestStatus.PENDING:
                raise ValidationError("Only pending requests can be approved", field="status")
        elif status == BorrowRequestStatus.REJECTED:
            if previous not in ACTIVE_REQUEST_STATUSES:
                raise ValidationError("Only pending or approved requests can be rejected", field="status")
        else:
            raise ValidationError("Status must be APPROVED or REJECTED", field="status")

        request.status = status
        await db.flush()

        # Rejecting an approved request frees its reserved copies
        promoted = []
        if previous == BorrowRequestStatus.APPROVED:
            for book_id in {item.book_id for item in request.items}:
                approved = await process_hold_queue(db, book_id)
                if approved:
                    promoted.append(approved)
        await db.commit()

        logger.info(f"[Borrow] Request {request_id} {previous.value} -> {status.value} by user {actor.id}")

        if status == BorrowRequestStatus.APPROVED:
            title, message = (
                "Borrow Request Approved",
                f"Your borrow request #{request.id} has been approved. "
                "Please visit the library to collect your books.",
            )
        else:
            title, message = (
                "Borrow Request Rejected",
                f"Your borrow request #{request.id} has been rejected.",
            )
        await notification_service.queue_notification(db, request.user_id, title, message, NotificationType.SYSTEM)
        await notify_hold_approved(db, promoted)

        return await self.get_request(db, request_id)

    async def cancel(
        self, db: AsyncSession, request_id: int, status: BorrowRequestStatus, user: User
    ) -> BorrowRequest:
        """Reader cancellation of their own request"""
        if status != BorrowRequestStatus.CANCELLED:
            raise ValidationError("Status must be CANCELLED", field="status")

        request = await self.get_request(db, request_id)
        if request.user_id != user.id:
            raise ForbiddenError("You can only cancel your own borrow requests")
        if request.status not in ACTIVE_REQUEST_STATUSES:
            raise ValidationError("Only pending or approved requests can be cancelled")

        previous = request.status
        request.status = BorrowRequestStatus.CANCELLED
        await db.flush()

        promoted = []
        if previous == BorrowRequestStatus.APPROVED:
            for book_id in {item.book_id for item in request.items}:
                approved = await process_hold_queue(db, book_id)
                if approved:
                    promoted.append(approved)
        await db.commit()

        logger.info(f"[Borrow] Request {request_id} cancelled by user {user.id}")
        await notify_hold_approved(db, promoted)
        return await self.get_request(db, request_id)


class BorrowRecordService:
    """Service for loans"""

    async def get_record(self, db: AsyncSession, record_id: int) -> BorrowRecord:
        result = await db.execute(
            select(BorrowRecord).where(BorrowRecord.id == record_id).execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if not record or record.is_deleted:
            raise NotFoundError("Borrow record not found")
        return record

    async def get_for_actor(self, db: AsyncSession, record_id: int, actor: User) -> BorrowRecord:
        record = await self.get_record(db, record_id)
        if record.user_id != actor.id and not is_staff(actor):
            raise ForbiddenError("You do not have access to this borrow record")
        return record

    async def _get_owned(self, db: AsyncSession, record_id: int, user: User) -> BorrowRecord:
        record = await self.get_record(db, record_id)
        if record.user_id != user.id:
            raise ForbiddenError("You can only manage your own borrow records")
        return record

    async def create_record(
        self, db: AsyncSession, data: BorrowRecordCreate, actor: User
    ) -> Tuple[BorrowRecord, List[FulfilledRequest]]:
        """Lend physical copies to a reader and fulfil their approved requests"""
        reader = await db.get(User, data.user_id)
        if not reader or reader.is_deleted:
            raise NotFoundError("User not found")
        if reader.role != Role.READER or reader.status != UserStatus.ACTIVE:
            raise ValidationError("Books can only be lent to active readers", field="user_id")

        if len(set(data.book_item_ids)) != len(data.book_item_ids):
            raise ValidationError("Book item ids must be unique", field="book_item_ids")
        if data.return_date < data.borrow_date:
            raise ValidationError("Return date must be on or after the borrow date", field="return_date")
        if (data.return_date - data.borrow_date).days > settings.MAX_BORROW_PERIOD_DAYS:
            raise ValidationError(
                f"Borrow period cannot exceed {settings.MAX_BORROW_PERIOD_DAYS} days",
                field="return_date",
            )

        result = await db.execute(
            select(BookItem).where(BookItem.id.in_(data.book_item_ids), BookItem.is_deleted == False)  # noqa: E712
        )
        items = list(result.scalars().all())
        missing = sorted(set(data.book_item_ids) - {i.id for i in items})
        if missing:
            raise NotFoundError(f"Book items not found: {', '.join(str(i) for i in missing)}")
        unavailable = [i.code for i in items if i.status != ItemStatus.AVAILABLE]
        if unavailable:
            raise ValidationError(
                f"Book items not available: {', '.join(unavailable)}",
                field="book_item_ids",
            )

        requests: List[BorrowRequest] = []
        for request_id in dict.fromkeys(data.request_ids):
            request = await db.get(BorrowRequest, request_id)
            if (
                not request
                or request.is_deleted
                or request.user_id != reader.id
                or request.status != BorrowRequestStatus.APPROVED
            ):
                raise ValidationError(
                    f"Borrow request {request_id} is not an approved request of this user",
                    field="request_ids",
                )
            requests.append(request)

        record = BorrowRecord(
            user_id=reader.id,
            borrow_date=data.borrow_date,
            return_date=data.return_date,
            status=BorrowStatus.BORROWED,
            renewal_count=0,
        )
        record.books = [BorrowBook(book_item_id=item.id) for item in items]
        db.add(record)
        for item in items:
            item.status = ItemStatus.ON_BORROW

        remaining = Counter(item.book_id for item in items)
        outcomes = []
        for request in requests:
            fulfilled = all(remaining[ri.book_id] >= ri.quantity for ri in request.items)
            if fulfilled:
                for ri in request.items:
                    remaining[ri.book_id] -= ri.quantity
                request.status = BorrowRequestStatus.FULFILLED
            outcomes.append(FulfilledRequest(request_id=request.id, fulfilled=fulfilled))

        await db.commit()
        logger.info(
            f"[Borrow] Record {record.id} created by {actor.id} for user {reader.id} "
            f"with {len(items)} item(s)"
        )

        record = await self.get_record(db, record.id)
        titles = ", ".join(f'"{b.book_item.book.title}"' for b in record.active_books if b.book_item.book)
        await notification_service.queue_notification(
            db,
            reader.id,
            "Books Borrowed",
            f"You have borrowed {len(items)} book(s): {titles}. Return date: {record.return_date.isoformat()}.",
            NotificationType.SYSTEM,
        )
        await queue_email("loan", reader.email, {
            "user_name": reader.full_name,
            "book_titles": [b.book_item.book.title for b in record.active_books if b.book_item.book],
            "due_date": record.return_date,
        })
        return record, outcomes

    async def list_mine(
        self,
        db: AsyncSession,
        user_id: int,
        params: PaginationParams,
        status: Optional[BorrowStatus] = None,
    ) -> Tuple[List[BorrowRecord], Dict[str, int]]:
        query = select(BorrowRecord).where(
            BorrowRecord.user_id == user_id,
            BorrowRecord.is_deleted == False,  # noqa: E712
        )
        if status:
            query = query.where(BorrowRecord.status == status)
        return await paginate(db, query.order_by(BorrowRecord.created_at.desc(), BorrowRecord.id.desc()), params)

    async def list_all(
        self,
        db: AsyncSession,
        params: PaginationParams,
        status: Optional[BorrowStatus] = None,
        user_id: Optional[int] = None,
        overdue: bool = False,
    ) -> Tuple[List[BorrowRecord], Dict[str, int]]:
        query = select(BorrowRecord).where(BorrowRecord.is_deleted == False)  # noqa: E712
        if status:
            query = query.where(BorrowRecord.status == status)
        if user_id:
            query = query.where(BorrowRecord.user_id == user_id)
        if overdue:
            query = query.where(
                BorrowRecord.status == BorrowStatus.BORROWED,
                BorrowRecord.actual_return_date.is_(None),
                BorrowRecord.return_date < date.today(),
            )
        if params.search:
            pattern = f"%{params.search}%"
            matching_users = select(User.id).where(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))
            matching_items = (
                select(BorrowBook.borrow_record_id)
                .join(BookItem, BookItem.id == BorrowBook.book_item_id)
                .where(BookItem.code.ilike(pattern))
            )
            query = query.where(or_(
                BorrowRecord.user_id.in_(matching_users),
                BorrowRecord.id.in_(matching_items),
            ))
        return await paginate(db, query.order_by(BorrowRecord.created_at.desc(), BorrowRecord.id.desc()), params)

    async def renew(self, db: AsyncSession, record_id: int, user: User) -> BorrowRecord:
        record = await self._get_owned(db, record_id, user)

        if record.status != BorrowStatus.BORROWED or record.actual_return_date is not None:
            raise ValidationError("Only active loans can be renewed")
        if record.return_date < date.today():
            raise ValidationError("Overdue loans cannot be renewed. Please return the books.")
        if record.renewal_count >= settings.MAX_RENEWALS:
            raise ValidationError(f"Maximum number of renewals ({settings.MAX_RENEWALS}) reached")

        book_ids = {b.book_item.book_id for b in record.active_books}
        if book_ids:
            waiting = (await db.execute(
                select(func.count(BorrowRequestItem.id))
                .join(BorrowRequest, BorrowRequest.id == BorrowRequestItem.borrow_request_id)
                .where(
                    BorrowRequestItem.book_id.in_(book_ids),
                    BorrowRequest.status.in_(ACTIVE_REQUEST_STATUSES),
                    BorrowRequest.is_deleted == False,  # noqa: E712
                )
            )).scalar() or 0
            if waiting:
                raise ValidationError("Cannot renew: other readers are waiting for these books")

        cap = record.borrow_date + timedelta(days=settings.MAX_BORROW_DAYS)
        new_return_date = min(record.return_date + timedelta(days=settings.RENEWAL_EXTENSION_DAYS), cap)
        if new_return_date <= record.return_date:
            raise ValidationError(f"Maximum borrow duration of {settings.MAX_BORROW_DAYS} days reached")

        record.return_date = new_return_date
        record.renewal_count += 1
        await db.commit()

        logger.info(f"[Borrow] Record {record_id} renewed to {new_return_date} ({record.renewal_count}/{settings.MAX_RENEWALS})")
        return await self.get_record(db, record_id)

    async def _get_policy(self, db: AsyncSession, policy_id: str) -> Optional[Policy]:
        policy = await db.get(Policy, policy_id)
        if not policy or policy.is_deleted:
            return None
        return policy

    def _violation_amount(self, policy: Policy, item: BookItem) -> float:
        if policy.id in DEFAULT_DAMAGE_PERCENT:
            percent = policy.amount if policy.amount is not None else DEFAULT_DAMAGE_PERCENT[policy.id]
            price = item.book.price if item.book and item.book.price else 0
            return float(math.floor(price * percent / 100))
        return float(policy.amount)

    async def return_record(
        self, db: AsyncSession, record_id: int, data: BorrowRecordReturn, actor: User
    ) -> Tuple[BorrowRecord, List[ProcessedBook], List[Payment]]:
        """
        Check in every copy of a loan.

        Conditions reported as LOST, DAMAGED or WORN produce violations unless
        one is given explicitly for the copy. A late return adds a per-day fee.
        Freed copies are offered to the hold queue of each book.
        """
        record = await self.get_record(db, record_id)
        if record.status != BorrowStatus.BORROWED or record.actual_return_date is not None:
            raise ValidationError("Borrow record is not currently borrowed")

        items: Dict[int, BookItem] = {b.book_item_id: b.book_item for b in record.active_books}
        conditions: Dict[int, ItemCondition] = {}
        for reported in data.items:
            if reported.book_item_id not in items:
                raise ValidationError(
                    f"Book item {reported.book_item_id} is not part of this borrow record",
                    field="items",
                )
            conditions[reported.book_item_id] = reported.condition

        explicit: List[Tuple[Policy, BookItem, Optional[float], Optional[date]]] = []
        for violation in data.violations:
            if violation.book_item_id not in items:
                raise ValidationError(
                    f"Book item {violation.book_item_id} is not part of this borrow record",
                    field="violations",
                )
            policy = await self._get_policy(db, violation.policy_id)
            if not policy:
                raise NotFoundError(f"Policy {violation.policy_id} not found")
            explicit.append((policy, items[violation.book_item_id], violation.amount, violation.due_date))

        today = date.today()
        default_due = today + timedelta(days=settings.VIOLATION_DUE_DATE_DAYS)

        record.actual_return_date = today
        record.status = BorrowStatus.RETURNED

        for item_id, item in items.items():
            condition = conditions.get(item_id, item.condition)
            item.condition = condition
            item.status = ItemStatus.LOST if condition == ItemCondition.LOST else ItemStatus.AVAILABLE

        violations = list(explicit)
        covered = {item.id for _, item, _, _ in explicit}
        for item_id, condition in conditions.items():
            if condition not in CONDITION_VIOLATIONS or item_id in covered:
                continue
            policy = await self._get_policy(db, CONDITION_VIOLATIONS[condition][0])
            if policy:
                violations.append((policy, items[item_id], None, None))
            else:
                logger.warning(f"[Borrow] Policy {CONDITION_VIOLATIONS[condition][0]} missing, no violation recorded")

        reader = await db.get(User, record.user_id)
        payments: List[Payment] = []
        for policy, item, amount, due_date in violations:
            payments.append(Payment(
                policy_id=policy.id,
                borrow_record_id=record.id,
                amount=amount if amount is not None else self._violation_amount(policy, item),
                is_paid=False,
                due_date=due_date or default_due,
            ))
            if reader and policy.id in POLICY_POINTS:
                reader.violation_points = (reader.violation_points or 0) + POLICY_POINTS[policy.id]

        overdue_days = (today - record.return_date).days
        if overdue_days > 0:
            late_policy = await self._get_policy(db, LATE_RETURN_POLICY)
            if late_policy:
                payments.append(Payment(
                    policy_id=late_policy.id,
                    borrow_record_id=record.id,
                    amount=float(late_policy.amount * overdue_days),
                    is_paid=False,
                    due_date=default_due,
                ))

        db.add_all(payments)
        await db.flush()

        processed: List[ProcessedBook] = []
        promoted: List[BorrowRequest] = []
        returned_books = {item.book_id for item in items.values() if item.status == ItemStatus.AVAILABLE}
        for book_id in sorted(returned_books):
            approved = await process_hold_queue(db, book_id)
            processed.append(ProcessedBook(book_id=book_id, approved_request_id=approved.id if approved else None))
            if approved:
                promoted.append(approved)

        await db.commit()
        logger.info(
            f"[Borrow] Record {record_id} returned by {actor.id}: "
            f"{len(payments)} payment(s), {len(promoted)} hold(s) approved"
        )

        if payments:
            total = sum(p.amount for p in payments)
            await notification_service.queue_notification(
                db,
                record.user_id,
                "Violation Recorded",
                f"{len(payments)} fee(s) totalling {total:,.0f} VND were recorded for borrow record #{record.id}. "
                "Please pay before the due date.",
                NotificationType.ALERT,
            )
        await notify_hold_approved(db, promoted)

        payment_ids = [p.id for p in payments]
        record = await self.get_record(db, record_id)
        return record, processed, [p for p in record.payments if p.id in payment_ids]

    async def return_ebook(self, db: AsyncSession, record_id: int, user: User) -> BorrowRecord:
        record = await self._get_owned(db, record_id, user)
        ebooks = record.active_ebooks
        if record.status != BorrowStatus.BORROWED or not ebooks:
            raise ValidationError("This borrow record has no borrowed ebook to return")

        record.status = BorrowStatus.RETURNED
        record.actual_return_date = date.today()
        for link in ebooks:
            link.is_deleted = True
        await db.commit()

        titles = ", ".join(f'"{link.book.title}"' for link in ebooks if link.book)
        logger.info(f"[Ebook] Record {record_id} returned by user {user.id}")
        await notification_service.queue_notification(
            db,
            user.id,
            "Ebook Returned Successfully",
            f"You have successfully returned {titles} (PDF).",
            NotificationType.SYSTEM,
        )
        return await self.get_record(db, record_id)


# Singleton instances
borrow_request_service = BorrowRequestService()
borrow_record_service = BorrowRecordService()
