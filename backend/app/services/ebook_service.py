"""
Ebook Service - digital loans and protected PDF access

A book has an ebook when it has a live PDF edition. Reading goes through a
short-lived signed URL; the file endpoint re-checks the loan on every access.
"""

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Optional, List, Tuple, Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.core.logging_config import logger
from app.core.security import create_ebook_access_token, verify_ebook_access_token
from app.models.borrow import (
    BorrowRequest, BorrowRequestItem, BorrowRequestStatus,
    BorrowRecord, BorrowEbook, BorrowStatus,
)
from app.models.catalog import Book, BookEdition, FileFormat
from app.models.notification import NotificationType
from app.models.user import User
from app.schemas.borrow import EbookBorrowCreate, MyEbook
from app.schemas.catalog import BookBrief
from app.services.borrow_service import validate_borrow_dates
from app.services.notification_service import notification_service
from app.services.storage_service import storage_service
from app.utils.pagination import PaginationParams, paginate

EBOOK_URL_TEMPLATE = "/api/v1/ebooks/{book_id}/file?token={token}"


@dataclass
class EbookFile:
    path: Path
    filename: str


class EbookService:
    """Service for ebook loans and reading access"""

    async def get_pdf_edition(self, db: AsyncSession, book_id: int) -> Optional[BookEdition]:
        result = await db.execute(
            select(BookEdition)
            .where(
                BookEdition.book_id == book_id,
                BookEdition.file_format == FileFormat.PDF,
                BookEdition.is_deleted == False,  # noqa: E712
            )
            .order_by(BookEdition.created_at.desc(), BookEdition.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def active_borrow(
        self, db: AsyncSession, user_id: int, book_id: int, include_upcoming: bool = False
    ) -> Optional[BorrowRecord]:
        """
        The user's live ebook loan for a book, if any.

        Loans whose period has not started yet only count with include_upcoming.
        """
        today = date.today()
        query = (
            select(BorrowRecord)
            .join(BorrowEbook, BorrowEbook.borrow_record_id == BorrowRecord.id)
            .where(
                BorrowRecord.user_id == user_id,
                BorrowRecord.status == BorrowStatus.BORROWED,
                BorrowRecord.is_deleted == False,  # noqa: E712
                BorrowRecord.return_date >= today,
                BorrowEbook.book_id == book_id,
                BorrowEbook.is_deleted == False,  # noqa: E712
            )
        )
        if not include_upcoming:
            query = query.where(BorrowRecord.borrow_date <= today)
        result = await db.execute(query.limit(1))
        return result.scalars().first()

    async def borrow(
        self, db: AsyncSession, user: User, data: EbookBorrowCreate
    ) -> Tuple[BorrowRecord, BorrowRequest]:
        """Lend an ebook immediately: record, ebook link and fulfilled request in one commit"""
        validate_borrow_dates(data.start_date, data.end_date)

        book = await db.get(Book, data.book_id)
        if not book or book.is_deleted:
            raise NotFoundError("Book not found")
        if not await self.get_pdf_edition(db, book.id):
            raise ValidationError("This book has no ebook available", field="book_id")
        if await self.active_borrow(db, user.id, book.id, include_upcoming=True):
            raise ConflictError("You have already borrowed this ebook", code="EBOOK_ALREADY_BORROWED")

        record = BorrowRecord(
            user_id=user.id,
            borrow_date=data.start_date,
            return_date=data.end_date,
            status=BorrowStatus.BORROWED,
            renewal_count=0,
        )
        record.ebooks = [BorrowEbook(book_id=book.id)]
        request = BorrowRequest(
            user_id=user.id,
            start_date=data.start_date,
            end_date=data.end_date,
            status=BorrowRequestStatus.FULFILLED,
        )
        request.items = [BorrowRequestItem(
            book_id=book.id,
            quantity=1,
            start_date=data.start_date,
            end_date=data.end_date,
        )]
        db.add_all([record, request])
        await db.commit()

        logger.info(f"[Ebook] User {user.id} borrowed ebook of book {book.id} until {data.end_date}")
        await notification_service.queue_notification(
            db,
            user.id,
            "Ebook Borrowed Successfully",
            f'You have successfully borrowed "{book.title}" (PDF). You can read it now. '
            f"Return date: {data.end_date.isoformat()}",
            NotificationType.SYSTEM,
        )

        record = (await db.execute(
            select(BorrowRecord).where(BorrowRecord.id == record.id).execution_options(populate_existing=True)
        )).scalar_one()
        request = (await db.execute(
            select(BorrowRequest).where(BorrowRequest.id == request.id).execution_options(populate_existing=True)
        )).scalar_one()
        return record, request

    async def list_requests(
        self,
        db: AsyncSession,
        user_id: int,
        params: PaginationParams,
        status: Optional[BorrowRequestStatus] = None,
    ) -> Tuple[List[BorrowRequest], Dict[str, int]]:
        pdf_books = select(BookEdition.book_id).where(
            BookEdition.file_format == FileFormat.PDF,
            BookEdition.is_deleted == False,  # noqa: E712
        )
        ebook_requests = select(BorrowRequestItem.borrow_request_id).where(BorrowRequestItem.book_id.in_(pdf_books))
        query = select(BorrowRequest).where(
            BorrowRequest.user_id == user_id,
            BorrowRequest.is_deleted == False,  # noqa: E712
            BorrowRequest.id.in_(ebook_requests),
        )
        if status:
            query = query.where(BorrowRequest.status == status)
        return await paginate(db, query.order_by(BorrowRequest.created_at.desc(), BorrowRequest.id.desc()), params)

    async def my_ebooks(self, db: AsyncSession, user_id: int) -> List[MyEbook]:
        result = await db.execute(
            select(BorrowEbook, BorrowRecord)
            .join(BorrowRecord, BorrowRecord.id == BorrowEbook.borrow_record_id)
            .where(
                BorrowRecord.user_id == user_id,
                BorrowRecord.status == BorrowStatus.BORROWED,
                BorrowRecord.is_deleted == False,  # noqa: E712
                BorrowRecord.return_date >= date.today(),
                BorrowRecord.borrow_date <= date.today(),
                BorrowEbook.is_deleted == False,  # noqa: E712
            )
            .order_by(BorrowRecord.return_date, BorrowEbook.id)
        )
        ebooks = []
        for link, record in result.all():
            edition = await self.get_pdf_edition(db, link.book_id)
            ebooks.append(MyEbook(
                borrow_record_id=record.id,
                book=BookBrief.model_validate(link.book),
                borrow_date=record.borrow_date,
                return_date=record.return_date,
                edition_id=edition.id if edition else None,
                file_format=edition.file_format.value if edition else None,
                file_size_bytes=edition.file_size_bytes if edition else None,
            ))
        return ebooks

    async def create_view_url(self, db: AsyncSession, user: User, book_id: int) -> Tuple[str, datetime]:
        if not await self.active_borrow(db, user.id, book_id):
            raise ForbiddenError("You have not borrowed this ebook or the loan has expired")

        edition = await self.get_pdf_edition(db, book_id)
        if not edition or not edition.storage_url:
            raise NotFoundError("Ebook file not found")

        token, expires_at = create_ebook_access_token(user.id, book_id, edition.id)
        logger.info(f"[Ebook] Issued view URL for book {book_id} to user {user.id}")
        return EBOOK_URL_TEMPLATE.format(book_id=book_id, token=token), expires_at

    async def open_file(self, db: AsyncSession, book_id: int, token: Optional[str]) -> EbookFile:
        """Verify a view token and load the PDF it grants"""
        if not token:
            raise ValidationError("Access token is required", field="token")

        payload = verify_ebook_access_token(token)
        if payload.get("book_id") != book_id:
            logger.warning(f"[Ebook] Token for book {payload.get('book_id')} used for book {book_id}")
            raise ForbiddenError("Token does not match this ebook")

        user_id = int(payload["sub"])
        if not await self.active_borrow(db, user_id, book_id):
            raise ForbiddenError("Ebook loan is no longer active")

        edition_id = payload.get("edition_id")
        edition = await db.get(BookEdition, edition_id) if isinstance(edition_id, int) else None
        if not edition or edition.is_deleted or edition.book_id != book_id:
            raise NotFoundError("Ebook file not found")
        relative = storage_service.relative_from_url(edition.storage_url or "")
        if not relative:
            raise NotFoundError("Ebook file not found")
        path = storage_service.open_path(relative)

        logger.info(f"[Ebook] User {user_id} accessed book {book_id} edition {edition.id}")
        return EbookFile(path=path, filename=f"ebook-{book_id}.pdf")


# Singleton instance
ebook_service = EbookService()
