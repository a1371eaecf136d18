"""
Borrow Records API

Librarians lend copies and check them back in; readers renew their loans
and return ebooks early.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.borrow import BorrowStatus
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_librarian, require_reader
from app.schemas.borrow import (
    BorrowRecordCreate,
    BorrowRecordReturn,
    BorrowRecordResponse,
    BorrowRecordCreateResponse,
    BorrowRecordReturnResponse,
    RecordPaymentBrief,
)
from app.services.borrow_service import borrow_record_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_borrow_record(
    data: BorrowRecordCreate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Lend copies to a reader, fulfilling the listed approved requests"""
    record, fulfilled = await borrow_record_service.create_record(db, data, current_user)
    return envelope(
        BorrowRecordCreateResponse(
            borrow_record=BorrowRecordResponse.model_validate(record),
            requests=fulfilled,
        ),
        message="Borrow record created successfully",
        status_code=201,
    )


@router.get("")
async def list_my_borrow_records(
    params: PaginationParams = Depends(pagination_params),
    status_filter: Optional[BorrowStatus] = Query(None, alias="status"),
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    records, pagination = await borrow_record_service.list_mine(db, current_user.id, params, status_filter)
    return success_response({
        "borrow_records": [BorrowRecordResponse.model_validate(r) for r in records],
        "pagination": pagination,
    })


@router.get("/all")
async def list_all_borrow_records(
    params: PaginationParams = Depends(pagination_params),
    status_filter: Optional[BorrowStatus] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None),
    overdue: bool = Query(False),
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Every loan; overdue=true keeps open loans past their due date (librarian)"""
    records, pagination = await borrow_record_service.list_all(db, params, status_filter, user_id, overdue)
    return success_response({
        "borrow_records": [BorrowRecordResponse.model_validate(r) for r in records],
        "pagination": pagination,
    })


@router.get("/{record_id}")
async def get_borrow_record(
    record_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    record = await borrow_record_service.get_for_actor(db, parse_id(record_id, "borrow record id"), current_user)
    return success_response(BorrowRecordResponse.model_validate(record))


@router.post("/{record_id}/renew")
async def renew_borrow_record(
    record_id: int,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    record = await borrow_record_service.renew(db, parse_id(record_id, "borrow record id"), current_user)
    return success_response(BorrowRecordResponse.model_validate(record), message="Borrow record renewed successfully")


@router.post("/{record_id}/return")
async def return_borrow_record(
    data: BorrowRecordReturn,
    record_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Check in a loan, recording violations and releasing copies to the hold queue"""
    record, processed, payments = await borrow_record_service.return_record(
        db, parse_id(record_id, "borrow record id"), data, current_user
    )
    return success_response(
        BorrowRecordReturnResponse(
            borrow_record=BorrowRecordResponse.model_validate(record),
            processed_books=processed,
            payments=[RecordPaymentBrief.model_validate(p) for p in payments],
        ),
        message="Books returned successfully",
    )


@router.post("/{record_id}/return-ebook")
async def return_ebook(
    record_id: int,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    record = await borrow_record_service.return_ebook(db, parse_id(record_id, "borrow record id"), current_user)
    return success_response(BorrowRecordResponse.model_validate(record), message="Ebook returned successfully")
