"""
Borrow Requests API

Readers request a book for a date range. A request is approved immediately
when a copy is free, otherwise it waits in the hold queue for that book.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.borrow import BorrowRequestStatus
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_librarian, require_reader
from app.schemas.borrow import (
    BorrowRequestCreate,
    BorrowRequestManage,
    BorrowRequestCancel,
    BorrowRequestCreateResponse,
)
from app.services.borrow_service import borrow_request_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.get("")
async def list_my_borrow_requests(
    params: PaginationParams = Depends(pagination_params),
    status_filter: Optional[BorrowRequestStatus] = Query(None, alias="status"),
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    """The caller's own requests, with queue positions for pending items"""
    requests, pagination = await borrow_request_service.list_mine(db, current_user.id, params, status_filter)
    return success_response({
        "borrow_requests": await borrow_request_service.to_responses(db, requests),
        "pagination": pagination,
    })


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_borrow_request(
    data: BorrowRequestCreate,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    request, position, message = await borrow_request_service.create_request(db, current_user, data)
    return envelope(
        BorrowRequestCreateResponse(
            borrow_request=await borrow_request_service.to_response(db, request),
            queue_position=position,
            message=message,
        ),
        message=message,
        status_code=201,
    )


@router.get("/all")
async def list_all_borrow_requests(
    params: PaginationParams = Depends(pagination_params),
    status_filter: Optional[BorrowRequestStatus] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Every request, searchable by reader name, email or book title (librarian)"""
    requests, pagination = await borrow_request_service.list_all(db, params, status_filter, user_id)
    return success_response({
        "borrow_requests": await borrow_request_service.to_responses(db, requests),
        "pagination": pagination,
    })


@router.get("/{request_id}")
async def get_borrow_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    request = await borrow_request_service.get_for_actor(db, parse_id(request_id, "borrow request id"), current_user)
    return success_response(await borrow_request_service.to_response(db, request))


@router.put("/{request_id}/manage")
async def manage_borrow_request(
    request_id: int,
    data: BorrowRequestManage,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Approve or reject a request (librarian)"""
    request = await borrow_request_service.manage(
        db, parse_id(request_id, "borrow request id"), data.status, current_user
    )
    return success_response(
        await borrow_request_service.to_response(db, request),
        message=f"Borrow request {request.status.value.lower()}",
    )


@router.put("/{request_id}")
async def cancel_borrow_request(
    request_id: int,
    data: BorrowRequestCancel,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    """Cancel the caller's own pending or approved request"""
    request = await borrow_request_service.cancel(
        db, parse_id(request_id, "borrow request id"), data.status, current_user
    )
    return success_response(
        await borrow_request_service.to_response(db, request),
        message="Borrow request cancelled",
    )
