"""
Ebooks API

Ebook loans are fulfilled immediately. Reading goes through a one-hour signed
URL; the file route checks the token and the loan on every access.
"""
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.borrow import BorrowRequestStatus
from app.models.user import User
from app.modules.auth.dependencies import require_reader
from app.schemas.borrow import (
    EbookBorrowCreate,
    EbookBorrowResponse,
    EbookViewResponse,
    BorrowRecordResponse,
)
from app.services.borrow_service import borrow_request_service
from app.services.ebook_service import ebook_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.post("/ebook-borrow-requests", status_code=status.HTTP_201_CREATED)
async def borrow_ebook(
    data: EbookBorrowCreate,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    record, request = await ebook_service.borrow(db, current_user, data)
    return envelope(
        EbookBorrowResponse(
            borrow_record=BorrowRecordResponse.model_validate(record),
            borrow_request=await borrow_request_service.to_response(db, request),
        ),
        message="Ebook borrowed successfully",
        status_code=201,
    )


@router.get("/ebook-borrow-requests")
async def list_ebook_requests(
    params: PaginationParams = Depends(pagination_params),
    status_filter: Optional[BorrowRequestStatus] = Query(None, alias="status"),
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    requests, pagination = await ebook_service.list_requests(db, current_user.id, params, status_filter)
    return success_response({
        "borrow_requests": await borrow_request_service.to_responses(db, requests),
        "pagination": pagination,
    })


@router.get("/my-ebooks")
async def my_ebooks(
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    """Ebooks the caller can read right now"""
    return success_response({"ebooks": await ebook_service.my_ebooks(db, current_user.id)})


@router.get("/ebooks/{book_id}/view")
async def get_ebook_view_url(
    book_id: int,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    view_url, expires_at = await ebook_service.create_view_url(db, current_user, parse_id(book_id, "book id"))
    return success_response(EbookViewResponse(view_url=view_url, expires_at=expires_at))


@router.get("/ebooks/{book_id}/file")
async def get_ebook_file(
    book_id: int,
    token: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Stream the PDF inline to the holder of a valid access token"""
    ebook = await ebook_service.open_file(db, parse_id(book_id, "book id"), token)
    return FileResponse(
        path=str(ebook.path),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'inline; filename="{ebook.filename}"',
            "Cache-Control": "no-store, no-cache, must-revalidate",
            "X-Content-Type-Options": "nosniff",
        },
    )
