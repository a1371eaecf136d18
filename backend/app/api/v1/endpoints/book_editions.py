"""
Book Editions API

Editions are created and updated with multipart form data so the ebook or
audio file can be uploaded in the same request.
"""
from fastapi import APIRouter, Depends, Query, UploadFile, File, Form, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.catalog import EditionFormat, FileFormat, DRMType, EditionStatus
from app.models.user import User
from app.modules.auth.dependencies import require_librarian
from app.schemas.catalog import BookEditionResponse, BulkEditionDeleteResponse
from app.schemas.user import BulkDeleteRequest
from app.services.inventory_service import book_edition_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


async def _read_upload(file: Optional[UploadFile]):
    if file is None or not file.filename:
        return None, None
    return await file.read(), file.filename


@router.get("")
async def list_book_editions(
    params: PaginationParams = Depends(pagination_params),
    book_id: Optional[int] = Query(None),
    format: Optional[EditionFormat] = Query(None),
    file_format: Optional[FileFormat] = Query(None),
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    editions, pagination = await book_edition_service.list_editions(db, params, book_id, format, file_format)
    return success_response({
        "book_editions": [BookEditionResponse.model_validate(e) for e in editions],
        "pagination": pagination,
    })


@router.get("/{edition_id}")
async def get_book_edition(
    edition_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    edition = await book_edition_service.get_edition(db, parse_id(edition_id, "edition id"))
    return success_response(BookEditionResponse.model_validate(edition))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_book_edition(
    book_id: int = Form(..., gt=0),
    format: EditionFormat = Form(EditionFormat.EBOOK),
    isbn13: Optional[str] = Form(None, max_length=20),
    file_format: Optional[FileFormat] = Form(None),
    drm_type: DRMType = Form(DRMType.NONE),
    status_value: EditionStatus = Form(EditionStatus.ACTIVE, alias="status"),
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Create an edition, storing the uploaded file when one is attached"""
    content, filename = await _read_upload(file)
    edition = await book_edition_service.create_edition(
        db,
        {
            "book_id": book_id,
            "format": format,
            "isbn13": isbn13,
            "file_format": file_format,
            "drm_type": drm_type,
            "status": status_value,
        },
        content,
        filename,
    )
    return envelope(
        BookEditionResponse.model_validate(edition),
        message="Book edition created successfully",
        status_code=201,
    )


@router.put("/{edition_id}")
async def update_book_edition(
    edition_id: int,
    book_id: Optional[int] = Form(None, gt=0),
    format: Optional[EditionFormat] = Form(None),
    isbn13: Optional[str] = Form(None, max_length=20),
    file_format: Optional[FileFormat] = Form(None),
    drm_type: Optional[DRMType] = Form(None),
    status_value: Optional[EditionStatus] = Form(None, alias="status"),
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Update an edition; a new file replaces and removes the old one"""
    content, filename = await _read_upload(file)
    edition = await book_edition_service.update_edition(
        db,
        parse_id(edition_id, "edition id"),
        {
            "book_id": book_id,
            "format": format,
            "isbn13": isbn13,
            "file_format": file_format,
            "drm_type": drm_type,
            "status": status_value,
        },
        content,
        filename,
    )
    return success_response(BookEditionResponse.model_validate(edition), message="Book edition updated successfully")


@router.delete("/{edition_id}")
async def delete_book_edition(
    edition_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    await book_edition_service.delete_edition(db, parse_id(edition_id, "edition id"))
    return success_response(message="Book edition deleted successfully")


@router.post("/bulk-delete")
async def bulk_delete_book_editions(
    data: BulkDeleteRequest,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete several editions and remove their stored files"""
    deleted, files_deleted = await book_edition_service.bulk_delete(db, data.ids)
    return success_response(
        BulkEditionDeleteResponse(deleted_count=len(deleted), deleted_ids=deleted, files_deleted=files_deleted),
        message=f"Deleted {len(deleted)} edition(s)",
    )
