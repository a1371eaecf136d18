"""
Books API

Catalog browsing is public; writes require a librarian or admin.
Digital licenses are nested under their book for listing and creation.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.catalog import BookType
from app.models.user import User
from app.modules.auth.dependencies import require_librarian
from app.schemas.catalog import (
    BookCreate,
    BookUpdate,
    BookBrief,
    DigitalLicenseCreate,
    DigitalLicenseResponse,
)
from app.services.catalog_service import book_service
from app.services.inventory_service import digital_license_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.get("")
async def list_books(
    params: PaginationParams = Depends(pagination_params),
    author_id: Optional[int] = Query(None),
    category_id: Optional[int] = Query(None),
    type: Optional[BookType] = Query(None),
    publish_year: Optional[int] = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db)
):
    """List books with availability counts"""
    books, pagination = await book_service.list_books(
        db, params, author_id, category_id, type, publish_year, sort_by, sort_order
    )
    return success_response({
        "books": await book_service.to_list_responses(db, books),
        "pagination": pagination,
    })


@router.get("/all")
async def list_all_books(db: AsyncSession = Depends(get_db)):
    books = await book_service.list_all(db)
    return success_response({"books": [BookBrief.model_validate(b) for b in books]})


@router.get("/{book_id}")
async def get_book(book_id: int, db: AsyncSession = Depends(get_db)):
    """Book detail with availability and rating summary"""
    book = await book_service.get_book(db, parse_id(book_id, "book id"))
    return success_response(await book_service.to_detail_response(db, book))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_book(
    data: BookCreate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    book = await book_service.create_book(db, data)
    return envelope(
        await book_service.to_detail_response(db, book),
        message="Book created successfully",
        status_code=201,
    )


@router.put("/{book_id}")
async def update_book(
    book_id: int,
    data: BookUpdate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    book = await book_service.update_book(db, parse_id(book_id, "book id"), data)
    return success_response(await book_service.to_detail_response(db, book), message="Book updated successfully")


@router.delete("/{book_id}")
async def delete_book(
    book_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    await book_service.delete_book(db, parse_id(book_id, "book id"))
    return success_response(message="Book deleted successfully")


@router.get("/{book_id}/digital-licenses")
async def list_book_licenses(
    book_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    licenses = await digital_license_service.list_for_book(db, parse_id(book_id, "book id"))
    return success_response({"licenses": [DigitalLicenseResponse.model_validate(lic) for lic in licenses]})


@router.post("/{book_id}/digital-licenses", status_code=status.HTTP_201_CREATED)
async def create_book_license(
    book_id: int,
    data: DigitalLicenseCreate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    license = await digital_license_service.create_license(db, parse_id(book_id, "book id"), data)
    return envelope(
        DigitalLicenseResponse.model_validate(license),
        message="Digital license created successfully",
        status_code=201,
    )
