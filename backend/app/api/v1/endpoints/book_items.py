from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.catalog import ItemStatus, ItemCondition
from app.models.user import User
from app.modules.auth.dependencies import require_librarian
from app.schemas.catalog import BookItemCreate, BookItemUpdate, BookItemResponse
from app.services.inventory_service import book_item_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.get("")
async def list_book_items(
    params: PaginationParams = Depends(pagination_params),
    book_id: Optional[int] = Query(None),
    status_filter: Optional[ItemStatus] = Query(None, alias="status"),
    condition: Optional[ItemCondition] = Query(None),
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """List physical copies (librarian)"""
    items, pagination = await book_item_service.list_items(db, params, book_id, status_filter, condition)
    return success_response({
        "book_items": [BookItemResponse.model_validate(i) for i in items],
        "pagination": pagination,
    })


@router.get("/{item_id}")
async def get_book_item(
    item_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    item = await book_item_service.get_item(db, parse_id(item_id, "book item id"))
    return success_response(BookItemResponse.model_validate(item))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_book_item(
    data: BookItemCreate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    item = await book_item_service.create_item(db, data)
    return envelope(BookItemResponse.model_validate(item), message="Book item created successfully", status_code=201)


@router.put("/{item_id}")
async def update_book_item(
    item_id: int,
    data: BookItemUpdate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    item = await book_item_service.update_item(db, parse_id(item_id, "book item id"), data)
    return success_response(BookItemResponse.model_validate(item), message="Book item updated successfully")


@router.delete("/{item_id}")
async def delete_book_item(
    item_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete a copy that is not currently on loan"""
    await book_item_service.delete_item(db, parse_id(item_id, "book item id"))
    return success_response(message="Book item deleted successfully")
