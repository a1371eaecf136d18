from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import require_reader
from app.schemas.review import FavoriteBookCreate, FavoriteBookResponse
from app.services.review_service import favorite_book_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.get("")
async def list_favorite_books(
    params: PaginationParams = Depends(pagination_params),
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    favorites, pagination = await favorite_book_service.list_favorites(db, current_user.id, params)
    return success_response({
        "favorite_books": [FavoriteBookResponse.model_validate(f) for f in favorites],
        "pagination": pagination,
    })


@router.post("")
async def add_favorite_book(
    data: FavoriteBookCreate,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    """Add a favorite; 201 when newly created, 200 when it already existed or was restored"""
    favorite, created = await favorite_book_service.add_favorite(db, current_user.id, data.book_id)
    return envelope(
        FavoriteBookResponse.model_validate(favorite),
        message="Book added to favorites",
        status_code=201 if created else 200,
    )


@router.delete("")
async def remove_favorite_book(
    book_id: int = Query(...),
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    await favorite_book_service.remove_favorite(db, current_user.id, parse_id(book_id, "book id"))
    return success_response(message="Book removed from favorites")
