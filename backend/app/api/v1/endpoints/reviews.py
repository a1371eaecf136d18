from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_reader
from app.schemas.review import ReviewCreate, ReviewUpdate, ReviewResponse, ReviewStats
from app.services.review_service import review_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.get("")
async def list_reviews(
    params: PaginationParams = Depends(pagination_params),
    book_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    reviews, pagination = await review_service.list_reviews(db, params, book_id)
    return success_response({
        "reviews": [ReviewResponse.model_validate(r) for r in reviews],
        "pagination": pagination,
    })


@router.get("/stats/{book_id}")
async def get_review_stats(book_id: int, db: AsyncSession = Depends(get_db)):
    """Rating summary and 5..1 distribution for a book"""
    stats = await review_service.stats(db, parse_id(book_id, "book id"))
    return success_response(ReviewStats(**stats))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(
    data: ReviewCreate,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    review = await review_service.create_review(db, current_user, data)
    return envelope(ReviewResponse.model_validate(review), message="Review created successfully", status_code=201)


@router.put("/{review_id}")
async def update_review(
    review_id: int,
    data: ReviewUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    review = await review_service.update_review(db, parse_id(review_id, "review id"), current_user, data)
    return success_response(ReviewResponse.model_validate(review), message="Review updated successfully")


@router.delete("/{review_id}")
async def delete_review(
    review_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await review_service.delete_review(db, parse_id(review_id, "review id"), current_user)
    return success_response(message="Review deleted successfully")
