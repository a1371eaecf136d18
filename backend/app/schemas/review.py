from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from app.schemas.auth import UserBrief
from app.schemas.catalog import BookBrief


class ReviewCreate(BaseModel):
    book_id: int = Field(..., gt=0)
    rating: int = Field(..., ge=1, le=5)
    review_text: Optional[str] = Field(None, max_length=5000)


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    review_text: Optional[str] = Field(None, max_length=5000)


class ReviewResponse(BaseModel):
    id: int
    user_id: int
    book_id: int
    rating: int
    review_text: Optional[str] = None
    review_date: datetime
    user: Optional[UserBrief] = None

    class Config:
        from_attributes = True


class RatingBucket(BaseModel):
    rating: int
    count: int
    percentage: float


class ReviewStats(BaseModel):
    total_reviews: int
    average_rating: float
    rating_distribution: List[RatingBucket]


class FavoriteBookCreate(BaseModel):
    book_id: int = Field(..., gt=0)


class FavoriteBookResponse(BaseModel):
    id: int
    user_id: int
    book_id: int
    created_at: datetime
    book: Optional[BookBrief] = None

    class Config:
        from_attributes = True
