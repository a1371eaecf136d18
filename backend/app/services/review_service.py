"""
Review Service - book ratings and reader favorites
"""

from datetime import datetime
from typing import Optional, List, Tuple, Dict

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.core.logging_config import logger
from app.models.catalog import Book
from app.models.review import Review, FavoriteBook
from app.models.user import User
from app.modules.auth.dependencies import is_staff
from app.schemas.review import ReviewCreate, ReviewUpdate
from app.utils.pagination import PaginationParams, paginate


async def _require_book(db: AsyncSession, book_id: int) -> Book:
    book = await db.get(Book, book_id)
    if not book or book.is_deleted:
        raise NotFoundError("Book not found")
    return book


class ReviewService:
    """Service for book reviews"""

    async def list_reviews(
        self, db: AsyncSession, params: PaginationParams, book_id: Optional[int] = None
    ) -> Tuple[List[Review], Dict[str, int]]:
        query = select(Review).where(Review.is_deleted == False)  # noqa: E712
        if book_id:
            query = query.where(Review.book_id == book_id)
        if params.search:
            query = query.where(Review.review_text.ilike(f"%{params.search}%"))
        return await paginate(db, query.order_by(Review.review_date.desc(), Review.id.desc()), params)

    async def get_review(self, db: AsyncSession, review_id: int) -> Review:
        review = await db.get(Review, review_id)
        if not review or review.is_deleted:
            raise NotFoundError("Review not found")
        return review

    async def create_review(self, db: AsyncSession, user: User, data: ReviewCreate) -> Review:
        await _require_book(db, data.book_id)
        existing = (await db.execute(
            select(Review.id).where(
                Review.user_id == user.id,
                Review.book_id == data.book_id,
                Review.is_deleted == False,  # noqa: E712
            )
        )).first()
        if existing:
            raise ConflictError("You have already reviewed this book", code="REVIEW_EXISTS")

        review = Review(
            user_id=user.id,
            book_id=data.book_id,
            rating=data.rating,
            review_text=data.review_text,
            review_date=datetime.utcnow(),
        )
        db.add(review)
        await db.commit()
        await db.refresh(review)
        logger.info(f"[Reviews] User {user.id} rated book {data.book_id} with {data.rating}")
        return review

    async def update_review(self, db: AsyncSession, review_id: int, user: User, data: ReviewUpdate) -> Review:
        review = await self.get_review(db, review_id)
        if review.user_id != user.id:
            raise ForbiddenError("You can only edit your own reviews")
        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "rating" and value is None:
                continue
            setattr(review, field, value)
        review.review_date = datetime.utcnow()
        await db.commit()
        await db.refresh(review)
        return review

    async def delete_review(self, db: AsyncSession, review_id: int, actor: User) -> None:
        review = await self.get_review(db, review_id)
        if review.user_id != actor.id and not is_staff(actor):
            raise ForbiddenError("You can only delete your own reviews")
        review.is_deleted = True
        await db.commit()

    async def stats(self, db: AsyncSession, book_id: int) -> Dict:
        await _require_book(db, book_id)
        rows = (await db.execute(
            select(Review.rating, func.count(Review.id))
            .where(Review.book_id == book_id, Review.is_deleted == False)  # noqa: E712
            .group_by(Review.rating)
        )).all()
        counts = {rating: count for rating, count in rows}
        total = sum(counts.values())
        average = round(sum(r * c for r, c in counts.items()) / total, 1) if total else 0.0

        return {
            "total_reviews": total,
            "average_rating": average,
            "rating_distribution": [
                {
                    "rating": rating,
                    "count": counts.get(rating, 0),
                    "percentage": round(counts.get(rating, 0) * 100 / total, 1) if total else 0.0,
                }
                for rating in range(5, 0, -1)
            ],
        }


class FavoriteBookService:
    """Service for a reader's favorite books"""

    async def list_favorites(
        self, db: AsyncSession, user_id: int, params: PaginationParams
    ) -> Tuple[List[FavoriteBook], Dict[str, int]]:
        query = select(FavoriteBook).where(
            FavoriteBook.user_id == user_id,
            FavoriteBook.is_deleted == False,  # noqa: E712
        )
        if params.search:
            query = query.join(Book, Book.id == FavoriteBook.book_id).where(Book.title.ilike(f"%{params.search}%"))
        return await paginate(db, query.order_by(FavoriteBook.created_at.desc(), FavoriteBook.id.desc()), params)

    async def add_favorite(self, db: AsyncSession, user_id: int, book_id: int) -> Tuple[FavoriteBook, bool]:
        """Returns (favorite, created). Existing favorites are returned; soft-deleted ones are restored."""
        await _require_book(db, book_id)
        favorite = (await db.execute(
            select(FavoriteBook).where(FavoriteBook.user_id == user_id, FavoriteBook.book_id == book_id)
        )).scalar_one_or_none()

        if favorite and not favorite.is_deleted:
            return favorite, False

        created = favorite is None
        if favorite:
            favorite.is_deleted = False
            favorite.created_at = datetime.utcnow()
        else:
            favorite = FavoriteBook(user_id=user_id, book_id=book_id)
            db.add(favorite)
        await db.commit()
        await db.refresh(favorite)
        return favorite, created

    async def remove_favorite(self, db: AsyncSession, user_id: int, book_id: int) -> None:
        favorite = (await db.execute(
            select(FavoriteBook).where(
                FavoriteBook.user_id == user_id,
                FavoriteBook.book_id == book_id,
                FavoriteBook.is_deleted == False,  # noqa: E712
            )
        )).scalar_one_or_none()
        if not favorite:
            raise NotFoundError("Favorite book not found")
        favorite.is_deleted = True
        await db.commit()


# Singleton instances
review_service = ReviewService()
favorite_book_service = FavoriteBookService()
