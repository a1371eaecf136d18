"""
Catalog Service - authors, categories and books

Handles:
- CRUD with soft deletion for authors, categories and books
- Book search, filtering and sorting
- Per-book availability, ebook and rating summaries
"""

from typing import Optional, List, Tuple, Dict, Iterable

from sqlalchemy import select, func, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging_config import logger
from app.models.catalog import (
    Author, Category, Book, BookType, BookItem, ItemStatus, BookEdition, FileFormat, book_categories,
)
from app.models.review import Review
from app.schemas.catalog import (
    AuthorCreate, AuthorUpdate, CategoryCreate, CategoryUpdate, BookCreate, BookUpdate, BookResponse,
)
from app.utils.pagination import PaginationParams, paginate

BOOK_SORT_FIELDS = {
    "title": Book.title,
    "publish_year": Book.publish_year,
    "type": Book.type,
    "page_count": Book.page_count,
    "price": Book.price,
    "created_at": Book.created_at,
}


def _order(column, sort_order: str):
    return column.asc() if sort_order == "asc" else column.desc()


class AuthorService:
    """Service for managing authors"""

    async def list_authors(
        self, db: AsyncSession, params: PaginationParams, sort_by: str = "created_at", sort_order: str = "desc"
    ) -> Tuple[List[Author], Dict[str, int]]:
        query = select(Author).where(Author.is_deleted == False)  # noqa: E712
        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(or_(Author.full_name.ilike(pattern), Author.nationality.ilike(pattern)))
        column = {"full_name": Author.full_name, "nationality": Author.nationality}.get(sort_by, Author.created_at)
        return await paginate(db, query.order_by(_order(column, sort_order), Author.id.desc()), params)

    async def list_all(self, db: AsyncSession) -> List[Author]:
        result = await db.execute(
            select(Author).where(Author.is_deleted == False).order_by(Author.full_name)  # noqa: E712
        )
        return list(result.scalars().all())

    async def get_author(self, db: AsyncSession, author_id: int) -> Author:
        author = await db.get(Author, author_id)
        if not author or author.is_deleted:
            raise NotFoundError("Author not found")
        return author

    async def create_author(self, db: AsyncSession, data: AuthorCreate) -> Author:
        author = Author(**data.model_dump())
        db.add(author)
        await db.commit()
        await db.refresh(author)
        logger.info(f"[Catalog] Created author {author.id} {author.full_name}")
        return author

    async def update_author(self, db: AsyncSession, author_id: int, data: AuthorUpdate) -> Author:
        author = await self.get_author(db, author_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "full_name" and value is None:
                continue
            setattr(author, field, value)
        await db.commit()
        await db.refresh(author)
        return author

    async def delete_author(self, db: AsyncSession, author_id: int) -> None:
        author = await self.get_author(db, author_id)
        book_count = (await db.execute(
            select(func.count(Book.id)).where(Book.author_id == author_id, Book.is_deleted == False)  # noqa: E712
        )).scalar() or 0
        if book_count:
            raise ConflictError(
                f"Cannot delete author with {book_count} book(s). Delete or reassign the books first.",
                code="AUTHOR_HAS_BOOKS",
            )
        author.is_deleted = True
        await db.commit()
        logger.info(f"[Catalog] Soft-deleted author {author_id}")


class CategoryService:
    """Service for managing categories"""

    async def list_categories(
        self, db: AsyncSession, params: PaginationParams, sort_by: str = "created_at", sort_order: str = "desc"
    ) -> Tuple[List[Category], Dict[str, int]]:
        query = select(Category).where(Category.is_deleted == False)  # noqa: E712
        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(or_(Category.name.ilike(pattern), Category.description.ilike(pattern)))
        column = Category.name if sort_by == "name" else Category.created_at
        return await paginate(db, query.order_by(_order(column, sort_order), Category.id.desc()), params)

    async def list_all(self, db: AsyncSession) -> List[Category]:
        result = await db.execute(
            select(Category).where(Category.is_deleted == False).order_by(Category.name)  # noqa: E712
        )
        return list(result.scalars().all())

    async def get_category(self, db: AsyncSession, category_id: int) -> Category:
        category = await db.get(Category, category_id)
        if not category or category.is_deleted:
            raise NotFoundError("Category not found")
        return category

    async def _ensure_name_free(self, db: AsyncSession, name: str, exclude_id: Optional[int] = None):
        query = select(Category.id).where(
            func.lower(Category.name) == name.lower(),
            Category.is_deleted == False,  # noqa: E712
        )
        if exclude_id:
            query = query.where(Category.id != exclude_id)
        if (await db.execute(query)).first():
            raise ConflictError("Category name already exists", code="CATEGORY_EXISTS")

    async def create_category(self, db: AsyncSession, data: CategoryCreate) -> Category:
        await self._ensure_name_free(db, data.name)
        category = Category(**data.model_dump())
        db.add(category)
        await db.commit()
        await db.refresh(category)
        return category

    async def update_category(self, db: AsyncSession, category_id: int, data: CategoryUpdate) -> Category:
        category = await self.get_category(db, category_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name"):
            await self._ensure_name_free(db, changes["name"], exclude_id=category_id)
        for field, value in changes.items():
            if field == "name" and value is None:
                continue
            setattr(category, field, value)
        await db.commit()
        await db.refresh(category)
        return category

    async def delete_category(self, db: AsyncSession, category_id: int) -> None:
        category = await self.get_category(db, category_id)
        category.is_deleted = True
        await db.commit()


class BookService:
    """Service for managing books"""

    async def _load(self, db: AsyncSession, book_id: int) -> Optional[Book]:
        result = await db.execute(
            select(Book).where(Book.id == book_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_book(self, db: AsyncSession, book_id: int) -> Book:
        book = await self._load(db, book_id)
        if not book or book.is_deleted:
            raise NotFoundError("Book not found")
        return book

    async def _validate_refs(self, db: AsyncSession, author_id: Optional[int], category_ids: Optional[List[int]]):
        if author_id is not None:
            author = await db.get(Author, author_id)
            if not author or author.is_deleted:
                raise NotFoundError("Author not found")

        categories: List[Category] = []
        if category_ids:
            unique_ids = list(dict.fromkeys(category_ids))
            result = await db.execute(
                select(Category).where(Category.id.in_(unique_ids), Category.is_deleted == False)  # noqa: E712
            )
            categories = list(result.scalars().all())
            missing = sorted(set(unique_ids) - {c.id for c in categories})
            if missing:
                raise ValidationError(
                    f"Categories not found: {', '.join(str(i) for i in missing)}",
                    field="category_ids",
                )
        return categories

    async def list_books(
        self,
        db: AsyncSession,
        params: PaginationParams,
        author_id: Optional[int] = None,
        category_id: Optional[int] = None,
        type: Optional[BookType] = None,
        publish_year: Optional[int] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[Book], Dict[str, int]]:
        query = select(Book).where(Book.is_deleted == False)  # noqa: E712
        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(or_(
                Book.title.ilike(pattern),
                Book.isbn.ilike(pattern),
                Book.publisher.ilike(pattern),
                Book.description.ilike(pattern),
            ))
        if author_id:
            query = query.where(Book.author_id == author_id)
        if category_id:
            query = query.where(Book.id.in_(
                select(book_categories.c.book_id).where(book_categories.c.category_id == category_id)
            ))
        if type:
            query = query.where(Book.type == type)
        if publish_year:
            query = query.where(Book.publish_year == publish_year)

        column = BOOK_SORT_FIELDS.get(sort_by, Book.created_at)
        return await paginate(db, query.order_by(_order(column, sort_order), Book.id.desc()), params)

    async def list_all(self, db: AsyncSession) -> List[Book]:
        result = await db.execute(
            select(Book).where(Book.is_deleted == False).order_by(Book.title)  # noqa: E712
        )
        return list(result.scalars().all())

    async def item_counts(self, db: AsyncSession, book_ids: Iterable[int]) -> Dict[int, Tuple[int, int]]:
        """book_id -> (available items, total items)"""
        ids = list(book_ids)
        if not ids:
            return {}
        rows = (await db.execute(
            select(
                BookItem.book_id,
                func.sum(case((BookItem.status == ItemStatus.AVAILABLE, 1), else_=0)),
                func.count(BookItem.id),
            )
            .where(BookItem.book_id.in_(ids), BookItem.is_deleted == False)  # noqa: E712
            .group_by(BookItem.book_id)
        )).all()
        return {book_id: (int(available or 0), int(total or 0)) for book_id, available, total in rows}

    async def books_with_ebook(self, db: AsyncSession, book_ids: Iterable[int]) -> set:
        ids = list(book_ids)
        if not ids:
            return set()
        rows = (await db.execute(
            select(BookEdition.book_id)
            .where(
                BookEdition.book_id.in_(ids),
                BookEdition.file_format == FileFormat.PDF,
                BookEdition.is_deleted == False,  # noqa: E712
            )
            .distinct()
        )).scalars().all()
        return set(rows)

    async def rating_summary(self, db: AsyncSession, book_id: int) -> Tuple[float, int]:
        avg, count = (await db.execute(
            select(func.avg(Review.rating), func.count(Review.id))
            .where(Review.book_id == book_id, Review.is_deleted == False)  # noqa: E712
        )).one()
        return (round(float(avg), 1) if avg is not None else 0.0), int(count or 0)

    async def to_list_responses(self, db: AsyncSession, books: List[Book]) -> List[BookResponse]:
        ids = [b.id for b in books]
        counts = await self.item_counts(db, ids)
        ebooks = await self.books_with_ebook(db, ids)
        responses = []
        for book in books:
            available, total = counts.get(book.id, (0, 0))
            responses.append(BookResponse.model_validate(book).model_copy(update={
                "available_count": available,
                "total_items": total,
                "has_ebook": book.id in ebooks,
            }))
        return responses

    async def to_detail_response(self, db: AsyncSession, book: Book) -> BookResponse:
        available, total = (await self.item_counts(db, [book.id])).get(book.id, (0, 0))
        average, review_count = await self.rating_summary(db, book.id)
        has_ebook = book.id in await self.books_with_ebook(db, [book.id])
        return BookResponse.model_validate(book).model_copy(update={
            "available_count": available,
            "total_items": total,
            "has_ebook": has_ebook,
            "average_rating": average,
            "review_count": review_count,
        })

    async def create_book(self, db: AsyncSession, data: BookCreate) -> Book:
        categories = await self._validate_refs(db, data.author_id, data.category_ids)
        book = Book(**data.model_dump(exclude={"category_ids"}))
        book.categories = categories
        db.add(book)
        await db.commit()
        logger.info(f"[Catalog] Created book {book.id} {book.title}")
        return await self.get_book(db, book.id)

    async def update_book(self, db: AsyncSession, book_id: int, data: BookUpdate) -> Book:
        book = await self.get_book(db, book_id)
        changes = data.model_dump(exclude_unset=True)
        category_ids = changes.pop("category_ids", None)
        categories = await self._validate_refs(db, changes.get("author_id"), category_ids)

        for field, value in changes.items():
            if value is None and field in ("author_id", "title", "type"):
                continue
            setattr(book, field, value)
        if category_ids is not None:
            book.categories = categories

        await db.commit()
        return await self.get_book(db, book_id)

    async def delete_book(self, db: AsyncSession, book_id: int) -> None:
        book = await self.get_book(db, book_id)
        book.is_deleted = True
        await db.commit()
        logger.info(f"[Catalog] Soft-deleted book {book_id}")


# Singleton instances
author_service = AuthorService()
category_service = CategoryService()
book_service = BookService()
