"""
Database Seed Data Module

Reference data every deployment needs (fee policies, the first admin account)
plus an optional sample catalog for local development.
Run with: python -m app.db.seed_data [sample|clear]
"""
import asyncio
from datetime import date
from typing import List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import AsyncSessionLocal, init_db
from app.core.logging_config import logger
from app.core.security import get_password_hash
from app.models.catalog import Author, Category, Book, BookItem, BookType, ItemCondition, ItemStatus
from app.models.payment import Policy, PolicyUnit
from app.models.user import User, Role, UserStatus


# ==================== Reference Data ====================

DEFAULT_POLICIES = [
    {"id": "LOST_BOOK", "name": "Lost book (percent of book price)", "amount": 100, "unit": PolicyUnit.FIXED},
    {"id": "DAMAGED_BOOK", "name": "Damaged book (percent of book price)", "amount": 100, "unit": PolicyUnit.FIXED},
    {"id": "WORN_BOOK", "name": "Worn book (percent of book price)", "amount": 50, "unit": PolicyUnit.FIXED},
    {"id": "LATE_RETURN", "name": "Late return (per day)", "amount": 10000, "unit": PolicyUnit.PER_DAY},
    {"id": "LATE_PAYMENT", "name": "Late payment (per day)", "amount": 5000, "unit": PolicyUnit.PER_DAY},
]

SAMPLE_AUTHORS = [
    {"full_name": "Nguyen Nhat Anh", "nationality": "Vietnamese"},
    {"full_name": "George Orwell", "nationality": "British"},
    {"full_name": "Haruki Murakami", "nationality": "Japanese"},
]

SAMPLE_CATEGORIES = [
    {"name": "Fiction", "description": "Novels and short stories"},
    {"name": "Classics", "description": "Enduring works of literature"},
    {"name": "Young Adult", "description": "Books for teenage readers"},
]

SAMPLE_BOOKS = [
    {"title": "Toi thay hoa vang tren co xanh", "author": 0, "categories": [0, 2], "price": 120000, "publish_year": 2010},
    {"title": "Nineteen Eighty-Four", "author": 1, "categories": [0, 1], "price": 150000, "publish_year": 1949},
    {"title": "Animal Farm", "author": 1, "categories": [0, 1], "price": 90000, "publish_year": 1945},
    {"title": "Norwegian Wood", "author": 2, "categories": [0], "price": 180000, "publish_year": 1987},
]


# ==================== Seed Functions ====================

async def seed_policies(db: AsyncSession) -> int:
    """Insert missing default policies; existing ones are left untouched"""
    created = 0
    for data in DEFAULT_POLICIES:
        if await db.get(Policy, data["id"]):
            continue
        db.add(Policy(**data))
        created += 1
    await db.flush()
    if created:
        logger.info(f"[Seed] Created {created} default policies")
    return created


async def seed_admin(db: AsyncSession) -> bool:
    """Create the first admin from DEFAULT_ADMIN_* settings when configured"""
    if not settings.DEFAULT_ADMIN_EMAIL or not settings.DEFAULT_ADMIN_PASSWORD:
        return False

    email = settings.DEFAULT_ADMIN_EMAIL.lower()
    existing = (await db.execute(select(User.id).where(User.email == email))).scalar_one_or_none()
    if existing:
        return False

    db.add(User(
        email=email,
        full_name=settings.DEFAULT_ADMIN_FULLNAME or "Administrator",
        password_hash=get_password_hash(settings.DEFAULT_ADMIN_PASSWORD),
        role=Role.ADMIN,
        status=UserStatus.ACTIVE,
    ))
    await db.flush()
    logger.info(f"[Seed] Created default admin {email}")
    return True


async def seed_sample_catalog(db: AsyncSession) -> List[Book]:
    """A few authors, categories, books and copies for local development"""
    authors = [Author(**data) for data in SAMPLE_AUTHORS]
    categories = [Category(**data) for data in SAMPLE_CATEGORIES]
    db.add_all(authors + categories)
    await db.flush()

    books = []
    for index, data in enumerate(SAMPLE_BOOKS):
        book = Book(
            title=data["title"],
            author_id=authors[data["author"]].id,
            price=data["price"],
            publish_year=data["publish_year"],
            type=BookType.PRINT,
        )
        book.categories = [categories[i] for i in data["categories"]]
        db.add(book)
        await db.flush()
        for copy in range(1, 4):
            db.add(BookItem(
                book_id=book.id,
                code=f"BK{book.id:04d}-{copy:02d}",
                condition=ItemCondition.NEW,
                status=ItemStatus.AVAILABLE,
                acquisition_date=date.today(),
            ))
        books.append(book)

    await db.flush()
    logger.info(f"[Seed] Created {len(books)} sample books")
    return books


# ==================== Main Seed Functions ====================

async def seed_reference_data(db: AsyncSession) -> None:
    """Idempotent seeding run on application startup"""
    await seed_policies(db)
    await seed_admin(db)
    await db.commit()


async def seed_all(sample: bool = False):
    """Seed reference data, optionally with the sample catalog"""
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            await seed_policies(db)
            await seed_admin(db)
            if sample:
                await seed_sample_catalog(db)
            await db.commit()
            print("Database seeding completed successfully!")
        except Exception as e:
            await db.rollback()
            print(f"Error seeding database: {e}")
            raise


async def clear_all():
    """Clear all catalog and borrowing data, keeping users and policies"""
    from app.models import (
        Payment, BorrowBook, BorrowEbook, BorrowRecord, BorrowRequestItem, BorrowRequest,
        Review, FavoriteBook, DigitalLicense, BookEdition,
    )
    from app.models.catalog import book_categories

    print("Clearing catalog data...")
    async with AsyncSessionLocal() as db:
        # Reverse order of dependencies
        for model in (
            Payment, BorrowBook, BorrowEbook, BorrowRecord, BorrowRequestItem, BorrowRequest,
            Review, FavoriteBook, DigitalLicense, BookEdition, BookItem,
        ):
            await db.execute(delete(model))
        await db.execute(book_categories.delete())
        await db.execute(delete(Book))
        await db.execute(delete(Category))
        await db.execute(delete(Author))
        await db.commit()
        print("Catalog data cleared!")


if __name__ == "__main__":
    import sys

    if len(sys.argv) > 1 and sys.argv[1] == "clear":
        asyncio.run(clear_all())
    else:
        asyncio.run(seed_all(sample=len(sys.argv) > 1 and sys.argv[1] == "sample"))
