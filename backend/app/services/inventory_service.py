"""
Inventory Service - physical copies, digital editions and licenses

Handles:
- Book items (copies) with unique codes and circulation status
- Book editions with uploaded files (size and checksum computed on store)
- Digital licenses per book
"""

from pathlib import Path
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import select, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging_config import logger
from app.models.catalog import (
    Book, BookItem, ItemStatus, ItemCondition, BookEdition, EditionFormat, FileFormat,
    DigitalLicense,
)
from app.schemas.catalog import BookItemCreate, BookItemUpdate, DigitalLicenseCreate, DigitalLicenseUpdate
from app.services.storage_service import storage_service
from app.utils.pagination import PaginationParams, paginate

EXTENSION_FORMATS = {
    ".pdf": FileFormat.PDF,
    ".epub": FileFormat.EPUB,
    ".mobi": FileFormat.MOBI,
    ".mp3": FileFormat.AUDIO_MP3,
    ".m4b": FileFormat.AUDIO_M4B,
}


def infer_file_format(filename: Optional[str]) -> FileFormat:
    if not filename:
        return FileFormat.OTHER
    return EXTENSION_FORMATS.get(Path(filename).suffix.lower(), FileFormat.OTHER)


async def _require_book(db: AsyncSession, book_id: int) -> Book:
    book = await db.get(Book, book_id)
    if not book or book.is_deleted:
        raise NotFoundError("Book not found")
    return book


class BookItemService:
    """Service for managing physical copies"""

    async def list_items(
        self,
        db: AsyncSession,
        params: PaginationParams,
        book_id: Optional[int] = None,
        status: Optional[ItemStatus] = None,
        condition: Optional[ItemCondition] = None,
    ) -> Tuple[List[BookItem], Dict[str, int]]:
        query = select(BookItem).join(Book, Book.id == BookItem.book_id).where(
            BookItem.is_deleted == False  # noqa: E712
        )
        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(or_(BookItem.code.ilike(pattern), Book.title.ilike(pattern)))
        if book_id:
            query = query.where(BookItem.book_id == book_id)
        if status:
            query = query.where(BookItem.status == status)
        if condition:
            query = query.where(BookItem.condition == condition)
        return await paginate(db, query.order_by(BookItem.created_at.desc(), BookItem.id.desc()), params)

    async def get_item(self, db: AsyncSession, item_id: int) -> BookItem:
        result = await db.execute(
            select(BookItem).where(BookItem.id == item_id).execution_options(populate_existing=True)
        )
        item = result.scalar_one_or_none()
        if not item or item.is_deleted:
            raise NotFoundError("Book item not found")
        return item

    async def _ensure_code_free(self, db: AsyncSession, code: str, exclude_id: Optional[int] = None):
        query = select(BookItem.id).where(BookItem.code == code)
        if exclude_id:
            query = query.where(BookItem.id != exclude_id)
        if (await db.execute(query)).first():
            raise ConflictError(f"Book item code '{code}' already exists", code="ITEM_CODE_EXISTS")

    async def create_item(self, db: AsyncSession, data: BookItemCreate) -> BookItem:
        await _require_book(db, data.book_id)
        await self._ensure_code_free(db, data.code)
        item = BookItem(**data.model_dump())
        db.add(item)
        await db.commit()
        logger.info(f"[Inventory] Created item {item.code} for book {item.book_id}")
        return await self.get_item(db, item.id)

    async def update_item(self, db: AsyncSession, item_id: int, data: BookItemUpdate) -> BookItem:
        item = await self.get_item(db, item_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("book_id"):
            await _require_book(db, changes["book_id"])
        if changes.get("code") and changes["code"] != item.code:
            await self._ensure_code_free(db, changes["code"], exclude_id=item_id)
        for field, value in changes.items():
            if value is None and field in ("book_id", "code", "condition", "status"):
                continue
            setattr(item, field, value)
        await db.commit()
        return await self.get_item(db, item_id)

    async def delete_item(self, db: AsyncSession, item_id: int) -> None:
        item = await self.get_item(db, item_id)
        if item.status == ItemStatus.ON_BORROW:
            raise ConflictError("Cannot delete a book item that is currently borrowed", code="ITEM_ON_BORROW")
        item.is_deleted = True
        await db.commit()


class BookEditionService:
    """Service for managing digital editions and their files"""

    async def list_editions(
        self,
        db: AsyncSession,
        params: PaginationParams,
        book_id: Optional[int] = None,
        format: Optional[EditionFormat] = None,
        file_format: Optional[FileFormat] = None,
    ) -> Tuple[List[BookEdition], Dict[str, int]]:
        query = select(BookEdition).join(Book, Book.id == BookEdition.book_id).where(
            BookEdition.is_deleted == False  # noqa: E712
        )
        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(or_(Book.title.ilike(pattern), BookEdition.isbn13.ilike(pattern)))
        if book_id:
            query = query.where(BookEdition.book_id == book_id)
        if format:
            query = query.where(BookEdition.format == format)
        if file_format:
            query = query.where(BookEdition.file_format == file_format)
        return await paginate(db, query.order_by(BookEdition.created_at.desc(), BookEdition.id.desc()), params)

    async def get_edition(self, db: AsyncSession, edition_id: int) -> BookEdition:
        result = await db.execute(
            select(BookEdition).where(BookEdition.id == edition_id).execution_options(populate_existing=True)
        )
        edition = result.scalar_one_or_none()
        if not edition or edition.is_deleted:
            raise NotFoundError("Book edition not found")
        return edition

    async def _store_file(self, edition: BookEdition, content: bytes, filename: str) -> None:
        if len(content) > settings.MAX_EDITION_FILE_SIZE:
            raise ValidationError(
                f"File too large. Maximum size is {settings.MAX_EDITION_FILE_SIZE // 1024 // 1024}MB",
                field="file",
            )
        stored = await storage_service.save(content, filename, subdir="ebooks")
        edition.storage_url = stored.url
        edition.file_size_bytes = stored.size
        edition.checksum_sha256 = stored.checksum_sha256

    async def create_edition(
        self,
        db: AsyncSession,
        fields: Dict[str, Any],
        file_content: Optional[bytes] = None,
        filename: Optional[str] = None,
    ) -> BookEdition:
        await _require_book(db, fields["book_id"])

        if not fields.get("file_format"):
            fields["file_format"] = infer_file_format(filename)
        edition = BookEdition(**{k: v for k, v in fields.items() if v is not None})

        if file_content is not None:
            await self._store_file(edition, file_content, filename or "edition")

        db.add(edition)
        await db.commit()
        logger.info(f"[Inventory] Created edition {edition.id} ({edition.file_format.value}) for book {edition.book_id}")
        return await self.get_edition(db, edition.id)

    async def update_edition(
        self,
        db: AsyncSession,
        edition_id: int,
        fields: Dict[str, Any],
        file_content: Optional[bytes] = None,
        filename: Optional[str] = None,
    ) -> BookEdition:
        edition = await self.get_edition(db, edition_id)
        if fields.get("book_id"):
            await _require_book(db, fields["book_id"])

        for field, value in fields.items():
            if value is not None:
                setattr(edition, field, value)

        if file_content is not None:
            old_url = edition.storage_url
            if not fields.get("file_format"):
                edition.file_format = infer_file_format(filename)
            await self._store_file(edition, file_content, filename or "edition")
            await storage_service.delete_by_url(old_url)

        await db.commit()
        return await self.get_edition(db, edition_id)

    async def delete_edition(self, db: AsyncSession, edition_id: int) -> None:
        edition = await self.get_edition(db, edition_id)
        edition.is_deleted = True
        await db.commit()

    async def bulk_delete(self, db: AsyncSession, ids: List[int]) -> Tuple[List[int], int]:
        """Soft-delete editions and remove their files. Returns (deleted ids, files removed)."""
        result = await db.execute(
            select(BookEdition).where(BookEdition.id.in_(ids), BookEdition.is_deleted == False)  # noqa: E712
        )
        editions = list(result.scalars().all())
        files_deleted = 0
        for edition in editions:
            edition.is_deleted = True
            if await storage_service.delete_by_url(edition.storage_url):
                files_deleted += 1
        await db.commit()
        deleted_ids = sorted(e.id for e in editions)
        logger.info(f"[Inventory] Bulk-deleted {len(deleted_ids)} editions, {files_deleted} files removed")
        return deleted_ids, files_deleted


class DigitalLicenseService:
    """Service for managing digital licenses"""

    async def list_for_book(self, db: AsyncSession, book_id: int) -> List[DigitalLicense]:
        await _require_book(db, book_id)
        result = await db.execute(
            select(DigitalLicense)
            .where(DigitalLicense.book_id == book_id, DigitalLicense.is_deleted == False)  # noqa: E712
            .order_by(DigitalLicense.created_at.desc(), DigitalLicense.id.desc())
        )
        return list(result.scalars().all())

    async def get_license(self, db: AsyncSession, license_id: int) -> DigitalLicense:
        result = await db.execute(
            select(DigitalLicense).where(DigitalLicense.id == license_id).execution_options(populate_existing=True)
        )
        license = result.scalar_one_or_none()
        if not license or license.is_deleted:
            raise NotFoundError("Digital license not found")
        return license

    async def create_license(self, db: AsyncSession, book_id: int, data: DigitalLicenseCreate) -> DigitalLicense:
        await _require_book(db, book_id)
        license = DigitalLicense(book_id=book_id, **data.model_dump())
        db.add(license)
        await db.commit()
        return await self.get_license(db, license.id)

    async def update_license(self, db: AsyncSession, license_id: int, data: DigitalLicenseUpdate) -> DigitalLicense:
        license = await self.get_license(db, license_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "license_model" and value is None:
                continue
            setattr(license, field, value)
        await db.commit()
        return await self.get_license(db, license_id)

    async def delete_license(self, db: AsyncSession, license_id: int) -> None:
        license = await self.get_license(db, license_id)
        license.is_deleted = True
        await db.commit()

    async def bulk_delete(self, db: AsyncSession, ids: List[int]) -> List[int]:
        result = await db.execute(
            select(DigitalLicense.id).where(DigitalLicense.id.in_(ids), DigitalLicense.is_deleted == False)  # noqa: E712
        )
        existing = sorted(result.scalars().all())
        if existing:
            await db.execute(update(DigitalLicense).where(DigitalLicense.id.in_(existing)).values(is_deleted=True))
            await db.commit()
        return existing


# Singleton instances
book_item_service = BookItemService()
book_edition_service = BookEditionService()
digital_license_service = DigitalLicenseService()
