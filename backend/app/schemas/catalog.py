"""Schemas for authors, categories, books, copies, editions and licenses"""
from pydantic import AfterValidator, BaseModel, Field
from typing import Annotated, Optional, List
from datetime import date, datetime

from app.models.catalog import (
    BookType, ItemCondition, ItemStatus, EditionFormat, FileFormat,
    DRMType, EditionStatus, LicenseModel,
)


def _not_blank(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Field cannot be empty")
    return v


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


# ============================================
# Authors
# ============================================

class AuthorCreate(BaseModel):
    full_name: NonBlankStr = Field(..., max_length=255)
    bio: Optional[str] = None
    birth_date: Optional[date] = None
    nationality: Optional[str] = Field(None, max_length=100)


class AuthorUpdate(BaseModel):
    full_name: Optional[NonBlankStr] = Field(None, max_length=255)
    bio: Optional[str] = None
    birth_date: Optional[date] = None
    nationality: Optional[str] = Field(None, max_length=100)


class AuthorBrief(BaseModel):
    id: int
    full_name: str

    class Config:
        from_attributes = True


class AuthorResponse(AuthorBrief):
    bio: Optional[str] = None
    birth_date: Optional[date] = None
    nationality: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


# ============================================
# Categories
# ============================================

class CategoryCreate(BaseModel):
    name: NonBlankStr = Field(..., max_length=100)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[NonBlankStr] = Field(None, max_length=100)
    description: Optional[str] = None


class CategoryBrief(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class CategoryResponse(CategoryBrief):
    description: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


# ============================================
# Books
# ============================================

class BookCreate(BaseModel):
    author_id: int = Field(..., gt=0)
    title: NonBlankStr = Field(..., max_length=255)
    isbn: Optional[str] = Field(None, max_length=20)
    publish_year: Optional[int] = Field(None, ge=0, le=9999)
    publisher: Optional[str] = Field(None, max_length=255)
    page_count: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)
    edition: Optional[str] = Field(None, max_length=50)
    type: BookType = BookType.PRINT
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    category_ids: List[int] = []


class BookUpdate(BaseModel):
    author_id: Optional[int] = Field(None, gt=0)
    title: Optional[NonBlankStr] = Field(None, max_length=255)
    isbn: Optional[str] = Field(None, max_length=20)
    publish_year: Optional[int] = Field(None, ge=0, le=9999)
    publisher: Optional[str] = Field(None, max_length=255)
    page_count: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)
    edition: Optional[str] = Field(None, max_length=50)
    type: Optional[BookType] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    category_ids: Optional[List[int]] = None


class BookBrief(BaseModel):
    id: int
    title: str
    isbn: Optional[str] = None
    cover_image_url: Optional[str] = None
    type: BookType = BookType.PRINT
    price: Optional[float] = None
    author: Optional[AuthorBrief] = None

    class Config:
        from_attributes = True


class BookResponse(BookBrief):
    author_id: int
    publish_year: Optional[int] = None
    publisher: Optional[str] = None
    page_count: Optional[int] = None
    edition: Optional[str] = None
    description: Optional[str] = None
    categories: List[CategoryBrief] = []
    created_at: datetime
    updated_at: Optional[datetime] = None

    # Computed on read
    available_count: Optional[int] = None
    total_items: Optional[int] = None
    has_ebook: Optional[bool] = None
    average_rating: Optional[float] = None
    review_count: Optional[int] = None


# ============================================
# Book items
# ============================================

class BookItemCreate(BaseModel):
    book_id: int = Field(..., gt=0)
    code: NonBlankStr = Field(..., max_length=50)
    condition: ItemCondition = ItemCondition.NEW
    status: ItemStatus = ItemStatus.AVAILABLE
    acquisition_date: Optional[date] = None


class BookItemUpdate(BaseModel):
    book_id: Optional[int] = Field(None, gt=0)
    code: Optional[NonBlankStr] = Field(None, max_length=50)
    condition: Optional[ItemCondition] = None
    status: Optional[ItemStatus] = None
    acquisition_date: Optional[date] = None


class BookItemResponse(BaseModel):
    id: int
    book_id: int
    code: str
    condition: ItemCondition
    status: ItemStatus
    acquisition_date: Optional[date] = None
    book: Optional[BookBrief] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================
# Editions and licenses
# ============================================

class BookEditionResponse(BaseModel):
    id: int
    book_id: int
    format: EditionFormat
    isbn13: Optional[str] = None
    file_format: FileFormat
    file_size_bytes: Optional[int] = None
    checksum_sha256: Optional[str] = None
    storage_url: Optional[str] = None
    drm_type: DRMType
    status: EditionStatus
    book: Optional[BookBrief] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkEditionDeleteResponse(BaseModel):
    deleted_count: int
    deleted_ids: List[int]
    files_deleted: int


class DigitalLicenseCreate(BaseModel):
    license_model: LicenseModel
    total_copies: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class DigitalLicenseUpdate(BaseModel):
    license_model: Optional[LicenseModel] = None
    total_copies: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class DigitalLicenseResponse(BaseModel):
    id: int
    book_id: int
    license_model: LicenseModel
    total_copies: Optional[int] = None
    notes: Optional[str] = None
    book: Optional[BookBrief] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
