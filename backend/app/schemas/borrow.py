"""Schemas for borrow requests, borrow records and ebook loans"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime

from app.models.borrow import BorrowRequestStatus, BorrowStatus
from app.models.catalog import ItemCondition, ItemStatus
from app.schemas.auth import UserBrief
from app.schemas.catalog import BookBrief


# ============================================
# Borrow requests
# ============================================

class BorrowRequestItemIn(BaseModel):
    book_id: int = Field(..., gt=0)
    quantity: int = Field(1, gt=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class BorrowRequestCreate(BaseModel):
    start_date: date
    end_date: date
    items: List[BorrowRequestItemIn] = Field(..., min_length=1)


class BorrowRequestManage(BaseModel):
    status: BorrowRequestStatus


class BorrowRequestCancel(BaseModel):
    status: BorrowRequestStatus


class BorrowRequestItemResponse(BaseModel):
    id: int
    book_id: int
    quantity: int
    start_date: date
    end_date: date
    created_at: datetime
    book: Optional[BookBrief] = None
    queue_position: Optional[int] = None

    class Config:
        from_attributes = True


class BorrowRequestResponse(BaseModel):
    id: int
    user_id: int
    start_date: date
    end_date: date
    status: BorrowRequestStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    user: Optional[UserBrief] = None
    items: List[BorrowRequestItemResponse] = []

    class Config:
        from_attributes = True


class BorrowRequestCreateResponse(BaseModel):
    borrow_request: BorrowRequestResponse
    queue_position: Optional[int] = None
    message: str


# ============================================
# Borrow records
# ============================================

class BorrowRecordCreate(BaseModel):
    user_id: int = Field(..., gt=0)
    book_item_ids: List[int] = Field(..., min_length=1)
    borrow_date: date
    return_date: date
    request_ids: List[int] = []


class ReturnItem(BaseModel):
    book_item_id: int = Field(..., gt=0)
    condition: ItemCondition


class ReturnViolation(BaseModel):
    book_item_id: int = Field(..., gt=0)
    policy_id: str = Field(..., min_length=1)
    amount: Optional[float] = Field(None, ge=0)
    due_date: Optional[date] = None


class BorrowRecordReturn(BaseModel):
    items: List[ReturnItem] = []
    violations: List[ReturnViolation] = []


class BookItemBrief(BaseModel):
    id: int
    code: str
    condition: ItemCondition
    status: ItemStatus
    book: Optional[BookBrief] = None

    class Config:
        from_attributes = True


class BorrowBookResponse(BaseModel):
    id: int
    book_item_id: int
    book_item: Optional[BookItemBrief] = None

    class Config:
        from_attributes = True


class BorrowEbookResponse(BaseModel):
    id: int
    book_id: int
    book: Optional[BookBrief] = None

    class Config:
        from_attributes = True


class RecordPaymentBrief(BaseModel):
    id: int
    policy_id: str
    amount: float
    is_paid: bool
    paid_at: Optional[datetime] = None
    due_date: Optional[date] = None

    class Config:
        from_attributes = True


class BorrowRecordResponse(BaseModel):
    id: int
    user_id: int
    borrow_date: date
    return_date: date
    actual_return_date: Optional[date] = None
    renewal_count: int
    status: BorrowStatus
    is_overdue: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None
    user: Optional[UserBrief] = None
    books: List[BorrowBookResponse] = Field([], validation_alias="active_books")
    ebooks: List[BorrowEbookResponse] = Field([], validation_alias="active_ebooks")
    payments: List[RecordPaymentBrief] = []

    class Config:
        from_attributes = True
        populate_by_name = True


class FulfilledRequest(BaseModel):
    request_id: int
    fulfilled: bool


class BorrowRecordCreateResponse(BaseModel):
    borrow_record: BorrowRecordResponse
    requests: List[FulfilledRequest] = []


class ProcessedBook(BaseModel):
    book_id: int
    approved_request_id: Optional[int] = None


class BorrowRecordReturnResponse(BaseModel):
    borrow_record: BorrowRecordResponse
    processed_books: List[ProcessedBook] = []
    payments: List[RecordPaymentBrief] = []


# ============================================
# Ebooks
# ============================================

class EbookBorrowCreate(BaseModel):
    book_id: int = Field(..., gt=0)
    start_date: date
    end_date: date


class EbookBorrowResponse(BaseModel):
    borrow_record: BorrowRecordResponse
    borrow_request: BorrowRequestResponse


class MyEbook(BaseModel):
    borrow_record_id: int
    book: BookBrief
    borrow_date: date
    return_date: date
    edition_id: Optional[int] = None
    file_format: Optional[str] = None
    file_size_bytes: Optional[int] = None


class EbookViewResponse(BaseModel):
    view_url: str
    expires_at: datetime
