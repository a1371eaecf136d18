"""Borrowing models: reservations (requests) and loans (records)"""
from sqlalchemy import Column, Boolean, DateTime, Date, Enum as SQLEnum, Integer, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime, date
import enum

from app.core.database import Base


class BorrowRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    FULFILLED = "FULFILLED"


class BorrowStatus(str, enum.Enum):
    BORROWED = "BORROWED"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"


class BorrowRequest(Base):
    """A reader's reservation of one or more titles for a date range"""
    __tablename__ = "borrow_requests"

    __table_args__ = (
        Index('ix_borrow_requests_user_id', 'user_id'),
        Index('ix_borrow_requests_status', 'status'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(SQLEnum(BorrowRequestStatus), default=BorrowRequestStatus.PENDING, nullable=False)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", lazy="selectin")
    items = relationship(
        "BorrowRequestItem",
        back_populates="borrow_request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BorrowRequestItem.id",
    )

    def __repr__(self):
        return f"<BorrowRequest {self.id} {self.status}>"


class BorrowRequestItem(Base):
    __tablename__ = "borrow_request_items"

    __table_args__ = (
        Index('ix_borrow_request_items_book_id', 'book_id'),
        Index('ix_borrow_request_items_request_id', 'borrow_request_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    borrow_request_id = Column(Integer, ForeignKey("borrow_requests.id", ondelete="CASCADE"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    borrow_request = relationship("BorrowRequest", back_populates="items")
    book = relationship("Book", lazy="selectin")


class BorrowRecord(Base):
    """A loan of physical copies and/or ebooks to a reader"""
    __tablename__ = "borrow_records"

    __table_args__ = (
        Index('ix_borrow_records_user_id', 'user_id'),
        Index('ix_borrow_records_status', 'status'),
        Index('ix_borrow_records_return_date', 'return_date'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    borrow_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=False)
    actual_return_date = Column(Date, nullable=True)
    renewal_count = Column(Integer, default=0, nullable=False)
    status = Column(SQLEnum(BorrowStatus), default=BorrowStatus.BORROWED, nullable=False)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", lazy="selectin")
    books = relationship(
        "BorrowBook", back_populates="borrow_record", cascade="all, delete-orphan",
        lazy="selectin", order_by="BorrowBook.id",
    )
    ebooks = relationship(
        "BorrowEbook", back_populates="borrow_record", cascade="all, delete-orphan",
        lazy="selectin", order_by="BorrowEbook.id",
    )
    payments = relationship(
        "Payment", back_populates="borrow_record",
        lazy="selectin", order_by="Payment.id",
    )

    @property
    def active_books(self):
        return [b for b in self.books if not b.is_deleted]

    @property
    def active_ebooks(self):
        return [e for e in self.ebooks if not e.is_deleted]

    @property
    def is_overdue(self) -> bool:
        return (
            self.status == BorrowStatus.BORROWED
            and self.actual_return_date is None
            and self.return_date < date.today()
        )

    def __repr__(self):
        return f"<BorrowRecord {self.id} {self.status}>"


class BorrowBook(Base):
    """Link between a loan and a physical copy"""
    __tablename__ = "borrow_books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    borrow_record_id = Column(Integer, ForeignKey("borrow_records.id", ondelete="CASCADE"), nullable=False, index=True)
    book_item_id = Column(Integer, ForeignKey("book_items.id"), nullable=False, index=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    borrow_record = relationship("BorrowRecord", back_populates="books")
    book_item = relationship("BookItem", lazy="selectin")


class BorrowEbook(Base):
    """Link between a loan and an ebook title"""
    __tablename__ = "borrow_ebooks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    borrow_record_id = Column(Integer, ForeignKey("borrow_records.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    borrow_record = relationship("BorrowRecord", back_populates="ebooks")
    book = relationship("Book", lazy="selectin")
