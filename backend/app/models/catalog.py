"""Catalog models: authors, categories, books and their physical and digital copies"""
from sqlalchemy import (
    Column, String, Boolean, DateTime, Date, Enum as SQLEnum, Integer, BigInteger,
    Text, Float, ForeignKey, Table, Index
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.core.database import Base


class BookType(str, enum.Enum):
    """How a title is offered"""
    PRINT = "PRINT"
    EBOOK = "EBOOK"
    BOTH = "BOTH"


class ItemCondition(str, enum.Enum):
    """Physical condition of a copy"""
    NEW = "NEW"
    GOOD = "GOOD"
    WORN = "WORN"
    DAMAGED = "DAMAGED"
    LOST = "LOST"


class ItemStatus(str, enum.Enum):
    """Circulation status of a copy"""
    AVAILABLE = "AVAILABLE"
    ON_BORROW = "ON_BORROW"
    RESERVED = "RESERVED"
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"
    LOST = "LOST"


class EditionFormat(str, enum.Enum):
    EBOOK = "EBOOK"
    AUDIO = "AUDIO"


class FileFormat(str, enum.Enum):
    EPUB = "EPUB"
    PDF = "PDF"
    MOBI = "MOBI"
    AUDIO_MP3 = "AUDIO_MP3"
    AUDIO_M4B = "AUDIO_M4B"
    OTHER = "OTHER"


class DRMType(str, enum.Enum):
    NONE = "NONE"
    WATERMARK = "WATERMARK"
    ADOBE_DRM = "ADOBE_DRM"
    LCP = "LCP"
    CUSTOM = "CUSTOM"


class EditionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class LicenseModel(str, enum.Enum):
    ONE_COPY_ONE_USER = "ONE_COPY_ONE_USER"
    METERED = "METERED"
    SIMULTANEOUS = "SIMULTANEOUS"
    OWNED = "OWNED"
    SUBSCRIPTION = "SUBSCRIPTION"


book_categories = Table(
    "book_categories",
    Base.metadata,
    Column("book_id", Integer, ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


class Author(Base):
    __tablename__ = "authors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(255), nullable=False, index=True)
    bio = Column(Text, nullable=True)
    birth_date = Column(Date, nullable=True)
    nationality = Column(String(100), nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    books = relationship("Book", back_populates="author")

    def __repr__(self):
        return f"<Author {self.full_name}>"


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Category {self.name}>"


class Book(Base):
    """A title in the catalog"""
    __tablename__ = "books"

    __table_args__ = (
        Index('ix_books_author_id', 'author_id'),
        Index('ix_books_title', 'title'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    author_id = Column(Integer, ForeignKey("authors.id"), nullable=False)
    title = Column(String(255), nullable=False)
    isbn = Column(String(20), nullable=True)
    publish_year = Column(Integer, nullable=True)
    publisher = Column(String(255), nullable=True)
    page_count = Column(Integer, nullable=True)
    price = Column(Float, nullable=True)  # VND
    edition = Column(String(50), nullable=True)
    type = Column(SQLEnum(BookType), default=BookType.PRINT, nullable=False)
    description = Column(Text, nullable=True)
    cover_image_url = Column(Text, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    author = relationship("Author", back_populates="books", lazy="selectin")
    categories = relationship("Category", secondary=book_categories, lazy="selectin")

    def __repr__(self):
        return f"<Book {self.title}>"


class BookItem(Base):
    """A physical copy of a book"""
    __tablename__ = "book_items"

    __table_args__ = (
        Index('ix_book_items_book_id', 'book_id'),
        Index('ix_book_items_status', 'status'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    code = Column(String(50), unique=True, nullable=False)
    condition = Column(SQLEnum(ItemCondition), default=ItemCondition.NEW, nullable=False)
    status = Column(SQLEnum(ItemStatus), default=ItemStatus.AVAILABLE, nullable=False)
    acquisition_date = Column(Date, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    book = relationship("Book", lazy="selectin")

    def __repr__(self):
        return f"<BookItem {self.code}>"


class BookEdition(Base):
    """A digital edition (ebook or audio) of a book"""
    __tablename__ = "book_editions"

    __table_args__ = (
        Index('ix_book_editions_book_id', 'book_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    format = Column(SQLEnum(EditionFormat), default=EditionFormat.EBOOK, nullable=False)
    isbn13 = Column(String(20), nullable=True)
    file_format = Column(SQLEnum(FileFormat), default=FileFormat.PDF, nullable=False)
    file_size_bytes = Column(BigInteger, nullable=True)
    checksum_sha256 = Column(String(64), nullable=True)
    storage_url = Column(Text, nullable=True)
    drm_type = Column(SQLEnum(DRMType), default=DRMType.NONE, nullable=False)
    status = Column(SQLEnum(EditionStatus), default=EditionStatus.ACTIVE, nullable=False)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    book = relationship("Book", lazy="selectin")

    def __repr__(self):
        return f"<BookEdition {self.id} {self.file_format}>"


class DigitalLicense(Base):
    __tablename__ = "digital_licenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    license_model = Column(SQLEnum(LicenseModel), nullable=False)
    total_copies = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    book = relationship("Book", lazy="selectin")

    def __repr__(self):
        return f"<DigitalLicense {self.id} {self.license_model}>"
