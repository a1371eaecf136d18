from sqlalchemy import Column, Boolean, DateTime, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime

from app.core.database import Base


class Review(Base):
    """A reader's rating of a book"""
    __tablename__ = "reviews"

    __table_args__ = (
        Index('ix_reviews_book_id', 'book_id'),
        Index('ix_reviews_user_book', 'user_id', 'book_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    rating = Column(Integer, nullable=False)  # 1-5
    review_text = Column(Text, nullable=True)
    review_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", lazy="selectin")

    def __repr__(self):
        return f"<Review {self.id} book={self.book_id} rating={self.rating}>"


class FavoriteBook(Base):
    __tablename__ = "favorite_books"

    __table_args__ = (
        Index('ix_favorite_books_user_book', 'user_id', 'book_id', unique=True),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    book = relationship("Book", lazy="selectin")

    def __repr__(self):
        return f"<FavoriteBook user={self.user_id} book={self.book_id}>"
