# API endpoints
from . import (
    auth, otp, users, authors, categories, books, book_items, book_editions, digital_licenses,
    borrow_requests, borrow_records, ebooks, policies, payments, notifications, reviews,
    favorite_books, files, notification_socket, health,
)

__all__ = [
    "auth", "otp", "users", "authors", "categories", "books", "book_items", "book_editions",
    "digital_licenses", "borrow_requests", "borrow_records", "ebooks", "policies", "payments",
    "notifications", "reviews", "favorite_books", "files", "notification_socket", "health",
]
