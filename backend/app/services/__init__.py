from app.services.storage_service import StorageService, storage_service
from app.services.email_service import EmailService
from app.services.notification_service import NotificationService

# Library domain services
from app.services.catalog_service import AuthorService, CategoryService, BookService
from app.services.inventory_service import BookItemService, BookEditionService, DigitalLicenseService
from app.services.borrow_service import BorrowRequestService, BorrowRecordService
from app.services.ebook_service import EbookService
from app.services.payment_service import PolicyService, PaymentService
from app.services.review_service import ReviewService, FavoriteBookService

__all__ = [
    # Core services
    "StorageService",
    "storage_service",
    "EmailService",
    "NotificationService",
    # Library services
    "AuthorService",
    "CategoryService",
    "BookService",
    "BookItemService",
    "BookEditionService",
    "DigitalLicenseService",
    "BorrowRequestService",
    "BorrowRecordService",
    "EbookService",
    "PolicyService",
    "PaymentService",
    "ReviewService",
    "FavoriteBookService",
]
