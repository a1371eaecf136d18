# Re-export all models for convenient imports
from app.models.user import User, Role, UserStatus, RefreshToken
from app.models.catalog import (
    Author,
    Category,
    Book,
    BookType,
    BookItem,
    ItemCondition,
    ItemStatus,
    BookEdition,
    EditionFormat,
    FileFormat,
    DRMType,
    EditionStatus,
    DigitalLicense,
    LicenseModel,
    book_categories,
)
from app.models.borrow import (
    BorrowRequest,
    BorrowRequestItem,
    BorrowRequestStatus,
    BorrowRecord,
    BorrowBook,
    BorrowEbook,
    BorrowStatus,
)
from app.models.payment import Policy, PolicyUnit, Payment
from app.models.notification import Notification, NotificationType, NotificationStatus
from app.models.otp import OTP, OTPType
from app.models.review import Review, FavoriteBook

__all__ = [
    # User
    "User",
    "Role",
    "UserStatus",
    "RefreshToken",
    # Catalog
    "Author",
    "Category",
    "Book",
    "BookType",
    "BookItem",
    "ItemCondition",
    "ItemStatus",
    "BookEdition",
    "EditionFormat",
    "FileFormat",
    "DRMType",
    "EditionStatus",
    "DigitalLicense",
    "LicenseModel",
    "book_categories",
    # Borrowing
    "BorrowRequest",
    "BorrowRequestItem",
    "BorrowRequestStatus",
    "BorrowRecord",
    "BorrowBook",
    "BorrowEbook",
    "BorrowStatus",
    # Payments
    "Policy",
    "PolicyUnit",
    "Payment",
    # Notifications
    "Notification",
    "NotificationType",
    "NotificationStatus",
    # OTP
    "OTP",
    "OTPType",
    # Reviews
    "Review",
    "FavoriteBook",
]
