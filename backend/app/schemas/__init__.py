# Pydantic schemas
from app.schemas.auth import (
    UserRegister,
    UserLogin,
    UserResponse,
    UserBrief,
    LoginResponse,
    RefreshResponse,
)
from app.schemas.catalog import (
    AuthorResponse,
    CategoryResponse,
    BookResponse,
    BookItemResponse,
    BookEditionResponse,
    DigitalLicenseResponse,
)
from app.schemas.borrow import (
    BorrowRequestResponse,
    BorrowRecordResponse,
)
from app.schemas.payment import PolicyResponse, PaymentResponse
from app.schemas.notification import NotificationResponse
from app.schemas.review import ReviewResponse, FavoriteBookResponse

__all__ = [
    "UserRegister",
    "UserLogin",
    "UserResponse",
    "UserBrief",
    "LoginResponse",
    "RefreshResponse",
    "AuthorResponse",
    "CategoryResponse",
    "BookResponse",
    "BookItemResponse",
    "BookEditionResponse",
    "DigitalLicenseResponse",
    "BorrowRequestResponse",
    "BorrowRecordResponse",
    "PolicyResponse",
    "PaymentResponse",
    "NotificationResponse",
    "ReviewResponse",
    "FavoriteBookResponse",
]
