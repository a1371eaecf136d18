"""
Custom Exceptions for the Library Management API
================================================

Every error raised by services and endpoints derives from LibraryError and
carries the HTTP status it maps to. The exception handlers registered in
app.main turn them into the standard error envelope.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    if not book:
        raise NotFoundError("Book not found")
"""

from typing import Optional, Any, Dict


class LibraryError(Exception):
    """Base exception for all application errors"""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "Internal server error",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# 4xx errors
# ============================================

class ValidationError(LibraryError):
    """Input validation failed"""

    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation failed", field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or ({"field": field} if field else None)
        super().__init__(message, details=details, **kwargs)


class UnauthorizedError(LibraryError):
    """Missing or invalid credentials"""

    status_code = 401
    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized", **kwargs):
        super().__init__(message, **kwargs)


class ForbiddenError(LibraryError):
    """Authenticated but not allowed"""

    status_code = 403
    default_code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden", **kwargs):
        super().__init__(message, **kwargs)


class NotFoundError(LibraryError):
    """Resource does not exist or is soft-deleted"""

    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, **kwargs)


class ConflictError(LibraryError):
    """Resource state conflicts with the request"""

    status_code = 409
    default_code = "CONFLICT"

    def __init__(self, message: str = "Resource already exists", **kwargs):
        super().__init__(message, **kwargs)


class PayloadTooLargeError(LibraryError):
    """Request body exceeds the configured limit"""

    status_code = 413
    default_code = "PAYLOAD_TOO_LARGE"

    def __init__(self, message: str = "Request body too large", **kwargs):
        super().__init__(message, **kwargs)


class PaymentGatewayError(ValidationError):
    """PayPal rejected or failed an operation"""

    default_code = "PAYMENT_GATEWAY_ERROR"


# ============================================
# 5xx errors
# ============================================

class DatabaseError(LibraryError):
    """Database operation failed"""

    status_code = 500
    default_code = "DATABASE_ERROR"

    def __init__(self, message: str = "Database error", **kwargs):
        super().__init__(message, **kwargs)


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: LibraryError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    body: Dict[str, Any] = {
        "success": False,
        "error": error.message,
        "code": error.code,
    }
    if error.details:
        body["details"] = error.details
    return body
