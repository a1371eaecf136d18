from fastapi import APIRouter
from app.api.v1.endpoints import (
    auth,
    otp,
    users,
    authors,
    categories,
    books,
    book_items,
    book_editions,
    digital_licenses,
    borrow_requests,
    borrow_records,
    ebooks,
    policies,
    payments,
    notifications,
    reviews,
    favorite_books,
    files,
    notification_socket,
    health,
)

api_router = APIRouter()

# Readiness check (use /api/v1/health/ready for load balancers)
api_router.include_router(health.router)

api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(otp.router, prefix="/otp", tags=["OTP"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])

# Catalog
api_router.include_router(authors.router, prefix="/authors", tags=["Authors"])
api_router.include_router(categories.router, prefix="/categories", tags=["Categories"])
api_router.include_router(books.router, prefix="/books", tags=["Books"])
api_router.include_router(book_items.router, prefix="/book-items", tags=["Book Items"])
api_router.include_router(book_editions.router, prefix="/book-editions", tags=["Book Editions"])
api_router.include_router(digital_licenses.router, prefix="/digital-licenses", tags=["Digital Licenses"])

# Circulation
api_router.include_router(borrow_requests.router, prefix="/borrow-requests", tags=["Borrow Requests"])
api_router.include_router(borrow_records.router, prefix="/borrow-records", tags=["Borrow Records"])
api_router.include_router(ebooks.router, tags=["Ebooks"])

# Fees
api_router.include_router(policies.router, prefix="/policies", tags=["Policies"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(reviews.router, prefix="/reviews", tags=["Reviews"])
api_router.include_router(favorite_books.router, prefix="/favorite-books", tags=["Favorite Books"])
api_router.include_router(files.router, prefix="/files", tags=["Files"])

# Realtime notifications: WS /api/v1/ws
api_router.include_router(notification_socket.router, tags=["WebSocket"])
