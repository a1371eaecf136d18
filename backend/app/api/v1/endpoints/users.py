"""
Users Management API

Provides endpoints for listing, searching, and managing users with:
- Pagination (page, limit) and search (by name, email, phone)
- Sorting (full_name, email, role, status, created_at; asc/desc)
- Filtering (by role, status)
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.core.exceptions import ForbiddenError
from app.models.user import User, Role, UserStatus
from app.modules.auth.dependencies import get_current_user, require_admin, require_librarian
from app.schemas.auth import UserResponse, UserBrief
from app.schemas.user import UserCreate, UserUpdate, BulkDeleteRequest, BulkDeleteResponse, UserStats
from app.services.user_service import user_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.get("")
async def list_users(
    params: PaginationParams = Depends(pagination_params),
    role: Optional[Role] = Query(None),
    status_filter: Optional[UserStatus] = Query(None, alias="status"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List users with pagination, search and filters (admin)"""
    users, pagination = await user_service.list_users(db, params, role, status_filter, sort_by, sort_order)
    return success_response({
        "users": [UserResponse.model_validate(u) for u in users],
        "pagination": pagination,
    })


@router.get("/all")
async def list_active_readers(
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Active readers for pickers (librarian)"""
    readers = await user_service.list_active_readers(db)
    return success_response({"users": [UserBrief.model_validate(u) for u in readers]})


@router.get("/stats")
async def get_user_stats(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """User counts by role and status (admin)"""
    return success_response(UserStats(**await user_service.stats(db)))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    data: UserCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a user with any role (admin)"""
    user = await user_service.create_user(db, data)
    return envelope(UserResponse.model_validate(user), message="User created successfully", status_code=201)


@router.post("/bulk-delete")
async def bulk_delete_users(
    data: BulkDeleteRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete several users at once; the caller is always skipped (admin)"""
    deleted = await user_service.bulk_delete(db, data.ids, current_user)
    return success_response(
        BulkDeleteResponse(deleted_count=len(deleted), deleted_ids=deleted),
        message=f"Deleted {len(deleted)} user(s)",
    )


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a user (admin, or the user themselves)"""
    user_id = parse_id(user_id, "user id")
    if current_user.role != Role.ADMIN and current_user.id != user_id:
        raise ForbiddenError("You can only view your own profile")
    user = await user_service.get_user(db, user_id)
    return success_response(UserResponse.model_validate(user))


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    data: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update a user; non-admins may only edit their own name, phone and address"""
    user_id = parse_id(user_id, "user id")
    user = await user_service.update_user(db, user_id, data, current_user)
    return success_response(UserResponse.model_validate(user), message="User updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete a user (admin)"""
    user_id = parse_id(user_id, "user id")
    await user_service.delete_user(db, user_id, current_user)
    return success_response(message="User deleted successfully")
