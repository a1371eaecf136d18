"""
User Service - account administration

Handles:
- Listing and searching users
- Admin create/update and self-service profile updates
- Soft deletion (single and bulk) and statistics
"""

from datetime import datetime, timedelta
from typing import Optional, List, Tuple, Dict

from sqlalchemy import select, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError, ForbiddenError, ValidationError
from app.core.logging_config import logger
from app.core.security import get_password_hash
from app.models.user import User, Role, UserStatus
from app.schemas.user import UserCreate, UserUpdate
from app.services.email_service import queue_email
from app.utils.pagination import PaginationParams, paginate

SORTABLE_FIELDS = {
    "full_name": User.full_name,
    "email": User.email,
    "role": User.role,
    "status": User.status,
    "created_at": User.created_at,
}


class UserService:
    """Service for managing user accounts"""

    async def list_users(
        self,
        db: AsyncSession,
        params: PaginationParams,
        role: Optional[Role] = None,
        status: Optional[UserStatus] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[User], Dict[str, int]]:
        query = select(User).where(User.is_deleted == False)  # noqa: E712
        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(or_(
                User.full_name.ilike(pattern),
                User.email.ilike(pattern),
                User.phone.ilike(pattern),
            ))
        if role:
            query = query.where(User.role == role)
        if status:
            query = query.where(User.status == status)

        column = SORTABLE_FIELDS.get(sort_by, User.created_at)
        query = query.order_by(column.asc() if sort_order == "asc" else column.desc(), User.id.desc())
        return await paginate(db, query, params)

    async def list_active_readers(self, db: AsyncSession) -> List[User]:
        result = await db.execute(
            select(User)
            .where(
                User.is_deleted == False,  # noqa: E712
                User.role == Role.READER,
                User.status == UserStatus.ACTIVE,
            )
            .order_by(User.full_name)
        )
        return list(result.scalars().all())

    async def get_user(self, db: AsyncSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if not user or user.is_deleted:
            raise NotFoundError("User not found")
        return user

    async def _ensure_email_free(self, db: AsyncSession, email: str, exclude_id: Optional[int] = None):
        query = select(User.id).where(User.email == email.lower())
        if exclude_id:
            query = query.where(User.id != exclude_id)
        if (await db.execute(query)).scalar_one_or_none():
            raise ConflictError("Email already registered", code="EMAIL_EXISTS")

    async def create_user(self, db: AsyncSession, data: UserCreate) -> User:
        await self._ensure_email_free(db, data.email)
        user = User(
            email=data.email.lower(),
            full_name=data.full_name.strip(),
            password_hash=get_password_hash(data.password),
            phone=data.phone,
            address=data.address,
            role=data.role,
            status=data.status,
            inactive_at=datetime.utcnow() if data.status == UserStatus.INACTIVE else None,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info(f"[Users] Created {user.role.value} {user.email} (id={user.id})")
        return user

    async def update_user(self, db: AsyncSession, user_id: int, data: UserUpdate, actor: User) -> User:
        """Admins may change every field; other users only their own profile fields"""
        is_admin = actor.role == Role.ADMIN
        if not is_admin and actor.id != user_id:
            raise ForbiddenError("You can only update your own profile")

        user = await self.get_user(db, user_id)
        changes = data.model_dump(exclude_unset=True)

        if not is_admin:
            changes = {k: v for k, v in changes.items() if k in ("full_name", "phone", "address")}

        if "email" in changes and changes["email"]:
            changes["email"] = changes["email"].lower()
            if changes["email"] != user.email:
                await self._ensure_email_free(db, changes["email"], exclude_id=user.id)

        status_changed = bool(changes.get("status")) and changes["status"] != user.status
        if status_changed:
            if actor.id == user.id and changes["status"] == UserStatus.INACTIVE:
                raise ValidationError("You cannot deactivate your own account", field="status")
            user.inactive_at = datetime.utcnow() if changes["status"] == UserStatus.INACTIVE else None

        for field, value in changes.items():
            if value is None and field in ("full_name", "email", "role", "status"):
                continue
            setattr(user, field, value.strip() if field == "full_name" else value)

        await db.commit()
        await db.refresh(user)
        if status_changed:
            logger.info(f"[Users] User {user.id} status set to {user.status.value} by {actor.id}")
            await queue_email("account_status", user.email, {"user_name": user.full_name, "status": user.status.value})
        return user

    async def delete_user(self, db: AsyncSession, user_id: int, actor: User) -> None:
        if actor.id == user_id:
            raise ValidationError("You cannot delete your own account")
        user = await self.get_user(db, user_id)
        user.is_deleted = True
        await db.commit()
        logger.info(f"[Users] Soft-deleted user {user_id} by {actor.id}")

    async def bulk_delete(self, db: AsyncSession, ids: List[int], actor: User) -> List[int]:
        candidates = [i for i in ids if i != actor.id]
        if not candidates:
            return []
        result = await db.execute(
            select(User.id).where(User.id.in_(candidates), User.is_deleted == False)  # noqa: E712
        )
        existing = [row for row in result.scalars().all()]
        if existing:
            await db.execute(update(User).where(User.id.in_(existing)).values(is_deleted=True))
            await db.commit()
        logger.info(f"[Users] Bulk soft-deleted {len(existing)} users by {actor.id}")
        return sorted(existing)

    async def stats(self, db: AsyncSession) -> Dict:
        not_deleted = User.is_deleted == False  # noqa: E712

        total = (await db.execute(select(func.count(User.id)).where(not_deleted))).scalar() or 0

        by_role = {r.value: 0 for r in Role}
        for role, count in (await db.execute(
            select(User.role, func.count(User.id)).where(not_deleted).group_by(User.role)
        )).all():
            by_role[role.value] = count

        by_status = {s.value: 0 for s in UserStatus}
        for status, count in (await db.execute(
            select(User.status, func.count(User.id)).where(not_deleted).group_by(User.status)
        )).all():
            by_status[status.value] = count

        since = datetime.utcnow() - timedelta(days=30)
        recent = (await db.execute(
            select(func.count(User.id)).where(not_deleted, User.created_at >= since)
        )).scalar() or 0

        return {
            "total": total,
            "by_role": by_role,
            "by_status": by_status,
            "new_last_30_days": recent,
        }


# Singleton instance
user_service = UserService()
