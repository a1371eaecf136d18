"""
Auth Service - registration, login and token lifecycle

Handles:
- Registration and credential checks
- Access tokens and rotating, server-tracked refresh tokens
- Password change and OTP-backed password reset
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, ForbiddenError, UnauthorizedError, ValidationError, NotFoundError
from app.core.logging_config import logger
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from app.models.otp import OTPType
from app.models.user import User, Role, UserStatus, RefreshToken
from app.schemas.auth import UserRegister
from app.services.email_service import queue_email
from app.services.otp_service import otp_service


@dataclass
class IssuedTokens:
    access_token: str
    refresh_token: str
    refresh_max_age: int
    expires_in: int


class AuthService:
    """Service for authentication flows"""

    async def get_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def register(self, db: AsyncSession, data: UserRegister) -> User:
        """Create a READER account"""
        email = data.email.lower()
        if await self.get_user_by_email(db, email):
            raise ConflictError("Email already registered", code="EMAIL_EXISTS")

        user = User(
            email=email,
            full_name=data.full_name,
            password_hash=get_password_hash(data.password),
            phone=data.phone,
            address=data.address,
            role=Role.READER,
            status=UserStatus.ACTIVE,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)

        logger.info(f"[Auth] Registered new reader {email} (id={user.id})")
        await queue_email("welcome", user.email, {"user_name": user.full_name})
        return user

    async def authenticate(self, db: AsyncSession, email: str, password: str, client_ip: str = None) -> User:
        """Check credentials and account state"""
        user = await self.get_user_by_email(db, email)

        if not user or not verify_password(password, user.password_hash):
            logger.log_auth_event(event="login", success=False, user_email=email,
                                  reason="invalid credentials", client_ip=client_ip)
            raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")

        if user.is_deleted:
            logger.log_auth_event(event="login", success=False, user_email=email,
                                  reason="account deleted", client_ip=client_ip)
            raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")

        if user.status != UserStatus.ACTIVE:
            logger.log_auth_event(event="login", success=False, user_email=email,
                                  reason="account inactive", client_ip=client_ip)
            raise ForbiddenError("Your account has been deactivated", code="ACCOUNT_INACTIVE")

        logger.log_auth_event(event="login", success=True, user_email=email, client_ip=client_ip)
        return user

    async def issue_tokens(self, db: AsyncSession, user: User, remember_me: bool = False) -> IssuedTokens:
        """Create an access token and a stored refresh token"""
        access_token = create_access_token(
            {"sub": str(user.id), "email": user.email, "role": user.role.value}
        )
        refresh_token, token_id, expires_at = create_refresh_token(user.id, remember_me)

        db.add(RefreshToken(
            id=token_id,
            user_id=user.id,
            remember_me=remember_me,
            expires_at=expires_at,
        ))
        await db.commit()

        days = settings.REFRESH_TOKEN_REMEMBER_ME_DAYS if remember_me else settings.REFRESH_TOKEN_EXPIRE_DAYS
        return IssuedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            refresh_max_age=days * 24 * 60 * 60,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

    async def refresh(self, db: AsyncSession, token: Optional[str]) -> tuple[User, IssuedTokens]:
        """
        Validate a refresh token and rotate it.

        The presented token's row is deleted and a new token with the same
        lifetime policy replaces it.
        """
        if not token:
            raise UnauthorizedError("Refresh token is required", code="REFRESH_TOKEN_MISSING")

        payload = decode_token(token)
        if payload.get("type") != "refresh" or not payload.get("jti"):
            raise UnauthorizedError("Invalid refresh token", code="INVALID_TOKEN")

        stored = await db.get(RefreshToken, payload["jti"])
        if not stored:
            logger.log_auth_event(event="refresh", success=False, reason="token not found or revoked")
            raise UnauthorizedError("Invalid refresh token", code="INVALID_TOKEN")

        if stored.expires_at < datetime.utcnow():
            await db.delete(stored)
            await db.commit()
            raise UnauthorizedError("Refresh token has expired", code="TOKEN_EXPIRED")

        user = await db.get(User, stored.user_id)
        if not user or user.is_deleted or user.status != UserStatus.ACTIVE:
            await db.delete(stored)
            await db.commit()
            raise UnauthorizedError("User not found or inactive")

        remember_me = stored.remember_me
        await db.delete(stored)
        await db.flush()

        tokens = await self.issue_tokens(db, user, remember_me)
        logger.log_auth_event(event="refresh", success=True, user_email=user.email)
        return user, tokens

    async def logout(self, db: AsyncSession, token: Optional[str]) -> None:
        """Revoke the presented refresh token when it can be identified"""
        if not token:
            return
        try:
            payload = decode_token(token, verify_exp=False)
        except UnauthorizedError:
            return
        jti = payload.get("jti")
        if jti:
            await db.execute(delete(RefreshToken).where(RefreshToken.id == jti))
            await db.commit()

    async def revoke_all(self, db: AsyncSession, user_id: int) -> int:
        result = await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        await db.commit()
        return result.rowcount or 0

    async def change_password(self, db: AsyncSession, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise ValidationError("Current password is incorrect", field="current_password")
        if verify_password(new_password, user.password_hash):
            raise ValidationError("New password must be different from the current password", field="new_password")

        user.password_hash = get_password_hash(new_password)
        await db.commit()
        await self.revoke_all(db, user.id)
        logger.log_auth_event(event="change_password", success=True, user_email=user.email)

    async def reset_password(self, db: AsyncSession, email: str, new_password: str) -> None:
        """Set a new password after a verified PASSWORD_RESET code"""
        user = await self.get_user_by_email(db, email)
        if not user or user.is_deleted:
            raise NotFoundError("User not found")

        if not await otp_service.has_recent_verified_otp(db, email, OTPType.PASSWORD_RESET):
            logger.log_auth_event(event="reset_password", success=False, user_email=email,
                                  reason="no verified OTP")
            raise ValidationError("OTP verification required or expired. Please verify your OTP again.")

        user.password_hash = get_password_hash(new_password)
        await db.commit()

        await otp_service.invalidate_otps(db, email, OTPType.PASSWORD_RESET, include_verified=True)
        await self.revoke_all(db, user.id)
        logger.log_auth_event(event="reset_password", success=True, user_email=email)

    async def cleanup_expired_refresh_tokens(self, db: AsyncSession) -> int:
        result = await db.execute(delete(RefreshToken).where(RefreshToken.expires_at < datetime.utcnow()))
        await db.commit()
        count = result.rowcount or 0
        if count:
            logger.info(f"[Auth] Removed {count} expired refresh tokens")
        return count


# Singleton instance
auth_service = AuthService()
