"""
OTP Service - one-time codes for password reset and verification

Only a SHA-256 hash of each code is stored. A code is valid for
OTP_EXPIRY_MINUTES, allows OTP_MAX_ATTEMPTS wrong guesses, and a new code for
the same email and type can be requested once every OTP_COOLDOWN_SECONDS.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError
from app.core.logging_config import logger
from app.core.security import generate_otp_code, hash_otp_code, verify_otp_code
from app.models.otp import OTP, OTPType

CODE_PATTERN = re.compile(r"^\d{6}$")


@dataclass
class OTPVerifyResult:
    valid: bool
    message: str
    otp_id: Optional[int] = None
    remaining_attempts: Optional[int] = None


class OTPService:
    """Service for issuing and checking one-time codes"""

    async def create_otp(self, db: AsyncSession, email: str, type: OTPType) -> Tuple[str, OTP]:
        """
        Issue a new code.

        Returns:
            (plain code, stored OTP row). The plain code is never persisted.

        Raises:
            ConflictError: a code was issued less than the cooldown ago
        """
        email = email.lower()
        now = datetime.utcnow()

        latest = await self._latest_unverified(db, email, type)
        if latest and latest.expires_at > now:
            elapsed = (now - latest.created_at).total_seconds()
            if elapsed < settings.OTP_COOLDOWN_SECONDS:
                remaining = int(settings.OTP_COOLDOWN_SECONDS - elapsed) + 1
                raise ConflictError(
                    f"Please wait {remaining} seconds before requesting a new code",
                    code="OTP_COOLDOWN",
                    details={"retry_after": remaining},
                )

        await self.invalidate_otps(db, email, type)

        code = generate_otp_code(settings.OTP_LENGTH)
        otp = OTP(
            email=email,
            code_hash=hash_otp_code(code),
            type=type,
            expires_at=now + timedelta(minutes=settings.OTP_EXPIRY_MINUTES),
            attempts=0,
            max_attempts=settings.OTP_MAX_ATTEMPTS,
            verified=False,
        )
        db.add(otp)
        await db.commit()
        await db.refresh(otp)

        logger.info(f"[OTP] Issued {type.value} code for {email} (id={otp.id})")
        return code, otp

    async def _latest_unverified(self, db: AsyncSession, email: str, type: OTPType) -> Optional[OTP]:
        result = await db.execute(
            select(OTP)
            .where(OTP.email == email, OTP.type == type, OTP.verified == False)  # noqa: E712
            .order_by(OTP.created_at.desc(), OTP.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def verify_otp(self, db: AsyncSession, email: str, code: str, type: OTPType) -> OTPVerifyResult:
        """Check a code against the most recent unverified OTP"""
        email = email.lower()

        if not code or not CODE_PATTERN.match(code):
            return OTPVerifyResult(False, "Invalid OTP format")

        otp = await self._latest_unverified(db, email, type)
        if not otp:
            return OTPVerifyResult(False, "OTP not found or already used")

        if otp.expires_at < datetime.utcnow():
            return OTPVerifyResult(False, "OTP has expired", otp_id=otp.id)

        if otp.attempts >= otp.max_attempts:
            return OTPVerifyResult(False, "Maximum verification attempts exceeded", otp_id=otp.id, remaining_attempts=0)

        if not verify_otp_code(code, otp.code_hash):
            await self.increment_failed_attempt(db, otp.id)
            remaining = max(0, otp.max_attempts - otp.attempts)
            logger.warning(f"[OTP] Wrong code for {email} ({remaining} attempts left)")
            return OTPVerifyResult(
                False,
                f"Invalid OTP. {remaining} attempt(s) remaining",
                otp_id=otp.id,
                remaining_attempts=remaining,
            )

        otp.verified = True
        otp.verified_at = datetime.utcnow()
        await db.commit()

        logger.info(f"[OTP] Verified {type.value} code for {email}")
        return OTPVerifyResult(True, "OTP verified successfully", otp_id=otp.id)

    async def increment_failed_attempt(self, db: AsyncSession, otp_id: int) -> None:
        otp = await db.get(OTP, otp_id)
        if otp:
            otp.attempts += 1
            await db.commit()

    async def invalidate_otps(
        self,
        db: AsyncSession,
        email: str,
        type: OTPType,
        include_verified: bool = False
    ) -> int:
        """Remove outstanding codes for an email and type"""
        stmt = delete(OTP).where(OTP.email == email.lower(), OTP.type == type)
        if not include_verified:
            stmt = stmt.where(OTP.verified == False)  # noqa: E712
        result = await db.execute(stmt)
        await db.commit()
        return result.rowcount or 0

    async def has_recent_verified_otp(
        self,
        db: AsyncSession,
        email: str,
        type: OTPType,
        minutes: Optional[int] = None
    ) -> bool:
        window = minutes if minutes is not None else settings.OTP_VERIFIED_WINDOW_MINUTES
        since = datetime.utcnow() - timedelta(minutes=window)
        result = await db.execute(
            select(OTP.id)
            .where(
                OTP.email == email.lower(),
                OTP.type == type,
                OTP.verified == True,  # noqa: E712
                OTP.verified_at >= since,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def cleanup_expired_otps(self, db: AsyncSession) -> int:
        """Delete codes that expired more than OTP_RETENTION_HOURS ago"""
        cutoff = datetime.utcnow() - timedelta(hours=settings.OTP_RETENTION_HOURS)
        result = await db.execute(delete(OTP).where(OTP.expires_at < cutoff))
        await db.commit()
        count = result.rowcount or 0
        if count:
            logger.info(f"[OTP] Cleaned up {count} expired codes")
        return count


# Singleton instance
otp_service = OTPService()
