from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import NotFoundError, ValidationError
from app.core.rate_limiter import limiter
from app.models.otp import OTPType
from app.models.user import UserStatus
from app.schemas.otp import OTPSendRequest, OTPVerifyRequest, OTPSendResponse, OTPVerifyResponse
from app.services.auth_service import auth_service
from app.services.email_service import queue_email
from app.services.otp_service import otp_service
from app.utils.responses import success_response

router = APIRouter()


@router.post("/send")
@limiter.limit("3/minute")
async def send_otp(
    request: Request,
    data: OTPSendRequest,
    db: AsyncSession = Depends(get_db)
):
    """Issue a one-time code and email it (rate limited: 3/min)"""
    if data.type == OTPType.PASSWORD_RESET:
        user = await auth_service.get_user_by_email(db, data.email)
        if not user or user.is_deleted or user.status != UserStatus.ACTIVE:
            raise NotFoundError("No active account found with this email")

    code, otp = await otp_service.create_otp(db, data.email, data.type)
    await queue_email("otp", otp.email, {
        "code": code,
        "expiry_minutes": settings.OTP_EXPIRY_MINUTES,
        "purpose": data.type.value,
    })

    return success_response(
        OTPSendResponse(expires_in=settings.OTP_EXPIRY_MINUTES * 60),
        message="OTP sent to your email",
    )


@router.post("/verify/forgot-password")
@limiter.limit("5/minute")
async def verify_forgot_password_otp(
    request: Request,
    data: OTPVerifyRequest,
    db: AsyncSession = Depends(get_db)
):
    """Verify a PASSWORD_RESET code (rate limited: 5/min)"""
    result = await otp_service.verify_otp(db, data.email, data.code, OTPType.PASSWORD_RESET)
    if not result.valid:
        details = {"remaining_attempts": result.remaining_attempts} if result.remaining_attempts is not None else None
        raise ValidationError(result.message, details=details)

    return success_response(OTPVerifyResponse(otp_id=result.otp_id), message=result.message)
