from pydantic import BaseModel, EmailStr, Field

from app.models.otp import OTPType


class OTPSendRequest(BaseModel):
    email: EmailStr
    type: OTPType = OTPType.PASSWORD_RESET


class OTPVerifyRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=r"^\d{6}$")


class OTPSendResponse(BaseModel):
    expires_in: int


class OTPVerifyResponse(BaseModel):
    otp_id: int
