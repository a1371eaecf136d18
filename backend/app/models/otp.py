from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, Integer, Index
from datetime import datetime
import enum

from app.core.database import Base


class OTPType(str, enum.Enum):
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    PASSWORD_RESET = "PASSWORD_RESET"
    LOGIN_2FA = "LOGIN_2FA"
    PHONE_VERIFICATION = "PHONE_VERIFICATION"


class OTP(Base):
    """One-time code sent by email. Only the hash of the code is stored."""
    __tablename__ = "otps"

    __table_args__ = (
        Index('ix_otps_email_type', 'email', 'type'),
        Index('ix_otps_expires_at', 'expires_at'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False)
    code_hash = Column(String(64), nullable=False)
    type = Column(SQLEnum(OTPType), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=3, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<OTP {self.email} {self.type}>"
