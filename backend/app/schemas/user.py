from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Dict

from app.models.user import Role, UserStatus
from app.schemas.auth import check_password, check_phone


class UserCreate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str
    phone: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)
    role: Role = Role.READER
    status: UserStatus = UserStatus.ACTIVE

    @field_validator("password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password(v)

    @field_validator("phone")
    @classmethod
    def valid_phone(cls, v: Optional[str]) -> Optional[str]:
        return check_phone(v)


class UserUpdate(BaseModel):
    """Partial update; role, status and email are applied for admins only"""
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)
    role: Optional[Role] = None
    status: Optional[UserStatus] = None

    @field_validator("phone")
    @classmethod
    def valid_phone(cls, v: Optional[str]) -> Optional[str]:
        return check_phone(v)


class BulkDeleteRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)

    @field_validator("ids")
    @classmethod
    def positive_ids(cls, v: List[int]) -> List[int]:
        if any(i <= 0 for i in v):
            raise ValueError("All ids must be positive integers")
        return list(dict.fromkeys(v))


class BulkDeleteResponse(BaseModel):
    deleted_count: int
    deleted_ids: List[int]


class UserStats(BaseModel):
    total: int
    by_role: Dict[str, int]
    by_status: Dict[str, int]
    new_last_30_days: int
